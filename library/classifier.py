# library/classifier.py
from __future__ import annotations
from pathlib import PurePosixPath
from typing import Optional

from app.core.config import IngestCfg, get_settings
from app.core.logging import get_logger
from .models import PartRole, UploadPart
from .utils import is_safe_segment, normalize_segment, split_relative_path

logger = get_logger(__name__)


class PartClassifier:
    """Décide du rôle d'une part uploadée à partir de son seul chemin relatif.

    Le chemin attendu est ``<serie>/[<volume>/]<nom>.<ext>``. Un fichier dont le
    nom (sans extension) est celui de son dossier parent est un asset de série
    (cover ou JSON de métadonnées) ; le reste se range par volume.

    La classification ne lit pas le contenu et ne touche ni au staging ni à la
    base : l'appelant draine lui-même le flux des parts ignorées.
    """

    def __init__(self, cfg: Optional[IngestCfg] = None) -> None:
        self.cfg: IngestCfg = cfg or get_settings().ingest
        self.index_ext = self._norm_ext(self.cfg.index_extension)
        self.metadata_ext = self._norm_ext(self.cfg.metadata_extension)
        self.image_exts = {self._norm_ext(e) for e in self.cfg.image_extensions}
        self.ignored_exts = {self._norm_ext(e) for e in self.cfg.ignored_extensions}
        self.reserved = {s.lower() for s in self.cfg.reserved_segments}

    @staticmethod
    def _norm_ext(ext: str) -> str:
        ext = str(ext).lower()
        return ext if ext.startswith(".") else f".{ext}"

    @property
    def accepted_extensions(self) -> set[str]:
        return {self.index_ext, self.metadata_ext, *self.image_exts}

    def classify(self, relative_path: Optional[str]) -> UploadPart:
        raw = relative_path or ""
        segments = split_relative_path(raw)
        if segments is None:
            return self._ignore(raw, "invalid path")

        name = segments[-1]
        parents = segments[:-1]
        ext = PurePosixPath(name).suffix.lower()
        # même normalisation que les dossiers : "Vol 1 .mokuro" → volume "Vol 1"
        stem = normalize_segment(PurePosixPath(name).stem)

        # 1. cache OCR legacy / extensions exclues
        if any(s.lower() in self.reserved for s in parents):
            return self._ignore(raw, "reserved segment")
        if ext in self.ignored_exts:
            return self._ignore(raw, "excluded extension")
        # 2. extensions inconnues
        if ext not in self.accepted_extensions:
            return self._ignore(raw, "unsupported extension")

        # 3-5. assets de série (fichier auto-nommé)
        series_scoped = bool(parents) and stem == parents[-1]
        if series_scoped and ext == self.metadata_ext:
            return UploadPart(raw, PartRole.SERIES_METADATA, name, ext, series_folder=parents[-1])
        if series_scoped and ext in self.image_exts:
            return UploadPart(raw, PartRole.SERIES_COVER, name, ext, series_folder=parents[-1])

        # 6. fichier d'index : <serie>/<vol>.mokuro ou <serie>/<vol>/<vol>.mokuro
        if ext == self.index_ext and parents:
            if not is_safe_segment(stem):
                return self._ignore(raw, "invalid volume name")
            if len(parents) >= 2 and stem == parents[-1]:
                series = parents[-2]
            else:
                series = parents[-1]
            return UploadPart(raw, PartRole.VOLUME_INDEX, name, ext,
                              series_folder=series, volume_folder=stem)

        # 7. page : <serie>/<vol>/<image>
        if ext in self.image_exts and len(parents) >= 2:
            return UploadPart(raw, PartRole.VOLUME_PAGE, name, ext,
                              series_folder=parents[-2], volume_folder=parents[-1])

        # 8.
        return self._ignore(raw, "no matching layout")

    @staticmethod
    def _ignore(raw: str, reason: str) -> UploadPart:
        logger.debug("classifier:ignored %s (%s)", raw or "<empty>", reason)
        return UploadPart(raw, PartRole.IGNORED, reason=reason)
