# adapters/storage/local.py
from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional, Sequence

from .base import Storage, StorageError

from app.core.config import get_settings, StorageCfg
from app.core.logging import get_logger
from library.models import CommittedFiles, StagedFile
from library.staging import StagingArea
from library.utils import is_safe_segment, make_id

logger = get_logger(__name__)

PARTIAL_MARKER = ".partial-"


class LocalStorage(Storage):
    """
    Implémentation disque locale du contrat Storage:
    - Root/tmp branchés à settings.storage (tmp doit être sur le même FS que root).
    - Layout: uploads/<owner>/<serie>/<serie><ext> (cover),
      uploads/<owner>/<serie>/<volume><ext_index>, uploads/<owner>/<serie>/<volume>/<image>.
    - Commit par rename uniquement : un volume est assemblé dans un dossier
      caché ``.<volume>.partial-<id>`` puis renommé en une fois.
    """

    def __init__(self, cfg: Optional[StorageCfg] = None) -> None:
        self.cfg: StorageCfg = cfg or get_settings().storage
        self.root: Path = Path(self.cfg.root)
        self.uploads: Path = self.root / self.cfg.uploads_dirname
        self.tmp: Path = Path(self.cfg.tmp_dir)

        for p in (self.root, self.tmp, self.uploads):
            p.mkdir(parents=True, exist_ok=True)

    # ----------------- staging -----------------
    def staging(self) -> StagingArea:
        return StagingArea(self.tmp, chunk_size=self.cfg.chunk_size)

    # ----------------- chemins -----------------
    @staticmethod
    def _segment(value: str) -> str:
        if not is_safe_segment(value):
            raise StorageError(f"unsafe path segment: {value!r}")
        return value

    def owner_dir(self, owner_id: str) -> Path:
        return self.uploads / self._segment(owner_id)

    def series_dir(self, owner_id: str, series_folder: str) -> Path:
        return self.owner_dir(owner_id) / self._segment(series_folder)

    def relative(self, path: Path) -> str:
        # chemins stockés en base : relatifs au root, séparateur '/'
        return Path(path).relative_to(self.root).as_posix()

    def absolute(self, relative_path: str) -> Path:
        target = (self.root / relative_path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise StorageError(f"path escapes storage root: {relative_path}")
        return target

    @staticmethod
    def _move(src: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        os.replace(src, dest)  # move atomique si même volume

    # ----------------- commit -----------------
    def commit_cover(self, owner_id: str, series_folder: str, staged: StagedFile) -> str:
        dest = self.series_dir(owner_id, series_folder) / f"{series_folder}{staged.suffix}"
        try:
            self._move(staged.staged_absolute_path, dest)
        except OSError as e:
            raise StorageError(f"cannot commit cover for {series_folder}: {e}") from e
        return self.relative(dest)

    def commit_volume(
        self,
        owner_id: str,
        series_folder: str,
        volume_folder: str,
        index_file: StagedFile,
        pages: Sequence[StagedFile],
    ) -> CommittedFiles:
        series_dir = self.series_dir(owner_id, series_folder)
        volume_dir = series_dir / self._segment(volume_folder)
        index_dest = series_dir / f"{volume_folder}{index_file.suffix}"
        partial = series_dir / f".{volume_folder}{PARTIAL_MARKER}{make_id()[:8]}"

        try:
            partial.mkdir(parents=True)
            moved = 0
            for page in pages:
                os.replace(page.staged_absolute_path, partial / page.name)
                moved += 1
            if volume_dir.exists():
                # restes d'un commit interrompu (pas de ligne en base, sinon doublon détecté avant)
                logger.warning("storage:replacing orphan volume directory %s", volume_dir)
                shutil.rmtree(volume_dir)
            os.replace(partial, volume_dir)
            self._move(index_file.staged_absolute_path, index_dest)
        except OSError as e:
            shutil.rmtree(partial, ignore_errors=True)
            raise StorageError(f"cannot commit volume {series_folder}/{volume_folder}: {e}") from e

        return CommittedFiles(
            file_path=self.relative(volume_dir),
            index_file_path=self.relative(index_dest),
            page_count=moved,
        )

    # ----------------- suppression -----------------
    def delete_file(self, relative_path: Optional[str]) -> bool:
        if not relative_path:
            return False
        f = self.absolute(relative_path)
        if not f.is_file():
            return False
        try:
            f.unlink()
            return True
        except OSError as e:
            raise StorageError(str(e)) from e

    def delete_volume_files(self, file_path: str, index_file_path: str) -> None:
        volume_dir = self.absolute(file_path)
        try:
            if volume_dir.is_dir():
                shutil.rmtree(volume_dir)
        except OSError as e:
            raise StorageError(f"cannot delete {file_path}: {e}") from e
        self.delete_file(index_file_path)

    def delete_series_dir(self, owner_id: str, series_folder: str) -> bool:
        d = self.series_dir(owner_id, series_folder)
        if not d.exists():
            return False
        try:
            shutil.rmtree(d)
        except OSError as e:
            raise StorageError(f"cannot delete series directory {series_folder}: {e}") from e
        return True

    def sweep_partials(self) -> int:
        """Supprime les dossiers ``.<volume>.partial-*`` laissés par un crash en plein commit."""
        count = 0
        if not self.uploads.exists():
            return 0
        for d in self.uploads.glob(f"*/*/.*{PARTIAL_MARKER}*"):
            if d.is_dir():
                shutil.rmtree(d, ignore_errors=True)
                count += 1
        if count:
            logger.warning("storage:swept %d partial volume director(y/ies)", count)
        return count
