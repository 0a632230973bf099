# library/metadata.py
from __future__ import annotations
from typing import Dict, Mapping, Optional

from pydantic import ValidationError

from app.core.logging import get_logger
from .models import SeriesMetadataDocument, StagedFile
from .utils import clean_title

logger = get_logger(__name__)


class MetadataCache:
    """Table (par requête) série → document de métadonnées parsé.

    Construite une seule fois entre le staging et le commit ; chaque fichier est
    lu au plus une fois. Un JSON illisible est loggé et simplement absent.
    """

    def __init__(self, documents: Optional[Mapping[str, SeriesMetadataDocument]] = None) -> None:
        self._documents: Dict[str, SeriesMetadataDocument] = dict(documents or {})

    @classmethod
    def build(cls, metadata_files: Mapping[str, StagedFile]) -> "MetadataCache":
        documents: Dict[str, SeriesMetadataDocument] = {}
        for series_folder, staged in metadata_files.items():
            doc = cls.parse(staged)
            if doc is not None:
                documents[series_folder] = doc
        logger.info("metadata:cache built %d/%d document(s)", len(documents), len(metadata_files))
        return cls(documents)

    @staticmethod
    def parse(staged: StagedFile) -> Optional[SeriesMetadataDocument]:
        try:
            raw = staged.staged_absolute_path.read_bytes()
            return SeriesMetadataDocument.model_validate_json(raw)
        except (OSError, ValidationError) as e:
            logger.warning("metadata:unreadable %s (%s)", staged.original_relative_path, e.__class__.__name__)
            return None

    def __contains__(self, series_folder: object) -> bool:
        return series_folder in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def get(self, series_folder: str) -> Optional[SeriesMetadataDocument]:
        return self._documents.get(series_folder)

    def series_title(self, series_folder: str) -> Optional[str]:
        doc = self._documents.get(series_folder)
        return clean_title(doc.series.title) if doc else None

    def volume_title(self, series_folder: str, volume_folder: str) -> Optional[str]:
        doc = self._documents.get(series_folder)
        if doc is None:
            return None
        entry = doc.volumes.get(volume_folder)
        return clean_title(entry.display_title) if entry else None
