# library/service.py
from __future__ import annotations
from pathlib import PurePosixPath
from typing import List, Optional

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from adapters.db.base import LibraryRepository
from adapters.storage.base import Storage
from app.core.logging import get_logger
from .errors import InvalidRequestError
from .models import PartRole, Series, SeriesOut, UploadPart, VolumeOut
from .planner import CommitPlanner
from .utils import clean_title, split_relative_path

logger = get_logger(__name__)


class LibraryService:
    """Opérations unitaires hors pipeline : lecture, cover, renommage, suppression."""

    def __init__(self, repository: LibraryRepository, storage: Storage,
                 image_extensions: Optional[set[str]] = None) -> None:
        self.repository = repository
        self.storage = storage
        self.image_extensions = image_extensions
        self.planner = CommitPlanner(repository, storage)

    def list_library(self, owner_id: str) -> List[SeriesOut]:
        return [SeriesOut.from_entity(series, volumes)
                for series, volumes in self.repository.list_library(owner_id)]

    # ----------------- cover -----------------
    async def replace_cover(self, owner_id: str, series_id: str, upload: UploadFile) -> SeriesOut:
        try:
            series = await run_in_threadpool(self.repository.get_series, owner_id, series_id)
            segments = split_relative_path(upload.filename or "")
            name = segments[-1] if segments else ""
            ext = PurePosixPath(name).suffix.lower()
            if not ext or (self.image_extensions and ext not in self.image_extensions):
                raise InvalidRequestError(f"unsupported cover file: {upload.filename!r}")

            # même chemin que le pipeline : staging puis rename
            part = UploadPart(name, PartRole.SERIES_COVER, name, ext, series_folder=series.folder_name)
            async with self.storage.staging() as staging:
                staged = await staging.stage(part, upload)
                updated = await run_in_threadpool(self.planner.resolve_cover, series, staged)
        finally:
            await upload.close()
        logger.info("library:cover replaced for series %s", series.folder_name)
        return SeriesOut.from_entity(updated)

    # ----------------- renommage -----------------
    def rename_series(self, owner_id: str, series_id: str, title: Optional[str]) -> SeriesOut:
        return SeriesOut.from_entity(self.repository.rename_series(owner_id, series_id, clean_title(title)))

    def rename_volume(self, owner_id: str, volume_id: str, title: Optional[str]) -> VolumeOut:
        return VolumeOut.from_entity(self.repository.rename_volume(owner_id, volume_id, clean_title(title)))

    # ----------------- suppression -----------------
    def delete_series(self, owner_id: str, series_id: str) -> None:
        series = self.repository.get_series(owner_id, series_id)
        self.storage.delete_series_dir(owner_id, series.folder_name)
        self.repository.delete_series(owner_id, series_id)
        logger.info("library:series %s deleted", series.folder_name)

    def delete_volume(self, owner_id: str, volume_id: str) -> None:
        series, volume = self.repository.get_volume(owner_id, volume_id)
        self.storage.delete_volume_files(volume.file_path, volume.index_file_path)
        self.repository.delete_volume(owner_id, volume_id)
        logger.info("library:volume %s/%s deleted", series.folder_name, volume.folder_name)
        self._prune_series_dir(series)

    def _prune_series_dir(self, series: Series) -> None:
        # dernier volume + pas de cover → le dossier de série n'a plus de raison d'être
        if series.cover_path or self.repository.count_volumes(series.id) > 0:
            return
        if self.storage.delete_series_dir(series.owner_id, series.folder_name):
            logger.info("library:empty series directory %s removed", series.folder_name)
