# library/planner.py
from __future__ import annotations
from typing import Dict, Optional

from adapters.db.base import LibraryRepository
from adapters.storage.base import Storage
from app.core.logging import get_logger
from .metadata import MetadataCache
from .models import IngestReport, NewVolume, Series, StagedFile, UploadBatch, UploadedVolumeGroup
from .staging import StagingArea

logger = get_logger(__name__)


class CommitPlanner:
    """Seconde passe : décide et écrit, groupe par groupe, sur des fichiers déjà stagés.

    Pour chaque ``UploadedVolumeGroup`` :

    1. sans fichier d'index → pages jetées, compté *skipped* ;
    2. série retrouvée par ``(owner, dossier)`` ou créée (titre issu du JSON) ;
    3. cover de série déplacée et chemin mis à jour seulement s'il change ;
    4. volume déjà présent → fichiers stagés jetés, *skipped* (upload idempotent) ;
    5-8. renames vers le layout permanent puis insertion de la ligne volume.

    Synchrone : appelé via ``run_in_threadpool`` par l'importer, testable sans
    flux réseau. Une erreur disque ou base interrompt tout le commit.
    """

    def __init__(self, repository: LibraryRepository, storage: Storage) -> None:
        self.repository = repository
        self.storage = storage

    def commit(self, batch: UploadBatch, cache: MetadataCache) -> IngestReport:
        report = IngestReport()
        covers: Dict[str, StagedFile] = dict(batch.covers)
        owner_id = batch.owner_id

        for group in batch.groups.values():
            if not group.is_valid:
                logger.info("commit:orphan pages %s/%s (%d file(s), no index)",
                            group.series_folder, group.volume_folder, len(group.page_files))
                self._discard(group)
                report.skipped += 1
                continue

            series = self.resolve_series(owner_id, group.series_folder, cache)
            series = self.resolve_cover(series, covers.pop(group.series_folder, None))

            if self.repository.find_volume(series.id, group.volume_folder) is not None:
                logger.info("commit:duplicate %s/%s skipped", group.series_folder, group.volume_folder)
                self._discard(group)
                report.skipped += 1
                continue

            self.commit_group(series, group, cache)
            report.processed += 1

        # covers sans volume dans cette requête : seulement pour une série existante
        for series_folder, staged in covers.items():
            series = self.repository.find_series(owner_id, series_folder)
            if series is None:
                logger.info("commit:cover for unknown series %s discarded", series_folder)
                StagingArea.discard(staged)
                continue
            self.resolve_cover(series, staged)

        logger.info("commit:done processed=%d skipped=%d", report.processed, report.skipped)
        return report

    # ----------------- étapes -----------------
    def resolve_series(self, owner_id: str, series_folder: str, cache: MetadataCache) -> Series:
        series = self.repository.find_series(owner_id, series_folder)
        if series is not None:
            return series
        title = cache.series_title(series_folder)
        logger.info("commit:new series %s (title=%r)", series_folder, title)
        return self.repository.create_series(owner_id, series_folder, title)

    def resolve_cover(self, series: Series, staged: Optional[StagedFile]) -> Series:
        """Déplace la cover stagée ; idempotent vis-à-vis du chemin déjà stocké."""
        if staged is None:
            return series
        cover_path = self.storage.commit_cover(series.owner_id, series.folder_name, staged)
        if cover_path == series.cover_path:
            return series
        if series.cover_path:
            # ancienne cover avec une autre extension
            self.storage.delete_file(series.cover_path)
        return self.repository.update_series_cover(series.id, cover_path)

    def commit_group(self, series: Series, group: UploadedVolumeGroup, cache: MetadataCache):
        cover = group.cover_page()
        files = self.storage.commit_volume(
            series.owner_id,
            series.folder_name,
            group.volume_folder,
            group.index_file,
            group.pages,
        )
        volume = self.repository.create_volume(
            NewVolume(
                series_id=series.id,
                folder_name=group.volume_folder,
                title=cache.volume_title(group.series_folder, group.volume_folder),
                page_count=files.page_count,
                file_path=files.file_path,
                index_file_path=files.index_file_path,
                cover_image_name=cover.name if cover else None,
            )
        )
        logger.info("commit:volume %s/%s (%d page(s))",
                    series.folder_name, volume.folder_name, volume.page_count)
        return volume

    @staticmethod
    def _discard(group: UploadedVolumeGroup) -> None:
        for staged in group.staged_files():
            StagingArea.discard(staged)
