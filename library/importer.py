# library/importer.py
from __future__ import annotations
from typing import AsyncIterable, AsyncIterator, Iterable, Optional, Union

from fastapi.concurrency import run_in_threadpool

from adapters.db.base import LibraryRepository
from adapters.storage.base import Storage
from app.core.logging import get_logger
from .classifier import PartClassifier
from .metadata import MetadataCache
from .models import IngestReport, UploadBatch
from .planner import CommitPlanner
from .staging import StagingArea, UploadSource, drain
from .upload_stream import MultipartStream

logger = get_logger(__name__)

Uploads = Union[Iterable[UploadSource], AsyncIterable[UploadSource]]


async def _each(uploads: Uploads) -> AsyncIterator[UploadSource]:
    if hasattr(uploads, "__aiter__"):
        async for up in uploads:  # type: ignore[union-attr]
            yield up
    else:
        for up in uploads:  # type: ignore[union-attr]
            yield up


class Importer:
    """Service métier : ingestion d'un upload multi-fichiers (dossiers de volumes).

    Passe 1 (async, une part à la fois) : classification + écriture en staging.
    Passe 2 (synchrone, threadpool) : cache de métadonnées puis commit.
    La zone de staging est détruite à la sortie, quelle qu'elle soit.
    """

    def __init__(
        self,
        repository: LibraryRepository,
        storage: Storage,
        classifier: Optional[PartClassifier] = None,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.classifier = classifier or PartClassifier()
        self.planner = CommitPlanner(repository, storage)

    async def import_stream(self, *, owner_id: str, content_type: Optional[str],
                            chunks: AsyncIterable[bytes]) -> IngestReport:
        """Corps multipart brut : chaque part est classée dès ses en-têtes reçus."""
        stream = MultipartStream(content_type, chunks)
        report = await self.import_files(owner_id=owner_id, uploads=stream.parts())
        logger.info("Importer:import_stream %d part(s) read", stream.parts_seen)
        return report

    async def import_files(self, *, owner_id: str, uploads: Uploads) -> IngestReport:
        logger.info("Importer:import_files:start")
        async with self.storage.staging() as staging:
            batch = await self.stage_all(owner_id, uploads, staging)
            report = await run_in_threadpool(self._commit, batch)
        logger.info("Importer:import_files:end processed=%d skipped=%d ignored=%d",
                    report.processed, report.skipped, batch.ignored)
        return report

    async def stage_all(self, owner_id: str, uploads: Uploads, staging: StagingArea) -> UploadBatch:
        batch = UploadBatch(owner_id=owner_id)
        async for up in _each(uploads):
            part = self.classifier.classify(up.filename)
            try:
                if part.ignored:
                    await drain(up, staging.chunk_size)
                    batch.ignored += 1
                    continue
                staged = await staging.stage(part, up)
                batch.add(part, staged)
            finally:
                await up.close()
        logger.info("Importer:staged groups=%d covers=%d metadata=%d ignored=%d",
                    len(batch.groups), len(batch.covers), len(batch.metadata_files), batch.ignored)
        return batch

    def _commit(self, batch: UploadBatch) -> IngestReport:
        cache = MetadataCache.build(batch.metadata_files)
        return self.planner.commit(batch, cache)
