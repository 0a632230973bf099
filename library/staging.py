# library/staging.py
from __future__ import annotations
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import aiofiles

from app.core.logging import get_logger
from .errors import StorageError
from .models import PartRole, StagedFile, UploadPart

logger = get_logger(__name__)

SERIES_METADATA_DIR = "_series_metadata_"
SERIES_COVER_DIR = "_series_cover_"


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class UploadSource(AsyncReadable, Protocol):
    """Part uploadée : ``UploadFile`` de Starlette ou part lue en flux."""
    filename: Optional[str]

    async def close(self) -> None: ...


async def drain(stream: AsyncReadable, chunk_size: int = 1024 * 1024) -> int:
    """Consomme et jette un flux (part ignorée) sans le garder en mémoire."""
    size = 0
    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            return size
        size += len(chunk)


class StagingArea:
    """Répertoire temporaire propre à une requête d'upload.

    Tout octet accepté atterrit ici avant la moindre décision permanente. Le
    répertoire est supprimé une et une seule fois à la sortie du bloc
    ``async with``, quel que soit le chemin de sortie (succès, erreur,
    annulation / déconnexion client).
    """

    def __init__(self, scratch_root: Path, chunk_size: int = 1024 * 1024) -> None:
        self.scratch_root = Path(scratch_root)
        self.chunk_size = chunk_size
        self.path: Optional[Path] = None
        self._torn_down = False

    # ----------------- cycle de vie -----------------
    def open(self) -> Path:
        if self.path is not None:
            raise RuntimeError("staging area already opened")
        try:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
            self.path = Path(tempfile.mkdtemp(prefix="upload-", dir=self.scratch_root))
        except OSError as e:
            raise StorageError(f"cannot create staging directory under {self.scratch_root}: {e}") from e
        logger.debug("staging:open %s", self.path)
        return self.path

    def teardown(self) -> None:
        # synchrone : doit aboutir même si la tâche appelante est annulée
        if self._torn_down or self.path is None:
            return
        self._torn_down = True
        shutil.rmtree(self.path, ignore_errors=True)
        if self.path.exists():
            logger.warning("staging:teardown could not fully remove %s", self.path)
        else:
            logger.debug("staging:teardown %s", self.path)

    async def __aenter__(self) -> "StagingArea":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.teardown()

    # ----------------- écriture -----------------
    def target_for(self, part: UploadPart) -> Path:
        if self.path is None or self._torn_down:
            raise RuntimeError("staging area is not open")
        if part.role is PartRole.IGNORED or not part.series_folder:
            raise ValueError(f"part {part.relative_path!r} has no staging location ({part.role.value})")
        base = self.path / part.series_folder
        if part.role is PartRole.SERIES_METADATA:
            return base / SERIES_METADATA_DIR / part.file_name
        if part.role is PartRole.SERIES_COVER:
            return base / SERIES_COVER_DIR / part.file_name
        if part.role in (PartRole.VOLUME_INDEX, PartRole.VOLUME_PAGE):
            return base / part.volume_folder / part.file_name
        raise ValueError(f"part {part.relative_path!r} has no staging location ({part.role.value})")

    async def stage(self, part: UploadPart, stream: AsyncReadable) -> StagedFile:
        """Écrit le flux chunk par chunk sous un chemin déterministe."""
        target = self.target_for(part)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as out:
                while True:
                    chunk = await stream.read(self.chunk_size)
                    if not chunk:
                        break
                    await out.write(chunk)
        except OSError as e:
            raise StorageError(f"cannot stage {part.relative_path}: {e}") from e
        return StagedFile(original_relative_path=part.relative_path, staged_absolute_path=target)

    @staticmethod
    def discard(staged: StagedFile) -> None:
        staged.staged_absolute_path.unlink(missing_ok=True)
