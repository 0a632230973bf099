# adapters/storage/base.py
# storage : layout permanent uploads/<owner>/<serie>/..., renames (jamais de copie), suppression.
from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

from library.errors import StorageError
from library.models import CommittedFiles, StagedFile
from library.staging import StagingArea

# base.py définit le contrat indépendant du support (FS local, ...)

__all__ = ["Storage", "StorageError"]


class Storage(ABC):
    @abstractmethod
    def staging(self) -> StagingArea: ...

    @abstractmethod
    def series_dir(self, owner_id: str, series_folder: str) -> Path: ...

    @abstractmethod
    def relative(self, path: Path) -> str: ...

    @abstractmethod
    def absolute(self, relative_path: str) -> Path: ...

    @abstractmethod
    def commit_cover(self, owner_id: str, series_folder: str, staged: StagedFile) -> str: ...

    @abstractmethod
    def commit_volume(
        self,
        owner_id: str,
        series_folder: str,
        volume_folder: str,
        index_file: StagedFile,
        pages: Sequence[StagedFile],
    ) -> CommittedFiles: ...

    @abstractmethod
    def delete_file(self, relative_path: Optional[str]) -> bool: ...

    @abstractmethod
    def delete_volume_files(self, file_path: str, index_file_path: str) -> None: ...

    @abstractmethod
    def delete_series_dir(self, owner_id: str, series_folder: str) -> bool: ...

    @abstractmethod
    def sweep_partials(self) -> int: ...
