# adapters/db/base.py
# Contrat du repository bibliothèque : toutes les lectures qui traversent une frontière d'owner sont scoped.
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from library.models import NewVolume, Series, Volume


class LibraryRepository(ABC):
    # --- utilisé par le pipeline d'ingestion ---
    @abstractmethod
    def find_series(self, owner_id: str, folder_name: str) -> Optional[Series]: ...

    @abstractmethod
    def create_series(self, owner_id: str, folder_name: str, title: Optional[str],
                      cover_path: Optional[str] = None) -> Series: ...

    @abstractmethod
    def update_series_cover(self, series_id: str, cover_path: Optional[str]) -> Series: ...

    @abstractmethod
    def find_volume(self, series_id: str, folder_name: str) -> Optional[Volume]: ...

    @abstractmethod
    def create_volume(self, volume: NewVolume) -> Volume: ...

    # --- opérations unitaires (owner-scoped) ---
    @abstractmethod
    def get_series(self, owner_id: str, series_id: str) -> Series: ...

    @abstractmethod
    def get_volume(self, owner_id: str, volume_id: str) -> Tuple[Series, Volume]: ...

    @abstractmethod
    def rename_series(self, owner_id: str, series_id: str, title: Optional[str]) -> Series: ...

    @abstractmethod
    def rename_volume(self, owner_id: str, volume_id: str, title: Optional[str]) -> Volume: ...

    @abstractmethod
    def delete_series(self, owner_id: str, series_id: str) -> None: ...

    @abstractmethod
    def delete_volume(self, owner_id: str, volume_id: str) -> None: ...

    @abstractmethod
    def count_volumes(self, series_id: str) -> int: ...

    @abstractmethod
    def list_library(self, owner_id: str) -> List[Tuple[Series, List[Volume]]]: ...

    @abstractmethod
    def ping(self) -> bool: ...
