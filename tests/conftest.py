# tests/conftest.py
from __future__ import annotations
import io
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi import UploadFile

from adapters.db.base import LibraryRepository
from adapters.db.engine import build_engine, create_schema
from adapters.db.sql import SqlLibraryRepository
from adapters.storage.local import LocalStorage
from app.core.config import DatabaseCfg, IngestCfg, StorageCfg
from library.classifier import PartClassifier
from library.errors import NotFoundError
from library.importer import Importer
from library.models import NewVolume, Series, Volume
from library.utils import make_id


def make_upload(name: str, content: bytes = b"x") -> UploadFile:
    return UploadFile(filename=name, file=io.BytesIO(content))


# --- fake repository (tests du planner sans base) ---
class FakeRepository(LibraryRepository):
    def __init__(self) -> None:
        self.series: Dict[str, Series] = {}
        self.volumes: Dict[str, Volume] = {}
        self.cover_updates: List[Tuple[str, Optional[str]]] = []

    def find_series(self, owner_id, folder_name):
        return next((s for s in self.series.values()
                     if s.owner_id == owner_id and s.folder_name == folder_name), None)

    def create_series(self, owner_id, folder_name, title, cover_path=None):
        s = Series(id=make_id(), owner_id=owner_id, folder_name=folder_name, title=title, cover_path=cover_path)
        self.series[s.id] = s
        return s

    def update_series_cover(self, series_id, cover_path):
        self.cover_updates.append((series_id, cover_path))
        s = self.series[series_id] = replace(self.series[series_id], cover_path=cover_path)
        return s

    def find_volume(self, series_id, folder_name):
        return next((v for v in self.volumes.values()
                     if v.series_id == series_id and v.folder_name == folder_name), None)

    def create_volume(self, volume: NewVolume):
        if volume.series_id not in self.series:
            raise NotFoundError("series missing")
        v = Volume(id=make_id(), **volume.__dict__)
        self.volumes[v.id] = v
        return v

    def get_series(self, owner_id, series_id):
        s = self.series.get(series_id)
        if s is None or s.owner_id != owner_id:
            raise NotFoundError(series_id)
        return s

    def get_volume(self, owner_id, volume_id):
        v = self.volumes.get(volume_id)
        if v is None:
            raise NotFoundError(volume_id)
        return self.get_series(owner_id, v.series_id), v

    def rename_series(self, owner_id, series_id, title):
        s = self.series[series_id] = replace(self.get_series(owner_id, series_id), title=title)
        return s

    def rename_volume(self, owner_id, volume_id, title):
        _, v = self.get_volume(owner_id, volume_id)
        v = self.volumes[volume_id] = replace(v, title=title)
        return v

    def delete_series(self, owner_id, series_id):
        self.get_series(owner_id, series_id)
        del self.series[series_id]
        self.volumes = {k: v for k, v in self.volumes.items() if v.series_id != series_id}

    def delete_volume(self, owner_id, volume_id):
        self.get_volume(owner_id, volume_id)
        del self.volumes[volume_id]

    def count_volumes(self, series_id):
        return sum(1 for v in self.volumes.values() if v.series_id == series_id)

    def list_library(self, owner_id):
        return [(s, [v for v in self.volumes.values() if v.series_id == s.id])
                for s in self.series.values() if s.owner_id == owner_id]

    def ping(self):
        return True


# --- fixtures ---
@pytest.fixture
def storage_cfg(tmp_path: Path) -> StorageCfg:
    return StorageCfg(root=tmp_path / "data", tmp_dir=tmp_path / "data" / "_tmp", chunk_size=4)


@pytest.fixture
def storage(storage_cfg: StorageCfg) -> LocalStorage:
    return LocalStorage(storage_cfg)


@pytest.fixture
def classifier() -> PartClassifier:
    return PartClassifier(IngestCfg())


@pytest.fixture
def engine(tmp_path: Path):
    eng = build_engine(DatabaseCfg(url=f"sqlite:///{tmp_path / 'library.db'}"))
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def repository(engine) -> SqlLibraryRepository:
    return SqlLibraryRepository(engine)


@pytest.fixture
def fake_repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def importer(repository, storage, classifier) -> Importer:
    return Importer(repository, storage, classifier)


@pytest.fixture
def staging_dirs(storage_cfg: StorageCfg):
    """Liste les zones de staging encore présentes sur disque."""
    def _list() -> List[Path]:
        root = Path(storage_cfg.tmp_dir)
        return sorted(root.iterdir()) if root.exists() else []
    return _list
