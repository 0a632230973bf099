# app/core/resources.py
# Ressources singletons (branchement centralisé des adapters) :
# consommées par les routes via Depends, surchargeables en test (dependency_overrides).

from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from adapters.db.base import LibraryRepository
from adapters.db.engine import build_engine, create_schema
from adapters.db.sql import SqlLibraryRepository
from adapters.storage.base import Storage
from adapters.storage.local import LocalStorage
from app.core.config import get_settings
from library.classifier import PartClassifier
from library.importer import Importer
from library.service import LibraryService
from library.utils import is_safe_segment


@lru_cache
def get_engine():
    engine = build_engine(get_settings().database)
    create_schema(engine)
    return engine

@lru_cache
def get_repository() -> LibraryRepository:
    return SqlLibraryRepository(get_engine())

@lru_cache
def get_storage() -> Storage:
    # lisez la racine depuis votre config actuelle
    return LocalStorage(get_settings().storage)

@lru_cache
def get_classifier() -> PartClassifier:
    return PartClassifier(get_settings().ingest)


def get_importer(
    repository: LibraryRepository = Depends(get_repository),
    storage: Storage = Depends(get_storage),
    classifier: PartClassifier = Depends(get_classifier),
) -> Importer:
    return Importer(repository, storage, classifier)


def get_library_service(
    repository: LibraryRepository = Depends(get_repository),
    storage: Storage = Depends(get_storage),
    classifier: PartClassifier = Depends(get_classifier),
) -> LibraryService:
    return LibraryService(repository, storage, image_extensions=classifier.image_exts)


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """Identifiant opaque posé par la couche d'authentification en amont."""
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="No owner identity provided.")
    if not is_safe_segment(x_owner_id):
        raise HTTPException(status_code=400, detail="Invalid owner identity.")
    return x_owner_id
