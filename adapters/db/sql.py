# adapters/db/sql.py
"""SQL-backed library repository (SQLite par défaut)."""
from __future__ import annotations

from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import Engine, func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.logging import get_logger
from library.errors import NotFoundError, RepositoryError
from library.models import NewVolume, Series, Volume
from library.utils import clean_title, make_id

from .base import LibraryRepository
from .engine import make_session_factory, session_scope
from .models import SeriesModel, VolumeModel

logger = get_logger(__name__)

T = TypeVar("T")


def _is_fk_violation(exc: IntegrityError) -> bool:
    msg = str(exc.orig).lower()
    return "foreign key" in msg


class SqlLibraryRepository(LibraryRepository):
    """Repository series/volumes sur SQLAlchemy.

    Échoue vite : les lectures par id lèvent ``NotFoundError`` (y compris quand
    la ligne appartient à un autre owner), les violations de clé étrangère aussi,
    toute autre erreur SQL devient ``RepositoryError``.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = make_session_factory(engine)

    def _run(self, action: str, fn: Callable[[Session], T]) -> T:
        try:
            with session_scope(self._sessions) as session:
                return fn(session)
        except IntegrityError as e:
            if _is_fk_violation(e):
                raise NotFoundError(f"{action}: referenced row does not exist") from e
            raise RepositoryError(f"{action}: constraint violation ({e.orig})") from e
        except SQLAlchemyError as e:
            raise RepositoryError(f"{action}: {e}") from e

    # ----------------- séries -----------------
    def find_series(self, owner_id: str, folder_name: str) -> Optional[Series]:
        def q(s: Session) -> Optional[Series]:
            row = s.execute(
                select(SeriesModel).where(
                    SeriesModel.owner_id == owner_id, SeriesModel.folder_name == folder_name
                )
            ).scalar_one_or_none()
            return self._to_series(row) if row else None
        return self._run("find_series", q)

    def create_series(self, owner_id: str, folder_name: str, title: Optional[str],
                      cover_path: Optional[str] = None) -> Series:
        def q(s: Session) -> Series:
            row = SeriesModel(id=make_id(), owner_id=owner_id, folder_name=folder_name,
                              title=title, cover_path=cover_path)
            s.add(row)
            s.flush()
            return self._to_series(row)
        try:
            return self._run("create_series", q)
        except RepositoryError:
            # upload concurrent sur la même série : la contrainte unique a tranché
            existing = self.find_series(owner_id, folder_name)
            if existing is None:
                raise
            logger.info("db:series %s/%s created concurrently, reusing", owner_id, folder_name)
            return existing

    def update_series_cover(self, series_id: str, cover_path: Optional[str]) -> Series:
        def q(s: Session) -> Series:
            row = s.get(SeriesModel, series_id)
            if row is None:
                raise NotFoundError(f"series {series_id} not found")
            row.cover_path = cover_path
            return self._to_series(row)
        return self._run("update_series_cover", q)

    def get_series(self, owner_id: str, series_id: str) -> Series:
        def q(s: Session) -> Series:
            return self._to_series(self._owned_series(s, owner_id, series_id))
        return self._run("get_series", q)

    def rename_series(self, owner_id: str, series_id: str, title: Optional[str]) -> Series:
        def q(s: Session) -> Series:
            row = self._owned_series(s, owner_id, series_id)
            row.title = clean_title(title)
            return self._to_series(row)
        return self._run("rename_series", q)

    def delete_series(self, owner_id: str, series_id: str) -> None:
        def q(s: Session) -> None:
            s.delete(self._owned_series(s, owner_id, series_id))
        self._run("delete_series", q)

    # ----------------- volumes -----------------
    def find_volume(self, series_id: str, folder_name: str) -> Optional[Volume]:
        def q(s: Session) -> Optional[Volume]:
            row = s.execute(
                select(VolumeModel).where(
                    VolumeModel.series_id == series_id, VolumeModel.folder_name == folder_name
                )
            ).scalar_one_or_none()
            return self._to_volume(row) if row else None
        return self._run("find_volume", q)

    def create_volume(self, volume: NewVolume) -> Volume:
        def q(s: Session) -> Volume:
            row = VolumeModel(
                id=make_id(),
                series_id=volume.series_id,
                folder_name=volume.folder_name,
                title=volume.title,
                page_count=volume.page_count,
                file_path=volume.file_path,
                index_file_path=volume.index_file_path,
                cover_image_name=volume.cover_image_name,
            )
            s.add(row)
            s.flush()
            return self._to_volume(row)
        return self._run("create_volume", q)

    def get_volume(self, owner_id: str, volume_id: str) -> Tuple[Series, Volume]:
        def q(s: Session) -> Tuple[Series, Volume]:
            row = self._owned_volume(s, owner_id, volume_id)
            return self._to_series(row.series), self._to_volume(row)
        return self._run("get_volume", q)

    def rename_volume(self, owner_id: str, volume_id: str, title: Optional[str]) -> Volume:
        def q(s: Session) -> Volume:
            row = self._owned_volume(s, owner_id, volume_id)
            row.title = clean_title(title)
            return self._to_volume(row)
        return self._run("rename_volume", q)

    def delete_volume(self, owner_id: str, volume_id: str) -> None:
        def q(s: Session) -> None:
            s.delete(self._owned_volume(s, owner_id, volume_id))
        self._run("delete_volume", q)

    def count_volumes(self, series_id: str) -> int:
        def q(s: Session) -> int:
            return s.execute(
                select(func.count()).select_from(VolumeModel).where(VolumeModel.series_id == series_id)
            ).scalar_one()
        return self._run("count_volumes", q)

    # ----------------- lecture bibliothèque -----------------
    def list_library(self, owner_id: str) -> List[Tuple[Series, List[Volume]]]:
        def q(s: Session) -> List[Tuple[Series, List[Volume]]]:
            rows = s.execute(
                select(SeriesModel)
                .where(SeriesModel.owner_id == owner_id)
                .options(selectinload(SeriesModel.volumes))
            ).scalars().all()
            out = []
            for row in rows:
                volumes = sorted((self._to_volume(v) for v in row.volumes),
                                 key=lambda v: (v.title or v.folder_name).casefold())
                out.append((self._to_series(row), volumes))
            out.sort(key=lambda item: (item[0].title or item[0].folder_name).casefold())
            return out
        return self._run("list_library", q)

    def ping(self) -> bool:
        def q(s: Session) -> bool:
            return s.execute(text("SELECT 1")).scalar_one() == 1
        return self._run("ping", q)

    # ----------------- helpers -----------------
    @staticmethod
    def _owned_series(s: Session, owner_id: str, series_id: str) -> SeriesModel:
        row = s.execute(
            select(SeriesModel).where(SeriesModel.id == series_id, SeriesModel.owner_id == owner_id)
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"series {series_id} not found")
        return row

    @staticmethod
    def _owned_volume(s: Session, owner_id: str, volume_id: str) -> VolumeModel:
        row = s.execute(
            select(VolumeModel)
            .join(SeriesModel, VolumeModel.series_id == SeriesModel.id)
            .where(VolumeModel.id == volume_id, SeriesModel.owner_id == owner_id)
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"volume {volume_id} not found")
        return row

    @staticmethod
    def _to_series(row: SeriesModel) -> Series:
        return Series(
            id=row.id,
            owner_id=row.owner_id,
            folder_name=row.folder_name,
            title=row.title,
            cover_path=row.cover_path,
        )

    @staticmethod
    def _to_volume(row: VolumeModel) -> Volume:
        return Volume(
            id=row.id,
            series_id=row.series_id,
            folder_name=row.folder_name,
            title=row.title,
            page_count=row.page_count,
            file_path=row.file_path,
            index_file_path=row.index_file_path,
            cover_image_name=row.cover_image_name,
        )
