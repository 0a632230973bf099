# library/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import normalize_segment


# ---------------------------------------------------------------------------
# Upload (éphémère, durée de vie = une requête)
# ---------------------------------------------------------------------------

class PartRole(str, Enum):
    IGNORED = "ignored"
    SERIES_COVER = "series_cover"
    SERIES_METADATA = "series_metadata"
    VOLUME_INDEX = "volume_index"
    VOLUME_PAGE = "volume_page"


class VolumeKey(NamedTuple):
    """Clé composite d'un groupe de volume, scoped par owner."""
    owner_id: str
    series_folder: str
    volume_folder: str


@dataclass(frozen=True)
class UploadPart:
    relative_path: str
    role: PartRole
    file_name: str = ""
    extension: str = ""
    series_folder: Optional[str] = None
    volume_folder: Optional[str] = None
    reason: Optional[str] = None   # pourquoi la part est ignorée (logs)

    @property
    def ignored(self) -> bool:
        return self.role is PartRole.IGNORED


@dataclass(frozen=True)
class StagedFile:
    original_relative_path: str
    staged_absolute_path: Path

    @property
    def name(self) -> str:
        return self.staged_absolute_path.name

    @property
    def suffix(self) -> str:
        return self.staged_absolute_path.suffix.lower()


@dataclass
class UploadedVolumeGroup:
    key: VolumeKey
    index_file: Optional[StagedFile] = None
    # ordre de découverte, dédoublonné sur le chemin stagé
    page_files: Dict[Path, StagedFile] = field(default_factory=dict)

    @property
    def series_folder(self) -> str:
        return self.key.series_folder

    @property
    def volume_folder(self) -> str:
        return self.key.volume_folder

    @property
    def pages(self) -> List[StagedFile]:
        return list(self.page_files.values())

    @property
    def is_valid(self) -> bool:
        return self.index_file is not None

    def add_page(self, staged: StagedFile) -> None:
        self.page_files[staged.staged_absolute_path] = staged

    def cover_page(self) -> Optional[StagedFile]:
        """Page dont le chemin d'origine est le plus petit (ordre lexicographique)."""
        if not self.page_files:
            return None
        return min(self.page_files.values(), key=lambda s: s.original_relative_path)

    def staged_files(self) -> List[StagedFile]:
        files = self.pages
        if self.index_file is not None:
            files.append(self.index_file)
        return files


@dataclass
class UploadBatch:
    """Arène des fichiers stagés d'une requête, indexée par clé typée."""
    owner_id: str
    groups: Dict[VolumeKey, UploadedVolumeGroup] = field(default_factory=dict)
    covers: Dict[str, StagedFile] = field(default_factory=dict)
    metadata_files: Dict[str, StagedFile] = field(default_factory=dict)
    ignored: int = 0

    def group_for(self, series_folder: str, volume_folder: str) -> UploadedVolumeGroup:
        key = VolumeKey(self.owner_id, series_folder, volume_folder)
        group = self.groups.get(key)
        if group is None:
            group = self.groups[key] = UploadedVolumeGroup(key=key)
        return group

    def add(self, part: UploadPart, staged: StagedFile) -> None:
        if part.role is PartRole.SERIES_METADATA:
            self.metadata_files[part.series_folder] = staged  # last-wins
        elif part.role is PartRole.SERIES_COVER:
            self.covers[part.series_folder] = staged
        elif part.role is PartRole.VOLUME_INDEX:
            self.group_for(part.series_folder, part.volume_folder).index_file = staged
        elif part.role is PartRole.VOLUME_PAGE:
            self.group_for(part.series_folder, part.volume_folder).add_page(staged)
        else:
            raise ValueError(f"cannot stage an ignored part: {part.relative_path}")


# ---------------------------------------------------------------------------
# Entités persistées
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Series:
    id: str
    owner_id: str
    folder_name: str
    title: Optional[str] = None
    cover_path: Optional[str] = None


@dataclass(frozen=True)
class Volume:
    id: str
    series_id: str
    folder_name: str
    title: Optional[str]
    page_count: int
    file_path: str
    index_file_path: str
    cover_image_name: Optional[str] = None


@dataclass(frozen=True)
class NewVolume:
    series_id: str
    folder_name: str
    title: Optional[str]
    page_count: int
    file_path: str
    index_file_path: str
    cover_image_name: Optional[str]


@dataclass(frozen=True)
class CommittedFiles:
    """Résultat des renames d'un volume (chemins relatifs au storage root)."""
    file_path: str
    index_file_path: str
    page_count: int


# ---------------------------------------------------------------------------
# JSON de métadonnées de série (produit par l'outil d'export)
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VolumeMetadata(_CamelModel):
    display_title: Optional[str] = None
    progress: Optional[Any] = None


class SeriesInfo(_CamelModel):
    title: Optional[str] = None
    original_folder_name: Optional[str] = None


class SeriesMetadataDocument(_CamelModel):
    series: SeriesInfo = Field(default_factory=SeriesInfo)
    volumes: Dict[str, VolumeMetadata] = Field(default_factory=dict)

    @field_validator("volumes")
    @classmethod
    def _normalize_volume_keys(cls, volumes: Dict[str, VolumeMetadata]) -> Dict[str, VolumeMetadata]:
        # clés comparées aux dossiers de volume, normalisés à la classification
        return {normalize_segment(k): v for k, v in volumes.items()}


# ---------------------------------------------------------------------------
# Modèles API
# ---------------------------------------------------------------------------

class IngestReport(BaseModel):
    processed: int = 0
    skipped: int = 0


class TitleUpdate(_CamelModel):
    title: Optional[str] = None


class VolumeOut(_CamelModel):
    id: str
    series_id: str
    folder_name: str
    title: Optional[str] = None
    display_title: str
    page_count: int
    file_path: str
    index_file_path: str
    cover_image_name: Optional[str] = None

    @classmethod
    def from_entity(cls, volume: Volume) -> "VolumeOut":
        return cls(
            id=volume.id,
            series_id=volume.series_id,
            folder_name=volume.folder_name,
            title=volume.title,
            display_title=volume.title or volume.folder_name,
            page_count=volume.page_count,
            file_path=volume.file_path,
            index_file_path=volume.index_file_path,
            cover_image_name=volume.cover_image_name,
        )


class SeriesOut(_CamelModel):
    id: str
    owner_id: str
    folder_name: str
    title: Optional[str] = None
    display_title: str
    cover_path: Optional[str] = None
    volumes: List[VolumeOut] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, series: Series, volumes: Optional[List[Volume]] = None) -> "SeriesOut":
        return cls(
            id=series.id,
            owner_id=series.owner_id,
            folder_name=series.folder_name,
            title=series.title,
            display_title=series.title or series.folder_name,
            cover_path=series.cover_path,
            volumes=[VolumeOut.from_entity(v) for v in volumes or []],
        )
