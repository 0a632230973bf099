# tests/unit/test_planner.py
from __future__ import annotations
from pathlib import Path

import pytest

from library.metadata import MetadataCache
from library.models import SeriesMetadataDocument, StagedFile, UploadBatch
from library.planner import CommitPlanner

OWNER = "u1"


@pytest.fixture
def scratch(storage):
    staging = storage.staging()
    staging.open()
    yield staging
    staging.teardown()


def _file(scratch, rel: str, content: bytes = b"x") -> StagedFile:
    p = scratch.path / "staged" / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(content)
    return StagedFile(original_relative_path=rel, staged_absolute_path=p)


def _batch(scratch, *, pages=("001.jpg",), series="S", volume="V", index=True) -> UploadBatch:
    batch = UploadBatch(owner_id=OWNER)
    group = batch.group_for(series, volume)
    if index:
        group.index_file = _file(scratch, f"{series}/{volume}.mokuro", b"{}")
    for name in pages:
        group.add_page(_file(scratch, f"{series}/{volume}/{name}"))
    return batch


def test_commit_creates_series_volume_and_moves_files(scratch, storage, fake_repository):
    batch = _batch(scratch, pages=("002.jpg", "001.jpg"))
    cache = MetadataCache({"S": SeriesMetadataDocument.model_validate(
        {"series": {"title": "Series Title"}, "volumes": {"V": {"displayTitle": "First"}}})})

    report = CommitPlanner(fake_repository, storage).commit(batch, cache)

    assert (report.processed, report.skipped) == (1, 0)
    (series,) = fake_repository.series.values()
    (volume,) = fake_repository.volumes.values()
    assert series.folder_name == "S" and series.title == "Series Title"
    assert volume.title == "First"
    assert volume.page_count == 2
    assert volume.cover_image_name == "001.jpg"
    assert volume.file_path == f"uploads/{OWNER}/S/V"
    assert volume.index_file_path == f"uploads/{OWNER}/S/V.mokuro"
    volume_dir = storage.absolute(volume.file_path)
    assert sorted(p.name for p in volume_dir.iterdir()) == ["001.jpg", "002.jpg"]
    assert storage.absolute(volume.index_file_path).is_file()
    # renames, pas de copies
    assert not any((scratch.path / "staged").rglob("*.jpg"))


def test_group_without_index_is_skipped_and_pages_discarded(scratch, storage, fake_repository):
    batch = _batch(scratch, index=False)
    page = batch.groups[next(iter(batch.groups))].pages[0]

    report = CommitPlanner(fake_repository, storage).commit(batch, MetadataCache())

    assert (report.processed, report.skipped) == (0, 1)
    assert fake_repository.volumes == {} and fake_repository.series == {}
    assert not page.staged_absolute_path.exists()
    assert not storage.series_dir(OWNER, "S").exists()


def test_existing_volume_is_skipped(scratch, storage, fake_repository):
    planner = CommitPlanner(fake_repository, storage)
    planner.commit(_batch(scratch), MetadataCache())
    again = _batch(scratch, pages=("001.jpg", "003.jpg"))

    report = planner.commit(again, MetadataCache())

    assert (report.processed, report.skipped) == (0, 1)
    (volume,) = fake_repository.volumes.values()
    assert volume.page_count == 1
    assert not any((scratch.path / "staged").rglob("*.jpg"))


def test_cover_moved_once_and_path_updated_only_on_change(scratch, storage, fake_repository):
    planner = CommitPlanner(fake_repository, storage)
    batch = _batch(scratch, volume="V1")
    batch.group_for("S", "V2").index_file = _file(scratch, "S/V2.mokuro")
    batch.covers["S"] = _file(scratch, "S/S.jpg", b"cover")

    planner.commit(batch, MetadataCache())

    (series,) = fake_repository.series.values()
    assert series.cover_path == f"uploads/{OWNER}/S/S.jpg"
    assert storage.absolute(series.cover_path).read_bytes() == b"cover"
    assert len(fake_repository.cover_updates) == 1

    # même cover ré-uploadée : fichier remplacé, pas d'écriture en base
    again = UploadBatch(owner_id=OWNER)
    again.covers["S"] = _file(scratch, "S/S.jpg", b"cover-2")
    planner.commit(again, MetadataCache())
    assert len(fake_repository.cover_updates) == 1
    assert storage.absolute(series.cover_path).read_bytes() == b"cover-2"


def test_cover_with_new_extension_replaces_old_file(scratch, storage, fake_repository):
    planner = CommitPlanner(fake_repository, storage)
    batch = _batch(scratch)
    batch.covers["S"] = _file(scratch, "S/S.jpg")
    planner.commit(batch, MetadataCache())

    again = UploadBatch(owner_id=OWNER)
    again.covers["S"] = _file(scratch, "S/S.png")
    planner.commit(again, MetadataCache())

    (series,) = fake_repository.series.values()
    assert series.cover_path.endswith("S/S.png")
    assert not (storage.series_dir(OWNER, "S") / "S.jpg").exists()


def test_cover_for_unknown_series_without_volumes_is_discarded(scratch, storage, fake_repository):
    batch = UploadBatch(owner_id=OWNER)
    cover = batch.covers["Ghost"] = _file(scratch, "Ghost/Ghost.jpg")

    report = CommitPlanner(fake_repository, storage).commit(batch, MetadataCache())

    assert (report.processed, report.skipped) == (0, 0)
    assert fake_repository.series == {}
    assert not cover.staged_absolute_path.exists()


def test_existing_series_is_reused_and_title_untouched(scratch, storage, fake_repository):
    existing = fake_repository.create_series(OWNER, "S", "Kept")
    cache = MetadataCache({"S": SeriesMetadataDocument.model_validate({"series": {"title": "Other"}})})

    CommitPlanner(fake_repository, storage).commit(_batch(scratch), cache)

    assert list(fake_repository.series.values()) == [existing]
    (volume,) = fake_repository.volumes.values()
    assert volume.series_id == existing.id
    assert volume.title is None


def test_series_are_scoped_per_owner(scratch, storage, fake_repository):
    fake_repository.create_series("someone-else", "S", None)
    CommitPlanner(fake_repository, storage).commit(_batch(scratch), MetadataCache())
    owners = sorted(s.owner_id for s in fake_repository.series.values())
    assert owners == sorted([OWNER, "someone-else"])


def test_orphan_volume_directory_is_replaced(scratch, storage, fake_repository):
    leftover = storage.series_dir(OWNER, "S") / "V"
    leftover.mkdir(parents=True)
    (leftover / "stale.jpg").write_bytes(b"old")

    CommitPlanner(fake_repository, storage).commit(_batch(scratch), MetadataCache())

    assert sorted(p.name for p in leftover.iterdir()) == ["001.jpg"]
    assert not list(Path(storage.series_dir(OWNER, "S")).glob(".*partial*"))
