from pathlib import Path

import pytest

from app.core.config import StorageCfg, load_settings


def test_yaml_with_env_interpolation(tmp_path, monkeypatch):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text(
        "app:\n"
        "  log_level: ${TEST_LOG_LEVEL:INFO}\n"
        "storage:\n"
        "  root: ${TEST_ROOT:./data}\n"
        "database:\n"
        "  url: sqlite:///${TEST_DB:lib.db}\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("TEST_ROOT", "/srv/library")
    monkeypatch.delenv("TEST_LOG_LEVEL", raising=False)
    monkeypatch.delenv("TEST_DB", raising=False)

    settings = load_settings(cfg)

    assert settings.app.log_level == "INFO"
    assert settings.storage.root == Path("/srv/library")
    assert settings.database.url == "sqlite:///lib.db"
    assert settings.ingest.index_extension == ".mokuro"


def test_staging_dir_follows_storage_root(tmp_path, monkeypatch):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text("storage:\n  root: ${TEST_ROOT:./data}\n", encoding="utf-8")
    monkeypatch.setenv("TEST_ROOT", "/mnt/library")

    assert load_settings(cfg).storage.tmp_dir == Path("/mnt/library/_tmp")
    assert StorageCfg().tmp_dir == Path("./data") / "_tmp"
    assert StorageCfg(root="/a", tmp_dir="/b").tmp_dir == Path("/b")


def test_missing_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.yaml")
    assert settings.app.owner_header == "X-Owner-Id"
    assert settings.storage.uploads_dirname == "uploads"


def test_invalid_config_fails_at_boot(tmp_path):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text("storage:\n  chunk_size: not-a-size\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_settings(cfg)
