# app/core/config.py
# Core → config (YAML + env + cache)
from __future__ import annotations
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Pydantic models (typage fort + auto-doc)
# ---------------------------------------------------------------------------

class AppCfg(BaseModel):
    """Configuration de l'application"""
    name: str = "volume-library"
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: [
        "http://localhost:5173", "http://127.0.0.1:5173"
    ])
    owner_header: str = "X-Owner-Id"

class StorageCfg(BaseModel):
    """Configuration du stockage des fichiers"""
    root: Path = Path("./data")
    tmp_dir: Optional[Path] = None   # zones de staging ; défaut <root>/_tmp (os.replace exige le même FS)
    uploads_dirname: str = "uploads"
    chunk_size: int = 1024 * 1024

    @model_validator(mode="after")
    def _default_tmp_dir(self) -> "StorageCfg":
        if self.tmp_dir is None:
            self.tmp_dir = self.root / "_tmp"
        return self

class IngestCfg(BaseModel):
    """Règles de classification des fichiers uploadés"""
    index_extension: str = ".mokuro"
    image_extensions: List[str] = Field(default_factory=lambda: [
        ".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif", ".bmp"
    ])
    metadata_extension: str = ".json"
    ignored_extensions: List[str] = Field(default_factory=lambda: [".html"])
    reserved_segments: List[str] = Field(default_factory=lambda: ["_ocr"])

class DatabaseCfg(BaseModel):
    """Configuration de la base relationnelle"""
    url: str = "sqlite:///./data/library.db"
    echo: bool = False

class Settings(BaseModel):
    """Configuration générale de l'application"""
    app: AppCfg = AppCfg()
    storage: StorageCfg = StorageCfg()
    ingest: IngestCfg = IngestCfg()
    database: DatabaseCfg = DatabaseCfg()


# ---------------------------------------------------------------------------
# YAML loader + interpolation ${VAR:default}
# ---------------------------------------------------------------------------

# Pattern pour l'expansion des variables d'environnement
_env_pattern = re.compile(r"\$\{([A-Z0-9_]+)(?::([^}]*))?\}")

def _interpolate_env(value: Any) -> Any:
    """Interpole les variables d'environnement dans les chaînes de caractères."""
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var, default = match.group(1), match.group(2) or ""
            return os.getenv(var, default)
        return _env_pattern.sub(repl, value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(v) for v in value]
    return value

def _load_yaml(path: Path) -> Dict[str, Any]:
    """Charge un fichier YAML et retourne un dictionnaire."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return raw

def load_settings(path: Optional[Path] = None) -> Settings:
    """Lit et valide un fichier de configuration (sans cache)."""
    cfg_path = Path(path or os.getenv("SETTINGS_FILE", "config/settings.yaml"))
    data = _interpolate_env(_load_yaml(cfg_path))
    try:
        return Settings(**data)
    except ValidationError as exc:
        # Affiche l'erreur proprement dès le boot
        raise RuntimeError(f"Invalid configuration in {cfg_path}:\n{exc}") from exc

# ---------------------------------------------------------------------------
# Public factory (cache)
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Charge .env puis settings.yaml, effectue l'interpolation et valide."""
    load_dotenv(override=True)
    return load_settings()

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
__all__ = [
"Settings",
"AppCfg",
"StorageCfg",
"IngestCfg",
"DatabaseCfg",
"get_settings",
"load_settings",
]
