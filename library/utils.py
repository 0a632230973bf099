# library/utils.py
from __future__ import annotations
import re, unicodedata
from pathlib import PurePosixPath
from typing import List, Optional
from uuid import uuid4

# -------------------- Segments de chemin --------------------

_UNSAFE_SEGMENT = re.compile(r"[\x00-\x1f/\\]")


def normalize_segment(value: str) -> str:
    """NFC + trim : une même série uploadée depuis macOS (NFD) ou Windows garde la même clé."""
    return unicodedata.normalize("NFC", value).strip()


def is_safe_segment(value: Optional[str]) -> bool:
    if not value or value in {".", ".."}:
        return False
    return not _UNSAFE_SEGMENT.search(value)


def split_relative_path(raw: str) -> Optional[List[str]]:
    """Découpe un chemin relatif fourni par le client. None si invalide (absolu, '..', vide)."""
    if not raw:
        return None
    cleaned = raw.replace("\\", "/")
    if cleaned.startswith("/") or re.match(r"^[A-Za-z]:", cleaned):
        return None
    segments = [normalize_segment(s) for s in PurePosixPath(cleaned).parts]
    if not segments or not all(is_safe_segment(s) for s in segments):
        return None
    return segments


def make_id() -> str:
    return uuid4().hex


def clean_title(value: Optional[str]) -> Optional[str]:
    """Titre vide ou blanc → None (le nom de dossier sert de fallback à la lecture)."""
    if value is None:
        return None
    value = value.strip()
    return value or None
