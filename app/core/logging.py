# app/core/logging.py
# Logs texte + request_id safe

from __future__ import annotations
import logging
import logging.config
import contextvars
from typing import Optional
import uuid


# Contexte request_id / owner accessibles partout
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
owner_var: contextvars.ContextVar[str] = contextvars.ContextVar("owner", default="-")

# Filtre pour ajouter le contexte de la requête
class RequestContextFilter(logging.Filter):
    """Ajoute des champs sûrs (request_id, owner) pour éviter KeyError."""

    def filter(self, record: logging.LogRecord) -> bool: # type: ignore[override]
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get() or "-"
        if not hasattr(record, "owner"):
            record.owner = owner_var.get() or "-"
        return True

# Configuration du logging
def setup_logging(level: str = "INFO") -> None:
    fmt = ("%(asctime)s | %(levelname)s | %(name)s | req=%(request_id)s owner=%(owner)s | %(message)s")

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_ctx": {
                    "()": RequestContextFilter,
                }
            },
            "formatters": {
                "std": {"format": fmt},
                "access": {"format": "%(asctime)s | %(levelname)s | %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "std",
                    "filters": ["request_ctx"],
                },
                "uvicorn.access": {
                    "class": "logging.StreamHandler",
                    "formatter": "access",
                    "filters": ["request_ctx"],
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            "loggers": {
                "uvicorn": {"level": level},
                "uvicorn.error": {"level": level},
                "uvicorn.access": {
                    "level": level,
                    "handlers": ["uvicorn.access"],
                    "propagate": False,
                },
                # SQL verbeux seulement si demandé (database.echo)
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )

# Obtient un logger avec le nom spécifié
def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)

# Génère un nouvel ID de requête
def new_request_id() -> str:
    return uuid.uuid4().hex
