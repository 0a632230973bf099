# library/errors.py
from __future__ import annotations


class LibraryError(Exception):
    """Racine des erreurs métier (mappées en HTTP par app.core.errors)."""

    status_code = 500
    error = "Internal Server Error"


class InvalidRequestError(LibraryError):
    status_code = 400
    error = "Bad Request"


class NotFoundError(LibraryError):
    """Référence inconnue ou appartenant à un autre owner."""

    status_code = 404
    error = "Not Found"


class RepositoryError(LibraryError):
    """Échec de la couche de persistance (hors violation de clé étrangère)."""


class StorageError(LibraryError):
    """Échec disque pendant le staging ou le commit."""
