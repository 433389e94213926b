"""Core module for configuration and shared infrastructure."""

from memehub.core.config import settings
from memehub.core.storage import StorageBackend, StorageError, get_storage

__all__ = [
    "settings",
    "StorageBackend",
    "StorageError",
    "get_storage",
]
