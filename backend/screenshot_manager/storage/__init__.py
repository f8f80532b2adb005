"""
Screenshot Manager API - Storage Package
========================================

What:  Object store access behind the `ObjectStore` interface.
How:   `build_object_store(settings)` picks the backend named by
       STORAGE_BACKEND ("local" or "s3").
"""

from screenshot_manager.config import Settings
from screenshot_manager.storage.base import ObjectListing, ObjectStore, StoredObject
from screenshot_manager.storage.local_store import LocalObjectStore
from screenshot_manager.storage.s3_store import S3ObjectStore


def build_object_store(settings: Settings) -> ObjectStore:
    """Instantiate the configured storage backend."""
    if settings.storage_backend == "s3":
        return S3ObjectStore.from_settings(settings)
    return LocalObjectStore(settings.local_storage_root)


__all__ = [
    "LocalObjectStore",
    "ObjectListing",
    "ObjectStore",
    "S3ObjectStore",
    "StoredObject",
    "build_object_store",
]
