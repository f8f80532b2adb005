"""
Screenshot Manager API - Object Store Interface
===============================================

What:  The contract every storage backend implements, plus the value types
       it returns.
How:   Async abstract methods. A missing object is `None` from `head`;
       mutating calls on a missing object raise NotFoundError; backend
       failures raise StorageError.

Implementations:
    - S3ObjectStore:    Amazon S3 and S3 compatible services (boto3)
    - LocalObjectStore: A local directory (development and tests, aiofiles)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass(frozen=True)
class StoredObject:
    """
    One object as reported by the store.

    Attributes:
        key:          Opaque identifier, also the public filename.
        size:         Content length in bytes.
        uploaded:     Upload (last write) time, timezone-aware UTC.
        etag:         Integrity tag with surrounding quotes removed.
        content_type: MIME type of the body.
        metadata:     Raw custom metadata map (string → string). None when
                      the listing call did not fetch it.
    """

    key: str
    size: int
    uploaded: datetime
    etag: str
    content_type: str = "application/octet-stream"
    metadata: Optional[Dict[str, str]] = None


@dataclass
class ObjectListing:
    """A single listing page. `truncated` is True when the store holds more keys."""

    objects: List[StoredObject] = field(default_factory=list)
    truncated: bool = False


class ObjectStore(ABC):
    """Abstract base class for screenshot storage backends."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend identifier for logs and the health check (e.g. "s3", "local")."""
        ...

    @abstractmethod
    async def list_objects(self) -> ObjectListing:
        """
        List stored objects in one call.

        Raises:
            StorageError: If the backend cannot complete the listing.
        """
        ...

    @abstractmethod
    async def head(self, key: str) -> Optional[StoredObject]:
        """
        Return the object's attributes and custom metadata, or None if absent.

        Raises:
            StorageError: If the backend cannot complete the request.
        """
        ...

    @abstractmethod
    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObject:
        """Store `body` under `key`, replacing any existing object."""
        ...

    @abstractmethod
    async def replace_metadata(
        self,
        stored: StoredObject,
        metadata: Dict[str, str],
    ) -> StoredObject:
        """
        Rewrite the object with `metadata` as its complete custom metadata map.

        `stored` is the object as read by `head`; its content type is kept.
        There is no compare-and-swap: a concurrent rewrite of the same key
        wins or loses by the store's last-write-wins rule.

        Raises:
            NotFoundError: If the object disappeared since it was read.
            StorageError: If the backend cannot complete the rewrite.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object."""
        ...

    @abstractmethod
    async def check_health(self) -> bool:
        """Lightweight reachability probe. Never raises."""
        ...
