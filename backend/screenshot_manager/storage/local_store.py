"""
Screenshot Manager API - Local Filesystem Object Store
======================================================

What:  ObjectStore kept in a local directory, for development and tests.
How:   Object bodies and a JSON sidecar per object, written with aiofiles.

Directory Structure:
    storage/
    ├── objects/
    │   └── shot-123.png             ← body
    └── meta/
        └── shot-123.png.json        ← {"content_type", "uploaded", "etag", "metadata"}

Keys may contain "/" (nested directories). Keys that would resolve outside
`objects/` are rejected with ValidationError.
"""

import hashlib
import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from stat import S_ISREG
from typing import Any, Dict, Optional, Tuple

import aiofiles
import aiofiles.os

from screenshot_manager.exceptions import NotFoundError, StorageError, ValidationError
from screenshot_manager.storage.base import ObjectListing, ObjectStore, StoredObject

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".json"


class LocalObjectStore(ObjectStore):
    """Filesystem-backed screenshot storage rooted at `root`."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.objects_dir = self.root / "objects"
        self.meta_dir = self.root / "meta"
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.meta_dir.mkdir(parents=True, exist_ok=True)
        logger.info("LocalObjectStore initialized with root=%s", self.root)

    @property
    def backend_name(self) -> str:
        return "local"

    def _paths(self, key: str) -> Tuple[Path, Path]:
        """Resolve (body_path, sidecar_path) for a key, refusing traversal."""
        if not key or key.startswith("/") or "\x00" in key or ".." in Path(key).parts:
            raise ValidationError(message="Invalid screenshot key", details={"key": key})

        body_path = (self.objects_dir / key).resolve()
        if not body_path.is_relative_to(self.objects_dir):
            raise ValidationError(message="Invalid screenshot key", details={"key": key})

        relative = body_path.relative_to(self.objects_dir)
        sidecar_path = self.meta_dir / f"{relative}{SIDECAR_SUFFIX}"
        return body_path, sidecar_path

    async def _read_sidecar(self, sidecar_path: Path) -> Dict[str, Any]:
        try:
            async with aiofiles.open(sidecar_path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Unreadable sidecar %s: %s", sidecar_path, str(e))
            return {}
        return data if isinstance(data, dict) else {}

    async def _write_sidecar(self, sidecar_path: Path, data: Dict[str, Any]) -> None:
        try:
            sidecar_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(sidecar_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, ensure_ascii=False))
        except OSError as e:
            logger.error("Failed to write sidecar %s: %s", sidecar_path, str(e))
            raise StorageError(context={"path": str(sidecar_path), "os_error": str(e)}) from e

    async def _load(self, key: str, body_path: Path, sidecar_path: Path) -> Optional[StoredObject]:
        try:
            stat = await aiofiles.os.stat(body_path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(context={"path": str(body_path), "os_error": str(e)}) from e
        if not S_ISREG(stat.st_mode):
            # A key prefix such as "report" in "report/metadata" is a directory here
            return None

        sidecar = await self._read_sidecar(sidecar_path)
        uploaded_raw = sidecar.get("uploaded")
        if isinstance(uploaded_raw, str):
            uploaded = datetime.fromisoformat(uploaded_raw)
        else:
            uploaded = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

        metadata = sidecar.get("metadata")
        return StoredObject(
            key=key,
            size=stat.st_size,
            uploaded=uploaded,
            etag=sidecar.get("etag", ""),
            content_type=sidecar.get("content_type", "application/octet-stream"),
            metadata={str(k): str(v) for k, v in metadata.items()} if isinstance(metadata, dict) else {},
        )

    async def list_objects(self) -> ObjectListing:
        objects = []
        for body_path in sorted(p for p in self.objects_dir.rglob("*") if p.is_file()):
            key = body_path.relative_to(self.objects_dir).as_posix()
            _, sidecar_path = self._paths(key)
            stored = await self._load(key, body_path, sidecar_path)
            if stored is not None:
                objects.append(stored)
        return ObjectListing(objects=objects, truncated=False)

    async def head(self, key: str) -> Optional[StoredObject]:
        body_path, sidecar_path = self._paths(key)
        return await self._load(key, body_path, sidecar_path)

    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObject:
        body_path, sidecar_path = self._paths(key)
        try:
            body_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(body_path, "wb") as f:
                await f.write(body)
        except OSError as e:
            logger.error("Failed to store object at %s: %s", body_path, str(e))
            raise StorageError(context={"path": str(body_path), "os_error": str(e)}) from e

        uploaded = datetime.now(timezone.utc)
        await self._write_sidecar(
            sidecar_path,
            {
                "content_type": content_type,
                "uploaded": uploaded.isoformat(),
                "etag": hashlib.md5(body).hexdigest(),
                "metadata": dict(metadata or {}),
            },
        )
        logger.info("Object stored: %s (%d bytes)", key, len(body))

        stored = await self._load(key, body_path, sidecar_path)
        if stored is None:
            raise StorageError(context={"path": str(body_path), "error": "vanished after write"})
        return stored

    async def replace_metadata(
        self,
        stored: StoredObject,
        metadata: Dict[str, str],
    ) -> StoredObject:
        body_path, sidecar_path = self._paths(stored.key)
        if not await aiofiles.os.path.exists(body_path):
            raise NotFoundError(resource="screenshot", resource_id=stored.key)

        sidecar = await self._read_sidecar(sidecar_path)
        sidecar.setdefault("content_type", stored.content_type)
        sidecar.setdefault("uploaded", stored.uploaded.isoformat())
        sidecar.setdefault("etag", stored.etag)
        sidecar["metadata"] = dict(metadata)
        await self._write_sidecar(sidecar_path, sidecar)

        logger.info("Rewrote metadata for %s (%d fields)", stored.key, len(metadata))
        return replace(stored, metadata=dict(metadata))

    async def delete(self, key: str) -> None:
        body_path, sidecar_path = self._paths(key)
        try:
            await aiofiles.os.remove(body_path)
        except FileNotFoundError as e:
            raise NotFoundError(resource="screenshot", resource_id=key) from e
        except OSError as e:
            raise StorageError(context={"path": str(body_path), "os_error": str(e)}) from e

        try:
            await aiofiles.os.remove(sidecar_path)
        except FileNotFoundError:
            logger.debug("No sidecar to remove for %s", key)
        logger.info("Deleted object %s", key)

    async def check_health(self) -> bool:
        return self.objects_dir.is_dir() and self.meta_dir.is_dir()
