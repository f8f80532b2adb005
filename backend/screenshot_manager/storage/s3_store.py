"""
Screenshot Manager API - S3 Compatible Object Store
===================================================

What:  ObjectStore backed by Amazon S3, MinIO, Cloudflare R2 or any other
       S3 compatible service.
How:   boto3 client calls run in Starlette's thread pool so the event loop is
       never blocked. Custom metadata travels as S3 user metadata
       (x-amz-meta-*), which S3 caps at 2 KB per object.

Metadata rewrite:
    S3 cannot edit metadata in place. The object is copied onto itself with
    MetadataDirective=REPLACE, which also resets ContentType unless it is
    passed again, so the content type read by `head` is re-sent.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from screenshot_manager.config import Settings
from screenshot_manager.exceptions import NotFoundError, StorageError
from screenshot_manager.storage.base import ObjectListing, ObjectStore, StoredObject

logger = logging.getLogger(__name__)

# S3 error codes meaning "no such object"
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# One listing page; larger buckets report truncated=True
MAX_LIST_KEYS = 1000

# Per-object HEADs in flight at once while listing
DEFAULT_HEAD_CONCURRENCY = 16


def _strip_etag(etag: Optional[str]) -> str:
    return (etag or "").strip('"')


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


class S3ObjectStore(ObjectStore):
    """
    Screenshot storage in a single S3 bucket.

    Args:
        client:                A boto3 S3 client (tests pass a stubbed one).
        bucket:                Bucket holding the screenshots.
        list_include_metadata: When True, `list_objects` issues one HEAD per
                               object to fill in its custom metadata.
        head_concurrency:      Cap on those HEADs running at the same time.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        list_include_metadata: bool = True,
        head_concurrency: int = DEFAULT_HEAD_CONCURRENCY,
    ):
        self._client = client
        self.bucket = bucket
        self.list_include_metadata = list_include_metadata
        self.head_concurrency = max(1, head_concurrency)

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        """Build the boto3 client from application settings."""
        s3_options: Dict[str, Any] = {}
        if settings.s3_endpoint_url:
            # MinIO and most self-hosted stores only support path-style addressing
            s3_options["addressing_style"] = "path"

        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            config=Config(
                signature_version="s3v4",
                connect_timeout=settings.s3_connect_timeout,
                read_timeout=settings.s3_read_timeout,
                s3=s3_options,
            ),
        )
        logger.info(
            "S3ObjectStore initialized: bucket=%s endpoint=%s",
            settings.s3_bucket,
            settings.s3_endpoint_url or "aws",
        )
        return cls(
            client,
            settings.s3_bucket,
            list_include_metadata=settings.list_include_metadata,
            head_concurrency=settings.list_head_concurrency,
        )

    @property
    def backend_name(self) -> str:
        return "s3"

    def _storage_error(self, operation: str, key: Optional[str], error: Exception) -> StorageError:
        code = None
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code")
        logger.error(
            "S3 %s failed: bucket=%s key=%s code=%s error=%s",
            operation, self.bucket, key, code, str(error),
        )
        return StorageError(
            context={"operation": operation, "bucket": self.bucket, "key": key, "code": code},
        )

    async def _call(self, operation: str, key: Optional[str], **params: Any) -> Dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await run_in_threadpool(method, Bucket=self.bucket, **params)
        except ClientError as e:
            if key is not None and _is_not_found(e):
                raise NotFoundError(resource="screenshot", resource_id=key) from e
            raise self._storage_error(operation, key, e) from e
        except BotoCoreError as e:
            raise self._storage_error(operation, key, e) from e

    async def list_objects(self) -> ObjectListing:
        response = await self._call("list_objects_v2", None, MaxKeys=MAX_LIST_KEYS)

        objects = [
            StoredObject(
                key=entry["Key"],
                size=entry.get("Size", 0),
                uploaded=entry["LastModified"],
                etag=_strip_etag(entry.get("ETag")),
            )
            for entry in response.get("Contents", [])
        ]
        if self.list_include_metadata and objects:
            objects = await self._head_all(objects)

        return ObjectListing(objects=objects, truncated=bool(response.get("IsTruncated", False)))

    async def _head_all(self, objects: List[StoredObject]) -> List[StoredObject]:
        """HEAD every listed object, at most `head_concurrency` at a time, keeping order."""
        semaphore = asyncio.Semaphore(self.head_concurrency)

        async def head_one(key: str) -> Optional[StoredObject]:
            async with semaphore:
                return await self.head(key)

        detailed = await asyncio.gather(*(head_one(obj.key) for obj in objects))
        # None marks an object deleted between the listing and its HEAD
        return [obj for obj in detailed if obj is not None]

    async def head(self, key: str) -> Optional[StoredObject]:
        try:
            response = await self._call("head_object", key, Key=key)
        except NotFoundError:
            return None

        return StoredObject(
            key=key,
            size=response.get("ContentLength", 0),
            uploaded=response["LastModified"],
            etag=_strip_etag(response.get("ETag")),
            content_type=response.get("ContentType") or "application/octet-stream",
            metadata=dict(response.get("Metadata") or {}),
        )

    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObject:
        await self._call(
            "put_object",
            key,
            Key=key,
            Body=body,
            ContentType=content_type,
            Metadata=dict(metadata or {}),
        )
        stored = await self.head(key)
        if stored is None:
            raise NotFoundError(resource="screenshot", resource_id=key)
        return stored

    async def replace_metadata(
        self,
        stored: StoredObject,
        metadata: Dict[str, str],
    ) -> StoredObject:
        response = await self._call(
            "copy_object",
            stored.key,
            Key=stored.key,
            CopySource={"Bucket": self.bucket, "Key": stored.key},
            Metadata=dict(metadata),
            MetadataDirective="REPLACE",
            ContentType=stored.content_type,
        )
        result = response.get("CopyObjectResult", {})
        logger.info("Rewrote metadata for %s (%d fields)", stored.key, len(metadata))
        return replace(
            stored,
            etag=_strip_etag(result.get("ETag")) or stored.etag,
            uploaded=result.get("LastModified") or stored.uploaded,
            metadata=dict(metadata),
        )

    async def delete(self, key: str) -> None:
        await self._call("delete_object", key, Key=key)
        logger.info("Deleted object %s from bucket %s", key, self.bucket)

    async def check_health(self) -> bool:
        try:
            await run_in_threadpool(self._client.head_bucket, Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("Health check: bucket %s unreachable: %s", self.bucket, str(e))
            return False
