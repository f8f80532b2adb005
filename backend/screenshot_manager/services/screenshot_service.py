"""
Screenshot Manager API - Screenshot Service (Business Logic Orchestrator)
=========================================================================

What:  List, read, delete and annotate screenshots held in the object store.
How:   Composes an ObjectStore with the metadata pipeline. Every call makes
       its own round trips to the store; nothing is cached between requests.
Who:   Called by routes/screenshots.py.

Metadata update flow (PATCH /api/screenshots/{key}/metadata):
    ┌──────────┐   ┌──────────┐   ┌────────────┐   ┌───────────┐   ┌─────────┐
    │ validate │──▶│ sanitize │──▶│ size check │──▶│ read+merge│──▶│ rewrite │
    │  (400)   │   │          │   │   (400)    │   │  (404)    │   │         │
    └──────────┘   └──────────┘   └────────────┘   └───────────┘   └─────────┘

    Validation and size failures are raised before the store is touched.

Known gap:
    The update is read-modify-write with no concurrency token. Two concurrent
    updates of the same key both read the old map and the last rewrite wins;
    the first update's fields are lost.
"""

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

from screenshot_manager.exceptions import NotFoundError, ValidationError
from screenshot_manager.schemas.screenshot import (
    DeletedScreenshot,
    MetadataResult,
    Screenshot,
    ScreenshotList,
    ScreenshotQuery,
)
from screenshot_manager.services import metadata_service
from screenshot_manager.storage.base import ObjectStore, StoredObject

logger = logging.getLogger(__name__)


def format_timestamp(value: datetime) -> str:
    """Render as ISO 8601 UTC with milliseconds and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ══════════════════════════════════════════════════════════════════════════
# Query helpers (search, tag filter, sort, paginate)
# ══════════════════════════════════════════════════════════════════════════

def filter_screenshots(
    screenshots: List[Screenshot],
    search: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> List[Screenshot]:
    """
    Keep screenshots matching the search text and carrying every listed tag.

    Search is a case-insensitive substring match on the key, title,
    description and each tag. Tag filters match exactly.
    """
    result = screenshots

    query = (search or "").strip().lower()
    if query:
        def matches(shot: Screenshot) -> bool:
            meta = shot.metadata
            haystack = [shot.key, meta.get("title", ""), meta.get("description", "")]
            haystack.extend(meta.get("tags", []))
            return any(query in text.lower() for text in haystack)

        result = [shot for shot in result if matches(shot)]

    if tags:
        result = [
            shot for shot in result
            if all(tag in shot.metadata.get("tags", []) for tag in tags)
        ]

    return result


def sort_screenshots(screenshots: List[Screenshot], sort: str = "recent") -> List[Screenshot]:
    """Return a new list ordered by upload time, name or size."""
    if sort == "oldest":
        return sorted(screenshots, key=lambda s: s.uploaded)
    if sort == "name-asc":
        return sorted(screenshots, key=lambda s: (s.key.casefold(), s.key))
    if sort == "name-desc":
        return sorted(screenshots, key=lambda s: (s.key.casefold(), s.key), reverse=True)
    if sort == "size-largest":
        return sorted(screenshots, key=lambda s: s.size, reverse=True)
    if sort == "size-smallest":
        return sorted(screenshots, key=lambda s: s.size)
    # "recent": timestamps share one format, so string order is time order
    return sorted(screenshots, key=lambda s: s.uploaded, reverse=True)


def paginate(screenshots: List[Screenshot], page: int, per_page: int) -> List[Screenshot]:
    """Slice one 1-based page; pages past the end are empty."""
    start = (page - 1) * per_page
    return screenshots[start:start + per_page]


class ScreenshotService:
    """
    Screenshot operations over one object store.

    Args:
        store:           Storage backend holding the screenshots.
        public_base_url: Prefix of each screenshot's public URL.
    """

    def __init__(self, store: ObjectStore, public_base_url: str):
        self.store = store
        self.public_base_url = public_base_url.rstrip("/")

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key, safe='/')}"

    def _to_schema(self, stored: StoredObject) -> Screenshot:
        return Screenshot(
            key=stored.key,
            size=stored.size,
            uploaded=format_timestamp(stored.uploaded),
            etag=stored.etag,
            url=self.public_url(stored.key),
            metadata=metadata_service.decode(stored.metadata or {}),
        )

    async def _require(self, key: str) -> StoredObject:
        stored = await self.store.head(key)
        if stored is None:
            raise NotFoundError(resource="screenshot", resource_id=key)
        return stored

    @staticmethod
    def _ensure_size(metadata: dict) -> None:
        result = metadata_service.check_size(metadata)
        if not result.valid:
            raise ValidationError(
                message="Metadata size exceeds maximum allowed",
                details={"size": result.size, "limit": result.limit},
            )

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_screenshots(self, query: Optional[ScreenshotQuery] = None) -> ScreenshotList:
        """
        List the store once, then filter, sort and optionally paginate.

        Without a `page` every matching screenshot is returned.
        """
        query = query or ScreenshotQuery()
        listing = await self.store.list_objects()
        screenshots = [self._to_schema(stored) for stored in listing.objects]

        all_tags = sorted({tag for shot in screenshots for tag in shot.metadata.get("tags", [])})

        matched = filter_screenshots(screenshots, search=query.search, tags=query.tags)
        matched = sort_screenshots(matched, query.sort)
        total = len(matched)

        page_fields = {}
        if query.page is not None:
            matched = paginate(matched, query.page, query.per_page)
            page_fields = {
                "page": query.page,
                "per_page": query.per_page,
                "total_pages": math.ceil(total / query.per_page),
            }

        logger.debug(
            "Listed %d objects (%d matched, %d returned, truncated=%s)",
            len(screenshots), total, len(matched), listing.truncated,
        )
        return ScreenshotList(
            screenshots=matched,
            count=len(matched),
            total=total,
            truncated=listing.truncated,
            all_tags=all_tags,
            **page_fields,
        )

    async def get_screenshot(self, key: str) -> Screenshot:
        stored = await self._require(key)
        return self._to_schema(stored)

    # ── Mutations ─────────────────────────────────────────────────────────

    async def delete_screenshot(self, key: str) -> DeletedScreenshot:
        await self._require(key)
        await self.store.delete(key)
        logger.info("Screenshot deleted: %s", key)
        return DeletedScreenshot(key=key)

    async def update_metadata(self, key: str, raw: object) -> MetadataResult:
        """
        Merge caller-supplied metadata into the stored map.

        Raises:
            ValidationError: shape errors (details = error list) or size
                overrun (details = {"size", "limit"})
            NotFoundError:   no object under `key`
        """
        if not isinstance(raw, dict):
            raise ValidationError(message="Metadata must be a valid object")

        result = metadata_service.validate(raw)
        if not result.valid:
            raise ValidationError(message="Invalid metadata", details=result.errors)

        patch = metadata_service.prepare_update(raw)
        self._ensure_size(patch)

        stored = await self._require(key)
        merged = metadata_service.merge(metadata_service.decode(stored.metadata or {}), patch)
        # The merged map can outgrow the ceiling even when the patch alone fits
        self._ensure_size(merged)

        updated = await self.store.replace_metadata(stored, metadata_service.encode(merged))
        logger.info("Metadata updated for %s: fields=%s", key, sorted(merged))
        return MetadataResult(key=key, metadata=metadata_service.decode(updated.metadata or {}))

    async def clear_metadata(self, key: str) -> MetadataResult:
        """Rewrite the object with an empty custom metadata map."""
        stored = await self._require(key)
        await self.store.replace_metadata(stored, {})
        logger.info("Metadata cleared for %s", key)
        return MetadataResult(key=key, metadata={})
