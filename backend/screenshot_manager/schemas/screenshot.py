"""
Screenshot Manager API - Pydantic Request/Response Schemas
==========================================================

What:  The API contract between the SPA and the backend.
How:   FastAPI validates request bodies against these models, serializes
       responses through them and publishes them in the OpenAPI document.

Envelopes:
    Every response body is tagged by `success`:
        SuccessResponse[T]  {"success": true,  "message": "...", "data": T}
        ErrorResponse       {"success": false, "error": "...", "details": ..., "request_id": "..."}
"""

from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")

SortOrder = Literal[
    "recent",
    "oldest",
    "name-asc",
    "name-desc",
    "size-largest",
    "size-smallest",
]


# ══════════════════════════════════════════════════════════════════════════
# Envelopes
# ══════════════════════════════════════════════════════════════════════════


class SuccessResponse(BaseModel, Generic[DataT]):
    """Successful outcome carrying the route's payload in `data`."""

    success: Literal[True] = True
    message: str = Field(default="Success", description="Human-readable summary")
    data: Optional[DataT] = None


class ErrorResponse(BaseModel):
    """
    Failed outcome, produced only by the global exception handlers.

    Fields:
        error:      Human-readable description
        details:    Validation error list, or {"size": n, "limit": 2048}
        request_id: Correlation ID for tracing this error in server logs
    """

    success: Literal[False] = False
    error: str
    details: Optional[Any] = None
    request_id: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Authentication
# ══════════════════════════════════════════════════════════════════════════


class LoginRequest(BaseModel):
    """Both fields are optional here so a missing one is a 400, not a schema error."""

    username: Optional[str] = None
    password: Optional[str] = None


class LoginData(BaseModel):
    token: str = Field(description="Bearer token for the Authorization header")
    username: str
    expires_in: int = Field(alias="expiresIn", description="Token lifetime in seconds")

    model_config = {"populate_by_name": True}


# ══════════════════════════════════════════════════════════════════════════
# Screenshots
# ══════════════════════════════════════════════════════════════════════════


class Screenshot(BaseModel):
    """
    One stored screenshot.

    `uploaded` is ISO 8601 UTC with milliseconds (2025-11-30T07:02:11.430Z).
    `metadata` holds only the fields that are set (title, description, tags).
    """

    key: str
    size: int = Field(description="Size in bytes")
    uploaded: str
    etag: str
    url: str = Field(description="Public URL of the image")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ScreenshotList(BaseModel):
    """
    Listing result.

    count:       items in `screenshots` (after filtering and paging)
    total:       items matching the filters before paging
    truncated:   the store holds more objects than one listing returns
    all_tags:    sorted unique tags across the unfiltered listing
    page fields: only set when the request asked for a page
    """

    screenshots: List[Screenshot]
    count: int
    total: int
    truncated: bool
    all_tags: List[str] = Field(default_factory=list)
    page: Optional[int] = None
    per_page: Optional[int] = None
    total_pages: Optional[int] = None


class ScreenshotQuery(BaseModel):
    """Optional server-side search, tag filter, sort and pagination."""

    search: Optional[str] = Field(default=None, description="Substring of key, title, description or tag")
    tags: List[str] = Field(default_factory=list, description="Every tag must be present")
    sort: SortOrder = Field(default="recent")
    page: Optional[int] = Field(default=None, ge=1)
    per_page: int = Field(default=10, ge=1, le=100)


class MetadataUpdateRequest(BaseModel):
    """
    Body of PATCH /api/screenshots/{key}/metadata.

    `metadata` is typed loosely so that shape errors are reported by the
    metadata pipeline as a list, not by FastAPI as a schema error.
    """

    metadata: Any = None


class MetadataResult(BaseModel):
    key: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DeletedScreenshot(BaseModel):
    key: str


# ══════════════════════════════════════════════════════════════════════════
# Health
# ══════════════════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy or unhealthy")
    version: str = Field(description="Application version")
    storage: str = Field(description="Storage backend status: <backend>:available|unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
