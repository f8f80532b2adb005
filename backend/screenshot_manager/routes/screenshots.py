"""
Screenshot Manager API - Screenshot Route Handlers
==================================================

What:  Listing, detail, deletion and metadata editing of screenshots.
How:   Thin handlers: read the request, call ScreenshotService, wrap the
       result in a SuccessResponse. Failures propagate as typed exceptions
       to the global handlers in main.py.
Who:   Called by the SPA; every route requires a bearer token.

Keys may contain "/", so key parameters use the `:path` converter. The
`/metadata` routes are registered first; otherwise `DELETE a/b/metadata`
would match the plain delete route with key "a/b/metadata".

Known limit:
    PATCH and DELETE cannot address an object whose key itself ends in
    "/metadata". `DELETE /api/screenshots/report/metadata` clears the metadata
    of "report" (404 when there is no such object); it never deletes the
    object "report/metadata". GET is unaffected.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query

from screenshot_manager.dependencies import get_screenshot_service, require_auth
from screenshot_manager.schemas.screenshot import (
    DeletedScreenshot,
    ErrorResponse,
    MetadataResult,
    MetadataUpdateRequest,
    Screenshot,
    ScreenshotList,
    ScreenshotQuery,
    SortOrder,
    SuccessResponse,
)
from screenshot_manager.services.screenshot_service import ScreenshotService

router = APIRouter(
    prefix="/api/screenshots",
    tags=["Screenshots"],
    dependencies=[Depends(require_auth)],
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
)

NOT_FOUND = {404: {"description": "Screenshot not found", "model": ErrorResponse}}


# ── Metadata ──────────────────────────────────────────────────────────────


@router.patch(
    "/{key:path}/metadata",
    response_model=SuccessResponse[MetadataResult],
    responses={400: {"description": "Invalid or oversized metadata", "model": ErrorResponse}, **NOT_FOUND},
    summary="Merge metadata into a screenshot",
    description=(
        "Fields sent as null, empty string or empty list are removed; fields "
        "not sent are kept. Allowed fields: title, description, tags."
    ),
)
async def update_metadata(
    key: str,
    payload: MetadataUpdateRequest = Body(...),
    service: ScreenshotService = Depends(get_screenshot_service),
) -> SuccessResponse[MetadataResult]:
    result = await service.update_metadata(key, payload.metadata)
    return SuccessResponse[MetadataResult](message="Metadata updated successfully", data=result)


@router.delete(
    "/{key:path}/metadata",
    response_model=SuccessResponse[MetadataResult],
    responses=NOT_FOUND,
    summary="Remove all metadata from a screenshot",
)
async def clear_metadata(
    key: str,
    service: ScreenshotService = Depends(get_screenshot_service),
) -> SuccessResponse[MetadataResult]:
    result = await service.clear_metadata(key)
    return SuccessResponse[MetadataResult](message="Metadata deleted successfully", data=result)


# ── Screenshots ───────────────────────────────────────────────────────────


@router.get(
    "",
    response_model=SuccessResponse[ScreenshotList],
    summary="List screenshots",
    description=(
        "Returns every screenshot in the store with its metadata. Optional "
        "search, tag filter, sort order and pagination are applied server-side."
    ),
)
async def list_screenshots(
    search: Optional[str] = Query(default=None, max_length=200),
    tags: List[str] = Query(default=[], description="Repeat to require several tags"),
    sort: SortOrder = Query(default="recent"),
    page: Optional[int] = Query(default=None, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
    service: ScreenshotService = Depends(get_screenshot_service),
) -> SuccessResponse[ScreenshotList]:
    query = ScreenshotQuery(search=search, tags=tags, sort=sort, page=page, per_page=per_page)
    result = await service.list_screenshots(query)
    return SuccessResponse[ScreenshotList](message="Screenshots retrieved successfully", data=result)


@router.get(
    "/{key:path}",
    response_model=SuccessResponse[Screenshot],
    responses=NOT_FOUND,
    summary="Get one screenshot",
)
async def get_screenshot(
    key: str,
    service: ScreenshotService = Depends(get_screenshot_service),
) -> SuccessResponse[Screenshot]:
    result = await service.get_screenshot(key)
    return SuccessResponse[Screenshot](message="Screenshot retrieved successfully", data=result)


@router.delete(
    "/{key:path}",
    response_model=SuccessResponse[DeletedScreenshot],
    responses=NOT_FOUND,
    summary="Delete a screenshot",
)
async def delete_screenshot(
    key: str,
    service: ScreenshotService = Depends(get_screenshot_service),
) -> SuccessResponse[DeletedScreenshot]:
    result = await service.delete_screenshot(key)
    return SuccessResponse[DeletedScreenshot](message="Screenshot deleted successfully", data=result)
