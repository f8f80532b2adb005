"""
Screenshot Manager API - FastAPI Dependencies
=============================================

What:  Accessors for the services built by create_app(), plus the bearer
       token guard shared by every protected route.
How:   Services live on `app.state`, so each app instance (one per test)
       carries its own store, secret and credentials.
"""

from typing import Optional

from fastapi import Header, Request

from screenshot_manager.services.auth_service import AuthService
from screenshot_manager.services.screenshot_service import ScreenshotService
from screenshot_manager.services.token_service import TokenClaims


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_screenshot_service(request: Request) -> ScreenshotService:
    return request.app.state.screenshot_service


async def require_auth(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> TokenClaims:
    """
    Reject the request with 401 unless it carries a valid bearer token.

    The verified claims are also stored on `request.state.user`.
    """
    claims = get_auth_service(request).authenticate(authorization)
    request.state.user = claims.username
    return claims
