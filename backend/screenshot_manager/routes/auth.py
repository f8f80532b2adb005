"""
Screenshot Manager API - Authentication Routes
==============================================

What:  POST /api/auth/login and POST /api/auth/logout.
How:   Login delegates to AuthService; logout is stateless (the client drops
       its token, which stays valid until it expires).
"""

from fastapi import APIRouter, Depends

from screenshot_manager.dependencies import get_auth_service
from screenshot_manager.schemas.screenshot import (
    ErrorResponse,
    LoginData,
    LoginRequest,
    SuccessResponse,
)
from screenshot_manager.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=SuccessResponse[LoginData],
    responses={
        400: {"description": "Username or password missing", "model": ErrorResponse},
        401: {"description": "Wrong credentials", "model": ErrorResponse},
    },
    summary="Exchange credentials for a bearer token",
)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SuccessResponse[LoginData]:
    data = auth_service.login(payload.username, payload.password)
    return SuccessResponse[LoginData](message="Login successful", data=data)


@router.post(
    "/logout",
    response_model=SuccessResponse[None],
    summary="End the session on the client",
)
async def logout() -> SuccessResponse[None]:
    return SuccessResponse[None](message="Logged out successfully")
