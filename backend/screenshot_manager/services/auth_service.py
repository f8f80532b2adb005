"""
Screenshot Manager API - Authentication Service
===============================================

What:  Single-user login and bearer-token checking.
How:   Credentials are compared in constant time against the configured
       identity; a match yields a token from TokenService. Protected routes
       hand the Authorization header to `authenticate`.
Who:   routes/auth.py (login) and dependencies.require_auth (everything else).
"""

import hmac
import logging
from typing import Optional

from screenshot_manager.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidTokenError,
    ValidationError,
)
from screenshot_manager.schemas.screenshot import LoginData
from screenshot_manager.services.token_service import TokenClaims, TokenService

logger = logging.getLogger(__name__)

MISSING_CREDENTIALS = "Username and password are required"
INVALID_CREDENTIALS = "Invalid username or password"
MISSING_TOKEN = "Unauthorized - Invalid or missing token"


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from `Bearer <token>`, or None for any other shape."""
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


class AuthService:
    """
    Login and token checks for the one configured user.

    Args:
        username:      The only identity that may log in.
        password:      Its password. Empty disables login (500 on attempt).
        token_service: Issues and verifies session tokens.
    """

    def __init__(self, username: str, password: str, token_service: TokenService):
        self.username = username
        self._password = password
        self.token_service = token_service

    def login(self, username: Optional[str], password: Optional[str]) -> LoginData:
        """
        Exchange credentials for a session token.

        Raises:
            ValidationError:     username or password missing (400)
            AuthenticationError: credentials do not match (401)
            ConfigurationError:  no password configured (500)
        """
        if not username or not password:
            raise ValidationError(message=MISSING_CREDENTIALS)

        if not self._password:
            raise ConfigurationError(
                message="Login is not configured",
                context={"setting": "AUTH_PASSWORD"},
            )

        username_ok = hmac.compare_digest(username.encode("utf-8"), self.username.encode("utf-8"))
        password_ok = hmac.compare_digest(password.encode("utf-8"), self._password.encode("utf-8"))
        if not (username_ok and password_ok):
            logger.warning("Rejected login attempt for username=%r", username)
            raise AuthenticationError(message=INVALID_CREDENTIALS)

        token = self.token_service.issue(self.username)
        logger.info("Login succeeded for %s", self.username)
        return LoginData(
            token=token,
            username=self.username,
            expires_in=self.token_service.ttl_seconds,
        )

    def authenticate(self, authorization: Optional[str]) -> TokenClaims:
        """
        Resolve an Authorization header to verified token claims.

        Raises:
            AuthenticationError: header missing or not `Bearer <token>`
            InvalidTokenError:   token rejected (reason logged, 401 to client)
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise AuthenticationError(message=MISSING_TOKEN)

        try:
            return self.token_service.verify(token)
        except InvalidTokenError as e:
            logger.warning("Rejected bearer token: reason=%s", e.reason)
            raise
