"""
Screenshot Manager API - Session Token Service
==============================================

What:  Issues and verifies compact HS256 tokens for the single login identity.
How:   PyJWT produces `base64url(header).base64url(payload).base64url(sig)`
       where sig = HMAC-SHA256(secret, header + "." + payload). Verification
       checks, in order: segment count, signature (constant time), payload
       JSON, then the `exp` claim against an injectable clock.
Who:   AuthService (login) and the `require_auth` dependency (every protected route).

Token payload:
    {"username": "admin", "iat": 1733000000, "exp": 1733086400}

Tokens are stateless. There is no revocation list: a token with a valid
signature and a future `exp` is accepted until it expires or the secret
rotates. Logout is a client-side discard.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import jwt

from screenshot_manager.exceptions import (
    ConfigurationError,
    ExpiredTokenError,
    InvalidTokenError,
)

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

# Expiry is checked against our own clock after decoding.
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
}


@dataclass(frozen=True)
class TokenClaims:
    """Identity and timing claims carried by a verified token."""

    username: str
    issued_at: int
    expires_at: int


class TokenService:
    """
    Signs and verifies session tokens with a fixed secret and TTL.

    Args:
        secret:      HMAC key. An empty secret makes every issue/verify call
                     fail with ConfigurationError.
        ttl_seconds: Lifetime added to `iat` to form `exp`.
        clock:       Returns the current UNIX time in seconds. Tests pass a
                     fake clock to simulate expiry.
    """

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _require_secret(self) -> str:
        if not self._secret:
            raise ConfigurationError(
                message="Token signing is not configured",
                context={"setting": "JWT_SECRET"},
            )
        return self._secret

    def issue(self, identity: str, now: Optional[int] = None) -> str:
        """
        Create a signed token for `identity`.

        `iat` is the current time (or `now`), `exp` is `iat + ttl_seconds`.
        A signing failure is an internal error, never a client error.
        """
        secret = self._require_secret()
        issued_at = int(self._clock()) if now is None else int(now)
        payload = {
            "username": identity,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        try:
            return jwt.encode(payload, secret, algorithm=ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.error("Token signing failed: %s", str(e))
            raise ConfigurationError(
                message="Token signing failed",
                context={"error": str(e)},
            ) from e

    def verify(self, token: str) -> TokenClaims:
        """
        Verify `token` and return its claims.

        Raises:
            InvalidTokenError: wrong segment count, bad signature, or an
                undecodable payload (`reason` tells which).
            ExpiredTokenError: `exp` missing, non-numeric, or <= now.
        """
        secret = self._require_secret()

        if not token or token.count(".") != 2:
            raise InvalidTokenError(reason="malformed")

        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options=_DECODE_OPTIONS,
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidTokenError(reason="bad_signature") from e
        except jwt.PyJWTError as e:
            raise InvalidTokenError(reason="malformed", context={"error": str(e)}) from e

        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise ExpiredTokenError()
        if exp <= self._clock():
            raise ExpiredTokenError(expired_at=int(exp))

        username = claims.get("username")
        if not isinstance(username, str) or not username:
            raise InvalidTokenError(reason="malformed", context={"error": "missing username"})

        iat = claims.get("iat")
        return TokenClaims(
            username=username,
            issued_at=int(iat) if isinstance(iat, (int, float)) and not isinstance(iat, bool) else 0,
            expires_at=int(exp),
        )
