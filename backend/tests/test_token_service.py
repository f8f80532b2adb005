"""
Screenshot Manager API - Token Service Unit Tests
=================================================

What we test:
    ✅ issue → verify round trip before expiry
    ✅ Expiry against an advanced clock (exp == now counts as expired)
    ✅ Wrong secret, tampered payload, malformed tokens
    ✅ Missing exp / username claims
    ✅ Unconfigured secret is a server error, not a client error
"""

import jwt
import pytest

from screenshot_manager.exceptions import (
    ConfigurationError,
    ExpiredTokenError,
    InvalidTokenError,
)
from screenshot_manager.services.token_service import TokenService

SECRET = "unit-test-signing-secret-0123456789abcdef"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestIssueAndVerify:

    def setup_method(self):
        self.clock = FakeClock()
        self.service = TokenService(SECRET, ttl_seconds=3600, clock=self.clock)

    def test_round_trip_returns_identity(self):
        token = self.service.issue("admin")
        claims = self.service.verify(token)
        assert claims.username == "admin"
        assert claims.issued_at == int(self.clock.now)
        assert claims.expires_at == int(self.clock.now) + 3600

    def test_token_has_three_segments(self):
        assert self.service.issue("admin").count(".") == 2

    def test_valid_just_before_expiry(self):
        token = self.service.issue("admin")
        self.clock.now += 3599
        assert self.service.verify(token).username == "admin"

    def test_expired_after_ttl(self):
        token = self.service.issue("admin")
        self.clock.now += 3601
        with pytest.raises(ExpiredTokenError) as exc_info:
            self.service.verify(token)
        assert exc_info.value.reason == "expired"

    def test_expired_exactly_at_exp(self):
        token = self.service.issue("admin")
        self.clock.now += 3600
        with pytest.raises(ExpiredTokenError):
            self.service.verify(token)

    def test_explicit_issue_time(self):
        token = self.service.issue("admin", now=int(self.clock.now) - 7200)
        with pytest.raises(ExpiredTokenError):
            self.service.verify(token)


class TestRejection:

    def setup_method(self):
        self.clock = FakeClock()
        self.service = TokenService(SECRET, ttl_seconds=3600, clock=self.clock)

    def test_different_secret_is_bad_signature(self):
        other = TokenService("another-secret-of-sufficient-length-xyz", clock=self.clock)
        with pytest.raises(InvalidTokenError) as exc_info:
            self.service.verify(other.issue("admin"))
        assert exc_info.value.reason == "bad_signature"

    def test_tampered_payload_is_bad_signature(self):
        header, _, signature = self.service.issue("admin").split(".")
        forged_payload = jwt.encode(
            {"username": "mallory", "iat": int(self.clock.now), "exp": int(self.clock.now) + 60},
            "attacker-secret-of-sufficient-length-123",
            algorithm="HS256",
        ).split(".")[1]
        with pytest.raises(InvalidTokenError) as exc_info:
            self.service.verify(f"{header}.{forged_payload}.{signature}")
        assert exc_info.value.reason == "bad_signature"

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d"])
    def test_wrong_segment_count_is_malformed(self, token):
        with pytest.raises(InvalidTokenError) as exc_info:
            self.service.verify(token)
        assert exc_info.value.reason == "malformed"

    def test_garbage_segments_are_malformed(self):
        with pytest.raises(InvalidTokenError) as exc_info:
            self.service.verify("not.a.token")
        assert exc_info.value.reason == "malformed"

    def test_missing_exp_is_expired(self):
        token = jwt.encode({"username": "admin"}, SECRET, algorithm="HS256")
        with pytest.raises(ExpiredTokenError):
            self.service.verify(token)

    def test_non_numeric_exp_is_expired(self):
        token = jwt.encode({"username": "admin", "exp": "tomorrow"}, SECRET, algorithm="HS256")
        with pytest.raises(ExpiredTokenError):
            self.service.verify(token)

    def test_missing_username_is_invalid(self):
        token = jwt.encode({"exp": int(self.clock.now) + 60}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError) as exc_info:
            self.service.verify(token)
        assert not isinstance(exc_info.value, ExpiredTokenError)


class TestConfiguration:

    def test_empty_secret_cannot_issue(self):
        with pytest.raises(ConfigurationError):
            TokenService("").issue("admin")

    def test_empty_secret_cannot_verify(self):
        token = TokenService(SECRET).issue("admin")
        with pytest.raises(ConfigurationError):
            TokenService("").verify(token)
