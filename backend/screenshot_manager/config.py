"""
Screenshot Manager API - Application Configuration
==================================================

What:  Centralized configuration management using Pydantic Settings.
How:   Values come from environment variables (or a .env file), are coerced
       and range-checked on load, and are handed to collaborators explicitly
       by `create_app()`.
Who:   Read by `main.create_app()`; services never import it directly.
When:  Loaded once at startup; required secrets are reported in the lifespan.

Environment variables (case-insensitive):
    AUTH_USERNAME, AUTH_PASSWORD       single login identity
    JWT_SECRET, TOKEN_TTL_SECONDS      token signing
    STORAGE_BACKEND                    "local" (default) or "s3"
    LOCAL_STORAGE_ROOT                 directory for the local backend
    S3_BUCKET, S3_ENDPOINT_URL, ...    S3 compatible backend
    PUBLIC_BASE_URL                    prefix of each screenshot's public URL
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults are suitable for local development. Production deployments must
    set AUTH_PASSWORD and JWT_SECRET, and S3_BUCKET when STORAGE_BACKEND=s3.
    """

    # ── Authentication ────────────────────────────────────────────────────
    # The API serves exactly one identity.
    auth_username: str = Field(default="admin")
    auth_password: str = Field(default="", description="Password for the single user")

    # HMAC-SHA256 signing key for session tokens
    jwt_secret: str = Field(default="", description="Token signing secret")

    # Token lifetime: 24 hours by default, 1 minute to 30 days accepted
    token_ttl_seconds: int = Field(default=86_400, ge=60, le=2_592_000)

    # ── Object Storage ────────────────────────────────────────────────────
    storage_backend: str = Field(default="local")
    local_storage_root: str = Field(default="./storage")

    s3_bucket: str = Field(default="")
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint for MinIO, Cloudflare R2 and other S3 compatible stores",
    )
    s3_region: str = Field(default="us-east-1")
    s3_access_key_id: Optional[str] = Field(default=None)
    s3_secret_access_key: Optional[str] = Field(default=None)
    s3_connect_timeout: int = Field(default=5, ge=1, le=60)
    s3_read_timeout: int = Field(default=30, ge=1, le=300)

    # S3 listings carry no user metadata; one HEAD per object fills it in.
    list_include_metadata: bool = Field(default=True)
    # Upper bound on those HEADs in flight at once
    list_head_concurrency: int = Field(default=16, ge=1, le=100)

    # What: Prefix for each screenshot's public URL ({public_base_url}/{key})
    public_base_url: str = Field(default="https://screenshots.example.com")

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Only the two shipped backends are accepted."""
        backend = v.lower()
        if backend not in {"local", "s3"}:
            raise ValueError(f"Invalid storage_backend '{v}'. Must be 'local' or 's3'")
        return backend

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ── CORS ──────────────────────────────────────────────────────────────
    # Preflight responses may be cached by browsers for this many seconds
    cors_max_age: int = Field(default=86_400, ge=0)

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Per-IP sliding window
    rate_limit_requests: int = Field(default=300, ge=10, le=10000)
    rate_limit_window: int = Field(default=60, ge=1, le=86400)  # seconds

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        Raises ValueError listing every missing value.
        """
        errors = []
        if not self.jwt_secret:
            errors.append("JWT_SECRET is not set. Tokens can be neither issued nor verified.")
        if not self.auth_password:
            errors.append("AUTH_PASSWORD is not set. Login is disabled.")
        if self.storage_backend == "s3" and not self.s3_bucket:
            errors.append("S3_BUCKET is required when STORAGE_BACKEND=s3.")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    return Settings()
