"""
Screenshot Manager API - Test Configuration (conftest.py)
=========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every API test builds its own app with create_app(test_settings), so
       each test gets a fresh local object store under tmp_path, its own
       signing secret and its own rate limiter counters.

Fixture Hierarchy:
    temp_storage ── test_settings ── app ── test_client
                         │            └──── auth_headers
                         └── local_store ── seeded_store
"""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Importing screenshot_manager.main builds the module-level app from the
# environment; keep its local store out of the working tree.
os.environ["LOCAL_STORAGE_ROOT"] = tempfile.mkdtemp(prefix="screenshot_manager_test_")
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOG_LEVEL"] = "WARNING"

from screenshot_manager.config import Settings  # noqa: E402
from screenshot_manager.main import create_app  # noqa: E402
from screenshot_manager.storage.local_store import LocalObjectStore  # noqa: E402

TEST_SECRET = "test-signing-secret-of-at-least-32-bytes"
TEST_PASSWORD = "correct-horse-battery-staple"
PUBLIC_BASE_URL = "https://shots.example.test"

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


@pytest.fixture
def temp_storage(tmp_path):
    """A fresh storage root per test."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def test_settings(temp_storage) -> Settings:
    return Settings(
        _env_file=None,
        auth_username="admin",
        auth_password=TEST_PASSWORD,
        jwt_secret=TEST_SECRET,
        storage_backend="local",
        local_storage_root=temp_storage,
        public_base_url=PUBLIC_BASE_URL,
        log_level="WARNING",
        rate_limit_requests=1000,
    )


@pytest.fixture
def local_store(temp_storage) -> LocalObjectStore:
    return LocalObjectStore(temp_storage)


async def seed(store):
    """
    Put three screenshots into `store`:

        shot-a.png           tagged ["bug", "ui"], titled
        nested/shot-b.png    tagged ["ui"], described
        shot-c.png           no metadata, largest body
    """
    await store.put(
        "shot-a.png",
        PNG_BYTES,
        content_type="image/png",
        metadata={"title": "Login page", "tags": '["bug","ui"]'},
    )
    await store.put(
        "nested/shot-b.png",
        PNG_BYTES + b"\x00" * 10,
        content_type="image/png",
        metadata={"description": "Settings dialog", "tags": '["ui"]'},
    )
    await store.put("shot-c.png", PNG_BYTES + b"\x00" * 100, content_type="image/png")
    return store


@pytest_asyncio.fixture
async def seeded_store(local_store):
    return await seed(local_store)


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient wired straight to the ASGI app (no server, no lifespan).

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(app):
    token = app.state.auth_service.token_service.issue("admin")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def seeded_app_store(app):
    """The app's own store, seeded like `seeded_store`."""
    return await seed(app.state.object_store)
