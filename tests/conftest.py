"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.config import get_settings


def _ensure_test_env() -> None:
    """Point settings at throwaway RSA keys and a local media root."""
    tmpdir = tempfile.mkdtemp(prefix="vtb_test_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    Path(private_path).write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    Path(public_path).write_bytes(
        key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )

    os.environ["VTB_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["VTB_JWT_PUBLIC_KEY_PATH"] = public_path
    os.environ["VTB_ENVIRONMENT"] = "test"
    os.environ["VTB_LOG_FORMAT"] = "console"
    os.environ["VTB_MEDIA_ROOT"] = os.path.join(tmpdir, "media")
    os.environ["VTB_DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(tmpdir, 'vidtube.db')}"

    get_settings.cache_clear()
    from vidtube.auth.jwt import reset_keys
    reset_keys()


_ensure_test_env()

from vidtube.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from vidtube.db.base import Base  # noqa: E402
from vidtube.main import create_app  # noqa: E402
from vidtube.media.service import LocalMediaProvider, MediaService, get_media_service  # noqa: E402

TEST_PASSWORD = "SecurePass123"


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[str, None]:
    """Fresh SQLite database per test with the full schema created."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'vidtube.db'}"
    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield url
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: str) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def media_service(tmp_path: Path) -> MediaService:
    """Media service writing to a per-test directory."""
    return MediaService(LocalMediaProvider(tmp_path / "media", "http://test/media"))


@pytest_asyncio.fixture
async def client(database: str, media_service: MediaService) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client bound to the per-test database."""
    app = create_app()
    app.dependency_overrides[get_media_service] = lambda: media_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def register_user(
    client: AsyncClient,
    username: str = "alice",
    email: str | None = None,
    full_name: str = "Alice Example",
    password: str = TEST_PASSWORD,
    files: dict | None = None,
) -> dict:
    """Register a user via the multipart form. Returns the response body."""
    response = await client.post("/api/v1/users/register", files=files, data={
        "username": username,
        "email": email or f"{username}@example.com",
        "full_name": full_name,
        "password": password,
    })
    assert response.status_code == 201, response.text
    return response.json()


async def login_user(client: AsyncClient, identifier: str, password: str = TEST_PASSWORD) -> dict:
    """Log in via the API. Returns the response body (tokens + user)."""
    response = await client.post("/api/v1/users/login", json={
        "identifier": identifier,
        "password": password,
    })
    assert response.status_code == 200, response.text
    return response.json()


@pytest_asyncio.fixture
async def registered_user(client: AsyncClient) -> dict:
    """Register and log in ``alice``. Returns credentials and the first token pair."""
    user = await register_user(client)
    session = await login_user(client, "alice")
    # Each test decides whether it authenticates by cookie or header.
    client.cookies.clear()
    return {
        "user_id": user["id"],
        "username": "alice",
        "email": "alice@example.com",
        "password": TEST_PASSWORD,
        "access_token": session["access_token"],
        "refresh_token": session["refresh_token"],
    }


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient, registered_user: dict) -> AsyncClient:
    """Client authenticated as ``alice`` via a Bearer header."""
    client.headers["Authorization"] = f"Bearer {registered_user['access_token']}"
    return client
