"""Pytest configuration and fixtures.

MongoDB is replaced by mongomock-motor behind Beanie, and uploads to Cloudinary
by an in-process fake, so the suite needs no running infrastructure.
"""

import os

# Set test environment variables before importing the app
os.environ.setdefault("DATABASE_CONNECTION_STRING", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "videotube_test")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-do-not-use-in-production")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-do-not-use-in-production")
os.environ.setdefault("CLOUDINARY_CLOUD_NAME", "demo")
os.environ.setdefault("CLOUDINARY_API_KEY", "123456789")
os.environ.setdefault("CLOUDINARY_API_SECRET", "cloudinary-test-secret")

from typing import AsyncGenerator, Dict  # noqa: E402

import pytest  # noqa: E402
from beanie import init_beanie  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from config import Settings  # noqa: E402
from main import create_app, DOCUMENT_MODELS  # noqa: E402
from routers import users as users_router, videos as videos_router  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

# Minimal ISO base media header with an `mp42` brand, enough for content sniffing
MP4_BYTES = (
    b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom"
    + b"\x00\x00\x00\x08free"
    + b"\x00" * 64
)

USER_PASSWORD = "secret123"


@pytest.fixture(scope="session")
def settings() -> Settings:
    """Settings independent of the environment of the machine running the tests."""
    return Settings(
        _env_file=None,
        database_connection_string="mongodb://localhost:27017",
        database_name="videotube_test",
        access_token_secret="test-access-secret-do-not-use-in-production",
        access_token_expire_minutes=15,
        refresh_token_secret="test-refresh-secret-do-not-use-in-production",
        refresh_token_expire_days=10,
        cloudinary_cloud_name="demo",
        cloudinary_api_key="123456789",
        cloudinary_api_secret="cloudinary-test-secret",
        cookie_secure=True,
    )


@pytest.fixture(scope="session")
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
async def db():
    """Fresh in-memory database with Beanie initialized, one per test."""
    client = AsyncMongoMockClient()
    database = client["videotube_test"]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    yield database


@pytest.fixture
async def client(app: FastAPI, db) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the app in-process. The base URL is https so that
    secure cookies are stored and sent back like a browser would."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="https://testserver") as ac:
        yield ac


@pytest.fixture
def uploads(monkeypatch):
    """Replace the Cloudinary upload with a fake that records every call."""
    calls = []

    async def fake_upload(file, settings, resource_type="image"):
        calls.append({"filename": file.filename, "resource_type": resource_type})
        url = f"res.cloudinary.com/{settings.cloudinary_cloud_name}/{resource_type}/upload/v1/{file.filename}"
        return 200, {
            "asset_id": f"asset-{len(calls)}",
            "public_id": f"public-{len(calls)}",
            "resource_type": resource_type,
            "format": file.filename.rsplit(".", 1)[-1],
            "bytes": 128,
            "url": f"http://{url}",
            "secure_url": f"https://{url}",
            "duration": 12.5 if resource_type == "video" else None,
        }

    monkeypatch.setattr(users_router, "upload_file_to_cloudinary", fake_upload)
    monkeypatch.setattr(videos_router, "upload_file_to_cloudinary", fake_upload)
    return calls


@pytest.fixture
def register_user(client: AsyncClient, uploads):
    """Register a user through the API."""

    async def _register(
        username: str = "alice",
        email: str = "alice@videotube.io",
        password: str = USER_PASSWORD,
        full_name: str = "Alice A",
        with_avatar: bool = True,
        with_cover_image: bool = False,
    ):
        files = {}
        if with_avatar:
            files["avatar"] = ("avatar.png", PNG_BYTES, "image/png")
        if with_cover_image:
            files["coverImage"] = ("cover.png", PNG_BYTES, "image/png")

        return await client.post(
            "/api/v1/users/register",
            data={"fullName": full_name, "email": email, "username": username, "password": password},
            files=files or None,
        )

    return _register


@pytest.fixture
def login_headers(client: AsyncClient, register_user):
    """Register and log in a user, then return bearer headers for it.

    The cookie jar is cleared so that several users can be driven from one client.
    """

    async def _login(username: str = "alice", email: str | None = None) -> Dict[str, str]:
        email = email or f"{username}@videotube.io"
        registered = await register_user(username=username, email=email)
        assert registered.status_code == 201, registered.text

        response = await client.post(
            "/api/v1/users/login", json={"username": username, "password": USER_PASSWORD}
        )
        assert response.status_code == 200, response.text
        client.cookies.clear()

        return {"Authorization": f"Bearer {response.json()['data']['accessToken']}"}

    return _login
