from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from alquila.core.config import Settings
from alquila.main import create_app
from fakes import OWNER_AUTH_USER_ID, InMemoryImageStorage, InMemoryPropertiesRepository

TEST_JWT_SECRET = "test-secret-0123456789-abcdefghijklmnop"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        jwt_secret=TEST_JWT_SECRET,
        database_url="sqlite+aiosqlite:///:memory:",
        content_root=str(tmp_path),
    )


@pytest.fixture
def repository() -> InMemoryPropertiesRepository:
    return InMemoryPropertiesRepository()


@pytest.fixture
def image_storage() -> InMemoryImageStorage:
    return InMemoryImageStorage()


@pytest.fixture
def client(settings, repository, image_storage):
    app = create_app(settings, repository=repository, image_storage=image_storage)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build an Authorization header for a token with the given role and subject."""

    def build(role: str | None = "propietario", sub=OWNER_AUTH_USER_ID, **claims) -> dict[str, str]:
        payload = dict(claims)
        if role is not None:
            payload["role"] = role
        if sub is not None:
            payload["sub"] = str(sub)
        token = jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return build
