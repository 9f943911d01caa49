"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest


# Make ``app`` importable when the tests run without an editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastapi.testclient import TestClient  # noqa: E402

from app.config import Settings  # noqa: E402
from app.main import create_app  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'watchshare.db'}"


@pytest.fixture
def api_client(database_url: str) -> Iterator[TestClient]:
    """A client for a fresh application backed by a temporary database."""

    settings = Settings(_env_file=None, DATABASE_URL=database_url)  # type: ignore[call-arg]
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def register_user(api_client: TestClient) -> Callable[..., dict[str, Any]]:
    """Create a user through the API and return its payload plus the password."""

    def _register(username: str, password: str = "secret-pass") -> dict[str, Any]:
        response = api_client.post(
            "/user", json={"username": username, "password": password}
        )
        assert response.status_code == 201, response.text
        user = response.json()["data"]
        user["auth"] = (user["id"], password)
        return user

    return _register
