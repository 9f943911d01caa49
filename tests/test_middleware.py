"""HTTP middleware and error envelope tests."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.middleware import is_acceptable


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "application/json",
        "*/*",
        "text/html, application/json;q=0.9",
        "application/*",
    ],
)
def test_is_acceptable_accepts_json(header) -> None:
    assert is_acceptable(header)


@pytest.mark.parametrize("header", ["text/html", "application/xml, text/plain"])
def test_is_acceptable_rejects_other_types(header) -> None:
    assert not is_acceptable(header)


def test_non_json_accept_header_returns_406(api_client) -> None:
    response = api_client.get("/healthz", headers={"Accept": "text/html"})

    assert response.status_code == 406
    assert response.json()["status"] == "Failed"


def test_healthcheck(api_client) -> None:
    response = api_client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "Success", "data": {"healthy": True}}


def test_unknown_route_uses_envelope(api_client) -> None:
    response = api_client.get("/nope")

    assert response.status_code == 404
    assert response.json() == {"status": "Failed", "message": "Not Found"}


def test_unsupported_method_uses_envelope(api_client) -> None:
    response = api_client.put("/user")

    assert response.status_code == 405
    assert response.json()["status"] == "Failed"


def test_malformed_json_returns_400(api_client) -> None:
    response = api_client.post(
        "/user", content="{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json() == {
        "status": "Failed",
        "message": "The request body is invalid. Check the parameters and try again.",
    }


def test_cors_preflight_allows_configured_origin(database_url) -> None:
    settings = Settings(
        _env_file=None,
        DATABASE_URL=database_url,
        CORS_ORIGINS="http://localhost:5173",
    )
    with TestClient(create_app(settings)) as client:
        response = client.options(
            "/user",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "PATCH",
            },
        )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


def test_slow_requests_time_out(database_url) -> None:
    settings = Settings(_env_file=None, DATABASE_URL=database_url, REQUEST_TIMEOUT=0.05)
    app = create_app(settings)

    @app.get("/slow")
    async def slow() -> dict[str, bool]:
        await asyncio.sleep(0.5)
        return {"done": True}

    with TestClient(app) as client:
        response = client.get("/slow")

    assert response.status_code == 408
    assert response.json()["status"] == "Failed"


@pytest.mark.parametrize(
    "header",
    ["application/json;q=0", "*/*; q=0, text/html", "application/json;q=abc"],
)
def test_is_acceptable_ignores_zero_quality_ranges(header) -> None:
    assert not is_acceptable(header)


def test_is_acceptable_honours_positive_quality() -> None:
    assert is_acceptable("text/html, application/json;q=0.1")
