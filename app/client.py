"""Async client for the Watchshare REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import Settings
from .models import Media, User, Watchlist

logger = logging.getLogger(__name__)

Credentials = tuple[str, str]


class ApiClientError(Exception):
    """The API answered with a failed envelope or an unreadable body."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class WatchshareClient:
    """Thin wrapper around the Watchshare HTTP API.

    Credentials are passed per call: ``(username, password)`` for
    :meth:`login` and ``(user_id, password)`` everywhere else.
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self._client = http_client

    @classmethod
    def from_settings(
        cls, settings: Settings, *, timeout: float = 10.0
    ) -> "WatchshareClient":
        return cls(
            httpx.AsyncClient(
                base_url=str(settings.api_url),
                timeout=httpx.Timeout(timeout, connect=5.0),
                headers={"Accept": "application/json"},
            )
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "WatchshareClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        auth: Credentials | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                auth=httpx.BasicAuth(*auth) if auth else None,
            )
        except httpx.HTTPError as exc:
            logger.warning("Request %s %s failed: %s", method, path, exc)
            raise ApiClientError(0, f"Unable to reach the API: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiClientError(
                response.status_code, "The API returned a non-JSON body"
            ) from exc
        if not isinstance(payload, dict):
            raise ApiClientError(response.status_code, "Unexpected response envelope")

        if response.status_code >= 400 or payload.get("status") != "Success":
            message = str(payload.get("message") or response.reason_phrase)
            raise ApiClientError(response.status_code, message)
        return payload.get("data")

    # Users

    async def create_user(self, username: str, password: str) -> User:
        data = await self._request(
            "POST", "/user", json={"username": username, "password": password}
        )
        return User.model_validate(data)

    async def login(self, username: str, password: str) -> User:
        data = await self._request("POST", "/user/login", auth=(username, password))
        return User.model_validate(data)

    async def get_user(self, user_id: str) -> User:
        return User.model_validate(await self._request("GET", f"/user/{user_id}"))

    async def update_user(
        self,
        auth: Credentials,
        *,
        username: str | None = None,
        password: str | None = None,
    ) -> User:
        body = {
            key: value
            for key, value in {"username": username, "password": password}.items()
            if value is not None
        }
        data = await self._request("PATCH", "/user", auth=auth, json=body)
        return User.model_validate(data)

    async def delete_user(self, auth: Credentials) -> None:
        await self._request("DELETE", "/user", auth=auth)

    # Watchlists

    async def create_watchlist(
        self,
        auth: Credentials,
        *,
        title: str,
        description: str,
        members: list[str] | None = None,
    ) -> Watchlist:
        body = {
            "title": title,
            "description": description,
            "members": list(members or []),
        }
        data = await self._request("POST", "/watchlist", auth=auth, json=body)
        return Watchlist.model_validate(data)

    async def list_watchlists(self, auth: Credentials) -> list[Watchlist]:
        data = await self._request("GET", "/watchlist", auth=auth)
        return [Watchlist.model_validate(entry) for entry in data or []]

    async def get_watchlist(self, auth: Credentials, watchlist_id: str) -> Watchlist:
        data = await self._request("GET", f"/watchlist/{watchlist_id}", auth=auth)
        return Watchlist.model_validate(data)

    async def update_watchlist(
        self, auth: Credentials, watchlist_id: str, **changes: Any
    ) -> Watchlist:
        data = await self._request(
            "PATCH", f"/watchlist/{watchlist_id}", auth=auth, json=changes
        )
        return Watchlist.model_validate(data)

    async def delete_watchlist(self, auth: Credentials, watchlist_id: str) -> None:
        await self._request("DELETE", f"/watchlist/{watchlist_id}", auth=auth)

    async def list_watchlist_media(
        self, auth: Credentials, watchlist_id: str
    ) -> list[Media]:
        data = await self._request(
            "GET", f"/watchlist/{watchlist_id}/media", auth=auth
        )
        return [Media.model_validate(entry) for entry in data or []]

    # Media

    async def create_media(
        self,
        auth: Credentials,
        *,
        watchlist_id: str,
        title: str,
        description: str,
        watched: bool = False,
    ) -> Media:
        body = {
            "watchlist": watchlist_id,
            "title": title,
            "description": description,
            "watched": watched,
        }
        data = await self._request("POST", "/media", auth=auth, json=body)
        return Media.model_validate(data)

    async def get_media(self, media_id: str) -> Media:
        return Media.model_validate(await self._request("GET", f"/media/{media_id}"))

    async def update_media(
        self, auth: Credentials, media_id: str, **changes: Any
    ) -> Media:
        data = await self._request("PATCH", f"/media/{media_id}", auth=auth, json=changes)
        return Media.model_validate(data)

    async def delete_media(self, auth: Credentials, media_id: str) -> None:
        await self._request("DELETE", f"/media/{media_id}", auth=auth)
