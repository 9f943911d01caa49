"""HTTP middleware: CORS, content negotiation, timeouts and request logging."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .models import ResponseBody

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]

ACCEPTABLE_MEDIA_TYPES = {"application/json", "application/*", "*/*"}


def is_acceptable(accept_header: str | None) -> bool:
    """Return ``True`` when the client accepts a JSON response."""

    if accept_header is None or not accept_header.strip():
        return True
    for media_range in accept_header.split(","):
        media_type, *params = (part.strip().lower() for part in media_range.split(";"))
        if media_type in ACCEPTABLE_MEDIA_TYPES and _quality(params) > 0:
            return True
    return False


def _quality(params: list[str]) -> float:
    for param in params:
        name, _, value = param.partition("=")
        if name.strip() == "q":
            try:
                return float(value)
            except ValueError:
                return 0.0
    return 1.0


def _envelope_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        ResponseBody.error(message).to_payload(), status_code=status_code
    )


def install_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware; the last one added runs first on each request."""

    @app.middleware("http")
    async def log_requests(request: Request, call_next: CallNext) -> Response:
        client = request.client.host if request.client else "unknown"
        logger.info(
            "Request from [%s] to %s %s", client, request.method, request.url.path
        )
        response = await call_next(request)
        logger.info(
            "Returning response #%s to the client [%s].", response.status_code, client
        )
        return response

    @app.middleware("http")
    async def acceptable_headers(request: Request, call_next: CallNext) -> Response:
        if not is_acceptable(request.headers.get("accept")):
            return _envelope_response(
                status.HTTP_406_NOT_ACCEPTABLE,
                "Only application/json responses are available.",
            )
        return await call_next(request)

    timeout = settings.request_timeout_seconds

    @app.middleware("http")
    async def enforce_timeout(request: Request, call_next: CallNext) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Request %s %s exceeded %.1fs", request.method, request.url.path, timeout
            )
            return _envelope_response(
                status.HTTP_408_REQUEST_TIMEOUT,
                "The request took too long. Please try again.",
            )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )
