"""Entry point for the FastAPI-powered watchlist sharing API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Sequence

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasicCredentials
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, settings
from .database import Database
from .errors import PersistenceError
from .handlers import (
    Repositories,
    basic_credentials,
    ensure_members_valid,
    ensure_username_available,
    fetch_accessible_media,
    fetch_accessible_watchlist,
    fetch_or_404,
    fetch_owned_watchlist,
    get_repositories,
    internal_error,
    login_user,
    merge_or_400,
    persist,
    remove,
)
from .middleware import install_middleware
from .models import (
    Media,
    MediaRequest,
    MediaUpdate,
    ResponseBody,
    User,
    UserRequest,
    UserUpdate,
    Watchlist,
    WatchlistRequest,
    WatchlistUpdate,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app: FastAPI


def _build_lifespan(app_settings: Settings):
    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        database = Database(app_settings.database_url)
        await database.create_all()
        fastapi_app.state.database = database
        fastapi_app.state.repositories = Repositories.from_database(
            database, app_settings
        )
        logger.info("Successfully initialized the database.")
        try:
            yield
        finally:  # pragma: no cover - teardown path exercised at runtime
            await database.dispose()

    return lifespan


def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or settings
    fastapi_app = FastAPI(
        title=app_settings.app_name,
        description="Share watchlists and track what everyone has watched",
        version="1.0.0",
        lifespan=_build_lifespan(app_settings),
    )
    fastapi_app.state.settings = app_settings

    install_middleware(fastapi_app, app_settings)
    register_exception_handlers(fastapi_app)
    register_routes(fastapi_app)
    return fastapi_app


def respond(data: Any = None, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(ResponseBody.success(data).to_payload(), status_code=status_code)


def _describe_validation_error(errors: Sequence[Any]) -> str:
    for error in errors:
        location = [
            str(part) for part in error.get("loc", ()) if part not in {"body", "path"}
        ]
        if error.get("type") == "json_invalid" or not location:
            break
        return f"The {'.'.join(location)} is invalid. Check the parameters and try again."
    return "The request body is invalid. Check the parameters and try again."


def register_exception_handlers(fastapi_app: FastAPI) -> None:
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "The request failed."
        return JSONResponse(
            ResponseBody.error(message).to_payload(),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    async def validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(
            ResponseBody.error(_describe_validation_error(exc.errors())).to_payload(),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            ResponseBody.error("Something went wrong. Please contact the admin.").to_payload(),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    fastapi_app.add_exception_handler(StarletteHTTPException, http_error)
    fastapi_app.add_exception_handler(RequestValidationError, validation_error)
    fastapi_app.add_exception_handler(Exception, unexpected_error)


def register_routes(fastapi_app: FastAPI) -> None:
    def repositories() -> Repositories:
        return get_repositories(fastapi_app)

    async def current_user(
        credentials: HTTPBasicCredentials | None = Depends(basic_credentials),
    ) -> User:
        return await login_user(repositories(), credentials)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> JSONResponse:
        return respond({"healthy": True})

    # Users

    @fastapi_app.post("/user")
    async def post_user(body: UserRequest) -> JSONResponse:
        repos = repositories()
        await ensure_username_available(repos, body.username)
        user = User.register(body.username, body.password)
        await persist(repos.users, user, action="create")
        return respond(user.to_response(), status.HTTP_201_CREATED)

    @fastapi_app.post("/user/login")
    async def post_user_login(
        credentials: HTTPBasicCredentials | None = Depends(basic_credentials),
    ) -> JSONResponse:
        user = await login_user(repositories(), credentials, by_username=True)
        return respond(user.to_response())

    @fastapi_app.get("/user/{user_id}")
    async def get_user(user_id: str) -> JSONResponse:
        user = await fetch_or_404(repositories().users, user_id)
        return respond(user.to_response())

    @fastapi_app.patch("/user")
    async def patch_user(
        body: UserUpdate, user: User = Depends(current_user)
    ) -> JSONResponse:
        repos = repositories()
        if body.username is not None:
            await ensure_username_available(
                repos, body.username, current_user_id=user.id
            )
        merge_or_400(user, body, "user")
        await persist(repos.users, user, action="update")
        return respond(user.to_response())

    @fastapi_app.delete("/user")
    async def delete_user(user: User = Depends(current_user)) -> JSONResponse:
        await remove(repositories().users, user)
        return respond()

    # Watchlists

    @fastapi_app.post("/watchlist")
    async def post_watchlist(
        body: WatchlistRequest, user: User = Depends(current_user)
    ) -> JSONResponse:
        repos = repositories()
        await ensure_members_valid(repos, user.id, body.members)
        watchlist = Watchlist(
            owner=user.id,
            members=body.members,
            title=body.title,
            description=body.description,
        )
        await persist(repos.watchlists, watchlist, action="create")
        return respond(watchlist.to_response(), status.HTTP_201_CREATED)

    @fastapi_app.get("/watchlist")
    async def get_watchlists(user: User = Depends(current_user)) -> JSONResponse:
        try:
            watchlists = await repositories().watchlists.list_for_user(user.id)
        except PersistenceError as exc:
            logger.error("Couldn't get the watchlists. %s", exc)
            raise internal_error("watchlists") from exc
        return respond([watchlist.to_response() for watchlist in watchlists])

    @fastapi_app.get("/watchlist/{watchlist_id}")
    async def get_watchlist(
        watchlist_id: str, user: User = Depends(current_user)
    ) -> JSONResponse:
        watchlist = await fetch_accessible_watchlist(
            repositories(), watchlist_id, user, "access this watchlist"
        )
        return respond(watchlist.to_response())

    @fastapi_app.get("/watchlist/{watchlist_id}/media")
    async def get_watchlist_media(
        watchlist_id: str, user: User = Depends(current_user)
    ) -> JSONResponse:
        repos = repositories()
        watchlist = await fetch_accessible_watchlist(
            repos, watchlist_id, user, "access this watchlist"
        )
        try:
            media = await repos.media.list_for_watchlist(watchlist.id)
        except PersistenceError as exc:
            logger.error("Couldn't get the media. %s", exc)
            raise internal_error("media") from exc
        return respond([item.to_response() for item in media])

    @fastapi_app.patch("/watchlist/{watchlist_id}")
    async def patch_watchlist(
        watchlist_id: str,
        body: WatchlistUpdate,
        user: User = Depends(current_user),
    ) -> JSONResponse:
        repos = repositories()
        watchlist = await fetch_owned_watchlist(
            repos, watchlist_id, user, "update this watchlist"
        )
        if body.members is not None:
            await ensure_members_valid(repos, user.id, body.members)
        merge_or_400(watchlist, body, "watchlist")
        await persist(repos.watchlists, watchlist, action="update")
        logger.info("watchlist:%s updated successfully.", watchlist.id)
        return respond(watchlist.to_response())

    @fastapi_app.delete("/watchlist/{watchlist_id}")
    async def delete_watchlist(
        watchlist_id: str, user: User = Depends(current_user)
    ) -> JSONResponse:
        repos = repositories()
        watchlist = await fetch_owned_watchlist(
            repos, watchlist_id, user, "delete this watchlist"
        )
        await remove(repos.watchlists, watchlist)
        logger.info("The watchlist:%s was successfully deleted.", watchlist_id)
        return respond()

    # Media

    @fastapi_app.post("/media")
    async def post_media(
        body: MediaRequest, user: User = Depends(current_user)
    ) -> JSONResponse:
        repos = repositories()
        await fetch_accessible_watchlist(
            repos, body.watchlist, user, "add a media to the watchlist"
        )
        media = Media(
            watchlist=body.watchlist,
            title=body.title,
            description=body.description,
            watched=body.watched,
        )
        await persist(repos.media, media, action="create")
        return respond(media.to_response(), status.HTTP_201_CREATED)

    @fastapi_app.get("/media/{media_id}")
    async def get_media(media_id: str) -> JSONResponse:
        media = await fetch_or_404(repositories().media, media_id)
        return respond(media.to_response())

    @fastapi_app.patch("/media/{media_id}")
    async def patch_media(
        media_id: str, body: MediaUpdate, user: User = Depends(current_user)
    ) -> JSONResponse:
        repos = repositories()
        media = await fetch_accessible_media(repos, media_id, user, "update the media")
        merge_or_400(media, body, "media")
        await persist(repos.media, media, action="update")
        return respond(media.to_response())

    @fastapi_app.delete("/media/{media_id}")
    async def delete_media(
        media_id: str, user: User = Depends(current_user)
    ) -> JSONResponse:
        repos = repositories()
        media = await fetch_accessible_media(repos, media_id, user, "delete the media")
        await remove(repos.media, media)
        return respond()


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
