"""Shared steps of the request pipeline.

Every endpoint runs the same sequence: authenticate, fetch the referenced
entities, authorize, merge, persist. The helpers below implement one step each
and raise :class:`fastapi.HTTPException` to stop the pipeline early.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import TypeVar

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.security import HTTPBasicCredentials
from fastapi.security.utils import get_authorization_scheme_param
from pydantic import ValidationError

from .config import Settings
from .database import Database
from .errors import ConstraintViolation, PersistenceError
from .models import Entity, Media, User, Watchlist
from .security import verify_password
from .services.base import EntityRepository
from .services.media import MediaRepository
from .services.users import UserRepository
from .services.watchlists import WatchlistRepository

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=Entity)

CREDENTIALS_MESSAGE = "Check the credentials and try again."


@dataclass(slots=True)
class Repositories:
    """Repositories sharing one injected database."""

    users: UserRepository
    watchlists: WatchlistRepository
    media: MediaRepository

    @classmethod
    def from_database(cls, database: Database, settings: Settings) -> "Repositories":
        options = {"id_generation_attempts": settings.id_generation_attempts}
        return cls(
            users=UserRepository(database.session_factory, **options),
            watchlists=WatchlistRepository(database.session_factory, **options),
            media=MediaRepository(database.session_factory, **options),
        )


def get_repositories(app: FastAPI) -> Repositories:
    repositories = getattr(app.state, "repositories", None)
    if not isinstance(repositories, Repositories):
        raise RuntimeError("Repositories not initialised")
    return repositories


def internal_error(entity_name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Couldn't get the {entity_name}. Please contact the admin.",
    )


def unauthorized(message: str = CREDENTIALS_MESSAGE) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Basic"},
    )


def forbidden(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f"You don't have permission to {action}.",
    )


def basic_credentials(request: Request) -> HTTPBasicCredentials | None:
    """Read Basic credentials, decoding them as UTF-8.

    Returns ``None`` when no Basic header is sent. A header that cannot be
    decoded is rejected with the same 401 as wrong credentials.
    """

    scheme, token = get_authorization_scheme_param(
        request.headers.get("Authorization")
    )
    if not token or scheme.lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        logger.info("Malformed Basic credentials.")
        raise unauthorized() from exc
    username, separator, password = decoded.partition(":")
    if not separator:
        logger.info("Malformed Basic credentials.")
        raise unauthorized()
    return HTTPBasicCredentials(username=username, password=password)


async def fetch_or_404(
    repository: EntityRepository[EntityT, object], entity_id: str
) -> EntityT:
    """Load an entity or stop with 404 (missing) or 500 (database failure)."""

    name = repository.entity_name
    try:
        entity = await repository.fetch_by_id(entity_id)
    except PersistenceError as exc:
        logger.error("Couldn't get the %s. %s", name, exc)
        raise internal_error(name) from exc
    if entity is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"The {name} was not found. Check the id and try again.",
        )
    return entity


async def login_user(
    repositories: Repositories,
    credentials: HTTPBasicCredentials | None,
    *,
    by_username: bool = False,
) -> User:
    """Resolve Basic credentials to a user.

    ``POST /user/login`` identifies the user by username; every other
    endpoint expects the user identifier returned by that login.
    """

    logger.info("Trying to login the user...")
    if credentials is None or not credentials.password:
        logger.info("Credentials not included.")
        raise unauthorized()

    identifier = credentials.username
    try:
        if by_username:
            user = await repositories.users.from_username(identifier)
        else:
            user = await repositories.users.fetch_by_id(identifier)
    except PersistenceError as exc:
        logger.error("Couldn't get the user. %s", exc)
        raise internal_error("user") from exc

    if user is None:
        logger.info("No user matches the provided credentials.")
        raise unauthorized()
    if not verify_password(credentials.password, user.password):
        raise unauthorized()
    logger.info("User successfully logged in.")
    return user


async def ensure_username_available(
    repositories: Repositories, username: str, *, current_user_id: str | None = None
) -> None:
    try:
        existing = await repositories.users.from_username(username)
    except PersistenceError as exc:
        logger.error("Couldn't check the username. %s", exc)
        raise internal_error("user") from exc
    if existing is not None and existing.id != current_user_id:
        logger.warning("Username already exists.")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The username already exists. Try another one.",
        )


async def ensure_members_valid(
    repositories: Repositories, owner_id: str, members: list[str]
) -> None:
    """Reject member lists naming the owner or users that do not exist."""

    logger.info("Checking if all members from the watchlist are valid.")
    if owner_id in members:
        logger.warning("The owner is a member.")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The owner can't be a member. Check the parameters and try again.",
        )
    try:
        missing = await repositories.users.missing_ids(members)
    except PersistenceError as exc:
        logger.error("Couldn't check if all members are valid. %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Couldn't check the members. Please contact the admin.",
        ) from exc
    if missing:
        logger.info("Some members are invalid: %s", ", ".join(missing))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some member is invalid. Check the parameters and try again.",
        )
    logger.info("All members are valid.")


def merge_or_400(entity: Entity, partial: object, entity_name: str) -> None:
    try:
        entity.merge(partial)  # type: ignore[arg-type]
    except ValidationError as exc:
        logger.warning("Couldn't merge the %s. %s", entity_name, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"The {entity_name} is invalid. Check the parameters and try again.",
        ) from exc


async def persist(
    repository: EntityRepository[EntityT, object], entity: EntityT, *, action: str
) -> EntityT:
    """Sync ``entity``: schema violations become 400, database failures 500."""

    name = repository.entity_name
    try:
        return await repository.sync(entity)
    except ConstraintViolation as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Couldn't {action} the {name}. Check the parameters and try again.",
        ) from exc
    except PersistenceError as exc:
        logger.error("Couldn't %s the %s. %s", action, name, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Couldn't {action} the {name}. Please contact the admin.",
        ) from exc


async def remove(repository: EntityRepository[EntityT, object], entity: EntityT) -> None:
    name = repository.entity_name
    try:
        await repository.delete(entity)
    except PersistenceError as exc:
        logger.error("Couldn't delete the %s. %s", name, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Couldn't delete the {name}. Please contact the admin.",
        ) from exc


async def fetch_accessible_watchlist(
    repositories: Repositories, watchlist_id: str, user: User, action: str
) -> Watchlist:
    """Load a watchlist the user owns or is a member of."""

    watchlist = await fetch_or_404(repositories.watchlists, watchlist_id)
    if not watchlist.can_access(user.id):
        logger.warning("user:%s may not %s.", user.id, action)
        raise forbidden(action)
    return watchlist


async def fetch_owned_watchlist(
    repositories: Repositories, watchlist_id: str, user: User, action: str
) -> Watchlist:
    watchlist = await fetch_or_404(repositories.watchlists, watchlist_id)
    if not watchlist.is_owner(user.id):
        logger.warning("user:%s may not %s.", user.id, action)
        raise forbidden(action)
    return watchlist


async def fetch_accessible_media(
    repositories: Repositories, media_id: str, user: User, action: str
) -> Media:
    """Load a media item whose watchlist the user owns or is a member of."""

    media = await fetch_or_404(repositories.media, media_id)
    await fetch_accessible_watchlist(repositories, media.watchlist, user, action)
    return media
