"""Pydantic models describing entities, request bodies and the response envelope."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Mapping

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .security import (
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    PASSWORD_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    hash_password,
    is_valid_field,
)


def _allowed_text(min_length: int, max_length: int) -> AfterValidator:
    def _check(value: str) -> str:
        if not is_valid_field(value, max_length, min_length=min_length):
            raise ValueError(
                f"must be {min_length}-{max_length} characters using letters, "
                "digits, spaces or !@#$%&*_-+.,<>;/?"
            )
        return value

    return AfterValidator(_check)


Username = Annotated[
    str,
    _allowed_text(USERNAME_MIN_LENGTH, USERNAME_MAX_LENGTH),
    AfterValidator(lambda value: value.lower()),
]
Title = Annotated[str, _allowed_text(TITLE_MIN_LENGTH, TITLE_MAX_LENGTH)]
Description = Annotated[
    str, _allowed_text(DESCRIPTION_MIN_LENGTH, DESCRIPTION_MAX_LENGTH)
]
Password = Annotated[str, Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)]


def _unique_ids(values: list[str]) -> list[str]:
    """Collapse duplicate identifiers while keeping their first position."""

    seen: list[str] = []
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class Entity(BaseModel):
    """Fields and merge behaviour shared by every persisted entity."""

    model_config = ConfigDict(validate_assignment=True)

    MUTABLE_FIELDS: ClassVar[tuple[str, ...]] = ()

    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def merge(self, partial: BaseModel | Mapping[str, Any]) -> None:
        """Overwrite the caller-mutable fields present in ``partial``.

        Identifier, timestamps and any field outside ``MUTABLE_FIELDS`` are
        left untouched whatever ``partial`` contains.
        """

        if isinstance(partial, BaseModel):
            values = partial.model_dump(exclude_unset=True)
        else:
            values = dict(partial)
        for name in self.MUTABLE_FIELDS:
            if name in values and values[name] is not None:
                self._apply(name, values[name])

    def _apply(self, name: str, value: Any) -> None:
        setattr(self, name, value)

    def to_response(self) -> dict[str, Any]:
        """Return the JSON payload sent to API clients."""

        return self.model_dump(mode="json")


class User(Entity):
    """A registered account. ``password`` only ever holds the digest."""

    MUTABLE_FIELDS: ClassVar[tuple[str, ...]] = ("username", "password")

    username: Username
    password: str = Field(default="", exclude=True, repr=False)

    @classmethod
    def register(cls, username: str, password: str) -> "User":
        return cls(username=username, password=hash_password(password))

    def _apply(self, name: str, value: Any) -> None:
        if name == "password":
            value = hash_password(value)
        super()._apply(name, value)


class Watchlist(Entity):
    """A list owned by one user and shared with its members."""

    MUTABLE_FIELDS: ClassVar[tuple[str, ...]] = ("members", "title", "description")

    owner: str | None = None
    members: list[str] = Field(default_factory=list)
    title: Title
    description: Description

    @field_validator("members")
    @classmethod
    def _dedupe_members(cls, value: list[str]) -> list[str]:
        return _unique_ids(value)

    @model_validator(mode="after")
    def _owner_is_not_member(self) -> "Watchlist":
        if self.owner is not None and self.owner in self.members:
            raise ValueError("the owner cannot also be a member")
        return self

    def is_owner(self, user_id: str | None) -> bool:
        return self.owner is not None and self.owner == user_id

    def has_member(self, user_id: str | None) -> bool:
        return user_id is not None and user_id in self.members

    def can_access(self, user_id: str | None) -> bool:
        """Owners and members may read the watchlist and manage its media."""

        return self.is_owner(user_id) or self.has_member(user_id)


class Media(Entity):
    """A title tracked in a watchlist. Its watchlist never changes after creation."""

    MUTABLE_FIELDS: ClassVar[tuple[str, ...]] = ("title", "description", "watched")

    watchlist: str
    title: Title
    description: Description
    watched: bool = False


class UserRequest(BaseModel):
    username: Username
    password: Password


class UserUpdate(BaseModel):
    username: Username | None = None
    password: Password | None = None


class WatchlistRequest(BaseModel):
    members: list[str] = Field(default_factory=list)
    title: Title
    description: Description

    @field_validator("members")
    @classmethod
    def _dedupe_members(cls, value: list[str]) -> list[str]:
        return _unique_ids(value)


class WatchlistUpdate(BaseModel):
    members: list[str] | None = None
    title: Title | None = None
    description: Description | None = None

    @field_validator("members")
    @classmethod
    def _dedupe_members(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return _unique_ids(value)


class MediaRequest(BaseModel):
    title: Title
    description: Description
    watchlist: str = Field(min_length=1)
    watched: bool = False


class MediaUpdate(BaseModel):
    title: Title | None = None
    description: Description | None = None
    watched: bool | None = None


class ResponseBody(BaseModel):
    """The ``{status, data, message}`` envelope wrapping every response."""

    status: Literal["Success", "Failed"]
    data: Any = None
    message: str | None = None

    @classmethod
    def success(cls, data: Any = None) -> "ResponseBody":
        return cls(status="Success", data=data)

    @classmethod
    def error(cls, message: str) -> "ResponseBody":
        return cls(status="Failed", message=message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status}
        if self.data is not None:
            payload["data"] = self.data
        if self.message is not None:
            payload["message"] = self.message
        return payload
