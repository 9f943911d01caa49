"""SQLAlchemy ORM models backing the persistent state.

Column rules mirror the request validation in :mod:`app.models`; the ORM
validators and CHECK constraints re-assert them at the storage boundary,
the character allow-list included through SQLite `GLOB` classes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from .database import Base
from .security import (
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    GLOB_CHARSET,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    is_password_hash,
    is_valid_field,
)
from .utils import ULID_LENGTH, utcnow


def _checked_field(
    table: str, key: str, value: object, min_length: int, max_length: int
) -> str:
    if not is_valid_field(value, max_length, min_length=min_length):
        raise ValueError(f"{table}.{key} violates the table schema")
    return value  # type: ignore[return-value]


def _charset_check(table: str, column: str) -> CheckConstraint:
    return CheckConstraint(
        f"{column} NOT GLOB '*[^{GLOB_CHARSET}]*'",
        name=f"ck_{table}_{column}_charset",
    )


class UserRecord(Base):
    """Represents a registered user."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            f"length(username) BETWEEN {USERNAME_MIN_LENGTH} AND {USERNAME_MAX_LENGTH}",
            name="ck_users_username_length",
        ),
        CheckConstraint("username = lower(username)", name="ck_users_username_lower"),
        _charset_check("users", "username"),
        CheckConstraint("length(password) = 128", name="ck_users_password_digest"),
        CheckConstraint(
            "password NOT GLOB '*[^a-f0-9]*'", name="ck_users_password_hex"
        ),
    )

    id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True)
    username: Mapped[str] = mapped_column(
        String(USERNAME_MAX_LENGTH), unique=True, index=True
    )
    password: Mapped[str] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    @validates("username")
    def _validate_username(self, key: str, value: object) -> str:
        checked = _checked_field(
            self.__tablename__, key, value, USERNAME_MIN_LENGTH, USERNAME_MAX_LENGTH
        )
        return checked.lower()

    @validates("password")
    def _validate_password(self, key: str, value: object) -> str:
        if not is_password_hash(value):
            raise ValueError(f"{self.__tablename__}.{key} must be a SHA-512 digest")
        return value  # type: ignore[return-value]


class WatchlistRecord(Base):
    """A titled list owned by one user and shared with members."""

    __tablename__ = "watchlists"
    __table_args__ = (
        CheckConstraint(
            f"length(title) BETWEEN {TITLE_MIN_LENGTH} AND {TITLE_MAX_LENGTH}",
            name="ck_watchlists_title_length",
        ),
        CheckConstraint(
            f"length(description) BETWEEN {DESCRIPTION_MIN_LENGTH} AND {DESCRIPTION_MAX_LENGTH}",
            name="ck_watchlists_description_length",
        ),
        _charset_check("watchlists", "title"),
        _charset_check("watchlists", "description"),
    )

    id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True)
    # Plain reference: deleting the owner leaves the watchlist in place.
    owner_id: Mapped[str] = mapped_column(String(ULID_LENGTH), index=True)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH))
    description: Mapped[str] = mapped_column(String(DESCRIPTION_MAX_LENGTH))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    members: Mapped[list["WatchlistMemberRecord"]] = relationship(
        back_populates="watchlist",
        cascade="all, delete-orphan",
        order_by="WatchlistMemberRecord.position",
        lazy="selectin",
    )

    @validates("title")
    def _validate_title(self, key: str, value: object) -> str:
        return _checked_field(
            self.__tablename__, key, value, TITLE_MIN_LENGTH, TITLE_MAX_LENGTH
        )

    @validates("description")
    def _validate_description(self, key: str, value: object) -> str:
        return _checked_field(
            self.__tablename__,
            key,
            value,
            DESCRIPTION_MIN_LENGTH,
            DESCRIPTION_MAX_LENGTH,
        )

    @validates("members")
    def _validate_member(
        self, key: str, member: "WatchlistMemberRecord"
    ) -> "WatchlistMemberRecord":
        if self.owner_id is not None and member.user_id == self.owner_id:
            raise ValueError(f"{self.__tablename__}.{key} may not contain the owner")
        return member


class WatchlistMemberRecord(Base):
    """Membership row linking a user reference to a watchlist."""

    __tablename__ = "watchlist_members"

    watchlist_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("watchlists.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH), primary_key=True, index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)

    watchlist: Mapped[WatchlistRecord] = relationship(back_populates="members")


class MediaRecord(Base):
    """A single title tracked inside a watchlist."""

    __tablename__ = "media"
    __table_args__ = (
        CheckConstraint(
            f"length(title) BETWEEN {TITLE_MIN_LENGTH} AND {TITLE_MAX_LENGTH}",
            name="ck_media_title_length",
        ),
        CheckConstraint(
            f"length(description) BETWEEN {DESCRIPTION_MIN_LENGTH} AND {DESCRIPTION_MAX_LENGTH}",
            name="ck_media_description_length",
        ),
        _charset_check("media", "title"),
        _charset_check("media", "description"),
    )

    id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True)
    watchlist_id: Mapped[str] = mapped_column(String(ULID_LENGTH), index=True)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH))
    description: Mapped[str] = mapped_column(String(DESCRIPTION_MAX_LENGTH))
    watched: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    @validates("title")
    def _validate_title(self, key: str, value: object) -> str:
        return _checked_field(
            self.__tablename__, key, value, TITLE_MIN_LENGTH, TITLE_MAX_LENGTH
        )

    @validates("description")
    def _validate_description(self, key: str, value: object) -> str:
        return _checked_field(
            self.__tablename__,
            key,
            value,
            DESCRIPTION_MIN_LENGTH,
            DESCRIPTION_MAX_LENGTH,
        )
