"""User persistence."""

from __future__ import annotations

import logging

from sqlalchemy import select

from ..db_models import UserRecord
from ..errors import translate_database_errors
from ..models import User
from .base import EntityRepository, timestamps

logger = logging.getLogger(__name__)


class UserRepository(EntityRepository[User, UserRecord]):
    entity_name = "user"
    record_type = UserRecord

    def _to_entity(self, record: UserRecord) -> User:
        return User(
            id=record.id,
            username=record.username,
            password=record.password,
            **timestamps(record),
        )

    def _write_record(self, record: UserRecord, entity: User) -> None:
        record.username = entity.username
        record.password = entity.password

    async def from_username(self, username: str) -> User | None:
        """Look a user up by username, ignoring case."""

        lookup = username.lower()
        logger.info("Getting user %s.", lookup)
        async with self._session_factory() as session:
            with translate_database_errors("get the user"):
                result = await session.execute(
                    select(UserRecord).where(UserRecord.username == lookup)
                )
                record = result.scalar_one_or_none()
        if record is None:
            logger.info("No user %s found.", lookup)
            return None
        logger.info("User %s found.", lookup)
        return self._to_entity(record)

    async def missing_ids(self, user_ids: list[str]) -> list[str]:
        """Return the identifiers in ``user_ids`` that match no stored user."""

        if not user_ids:
            return []
        async with self._session_factory() as session:
            with translate_database_errors("check the users"):
                result = await session.execute(
                    select(UserRecord.id).where(UserRecord.id.in_(user_ids))
                )
                found = set(result.scalars().all())
        return [user_id for user_id in user_ids if user_id not in found]
