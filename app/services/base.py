"""Persistence operations shared by every entity repository."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import ClassVar, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import Base
from ..errors import translate_database_errors
from ..identifiers import generate_id
from ..models import Entity
from ..utils import utcnow

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=Entity)
RecordT = TypeVar("RecordT", bound=Base)


class EntityRepository(Generic[EntityT, RecordT]):
    """Create, read, sync and delete one entity type.

    Subclasses map between the pydantic entity and its ORM record; every
    public operation opens its own session so requests never share one.
    """

    entity_name: ClassVar[str]
    record_type: ClassVar[type[Base]]

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        id_generation_attempts: int = 16,
    ):
        self._session_factory = session_factory
        self._id_generation_attempts = id_generation_attempts

    def _to_entity(self, record: RecordT) -> EntityT:
        raise NotImplementedError

    def _write_record(self, record: RecordT, entity: EntityT) -> None:
        """Copy every persisted field except the identifier and creation time."""

        raise NotImplementedError

    async def fetch_by_id(self, entity_id: str) -> EntityT | None:
        logger.info("Getting %s:%s.", self.entity_name, entity_id)
        async with self._session_factory() as session:
            with translate_database_errors(f"get the {self.entity_name}"):
                record = await session.get(self.record_type, entity_id)
        if record is None:
            logger.info("No %s:%s found.", self.entity_name, entity_id)
            return None
        logger.info("%s:%s found.", self.entity_name, entity_id)
        return self._to_entity(record)  # type: ignore[arg-type]

    async def sync(self, entity: EntityT) -> EntityT:
        """Persist ``entity``, creating it first when it has no identifier."""

        if entity.id is None:
            return await self.create(entity)

        now = utcnow()
        logger.info("Syncing %s:%s in the database...", self.entity_name, entity.id)
        async with self._session_factory() as session:
            with translate_database_errors(f"update the {self.entity_name}"):
                record = await session.get(self.record_type, entity.id)
                if record is None:
                    record = self.record_type(
                        id=entity.id, created_at=entity.created_at or now
                    )
                    session.add(record)
                self._write_record(record, entity)  # type: ignore[arg-type]
                record.updated_at = now  # type: ignore[attr-defined]
                await session.commit()
        entity.updated_at = now
        logger.info("Synced %s:%s in the database.", self.entity_name, entity.id)
        return entity

    async def create(self, entity: EntityT) -> EntityT:
        """Insert ``entity`` under a fresh identifier. Prefer :meth:`sync`."""

        logger.info("Creating a new %s...", self.entity_name)
        now = utcnow()
        async with self._session_factory() as session:
            with translate_database_errors(f"create the {self.entity_name}"):
                entity_id = await generate_id(
                    session,
                    self.record_type,
                    max_attempts=self._id_generation_attempts,
                )
                record = self.record_type(id=entity_id, created_at=now)
                self._write_record(record, entity)  # type: ignore[arg-type]
                record.updated_at = now  # type: ignore[attr-defined]
                session.add(record)
                await session.commit()
        entity.id = entity_id
        entity.created_at = now
        entity.updated_at = now
        logger.info("The new %s:%s was created.", self.entity_name, entity_id)
        return entity

    async def delete(self, entity: EntityT) -> None:
        if entity.id is None:
            logger.warning("The %s has no id.", self.entity_name)
            return

        logger.info("Deleting %s:%s...", self.entity_name, entity.id)
        async with self._session_factory() as session:
            with translate_database_errors(f"delete the {self.entity_name}"):
                record = await session.get(self.record_type, entity.id)
                if record is not None:
                    await session.delete(record)
                    await session.commit()
        logger.info("The %s:%s was deleted.", self.entity_name, entity.id)


def timestamps(record: Base) -> dict[str, datetime]:
    return {
        "created_at": record.created_at,  # type: ignore[attr-defined]
        "updated_at": record.updated_at,  # type: ignore[attr-defined]
    }
