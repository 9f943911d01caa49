"""Collision-checked identifier generation."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import Base
from .errors import PersistenceError
from .utils import new_ulid

logger = logging.getLogger(__name__)


async def id_exists(session: AsyncSession, record_type: type[Base], candidate: str) -> bool:
    stmt = select(record_type.id).where(record_type.id == candidate).limit(1)  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def generate_id(
    session: AsyncSession,
    record_type: type[Base],
    *,
    max_attempts: int = 16,
) -> str:
    """Return a ULID that is not yet used in ``record_type``'s table.

    Each attempt costs one existence read. ``max_attempts`` bounds the loop so
    a misbehaving random source surfaces as an error instead of spinning.
    """

    table = record_type.__tablename__
    logger.info("Generating a new ID for a new %s...", table)
    for attempt in range(1, max_attempts + 1):
        candidate = new_ulid()
        if not await id_exists(session, record_type, candidate):
            logger.info("New ID generated.")
            return candidate
        logger.warning("Generated ID collided in %s (attempt %s)", table, attempt)
    raise PersistenceError(
        f"Could not generate a unique id for {table} after {max_attempts} attempts"
    )
