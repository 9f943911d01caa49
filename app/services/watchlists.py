"""Watchlist persistence."""

from __future__ import annotations

import logging

from sqlalchemy import select

from ..db_models import WatchlistMemberRecord, WatchlistRecord
from ..errors import translate_database_errors
from ..models import Watchlist
from .base import EntityRepository, timestamps

logger = logging.getLogger(__name__)


class WatchlistRepository(EntityRepository[Watchlist, WatchlistRecord]):
    entity_name = "watchlist"
    record_type = WatchlistRecord

    def _to_entity(self, record: WatchlistRecord) -> Watchlist:
        return Watchlist(
            id=record.id,
            owner=record.owner_id,
            members=[member.user_id for member in record.members],
            title=record.title,
            description=record.description,
            **timestamps(record),
        )

    def _write_record(self, record: WatchlistRecord, entity: Watchlist) -> None:
        if entity.owner is None:
            raise ValueError("watchlists.owner is required")
        # Owner first: the members validator compares against it.
        record.owner_id = entity.owner
        record.title = entity.title
        record.description = entity.description

        existing = {member.user_id: member for member in record.members}
        members: list[WatchlistMemberRecord] = []
        for position, user_id in enumerate(entity.members):
            member = existing.get(user_id) or WatchlistMemberRecord(user_id=user_id)
            member.position = position
            members.append(member)
        record.members = members

    async def list_owned_by(self, user_id: str) -> list[Watchlist]:
        logger.info("Getting the watchlists owned by user:%s.", user_id)
        async with self._session_factory() as session:
            with translate_database_errors("get the owned watchlists"):
                result = await session.execute(
                    select(WatchlistRecord)
                    .where(WatchlistRecord.owner_id == user_id)
                    .order_by(WatchlistRecord.id)
                )
                records = result.scalars().all()
        return [self._to_entity(record) for record in records]

    async def list_shared_with(self, user_id: str) -> list[Watchlist]:
        logger.info("Getting the watchlists shared with user:%s.", user_id)
        async with self._session_factory() as session:
            with translate_database_errors("get the watchlists as member"):
                result = await session.execute(
                    select(WatchlistRecord)
                    .join(WatchlistMemberRecord)
                    .where(WatchlistMemberRecord.user_id == user_id)
                    .order_by(WatchlistRecord.id)
                )
                records = result.scalars().unique().all()
        return [self._to_entity(record) for record in records]

    async def list_for_user(self, user_id: str) -> list[Watchlist]:
        """Return owned watchlists followed by the ones the user is a member of."""

        watchlists = await self.list_owned_by(user_id)
        watchlists.extend(await self.list_shared_with(user_id))
        logger.info("The watchlists were successfully retrieved.")
        return watchlists
