"""Media persistence."""

from __future__ import annotations

import logging

from sqlalchemy import select

from ..db_models import MediaRecord
from ..errors import translate_database_errors
from ..models import Media
from .base import EntityRepository, timestamps

logger = logging.getLogger(__name__)


class MediaRepository(EntityRepository[Media, MediaRecord]):
    entity_name = "media"
    record_type = MediaRecord

    def _to_entity(self, record: MediaRecord) -> Media:
        return Media(
            id=record.id,
            watchlist=record.watchlist_id,
            title=record.title,
            description=record.description,
            watched=record.watched,
            **timestamps(record),
        )

    def _write_record(self, record: MediaRecord, entity: Media) -> None:
        record.watchlist_id = entity.watchlist
        record.title = entity.title
        record.description = entity.description
        record.watched = entity.watched

    async def list_for_watchlist(self, watchlist_id: str) -> list[Media]:
        logger.info("Getting media from watchlist:%s.", watchlist_id)
        async with self._session_factory() as session:
            with translate_database_errors("get the media of the watchlist"):
                result = await session.execute(
                    select(MediaRecord)
                    .where(MediaRecord.watchlist_id == watchlist_id)
                    .order_by(MediaRecord.id)
                )
                records = result.scalars().all()
        logger.info("The media were successfully retrieved.")
        return [self._to_entity(record) for record in records]
