from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import TimelineEvent
from tender_ai.repositories.base_repository import BaseRepository


class TimelineRepository(BaseRepository[TimelineEvent]):
    """Repository for timeline events."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TimelineEvent)

    async def get_by_document(self, document_id: UUID) -> List[TimelineEvent]:
        """Get a document's events, dated ones first in date order."""
        return await self._scalars(
            select(TimelineEvent)
            .where(TimelineEvent.document_id == document_id)
            .order_by(TimelineEvent.event_date.asc().nulls_last(), TimelineEvent.page_number)
        )
