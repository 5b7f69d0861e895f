from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Section
from tender_ai.repositories.base_repository import BaseRepository


class SectionRepository(BaseRepository[Section]):
    """Repository for the structural outline."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Section)

    async def get_by_document(self, document_id: UUID) -> List[Section]:
        """Get a document's sections in page order."""
        return await self._scalars(
            select(Section)
            .where(Section.document_id == document_id)
            .order_by(Section.page_number, Section.line_start)
        )

    async def get_by_page(self, document_id: UUID, page_number: int) -> List[Section]:
        return await self._scalars(
            select(Section).where(
                Section.document_id == document_id,
                Section.page_number == page_number,
            )
        )
