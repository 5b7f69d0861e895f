from typing import List, Set
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import PageEmbedding
from tender_ai.repositories.base_repository import BaseRepository


class EmbeddingRepository(BaseRepository[PageEmbedding]):
    """Repository for per-page vectors."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PageEmbedding)

    async def get_embedded_page_ids(self, document_id: UUID) -> Set[UUID]:
        rows = await self._scalars(
            select(PageEmbedding.page_id).where(PageEmbedding.document_id == document_id)
        )
        return set(rows)

    async def count_by_document(self, document_id: UUID) -> int:
        count = await self._scalar(
            select(func.count()).select_from(PageEmbedding).where(
                PageEmbedding.document_id == document_id
            )
        )
        return count or 0

    async def get_by_document(self, document_id: UUID) -> List[PageEmbedding]:
        return await self._scalars(
            select(PageEmbedding)
            .where(PageEmbedding.document_id == document_id)
            .order_by(PageEmbedding.page_number)
        )
