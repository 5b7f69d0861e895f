from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import DocumentPage
from tender_ai.repositories.base_repository import BaseRepository
from tender_ai.schemas.batch import PageInput
from tender_ai.schemas.enums import PageStatus


class PageRepository(BaseRepository[DocumentPage]):
    """Repository for per-page text and processing status."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentPage)

    async def create_pages(self, document_id: UUID, pages: List[PageInput]) -> List[DocumentPage]:
        """Persist extracted pages with their word counts."""
        return await self.create_many([
            {
                "document_id": document_id,
                "page_number": page.page_number,
                "text": page.text,
                "word_count": page.word_count,
                "status": PageStatus.PENDING.value,
            }
            for page in pages
        ])

    async def get_by_document(self, document_id: UUID) -> List[DocumentPage]:
        """Get a document's pages ordered by page number."""
        return await self._scalars(
            select(DocumentPage)
            .where(DocumentPage.document_id == document_id)
            .order_by(DocumentPage.page_number)
        )

    async def mark_batch(
        self,
        page_ids: List[UUID],
        status: PageStatus,
        batch_number: Optional[int] = None,
        processing_time_ms: Optional[int] = None,
        entities_extracted: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        """Set the status of every page of a batch."""
        for page_id in page_ids:
            page = await self.get_by_id(page_id)
            if page is None:
                continue
            page.status = status.value
            if batch_number is not None:
                page.batch_number = batch_number
            if processing_time_ms is not None:
                page.processing_time_ms = processing_time_ms
            if entities_extracted is not None:
                page.entities_extracted = entities_extracted
            if error is not None:
                page.error = error
            if status in (PageStatus.COMPLETED, PageStatus.FAILED):
                page.completed_at = datetime.now(timezone.utc)
        await self.commit()

    async def count_by_status(self, document_id: UUID) -> Dict[str, int]:
        return await self.count_grouped(document_id, "status")
