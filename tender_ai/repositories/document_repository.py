from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Document
from tender_ai.repositories.base_repository import BaseRepository
from tender_ai.schemas.enums import DocumentStatus
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Repository for managing Document records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def update_status(
        self,
        document_id: UUID,
        status: DocumentStatus,
        error_message: Optional[str] = None,
        page_count: Optional[int] = None,
    ) -> Optional[Document]:
        """Move a document through PENDING -> PROCESSING -> COMPLETED/FAILED.

        Args:
            document_id: Document to update
            status: New status
            error_message: Failure reason (FAILED only)
            page_count: Page count once known

        Returns:
            The updated document, or None if it does not exist
        """
        fields = {"status": status.value, "error_message": error_message}
        now = datetime.now(timezone.utc)
        if status == DocumentStatus.PROCESSING:
            fields["processing_started_at"] = now
            fields["processing_completed_at"] = None
        elif status in (DocumentStatus.COMPLETED, DocumentStatus.FAILED):
            fields["processing_completed_at"] = now
        if page_count is not None:
            fields["page_count"] = page_count

        LOGGER.info(
            f"Document {document_id} -> {status.value}",
            extra={"document_id": str(document_id), "status": status.value},
        )
        return await self.update(document_id, **fields)
