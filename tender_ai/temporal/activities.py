"""Activities wrapping DocumentPipelineService.

Each activity opens its own session; services and repositories are imported
inside the function to keep them out of the workflow sandbox.
"""

from typing import Dict, Optional
from uuid import UUID

from temporalio import activity


@activity.defn
async def process_document_activity(document_id: str, source_locator: Optional[str] = None) -> Dict:
    """Run the extraction pipeline for one document.

    Args:
        document_id: UUID of the document to process
        source_locator: URL or path of the PDF (defaults to the stored one)

    Returns:
        The ProcessingResult as a JSON-compatible dictionary
    """
    from tender_ai.core.database import async_session_maker
    from tender_ai.services.document_service import DocumentPipelineService

    activity.logger.info(f"Starting processing for document: {document_id}")
    activity.heartbeat("Starting processing")

    async with async_session_maker() as session:
        service = DocumentPipelineService(session)
        result = await service.process_document(UUID(document_id), source_locator)

    activity.logger.info(
        f"Processing finished for document {document_id}: {result.status.value} "
        f"({result.totals.failed_batches}/{result.totals.batches} batches failed)"
    )
    return result.model_dump(mode="json")


@activity.defn
async def prepare_retrieval_activity(document_id: str, regenerate: bool = False) -> Dict:
    """Embed a document's pages for chat."""
    from tender_ai.core.database import async_session_maker
    from tender_ai.services.document_service import DocumentPipelineService

    activity.heartbeat("Embedding pages")
    async with async_session_maker() as session:
        service = DocumentPipelineService(session)
        result = await service.prepare_retrieval(UUID(document_id), regenerate=regenerate)
    return result.model_dump(mode="json")


@activity.defn
async def get_document_stats_activity(document_id: str) -> Dict:
    from tender_ai.core.database import async_session_maker
    from tender_ai.services.document_service import DocumentPipelineService

    async with async_session_maker() as session:
        stats = await DocumentPipelineService(session).get_document_stats(UUID(document_id))
    return stats.model_dump(mode="json")
