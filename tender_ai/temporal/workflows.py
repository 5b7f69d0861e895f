"""Document processing workflows.

Activities are referenced by name so no service module is imported into
the workflow sandbox.
"""

from datetime import timedelta
from typing import Optional

from temporalio import workflow
from temporalio.common import RetryPolicy


@workflow.defn
class ProcessDocumentWorkflow:
    """Processes one document and reports its final statistics.

    Batches run sequentially inside a single activity: each batch's prompt
    depends on what earlier batches found.
    """

    def __init__(self):
        self._status = "initialized"
        self._result: Optional[dict] = None

    @workflow.query
    def get_status(self) -> dict:
        """Query handler for real-time status updates."""
        return {
            "status": self._status,
            "document_status": self._result.get("status") if self._result else None,
        }

    @workflow.run
    async def run(self, document_id: str, source_locator: Optional[str] = None) -> dict:
        """
        Execute the document processing pipeline.

        Args:
            document_id: UUID of the document to process
            source_locator: URL or path of the PDF (defaults to the stored one)

        Returns:
            Dictionary with the processing result and document statistics
        """
        workflow.logger.info(f"Starting document processing: {document_id}")
        self._status = "processing"

        # Not retried: a rerun clears and rebuilds everything anyway
        self._result = await workflow.execute_activity(
            "process_document_activity",
            args=[document_id, source_locator],
            start_to_close_timeout=timedelta(hours=2),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )

        self._status = "collecting_stats"
        stats = await workflow.execute_activity(
            "get_document_stats_activity",
            document_id,
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=RetryPolicy(
                initial_interval=timedelta(seconds=5),
                maximum_attempts=3,
            ),
        )

        self._status = "completed"
        workflow.logger.info(
            f"Document {document_id} finished with status {self._result['status']}"
        )
        return {"result": self._result, "stats": stats}


@workflow.defn
class PrepareRetrievalWorkflow:
    """(Re)embeds a document's pages."""

    @workflow.run
    async def run(self, document_id: str, regenerate: bool = False) -> dict:
        return await workflow.execute_activity(
            "prepare_retrieval_activity",
            args=[document_id, regenerate],
            start_to_close_timeout=timedelta(minutes=30),
            retry_policy=RetryPolicy(
                initial_interval=timedelta(seconds=5),
                maximum_attempts=3,
            ),
        )
