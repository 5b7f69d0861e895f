"""Document pipeline: the operations exposed to workers and callers.

``process_document`` moves a document through
PENDING -> PROCESSING -> COMPLETED | FAILED:

1. clear data from any previous run,
2. extract and persist page text, then segment it into batches,
3. run the extraction orchestrator (page status tracked per batch),
4. resolve pending entity relationships and consolidate the timeline,
5. apply the completion gate,
6. prepare retrieval when the run completed (failures are only logged).
"""

import time
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.core.config import settings
from tender_ai.core.exceptions import DocumentNotFoundError
from tender_ai.core.llm_client import BaseOracle, create_llm_client_from_settings
from tender_ai.database.models import Document
from tender_ai.repositories.document_repository import DocumentRepository
from tender_ai.repositories.embedding_repository import EmbeddingRepository
from tender_ai.repositories.entity_repository import EntityConflictRepository, EntityRepository
from tender_ai.repositories.page_repository import PageRepository
from tender_ai.repositories.risk_repository import RiskRepository
from tender_ai.repositories.section_repository import SectionRepository
from tender_ai.repositories.timeline_repository import TimelineRepository
from tender_ai.schemas.batch import Batch, PageInput
from tender_ai.schemas.chat import ChatResponse, EmbeddingResult
from tender_ai.schemas.document import (
    DocumentStats,
    EntityStats,
    PageStats,
    ProcessingConfig,
    ProcessingResult,
    ProcessingTotals,
    RiskSummary,
    TimelineSummary,
)
from tender_ai.schemas.enums import DocumentStatus, PageStatus
from tender_ai.schemas.extraction import BatchResult, DocumentExtractionResult
from tender_ai.services.entity.conflict_policies import get_policy
from tender_ai.services.entity.reconciler import EntityReconciler
from tender_ai.services.extraction.context_accumulator import ExtractionContext
from tender_ai.services.extraction.orchestrator import ExtractionOrchestrator
from tender_ai.services.pipeline.batch_segmenter import BatchSegmenter, count_words
from tender_ai.services.pipeline.text_extractor import PdfTextExtractor, TextExtractor
from tender_ai.services.retrieval.chat_service import ChatService
from tender_ai.services.retrieval.embedding_service import Embedder, EmbeddingService
from tender_ai.services.risk.scorer import RiskService
from tender_ai.services.structure.structure_service import StructureService
from tender_ai.services.timeline.consolidator import TimelineConsolidator
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


def completion_status(
    extraction: DocumentExtractionResult, policy: str = "fail"
) -> Tuple[DocumentStatus, List[str]]:
    """Final status of a run and the warnings to report with it.

    Args:
        extraction: Outcome of every batch
        policy: ``fail`` (every batch must succeed) or ``complete``
            (at least one batch must succeed)

    Returns:
        (status, warnings)
    """
    failed = [b for b in extraction.batches if not b.success]
    warnings = [
        f"Batch {b.batch_number} (pages {b.page_numbers}) failed: {b.error}" for b in failed
    ]
    if not failed:
        return DocumentStatus.COMPLETED, warnings
    if policy == "complete" and len(failed) < len(extraction.batches):
        return DocumentStatus.COMPLETED, warnings
    return DocumentStatus.FAILED, warnings


class DocumentPipelineService:
    """Processes documents and answers questions about them."""

    def __init__(
        self,
        session: AsyncSession,
        oracle: Optional[BaseOracle] = None,
        extractor: Optional[TextExtractor] = None,
        embedder: Optional[Embedder] = None,
    ):
        self.session = session
        self._oracle = oracle
        self.extractor = extractor or PdfTextExtractor(settings.pipeline.download_timeout)
        self.embedder = embedder

        self.document_repo = DocumentRepository(session)
        self.page_repo = PageRepository(session)
        self.section_repo = SectionRepository(session)
        self.entity_repo = EntityRepository(session)
        self.conflict_repo = EntityConflictRepository(session)
        self.timeline_repo = TimelineRepository(session)
        self.risk_repo = RiskRepository(session)
        self.embedding_repo = EmbeddingRepository(session)

    @property
    def oracle(self) -> BaseOracle:
        if self._oracle is None:
            self._oracle = create_llm_client_from_settings()
        return self._oracle

    async def register_document(self, name: str, source_locator: str) -> Document:
        """Create a PENDING document for a source."""
        return await self.document_repo.create(
            name=name,
            source_locator=source_locator,
            status=DocumentStatus.PENDING.value,
        )

    async def _get_document(self, document_id: UUID) -> Document:
        document = await self.document_repo.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return document

    async def _clear_previous_run(self, document_id: UUID) -> None:
        # Embeddings reference pages; entities and sections are referenced by nothing else
        for repo in (
            self.embedding_repo,
            self.risk_repo,
            self.timeline_repo,
            self.conflict_repo,
            self.entity_repo,
            self.section_repo,
            self.page_repo,
        ):
            await repo.delete_by_document(document_id)

    async def _persist_pages(self, document_id: UUID, source_locator: str) -> List[PageInput]:
        extracted = await self.extractor.extract(source_locator)
        rows = await self.page_repo.create_pages(document_id, [
            PageInput(page_number=page.page_number, text=page.text, word_count=count_words(page.text))
            for page in extracted
        ])
        return [
            PageInput(id=row.id, page_number=row.page_number, text=row.text, word_count=row.word_count)
            for row in rows
        ]

    async def process_document(
        self,
        document_id: UUID,
        source_locator: Optional[str] = None,
        config: Optional[ProcessingConfig] = None,
    ) -> ProcessingResult:
        """Run the full extraction pipeline for one document.

        Args:
            document_id: Document to process
            source_locator: URL or path of the PDF (defaults to the stored locator)
            config: Segmentation settings (defaults to configuration)

        Returns:
            ProcessingResult with the final status, per-batch results and totals

        Raises:
            DocumentNotFoundError: If the document does not exist
            TextExtractionError: If page text cannot be obtained (document FAILED)
            PersistenceError: If durable state cannot be written (document FAILED)
        """
        start = time.perf_counter()
        config = config or ProcessingConfig.from_settings()
        document = await self._get_document(document_id)
        source_locator = source_locator or document.source_locator

        await self.document_repo.update_status(document_id, DocumentStatus.PROCESSING)

        try:
            await self._clear_previous_run(document_id)
            if source_locator != document.source_locator:
                await self.document_repo.save(document, source_locator=source_locator)

            pages = await self._persist_pages(document_id, source_locator)
            segmenter = BatchSegmenter(config.word_cap, config.max_pages_per_batch)
            batches = segmenter.calculate_batches(pages)
            LOGGER.info(
                f"Document {document_id}: {len(pages)} pages in {len(batches)} batches",
                extra={"document_id": str(document_id), **BatchSegmenter.summarize(batches)},
            )

            reconciler = EntityReconciler(
                self.entity_repo,
                self.conflict_repo,
                get_policy(settings.pipeline.reconciliation_policy),
            )
            timeline = TimelineConsolidator(self.session)
            orchestrator = ExtractionOrchestrator(
                self.session,
                self.oracle,
                reconciler=reconciler,
                timeline=timeline,
                risks=RiskService(self.session),
            )
            extraction = await orchestrator.process_batches(
                document_id,
                batches,
                ExtractionContext(entity_limit=settings.pipeline.prompt_entity_limit),
                on_batch_start=self._mark_batch_started,
                on_batch_end=self._mark_batch_finished,
            )

            await reconciler.resolve_pending_relationships(document_id, final=True)
            await timeline.consolidate(document_id)

            status, warnings = completion_status(extraction, settings.pipeline.partial_failure_policy)
            error_message = None
            if status == DocumentStatus.FAILED:
                error_message = f"{extraction.failed_batches}/{extraction.total_batches} batches failed"
            await self.document_repo.update_status(
                document_id, status, error_message=error_message, page_count=len(pages)
            )
        except Exception as e:
            LOGGER.error(
                f"Processing failed for document {document_id}: {e}",
                extra={"document_id": str(document_id), "error_type": type(e).__name__},
                exc_info=True,
            )
            await self.session.rollback()
            await self.document_repo.update_status(document_id, DocumentStatus.FAILED, error_message=str(e))
            raise

        retrieval = None
        if status == DocumentStatus.COMPLETED:
            try:
                retrieval = (await self.prepare_retrieval(document_id)).model_dump()
            except Exception as e:
                LOGGER.warning(
                    f"Retrieval preparation failed for document {document_id}: {e}",
                    extra={"document_id": str(document_id)},
                    exc_info=True,
                )
                await self.session.rollback()

        return ProcessingResult(
            document_id=document_id,
            status=status,
            success=status == DocumentStatus.COMPLETED,
            totals=ProcessingTotals(
                pages=len(pages),
                batches=extraction.total_batches,
                failed_batches=extraction.failed_batches,
                sections=extraction.total_sections,
                entities=extraction.total_entities,
                timeline_events=extraction.total_timeline_events,
                risks=extraction.total_risks,
                conflicts=extraction.total_conflicts,
            ),
            batches=extraction.batches,
            warnings=warnings,
            retrieval=retrieval,
            processing_time_ms=int((time.perf_counter() - start) * 1000),
        )

    async def _mark_batch_started(self, batch: Batch) -> None:
        await self.page_repo.mark_batch(
            [page.id for page in batch.pages if page.id],
            PageStatus.PROCESSING,
            batch_number=batch.batch_number,
        )

    async def _mark_batch_finished(self, batch: Batch, result: BatchResult) -> None:
        await self.page_repo.mark_batch(
            [page.id for page in batch.pages if page.id],
            PageStatus.COMPLETED if result.success else PageStatus.FAILED,
            processing_time_ms=result.processing_time_ms,
            entities_extracted=result.entities_extracted,
            error=result.error,
        )

    async def get_document_stats(self, document_id: UUID) -> DocumentStats:
        """Aggregate counts across pages, structure, entities, timeline and risks."""
        document = await self._get_document(document_id)

        by_status = await self.page_repo.count_by_status(document_id)
        by_type = await self.entity_repo.count_by_type(document_id)
        timeline = await TimelineConsolidator(self.session).get_stats(document_id)
        risks = await RiskService(self.session).get_stats(document_id)

        return DocumentStats(
            document_id=document_id,
            status=DocumentStatus(document.status),
            pages=PageStats(
                total=sum(by_status.values()),
                completed=by_status.get(PageStatus.COMPLETED.value, 0),
                failed=by_status.get(PageStatus.FAILED.value, 0),
                pending=by_status.get(PageStatus.PENDING.value, 0),
                processing=by_status.get(PageStatus.PROCESSING.value, 0),
            ),
            structure=await StructureService(self.session).get_stats(document_id),
            entities=EntityStats(total=sum(by_type.values()), by_type=by_type),
            timeline=TimelineSummary(
                total_events=timeline["total_events"],
                by_importance=timeline["by_importance"],
                upcoming_critical=timeline["upcoming_critical"],
            ),
            risks=RiskSummary(
                total=risks["total"],
                by_severity=risks["by_severity"],
                critical_count=risks["critical_count"],
            ),
        )

    async def chat(
        self,
        document_id: UUID,
        message: str,
        conversation_id: Optional[UUID] = None,
        top_k: int = 5,
    ) -> ChatResponse:
        """Answer a question grounded in the document's most similar pages."""
        service = ChatService(self.session, self.oracle, self.embedder)
        return await service.chat(document_id, message, conversation_id=conversation_id, top_k=top_k)

    async def prepare_retrieval(self, document_id: UUID, regenerate: bool = False) -> EmbeddingResult:
        """Embed the document's pages so it can be chatted with."""
        await self._get_document(document_id)
        service = EmbeddingService(self.session, self.embedder)
        return await service.generate_for_document(document_id, regenerate=regenerate)
