"""Unit tests for DocumentPipelineService.

Stage services are patched at the module level; these tests cover the
document status machine, the completion gate and page status tracking.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from tender_ai.core.config import settings
from tender_ai.core.exceptions import DocumentNotFoundError, PersistenceError, TextExtractionError
from tender_ai.schemas.batch import PageText
from tender_ai.schemas.chat import EmbeddingResult
from tender_ai.schemas.document import StructureStats
from tender_ai.schemas.enums import DocumentStatus, PageStatus
from tender_ai.schemas.extraction import BatchResult, DocumentExtractionResult
from tender_ai.services.document_service import DocumentPipelineService, completion_status
from tender_ai.services.pipeline.batch_segmenter import BatchSegmenter

MODULE = "tender_ai.services.document_service"


def _batch_result(number, success=True, error=None):
    return BatchResult(
        batch_number=number,
        pages_processed=1,
        page_numbers=[number],
        success=success,
        error=error,
        entities_extracted=2 if success else 0,
    )


def _extraction(*results):
    return DocumentExtractionResult.from_batches(list(results))


@pytest.fixture
def document_id():
    return uuid4()


@pytest.fixture
def service(mock_session, document_id):
    service = DocumentPipelineService.__new__(DocumentPipelineService)
    service.session = mock_session
    service._oracle = MagicMock()
    service.embedder = None

    service.extractor = MagicMock()
    service.extractor.extract = AsyncMock(return_value=[
        PageText(page_number=1, text="EDITAL DE PREGÃO ELETRÔNICO"),
        PageText(page_number=2, text="Prazo de entrega: 10 dias"),
    ])

    service.document_repo = MagicMock()
    service.document_repo.get_by_id = AsyncMock(return_value=SimpleNamespace(
        id=document_id, source_locator="/data/edital.pdf", status=DocumentStatus.PENDING.value
    ))
    service.document_repo.update_status = AsyncMock()
    service.document_repo.save = AsyncMock()

    service.page_repo = MagicMock()
    service.page_repo.create_pages = AsyncMock(side_effect=lambda doc_id, pages: [
        SimpleNamespace(id=uuid4(), page_number=p.page_number, text=p.text, word_count=p.word_count)
        for p in pages
    ])
    service.page_repo.mark_batch = AsyncMock()

    for name in ("section_repo", "entity_repo", "conflict_repo", "timeline_repo", "risk_repo", "embedding_repo"):
        repo = MagicMock()
        repo.delete_by_document = AsyncMock(return_value=0)
        setattr(service, name, repo)
    service.page_repo.delete_by_document = AsyncMock(return_value=0)

    service.prepare_retrieval = AsyncMock(return_value=EmbeddingResult(created=2, skipped=0))
    return service


@pytest.fixture
def stages():
    """Patch the stage services constructed inside process_document."""
    with patch(f"{MODULE}.ExtractionOrchestrator") as orchestrator_cls, \
            patch(f"{MODULE}.EntityReconciler") as reconciler_cls, \
            patch(f"{MODULE}.TimelineConsolidator") as timeline_cls, \
            patch(f"{MODULE}.RiskService"):
        orchestrator = orchestrator_cls.return_value
        orchestrator.process_batches = AsyncMock(return_value=_extraction(_batch_result(1), _batch_result(2)))
        reconciler = reconciler_cls.return_value
        reconciler.resolve_pending_relationships = AsyncMock(return_value={"resolved": 0, "dropped": 0})
        timeline = timeline_cls.return_value
        timeline.consolidate = AsyncMock(return_value={"events": 0, "relative_resolved": 0, "blocking": 0})
        yield SimpleNamespace(orchestrator=orchestrator, reconciler=reconciler, timeline=timeline)


def _statuses(service):
    return [call.args[1] for call in service.document_repo.update_status.await_args_list]


class TestCompletionStatus:

    def test_all_succeeded(self):
        assert completion_status(_extraction(_batch_result(1))) == (DocumentStatus.COMPLETED, [])

    def test_fail_policy(self):
        status, warnings = completion_status(
            _extraction(_batch_result(1), _batch_result(2, False, "boom")), "fail"
        )
        assert status == DocumentStatus.FAILED
        assert warnings == ["Batch 2 (pages [2]) failed: boom"]

    def test_complete_policy_needs_one_success(self):
        partial = _extraction(_batch_result(1), _batch_result(2, False, "boom"))
        all_failed = _extraction(_batch_result(1, False, "a"), _batch_result(2, False, "b"))

        assert completion_status(partial, "complete")[0] == DocumentStatus.COMPLETED
        assert completion_status(all_failed, "complete")[0] == DocumentStatus.FAILED


class TestProcessDocument:

    @pytest.mark.asyncio
    async def test_successful_run(self, service, stages, document_id):
        result = await service.process_document(document_id)

        assert _statuses(service) == [DocumentStatus.PROCESSING, DocumentStatus.COMPLETED]
        assert result.success is True
        assert result.totals.pages == 2
        assert result.totals.entities == 4
        assert result.retrieval == {"created": 2, "skipped": 0}
        service.extractor.extract.assert_awaited_once_with("/data/edital.pdf")
        stages.reconciler.resolve_pending_relationships.assert_awaited_once_with(document_id, final=True)
        stages.timeline.consolidate.assert_awaited_once_with(document_id)

    @pytest.mark.asyncio
    async def test_previous_run_is_cleared(self, service, stages, document_id):
        await service.process_document(document_id)

        for name in ("page_repo", "section_repo", "entity_repo", "conflict_repo",
                     "timeline_repo", "risk_repo", "embedding_repo"):
            getattr(service, name).delete_by_document.assert_awaited_once_with(document_id)

    @pytest.mark.asyncio
    async def test_batches_follow_configured_caps(self, service, stages, document_id):
        config = SimpleNamespace(word_cap=3, max_pages_per_batch=10)

        await service.process_document(document_id, config=config)

        batches = stages.orchestrator.process_batches.await_args.args[1]
        assert [b.page_numbers for b in batches] == [[1], [2]]
        assert all(page.id is not None for b in batches for page in b.pages)

    @pytest.mark.asyncio
    async def test_failed_batch_fails_document(self, service, stages, document_id):
        stages.orchestrator.process_batches = AsyncMock(
            return_value=_extraction(_batch_result(1), _batch_result(2, False, "oracle timeout"))
        )

        with patch.object(settings.pipeline, "partial_failure_policy", "fail"):
            result = await service.process_document(document_id)

        assert result.status == DocumentStatus.FAILED
        assert result.success is False
        assert len(result.warnings) == 1
        last_call = service.document_repo.update_status.await_args_list[-1]
        assert last_call.kwargs["error_message"] == "1/2 batches failed"
        service.prepare_retrieval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_complete_policy_tolerates_failed_batch(self, service, stages, document_id):
        stages.orchestrator.process_batches = AsyncMock(
            return_value=_extraction(_batch_result(1), _batch_result(2, False, "oracle timeout"))
        )

        with patch.object(settings.pipeline, "partial_failure_policy", "complete"):
            result = await service.process_document(document_id)

        assert result.status == DocumentStatus.COMPLETED
        assert result.warnings == ["Batch 2 (pages [2]) failed: oracle timeout"]
        service.prepare_retrieval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_text_extraction_failure(self, service, stages, document_id):
        service.extractor.extract = AsyncMock(side_effect=TextExtractionError("corrupt PDF"))

        with pytest.raises(TextExtractionError):
            await service.process_document(document_id)

        assert _statuses(service) == [DocumentStatus.PROCESSING, DocumentStatus.FAILED]
        assert service.document_repo.update_status.await_args_list[-1].kwargs["error_message"] == "corrupt PDF"
        stages.orchestrator.process_batches.assert_not_awaited()
        service.session.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_persistence_failure_during_extraction(self, service, stages, document_id):
        stages.orchestrator.process_batches = AsyncMock(side_effect=PersistenceError("Failed bulk creating Entity"))

        with pytest.raises(PersistenceError):
            await service.process_document(document_id)

        assert _statuses(service) == [DocumentStatus.PROCESSING, DocumentStatus.FAILED]
        assert service.document_repo.update_status.await_args_list[-1].kwargs["error_message"] == (
            "Failed bulk creating Entity"
        )
        service.prepare_retrieval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_document(self, service, stages, document_id):
        service.document_repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(DocumentNotFoundError):
            await service.process_document(document_id)

        service.document_repo.update_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retrieval_failure_is_only_logged(self, service, stages, document_id):
        service.prepare_retrieval = AsyncMock(side_effect=RuntimeError("model download failed"))

        result = await service.process_document(document_id)

        assert result.status == DocumentStatus.COMPLETED
        assert result.retrieval is None

    @pytest.mark.asyncio
    async def test_new_source_locator_is_stored(self, service, stages, document_id):
        await service.process_document(document_id, "https://example.org/edital.pdf")

        service.document_repo.save.assert_awaited_once()
        service.extractor.extract.assert_awaited_once_with("https://example.org/edital.pdf")


class TestPageTracking:

    @pytest.mark.asyncio
    async def test_batch_hooks_mark_pages(self, service, make_pages):
        pages = make_pages(5, 5)
        for page in pages:
            page.id = uuid4()
        batch = BatchSegmenter(word_cap=100).calculate_batches(pages)[0]

        await service._mark_batch_started(batch)
        await service._mark_batch_finished(batch, _batch_result(1, False, "boom"))

        started, finished = service.page_repo.mark_batch.await_args_list
        assert started.args == ([p.id for p in pages], PageStatus.PROCESSING)
        assert started.kwargs["batch_number"] == 1
        assert finished.args[1] == PageStatus.FAILED
        assert finished.kwargs["error"] == "boom"


class TestDocumentStats:

    @pytest.mark.asyncio
    async def test_aggregates(self, service, document_id):
        service.page_repo.count_by_status = AsyncMock(return_value={"completed": 8, "failed": 2})
        service.entity_repo.count_by_type = AsyncMock(return_value={"DEADLINE": 3, "PENALTY": 2})

        with patch(f"{MODULE}.TimelineConsolidator") as timeline_cls, \
                patch(f"{MODULE}.RiskService") as risk_cls, \
                patch(f"{MODULE}.StructureService") as structure_cls:
            timeline_cls.return_value.get_stats = AsyncMock(return_value={
                "total_events": 4, "by_importance": {"CRITICAL": 1}, "upcoming_critical": 1,
            })
            risk_cls.return_value.get_stats = AsyncMock(return_value={
                "total": 2, "by_severity": {"HIGH": 2}, "critical_count": 1,
            })
            structure_cls.return_value.get_stats = AsyncMock(return_value=StructureStats(total_sections=5, max_depth=3))

            stats = await service.get_document_stats(document_id)

        assert stats.status == DocumentStatus.PENDING
        assert (stats.pages.total, stats.pages.completed, stats.pages.failed) == (10, 8, 2)
        assert stats.entities.total == 5
        assert stats.structure.max_depth == 3
        assert stats.timeline.total_events == 4
        assert stats.risks.critical_count == 1
