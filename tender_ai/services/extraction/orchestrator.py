"""Sequential two-stage extraction over a document's batches.

Per batch:

1. Structure stage: the oracle proposes sections, which are built into the
   hierarchy. Failures are logged and tolerated.
2. Extraction stage: the oracle proposes entities, timeline events and
   risks given the full section list and the accumulated context. Its writes
   share one savepoint, so a failure here leaves nothing of the batch behind;
   the batch fails and the run moves on to the next batch.
3. The context absorbs every new key, section and event.

A ``PersistenceError`` in either stage is not a batch failure: it propagates
and aborts the run.

Batches run strictly in order because batch N+1's prompt depends on what
batch N discovered.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.core.config import settings
from tender_ai.core.exceptions import ExtractionStageError, PersistenceError, StructureStageError
from tender_ai.core.llm_client import BaseOracle
from tender_ai.repositories.entity_repository import EntityConflictRepository, EntityRepository
from tender_ai.repositories.section_repository import SectionRepository
from tender_ai.schemas.batch import Batch
from tender_ai.schemas.extraction import BatchResult, DocumentExtractionResult
from tender_ai.services.entity.conflict_policies import get_policy
from tender_ai.services.entity.reconciler import EntityReconciler
from tender_ai.services.extraction.context_accumulator import ExtractionContext
from tender_ai.services.extraction.prompts import (
    ENTITY_SYSTEM_PROMPT,
    STRUCTURE_SYSTEM_PROMPT,
    create_extraction_prompt,
    create_structure_prompt,
)
from tender_ai.services.extraction.tool_parsers import parse_extraction_results, parse_sections
from tender_ai.services.extraction.tools import extraction_tools, structure_tools
from tender_ai.services.risk.scorer import RiskService
from tender_ai.services.structure.section_builder import SectionArena
from tender_ai.services.timeline.consolidator import TimelineConsolidator, timeline_key
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

BatchStartHook = Callable[[Batch], Awaitable[None]]
BatchEndHook = Callable[[Batch, BatchResult], Awaitable[None]]

FIND_ENTITIES_LIMIT = 20


class ExtractionOrchestrator:
    """Drives the oracle over every batch of one document."""

    def __init__(
        self,
        session: AsyncSession,
        oracle: BaseOracle,
        reconciler: Optional[EntityReconciler] = None,
        timeline: Optional[TimelineConsolidator] = None,
        risks: Optional[RiskService] = None,
        max_tool_steps: int = 5,
    ):
        self.session = session
        self.oracle = oracle
        self.section_repo = SectionRepository(session)
        self.entity_repo = EntityRepository(session)
        self.reconciler = reconciler or EntityReconciler(
            self.entity_repo,
            EntityConflictRepository(session),
            get_policy(settings.pipeline.reconciliation_policy),
        )
        self.timeline = timeline or TimelineConsolidator(session)
        self.risks = risks or RiskService(session)
        self.max_tool_steps = max_tool_steps

    async def process_batches(
        self,
        document_id: UUID,
        batches: List[Batch],
        context: Optional[ExtractionContext] = None,
        on_batch_start: Optional[BatchStartHook] = None,
        on_batch_end: Optional[BatchEndHook] = None,
    ) -> DocumentExtractionResult:
        """Process every batch in order.

        Args:
            document_id: Document being processed
            batches: Batches from the segmenter
            context: Run context (a fresh one is created when omitted)
            on_batch_start: Awaited before each batch
            on_batch_end: Awaited after each batch with its result

        Returns:
            DocumentExtractionResult; ``success`` only if every batch succeeded
        """
        context = context or ExtractionContext(entity_limit=settings.pipeline.prompt_entity_limit)
        arena = SectionArena(self.section_repo, document_id)
        results: List[BatchResult] = []

        for batch in batches:
            if on_batch_start is not None:
                await on_batch_start(batch)
            result = await self.process_batch(document_id, batch, context, arena)
            results.append(result)
            if on_batch_end is not None:
                await on_batch_end(batch, result)

        outcome = DocumentExtractionResult.from_batches(results)
        LOGGER.info(
            f"Extraction finished: {outcome.total_batches - outcome.failed_batches}/"
            f"{outcome.total_batches} batches succeeded",
            extra={
                "document_id": str(document_id),
                "entities": outcome.total_entities,
                "timeline_events": outcome.total_timeline_events,
                "risks": outcome.total_risks,
            },
        )
        return outcome

    async def process_batch(
        self,
        document_id: UUID,
        batch: Batch,
        context: ExtractionContext,
        arena: SectionArena,
    ) -> BatchResult:
        start = time.perf_counter()
        result = BatchResult(
            batch_number=batch.batch_number,
            pages_processed=len(batch.pages),
            page_numbers=batch.page_numbers,
            success=True,
        )
        LOGGER.info(
            f"Processing batch {batch.batch_number} (pages {batch.page_range}, {batch.total_words} words)",
            extra={"document_id": str(document_id)},
        )

        try:
            result.sections_extracted = await self._structure_stage(batch, context, arena)
        except StructureStageError as e:
            LOGGER.warning(
                f"Structure stage failed for batch {batch.batch_number}, continuing with known structure: {e}",
                extra={"document_id": str(document_id)},
            )

        try:
            counts = await self._extraction_stage(document_id, batch, context, arena)
            result.entities_extracted = counts["entities"]
            result.timeline_events_extracted = counts["timeline_events"]
            result.risks_extracted = counts["risks"]
            result.conflicts_recorded = counts["conflicts"]
        except ExtractionStageError as e:
            LOGGER.error(
                f"Extraction stage failed for batch {batch.batch_number}: {e}",
                extra={"document_id": str(document_id)},
                exc_info=True,
            )
            result.success = False
            result.error = str(e)

        result.processing_time_ms = int((time.perf_counter() - start) * 1000)
        return result

    async def _structure_stage(self, batch: Batch, context: ExtractionContext, arena: SectionArena) -> int:
        try:
            calls = await self.oracle.invoke_tools(
                STRUCTURE_SYSTEM_PROMPT,
                create_structure_prompt(batch.consolidated_text, batch.batch_number, context.section_dicts()),
                structure_tools(),
                max_steps=1,
            )
            sections = parse_sections(calls, batch.page_numbers)
            async with self.session.begin_nested():
                built = await arena.add_batch(sections, batch.batch_number)
            await self.section_repo.commit()
        except PersistenceError:
            raise
        except Exception as e:
            raise StructureStageError(
                f"Structure stage failed: {e}", original_error=e, batch_number=batch.batch_number
            ) from e

        for section in sections:
            context.add_section(section.number, section.title, section.level.value)
        return len(built.sections)

    def _lookup_tools(self, document_id: UUID, context: ExtractionContext):
        async def find_entities(args: Dict[str, Any]) -> List[Dict[str, Any]]:
            entities = await self.entity_repo.find(
                document_id,
                query=args.get("query") or None,
                entity_type=args.get("type") or None,
                limit=FIND_ENTITIES_LIMIT,
            )
            return [
                {"semantic_key": e.semantic_key, "type": e.type, "name": e.name, "raw_value": e.raw_value}
                for e in entities
            ]

        async def get_existing_keys(args: Dict[str, Any]) -> Dict[str, List[str]]:
            return {
                "semantic_keys": sorted(context.semantic_keys),
                "timeline_keys": sorted(context.timeline_event_keys),
                "risk_keys": sorted(context.risk_ids),
            }

        return extraction_tools(find_entities=find_entities, get_existing_keys=get_existing_keys)

    def _restore_keys(self, events: Dict[str, UUID], risks: Dict[str, UUID]) -> None:
        self.timeline.event_ids_by_key = events
        self.risks.risk_ids_by_key = risks

    async def _extraction_stage(
        self,
        document_id: UUID,
        batch: Batch,
        context: ExtractionContext,
        arena: SectionArena,
    ) -> Dict[str, int]:
        sections = arena.sections
        try:
            calls = await self.oracle.invoke_tools(
                ENTITY_SYSTEM_PROMPT,
                create_extraction_prompt(
                    batch.consolidated_text,
                    batch.batch_number,
                    batch.page_numbers,
                    sections,
                    context.to_prompt(),
                ),
                self._lookup_tools(document_id, context),
                max_steps=self.max_tool_steps,
            )
            payload = parse_extraction_results(calls, batch.page_numbers)
        except Exception as e:
            raise ExtractionStageError(
                f"Extraction stage failed: {e}", original_error=e, batch_number=batch.batch_number
            ) from e

        # Keys registered by a batch that rolls back must not leak into later batches
        known_events = dict(self.timeline.event_ids_by_key)
        known_risks = dict(self.risks.risk_ids_by_key)
        try:
            async with self.session.begin_nested():
                reconciled = await self.reconciler.reconcile_batch(
                    document_id, payload.entities, {s["id"] for s in sections}
                )
                events = await self.timeline.build_events(
                    document_id, payload.timeline_events, self.risks.risk_ids_by_key
                )
                risks = await self.risks.build_risks(
                    document_id, payload.risks, self.timeline.event_ids_by_key, arena.section_ids_by_page()
                )
                await self.reconciler.resolve_pending_relationships(document_id)
            await self.entity_repo.commit()
        except PersistenceError:
            self._restore_keys(known_events, known_risks)
            raise
        except Exception as e:
            self._restore_keys(known_events, known_risks)
            raise ExtractionStageError(
                f"Extraction stage failed: {e}", original_error=e, batch_number=batch.batch_number
            ) from e

        for entity in reconciled.entities:
            context.add_entity(entity.type, entity.semantic_key, entity.name)
        for event in payload.timeline_events:
            context.add_timeline_key(timeline_key(event))
        for risk in payload.risks:
            context.add_risk(risk.category.value, risk.title)

        return {
            "entities": len(reconciled.entities),
            "timeline_events": len(events),
            "risks": len(risks),
            "conflicts": reconciled.conflicts_resolved,
        }
