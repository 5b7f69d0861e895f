"""Timeline building, consolidation and queries.

Events are created batch by batch from the oracle output, with their links
resolved against entities and risks known at that point. ``consolidate``
then runs once per document: it resolves relative dates (one hop), and
recomputes urgency for every event.
"""

import math
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Entity, TimelineEvent
from tender_ai.repositories.entity_repository import EntityRepository
from tender_ai.repositories.timeline_repository import TimelineRepository
from tender_ai.schemas.enums import (
    EntityType,
    Importance,
    OffsetDirection,
    OffsetUnit,
    PENALTY_TYPES,
    REQUIREMENT_TYPES,
)
from tender_ai.schemas.extraction import ExtractedTimelineEvent
from tender_ai.utils.canonical_key import slugify
from tender_ai.utils.logging import get_logger
from tender_ai.utils.normalizers import normalize_date

LOGGER = get_logger(__name__)

CRITICAL_WINDOW_DAYS = 30


def parse_event_date(date_normalized: Optional[str], date_raw: str = "") -> Optional[date]:
    """ISO date from the normalized field, falling back to the raw text."""
    for candidate in (date_normalized, normalize_date(date_raw)):
        if not candidate:
            continue
        try:
            return date.fromisoformat(candidate[:10])
        except ValueError:
            continue
    return None


def add_business_days(start: date, days: int) -> date:
    """Move ``days`` working days (Mon-Fri) from ``start``; negative goes back."""
    step = 1 if days >= 0 else -1
    remaining = abs(days)
    current = start
    while remaining:
        current += timedelta(days=step)
        if current.weekday() < 5:
            remaining -= 1
    return current


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last day of the target month
    for day in (start.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return date(year, month, 28)


def apply_offset(base: date, offset: int, unit: str, direction: str) -> date:
    """Resolve ``base`` shifted by ``offset`` units BEFORE or AFTER it."""
    signed = -offset if direction == OffsetDirection.BEFORE.value else offset
    if unit == OffsetUnit.BUSINESS_DAYS.value:
        return add_business_days(base, signed)
    if unit == OffsetUnit.WEEKS.value:
        return base + timedelta(weeks=signed)
    if unit == OffsetUnit.MONTHS.value:
        return add_months(base, signed)
    return base + timedelta(days=signed)


def days_until(event_date: date, now: datetime) -> int:
    """Whole days until the event, rounded up (negative once it has passed)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start_of_day = datetime.combine(event_date, time.min, tzinfo=now.tzinfo)
    return math.ceil((start_of_day - now).total_seconds() / 86400)


def blocking_event_ids(events: Iterable[TimelineEvent]) -> Set[str]:
    """Ids of events some other event is relative to."""
    referenced: Set[str] = set()
    for event in events:
        ref = (event.relative_to or {}).get("event_id")
        if ref and ref != str(event.id):
            referenced.add(ref)
    return referenced


def timeline_key(event: ExtractedTimelineEvent) -> str:
    return event.source_semantic_key or slugify(event.title, prefix=event.event_type.value.lower())


class TimelineConsolidator:
    """Creates, consolidates and queries a document's timeline events."""

    def __init__(self, session: AsyncSession):
        self.timeline_repo = TimelineRepository(session)
        self.entity_repo = EntityRepository(session)
        self.event_ids_by_key: Dict[str, UUID] = {}

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    @staticmethod
    def _links(keys: List[str], entities: Dict[str, Entity], allowed: Iterable[EntityType]) -> List[Entity]:
        allowed_values = {t.value for t in allowed}
        return [
            entities[key] for key in dict.fromkeys(keys)
            if key in entities and entities[key].type in allowed_values
        ]

    async def build_events(
        self,
        document_id: UUID,
        events: List[ExtractedTimelineEvent],
        risk_ids_by_key: Optional[Dict[str, UUID]] = None,
    ) -> List[TimelineEvent]:
        """Persist one batch's events with their links resolved.

        Args:
            document_id: Owning document
            events: Events parsed from the oracle output
            risk_ids_by_key: Known risks, keyed by ``CATEGORY:title``

        Returns:
            Created TimelineEvent rows
        """
        if not events:
            return []
        risk_ids_by_key = risk_ids_by_key or {}

        keys: Set[str] = set()
        for event in events:
            keys.update(event.linked_penalty_keys)
            keys.update(event.linked_requirement_keys)
            keys.update(event.linked_obligation_keys)
            if event.source_semantic_key:
                keys.add(event.source_semantic_key)
        entities = {e.semantic_key: e for e in await self.entity_repo.get_by_keys(document_id, keys)}

        # Ids first, so events of this batch can reference each other
        ids = [uuid.uuid4() for _ in events]
        batch_ids = dict(self.event_ids_by_key)
        for event, event_id in zip(events, ids):
            batch_ids[timeline_key(event)] = event_id

        rows = []
        for event, event_id in zip(events, ids):
            penalties = self._links(event.linked_penalty_keys, entities, PENALTY_TYPES)
            requirements = self._links(event.linked_requirement_keys, entities, REQUIREMENT_TYPES)
            obligations = self._links(event.linked_obligation_keys, entities, [EntityType.OBLIGATION])

            relative_to = None
            if event.relative_to is not None:
                ref_id = batch_ids.get(event.relative_to.event_semantic_key)
                relative_to = {
                    "event_id": str(ref_id) if ref_id else None,
                    "event_semantic_key": event.relative_to.event_semantic_key,
                    "offset": event.relative_to.offset,
                    "unit": event.relative_to.unit.value,
                    "direction": event.relative_to.direction.value,
                }

            source = entities.get(event.source_semantic_key)
            rows.append({
                "id": event_id,
                "document_id": document_id,
                "event_date": parse_event_date(event.date_normalized, event.date_raw),
                "date_raw": event.date_raw,
                "date_type": event.date_type.value,
                "relative_to": relative_to,
                "event_type": event.event_type.value,
                "title": event.title,
                "description": event.description,
                "importance": event.importance.value,
                "action_required": event.action_required,
                "linked_penalties": [
                    {"entity_id": str(e.id), "type": e.type, "description": e.name, "value": e.raw_value}
                    for e in penalties
                ],
                "linked_requirements": [
                    {
                        "entity_id": str(e.id),
                        "type": e.type,
                        "description": e.name,
                        "mandatory": (e.obligation_details or {}).get("mandatory", True),
                    }
                    for e in requirements
                ],
                "linked_obligations": [
                    {
                        "entity_id": str(e.id),
                        "description": e.name,
                        "action_required": (e.obligation_details or {}).get("action") or e.raw_value,
                    }
                    for e in obligations
                ],
                "linked_risk_ids": [
                    str(risk_ids_by_key[key]) for key in event.linked_risk_keys if key in risk_ids_by_key
                ],
                "urgency": {
                    "has_penalty": bool(penalties),
                    "penalty_amount": penalties[0].raw_value if penalties else None,
                    "days_until_deadline": None,
                    "blocking_for_others": False,
                },
                "tags": list(dict.fromkeys(slugify(tag) for tag in event.tags if slugify(tag))),
                "source_entity_id": str(source.id) if source else (event.source_semantic_key or None),
                "source_semantic_key": event.source_semantic_key,
                "page_number": event.page_number,
                "excerpt": event.excerpt,
                "confidence": event.confidence,
            })

        created = await self.timeline_repo.create_many(rows)
        self.event_ids_by_key = batch_ids
        return created

    # ------------------------------------------------------------------
    # Consolidation
    # ------------------------------------------------------------------

    async def consolidate(self, document_id: UUID, now: Optional[datetime] = None) -> Dict[str, int]:
        """Resolve relative dates and recompute urgency for every event.

        Relative dates resolve one hop only: an event relative to another
        relative event gets a date only if that event was already dated
        before this call.

        Args:
            document_id: Document to consolidate
            now: Reference time for ``days_until_deadline`` (defaults to UTC now)

        Returns:
            Dict with ``events``, ``relative_resolved`` and ``blocking`` counts
        """
        now = now or datetime.now(timezone.utc)
        events = await self.timeline_repo.get_by_document(document_id)
        by_key = {e.source_semantic_key: e for e in events if e.source_semantic_key}
        dated = {str(e.id): e.event_date for e in events}

        resolved = 0
        for event in events:
            relative = dict(event.relative_to or {})
            if not relative:
                continue
            if not relative.get("event_id"):
                target = by_key.get(relative.get("event_semantic_key") or "")
                if target is not None and target.id != event.id:
                    relative["event_id"] = str(target.id)
                    event.relative_to = relative
            base = dated.get(relative.get("event_id") or "")
            if event.event_date is None and base is not None:
                event.event_date = apply_offset(
                    base,
                    int(relative.get("offset") or 0),
                    relative.get("unit") or OffsetUnit.DAYS.value,
                    relative.get("direction") or OffsetDirection.AFTER.value,
                )
                resolved += 1

        blocking = blocking_event_ids(events)
        for event in events:
            penalties = event.linked_penalties or []
            event.urgency = {
                "has_penalty": bool(penalties),
                "penalty_amount": penalties[0].get("value") if penalties else None,
                "days_until_deadline": days_until(event.event_date, now) if event.event_date else None,
                "blocking_for_others": str(event.id) in blocking,
            }

        await self.timeline_repo.commit()
        LOGGER.info(
            f"Consolidated {len(events)} timeline events",
            extra={
                "document_id": str(document_id),
                "relative_resolved": resolved,
                "blocking": len(blocking),
            },
        )
        return {"events": len(events), "relative_resolved": resolved, "blocking": len(blocking)}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_timeline(self, document_id: UUID) -> List[TimelineEvent]:
        """Dated events in date order."""
        events = await self.timeline_repo.get_by_document(document_id)
        return [e for e in events if e.event_date is not None]

    async def get_by_importance(self, document_id: UUID, importance: Importance) -> List[TimelineEvent]:
        events = await self.timeline_repo.get_by_document(document_id)
        return [e for e in events if e.importance == importance.value]

    async def get_critical_events(
        self, document_id: UUID, days: int = CRITICAL_WINDOW_DAYS, today: Optional[date] = None
    ) -> List[TimelineEvent]:
        """CRITICAL events, plus any event dated within the next ``days`` days."""
        today = today or datetime.now(timezone.utc).date()
        horizon = today + timedelta(days=days)
        events = await self.timeline_repo.get_by_document(document_id)
        return [
            e for e in events
            if e.importance == Importance.CRITICAL.value
            or (e.event_date is not None and today <= e.event_date <= horizon)
        ]

    async def get_by_tag(self, document_id: UUID, tag: str) -> List[TimelineEvent]:
        wanted = slugify(tag)
        events = await self.timeline_repo.get_by_document(document_id)
        return [e for e in events if wanted in (e.tags or [])]

    async def get_stats(self, document_id: UUID, today: Optional[date] = None) -> Dict[str, Any]:
        events = await self.timeline_repo.get_by_document(document_id)
        return summarize_events(events, today or datetime.now(timezone.utc).date())


def summarize_events(events: List[TimelineEvent], today: date) -> Dict[str, Any]:
    horizon = today + timedelta(days=CRITICAL_WINDOW_DAYS)
    by_importance = {level.value: 0 for level in Importance}
    by_date_type: Dict[str, int] = {}
    upcoming_critical = 0
    with_penalties = 0
    tags: Dict[str, None] = {}

    for event in events:
        by_importance[event.importance] = by_importance.get(event.importance, 0) + 1
        by_date_type[event.date_type] = by_date_type.get(event.date_type, 0) + 1
        if event.linked_penalties:
            with_penalties += 1
        if (
            event.event_date is not None
            and today <= event.event_date <= horizon
            and event.importance in (Importance.CRITICAL.value, Importance.HIGH.value)
        ):
            upcoming_critical += 1
        for tag in event.tags or []:
            tags[tag] = None

    return {
        "total_events": len(events),
        "by_importance": by_importance,
        "by_date_type": by_date_type,
        "upcoming_critical": upcoming_critical,
        "with_penalties": with_penalties,
        "tags": list(tags),
    }
