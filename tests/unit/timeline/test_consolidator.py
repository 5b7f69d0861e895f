"""Unit tests for timeline building and consolidation."""

import pytest
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from tender_ai.core.exceptions import PersistenceError
from tender_ai.schemas.enums import DateType, EventType, Importance, OffsetDirection, OffsetUnit
from tender_ai.schemas.extraction import ExtractedTimelineEvent, RelativeReference
from tender_ai.services.timeline.consolidator import (
    TimelineConsolidator,
    add_business_days,
    add_months,
    apply_offset,
    blocking_event_ids,
    days_until,
    parse_event_date,
    summarize_events,
    timeline_key,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _stored_event(source_key="", event_date=None, relative_to=None, penalties=None,
                  importance="MEDIUM", date_type="FIXED", tags=None):
    return SimpleNamespace(
        id=uuid4(),
        source_semantic_key=source_key,
        event_date=event_date,
        relative_to=relative_to,
        linked_penalties=penalties or [],
        importance=importance,
        date_type=date_type,
        tags=tags or [],
        urgency={},
    )


def _relative(key, offset=5, unit="DAYS", direction="AFTER", event_id=None):
    return {
        "event_id": event_id,
        "event_semantic_key": key,
        "offset": offset,
        "unit": unit,
        "direction": direction,
    }


class TestDateArithmetic:

    def test_parse_event_date_falls_back_to_raw(self):
        assert parse_event_date("2025-04-01T10:00") == date(2025, 4, 1)
        assert parse_event_date(None, "até 15/03/2025") == date(2025, 3, 15)
        assert parse_event_date("garbage", "sem data") is None

    def test_business_days_skip_weekends(self):
        friday = date(2025, 3, 14)
        assert add_business_days(friday, 1) == date(2025, 3, 17)
        assert add_business_days(friday, 5) == date(2025, 3, 21)
        assert add_business_days(date(2025, 3, 17), -1) == friday

    def test_add_months_clamps_day(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    @pytest.mark.parametrize("offset,unit,direction,expected", [
        (5, "DAYS", "AFTER", date(2025, 3, 15)),
        (5, "DAYS", "BEFORE", date(2025, 3, 5)),
        (2, "WEEKS", "AFTER", date(2025, 3, 24)),
        (1, "MONTHS", "AFTER", date(2025, 4, 10)),
        (1, "BUSINESS_DAYS", "AFTER", date(2025, 3, 11)),
    ])
    def test_apply_offset(self, offset, unit, direction, expected):
        assert apply_offset(date(2025, 3, 10), offset, unit, direction) == expected

    def test_days_until_rounds_up(self):
        assert days_until(date(2025, 3, 11), NOW) == 1
        assert days_until(date(2025, 3, 20), NOW) == 10
        assert days_until(date(2025, 3, 1), NOW) < 0

    def test_days_until_naive_now_is_utc(self):
        assert days_until(date(2025, 3, 11), NOW.replace(tzinfo=None)) == 1


class TestKeys:

    def test_timeline_key_prefers_source_key(self):
        event = ExtractedTimelineEvent(title="Abertura da sessão", event_type=EventType.SESSION_OPENING, page_number=1)
        assert timeline_key(event) == "session_opening_abertura_da_sessão"
        event.source_semantic_key = "date_session"
        assert timeline_key(event) == "date_session"

    def test_blocking_ignores_self_reference(self):
        a = _stored_event()
        b = _stored_event(relative_to=_relative("a", event_id=str(a.id)))
        c = _stored_event()
        c.relative_to = _relative("c", event_id=str(c.id))

        assert blocking_event_ids([a, b, c]) == {str(a.id)}


class TestBuildEvents:

    @pytest.fixture
    def consolidator(self):
        consolidator = TimelineConsolidator.__new__(TimelineConsolidator)
        consolidator.timeline_repo = MagicMock()
        consolidator.timeline_repo.create_many = AsyncMock(side_effect=lambda rows: rows)
        consolidator.entity_repo = MagicMock()
        consolidator.event_ids_by_key = {}
        return consolidator

    @pytest.mark.asyncio
    async def test_links_filtered_by_entity_type(self, consolidator):
        penalty = SimpleNamespace(id=uuid4(), semantic_key="penalty_late", type="PENALTY",
                                  name="Multa", raw_value="0,5% ao dia", obligation_details=None)
        requirement = SimpleNamespace(id=uuid4(), semantic_key="req_iso", type="REQUIREMENT",
                                      name="ISO", raw_value="ISO 9001", obligation_details=None)
        consolidator.entity_repo.get_by_keys = AsyncMock(return_value=[penalty, requirement])
        risk_id = uuid4()

        rows = await consolidator.build_events(uuid4(), [ExtractedTimelineEvent(
            title="Entrega",
            date_normalized="2025-04-01",
            linked_penalty_keys=["penalty_late", "req_iso", "unknown"],
            linked_requirement_keys=["req_iso"],
            linked_risk_keys=["SCHEDULE:Atraso", "SCHEDULE:Outro"],
            tags=["Entrega Final", "entrega-final", ""],
            page_number=2,
        )], {"SCHEDULE:Atraso": risk_id})

        row = rows[0]
        assert [p["entity_id"] for p in row["linked_penalties"]] == [str(penalty.id)]
        assert [r["entity_id"] for r in row["linked_requirements"]] == [str(requirement.id)]
        assert row["linked_risk_ids"] == [str(risk_id)]
        assert row["urgency"]["has_penalty"] is True
        assert row["urgency"]["penalty_amount"] == "0,5% ao dia"
        assert row["tags"] == ["entrega_final"]
        assert row["event_date"] == date(2025, 4, 1)

    @pytest.mark.asyncio
    async def test_same_batch_relative_reference_gets_id(self, consolidator):
        consolidator.entity_repo.get_by_keys = AsyncMock(return_value=[])

        rows = await consolidator.build_events(uuid4(), [
            ExtractedTimelineEvent(title="Homologação", source_semantic_key="homologation", page_number=1),
            ExtractedTimelineEvent(
                title="Assinatura",
                date_type=DateType.RELATIVE,
                relative_to=RelativeReference(event_semantic_key="homologation", offset=5),
                page_number=1,
            ),
        ])

        assert rows[1]["relative_to"]["event_id"] == str(rows[0]["id"])
        assert consolidator.event_ids_by_key["homologation"] == rows[0]["id"]

    @pytest.mark.asyncio
    async def test_failed_insert_registers_no_keys(self, consolidator):
        known_id = uuid4()
        consolidator.event_ids_by_key = {"proposal": known_id}
        consolidator.entity_repo.get_by_keys = AsyncMock(return_value=[])
        consolidator.timeline_repo.create_many = AsyncMock(side_effect=PersistenceError("insert failed"))

        with pytest.raises(PersistenceError):
            await consolidator.build_events(uuid4(), [
                ExtractedTimelineEvent(title="Homologação", source_semantic_key="homologation", page_number=1),
            ])

        assert consolidator.event_ids_by_key == {"proposal": known_id}


def _consolidator(events):
    consolidator = TimelineConsolidator.__new__(TimelineConsolidator)
    consolidator.timeline_repo = MagicMock()
    consolidator.timeline_repo.get_by_document = AsyncMock(return_value=events)
    consolidator.timeline_repo.commit = AsyncMock()
    consolidator.entity_repo = MagicMock()
    consolidator.event_ids_by_key = {}
    return consolidator


class TestConsolidate:

    @pytest.mark.asyncio
    async def test_late_binding_and_relative_resolution(self):
        base = _stored_event("homologation", event_date=date(2025, 3, 14))
        later = _stored_event(relative_to=_relative("homologation", offset=1, unit="BUSINESS_DAYS"))

        result = await _consolidator([later, base]).consolidate(uuid4(), now=NOW)

        assert later.relative_to["event_id"] == str(base.id)
        assert later.event_date == date(2025, 3, 17)
        assert base.urgency["blocking_for_others"] is True
        assert later.urgency["blocking_for_others"] is False
        assert result == {"events": 2, "relative_resolved": 1, "blocking": 1}

    @pytest.mark.asyncio
    async def test_relative_chain_resolves_one_hop_only(self):
        a = _stored_event("a", event_date=date(2025, 3, 10))
        b = _stored_event("b", relative_to=_relative("a", offset=2))
        c = _stored_event("c", relative_to=_relative("b", offset=2))

        await _consolidator([a, b, c]).consolidate(uuid4(), now=NOW)

        assert b.event_date == date(2025, 3, 12)
        assert c.event_date is None
        assert c.urgency["days_until_deadline"] is None

    @pytest.mark.asyncio
    async def test_urgency_recomputed(self):
        event = _stored_event(
            event_date=date(2025, 3, 20),
            penalties=[{"entity_id": "x", "value": "R$ 1.000,00"}, {"entity_id": "y", "value": "2%"}],
        )
        plain = _stored_event()

        await _consolidator([event, plain]).consolidate(uuid4(), now=NOW)

        assert event.urgency == {
            "has_penalty": True,
            "penalty_amount": "R$ 1.000,00",
            "days_until_deadline": 10,
            "blocking_for_others": False,
        }
        assert plain.urgency["has_penalty"] is False
        assert plain.urgency["penalty_amount"] is None


class TestQueriesAndStats:

    def test_summarize_events(self):
        today = date(2025, 3, 10)
        events = [
            _stored_event(event_date=date(2025, 3, 20), importance="CRITICAL", tags=["proposta"],
                          penalties=[{"value": "1%"}]),
            _stored_event(event_date=date(2025, 5, 20), importance="HIGH", tags=["proposta", "entrega"]),
            _stored_event(importance="LOW", date_type="RELATIVE"),
        ]

        stats = summarize_events(events, today)

        assert stats["total_events"] == 3
        assert stats["by_importance"] == {"CRITICAL": 1, "HIGH": 1, "MEDIUM": 0, "LOW": 1}
        assert stats["by_date_type"] == {"FIXED": 2, "RELATIVE": 1}
        assert stats["upcoming_critical"] == 1
        assert stats["with_penalties"] == 1
        assert stats["tags"] == ["proposta", "entrega"]

    @pytest.mark.asyncio
    async def test_critical_events_window(self):
        today = date(2025, 3, 10)
        soon = _stored_event(event_date=date(2025, 3, 25))
        far_critical = _stored_event(event_date=date(2026, 1, 1), importance="CRITICAL")
        far = _stored_event(event_date=date(2026, 1, 1))
        consolidator = _consolidator([soon, far_critical, far])

        critical = await consolidator.get_critical_events(uuid4(), today=today)

        assert critical == [soon, far_critical]

    @pytest.mark.asyncio
    async def test_get_by_tag_and_importance(self):
        tagged = _stored_event(tags=["garantia_contratual"], importance="HIGH")
        consolidator = _consolidator([tagged, _stored_event()])

        assert await consolidator.get_by_tag(uuid4(), "Garantia Contratual") == [tagged]
        assert await consolidator.get_by_importance(uuid4(), Importance.HIGH) == [tagged]
