"""Unit tests for oracle tool argument parsing.

The oracle output is untrusted, so these tests focus on the defaults
applied to missing or malformed fields.
"""

import json

import pytest

from tender_ai.schemas.enums import (
    DateType,
    EntityType,
    Importance,
    OffsetUnit,
    Probability,
    RelationshipType,
    RiskCategory,
    SectionLevel,
    Severity,
)
from tender_ai.schemas.extraction import PenaltyMetadata, ToolCall
from tender_ai.services.extraction.tool_parsers import (
    DEFAULT_CONFIDENCE,
    parse_entity,
    parse_extraction_results,
    parse_risk,
    parse_sections,
    parse_timeline_event,
)
from tender_ai.services.extraction.tools import SAVE_EXTRACTION_RESULTS, SAVE_SECTIONS

PAGES = [3, 4]


class TestParseSections:

    def test_defaults_and_skips(self):
        calls = [
            ToolCall(name=SAVE_SECTIONS, arguments={"sections": [
                {"title": "Das Penalidades", "level": "chapter", "number": "10", "page_number": 4},
                {"title": "Sem nível", "level": "NOPE", "page_number": 99},
                {"level": "CLAUSE", "number": "10.1"},
            ]}),
            ToolCall(name="something_else", arguments={"sections": [{"title": "ignored"}]}),
        ]

        sections = parse_sections(calls, PAGES)

        assert [s.title for s in sections] == ["Das Penalidades", "Sem nível"]
        assert sections[0].level == SectionLevel.CHAPTER
        assert sections[0].page_number == 4
        assert sections[1].level == SectionLevel.SECTION
        assert sections[1].page_number == 3

    def test_sections_sent_as_json_string(self):
        raw = json.dumps([{"title": "Do Objeto", "number": "1", "parent_number": ""}])
        sections = parse_sections([ToolCall(name=SAVE_SECTIONS, arguments={"sections": raw})], PAGES)

        assert sections[0].number == "1"
        assert sections[0].parent_number is None


class TestParseEntity:

    def test_unknown_type_and_bad_confidence_fall_back(self):
        entity = parse_entity(
            {"name": "Algo", "type": "WIDGET", "semantic_key": "k", "confidence": 3.2},
            PAGES,
        )

        assert entity.type == EntityType.OTHER
        assert entity.confidence == DEFAULT_CONFIDENCE

    def test_missing_name_is_skipped(self):
        assert parse_entity({"type": "DEADLINE", "semantic_key": "k"}, PAGES) is None

    def test_missing_semantic_key_is_derived(self):
        first = parse_entity({"name": "Multa", "type": "PENALTY", "raw_value": "0,5%"}, PAGES)
        second = parse_entity({"name": "Multa diária", "type": "PENALTY", "raw_value": "0.5 %"}, PAGES)

        assert first.semantic_key
        assert first.semantic_key == second.semantic_key

    def test_metadata_variant_follows_type(self):
        entity = parse_entity({
            "name": "Multa por atraso",
            "type": "penalty",
            "semantic_key": "penalty_late",
            "metadata_json": json.dumps({"percentage": 0.5, "infraction_type": "atraso"}),
        }, PAGES)

        assert isinstance(entity.metadata, PenaltyMetadata)
        assert entity.metadata.percentage == 0.5

    def test_related_keys_accept_strings_and_objects(self):
        entity = parse_entity({
            "name": "Entrega",
            "semantic_key": "deadline_delivery",
            "related_semantic_keys_json": [
                "penalty_late",
                {"semantic_key": "req_iso", "relationship": "required_by"},
                {"relationship": "TRIGGERS"},
            ],
        }, PAGES)

        assert [(r.semantic_key, r.relationship) for r in entity.related_keys] == [
            ("penalty_late", RelationshipType.DEPENDS_ON),
            ("req_iso", RelationshipType.REQUIRED_BY),
        ]

    def test_malformed_obligation_details_dropped(self):
        entity = parse_entity({
            "name": "Apresentar garantia",
            "type": "OBLIGATION",
            "semantic_key": "obligation_guarantee",
            "obligation_details_json": {"responsible": "NOBODY"},
        }, PAGES)

        assert entity.obligation_details is None


class TestParseTimelineEvent:

    def test_relative_reference_forces_relative_date_type(self):
        event = parse_timeline_event({
            "title": "Assinatura do contrato",
            "relative_to_json": json.dumps({
                "event_semantic_key": "homologation",
                "offset": "5",
                "unit": "business_days",
            }),
        }, PAGES)

        assert event.date_type == DateType.RELATIVE
        assert event.relative_to.offset == 5
        assert event.relative_to.unit == OffsetUnit.BUSINESS_DAYS

    def test_defaults(self):
        event = parse_timeline_event({"title": "Sessão pública", "importance": "urgent"}, PAGES)

        assert event.date_type == DateType.FIXED
        assert event.importance == Importance.MEDIUM
        assert event.relative_to is None
        assert event.tags == []


class TestParseRisk:

    def test_defaults_and_mitigation_requires_action(self):
        risk = parse_risk({
            "title": "Multa elevada",
            "severity": "catastrophic",
            "mitigation_json": {"deadline": "amanhã"},
        }, PAGES)

        assert risk.category == RiskCategory.OTHER
        assert risk.severity == Severity.MEDIUM
        assert risk.probability == Probability.POSSIBLE
        assert risk.mitigation is None


class TestParseExtractionResults:

    def test_merges_calls_and_skips_unusable_records(self):
        calls = [
            ToolCall(name=SAVE_EXTRACTION_RESULTS, arguments={
                "entities": [{"name": "A", "semantic_key": "a"}, {"semantic_key": "nameless"}],
                "timeline_events": "not json",
            }),
            ToolCall(name=SAVE_EXTRACTION_RESULTS, arguments={
                "risks": json.dumps([{"title": "R"}, "garbage"]),
            }),
        ]

        payload = parse_extraction_results(calls, PAGES)

        assert [e.semantic_key for e in payload.entities] == ["a"]
        assert payload.timeline_events == []
        assert [r.title for r in payload.risks] == ["R"]

    @pytest.mark.parametrize("calls", [[], [ToolCall(name=SAVE_SECTIONS, arguments={})]])
    def test_no_results(self, calls):
        payload = parse_extraction_results(calls, PAGES)

        assert payload.entities == []
        assert payload.risks == []
