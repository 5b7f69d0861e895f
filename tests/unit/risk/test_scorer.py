"""Unit tests for risk scoring, predicates and RiskService queries."""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from tender_ai.schemas.enums import Probability, RiskCategory, Severity
from tender_ai.schemas.extraction import ExtractedRisk, Mitigation
from tender_ai.services.risk.scorer import (
    RiskService,
    is_critical,
    needs_mitigation,
    risk_score,
    summarize_risks,
)


def _risk(severity="MEDIUM", probability="POSSIBLE", category="FINANCIAL", mitigation=None, title="r"):
    return SimpleNamespace(
        id=uuid4(), severity=severity, probability=probability, category=category,
        mitigation=mitigation, title=title,
    )


@pytest.fixture
def service():
    service = RiskService.__new__(RiskService)
    service.risk_repo = MagicMock()
    service.entity_repo = MagicMock()
    service.risk_ids_by_key = {}
    return service


class TestScoring:

    def test_score_bounds(self):
        scores = [risk_score(s, p) for s in Severity for p in Probability]

        assert min(scores) == 1
        assert max(scores) == 16
        assert risk_score(Severity.CRITICAL, Probability.CERTAIN) == 16
        assert risk_score("LOW", "UNLIKELY") == 1

    def test_score_is_monotonic_in_severity(self):
        order = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]
        for probability in Probability:
            scores = [risk_score(s, probability) for s in order]
            assert scores == sorted(scores)

    @pytest.mark.parametrize("severity,probability,expected", [
        ("CRITICAL", "UNLIKELY", True),
        ("HIGH", "CERTAIN", True),
        ("HIGH", "LIKELY", True),
        ("HIGH", "POSSIBLE", False),
        ("MEDIUM", "CERTAIN", False),
    ])
    def test_is_critical(self, severity, probability, expected):
        assert is_critical(severity, probability) is expected

    @pytest.mark.parametrize("severity,probability,mitigation,expected", [
        ("HIGH", "UNLIKELY", None, True),
        ("LOW", "CERTAIN", None, True),
        ("MEDIUM", "LIKELY", None, False),
        ("CRITICAL", "CERTAIN", {"action": "contratar seguro"}, False),
    ])
    def test_needs_mitigation(self, severity, probability, mitigation, expected):
        assert needs_mitigation(severity, probability, mitigation) is expected


class TestBuildRisks:

    @pytest.mark.asyncio
    async def test_links_and_registration(self, service):
        entity = SimpleNamespace(id=uuid4(), semantic_key="penalty_late")
        service.entity_repo.get_by_keys = AsyncMock(return_value=[entity])
        service.risk_repo.create_many = AsyncMock(
            side_effect=lambda rows: [SimpleNamespace(id=uuid4(), **row) for row in rows]
        )
        event_id, section_id = uuid4(), str(uuid4())

        created = await service.build_risks(uuid4(), [ExtractedRisk(
            category=RiskCategory.SCHEDULE,
            title="Atraso na entrega",
            severity=Severity.HIGH,
            mitigation=Mitigation(action="Planejar logística"),
            linked_entity_keys=["penalty_late", "penalty_late", "missing"],
            linked_timeline_keys=["delivery", "unknown"],
            page_number=5,
        )], {"delivery": event_id}, {5: [section_id], 6: ["other"]})

        risk = created[0]
        assert risk.linked_entity_ids == [str(entity.id)]
        assert risk.linked_timeline_ids == [str(event_id)]
        assert risk.linked_section_ids == [section_id]
        assert risk.mitigation == {"action": "Planejar logística", "deadline": None, "cost": None}
        assert service.risk_ids_by_key == {"SCHEDULE:Atraso na entrega": risk.id}

    @pytest.mark.asyncio
    async def test_no_risks_writes_nothing(self, service):
        service.risk_repo.create_many = AsyncMock()

        assert await service.build_risks(uuid4(), []) == []
        service.risk_repo.create_many.assert_not_awaited()


class TestQueries:

    @pytest.mark.asyncio
    async def test_ranked_descending(self, service):
        low, high, mid = _risk("LOW", "UNLIKELY"), _risk("CRITICAL", "LIKELY"), _risk("MEDIUM", "LIKELY")
        service.risk_repo.get_by_document = AsyncMock(return_value=[low, high, mid])

        ranked = await service.get_ranked_risks(uuid4())

        assert [item["risk"] for item in ranked] == [high, mid, low]
        assert [item["score"] for item in ranked] == [12, 6, 1]

    @pytest.mark.asyncio
    async def test_needing_mitigation_sorted(self, service):
        covered = _risk("CRITICAL", "CERTAIN", mitigation={"action": "x"})
        high = _risk("HIGH", "POSSIBLE")
        critical = _risk("CRITICAL", "UNLIKELY")
        certain = _risk("LOW", "CERTAIN")
        service.risk_repo.get_by_document = AsyncMock(return_value=[covered, high, certain, critical])

        assert await service.get_risks_needing_mitigation(uuid4()) == [critical, high, certain]

    @pytest.mark.asyncio
    async def test_filters(self, service):
        legal = _risk(category="LEGAL", severity="HIGH", probability="LIKELY")
        other = _risk(category="FINANCIAL")
        service.risk_repo.get_by_document = AsyncMock(return_value=[legal, other])

        assert await service.get_by_category(uuid4(), RiskCategory.LEGAL) == [legal]
        assert await service.get_by_severity(uuid4(), Severity.MEDIUM) == [other]
        assert await service.get_critical_risks(uuid4()) == [legal]

    def test_summarize(self):
        stats = summarize_risks([
            _risk("CRITICAL", "LIKELY", category="LEGAL", mitigation={"action": "a"}),
            _risk("LOW", "UNLIKELY", category="LEGAL"),
        ])

        assert stats["total"] == 2
        assert stats["by_severity"]["CRITICAL"] == 1
        assert stats["by_severity"]["HIGH"] == 0
        assert stats["by_category"] == {"LEGAL": 2}
        assert stats["with_mitigation"] == 1
        assert stats["critical_count"] == 1
