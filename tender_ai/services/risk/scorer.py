"""Risk scoring, creation and ranking."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Risk
from tender_ai.repositories.entity_repository import EntityRepository
from tender_ai.repositories.risk_repository import RiskRepository
from tender_ai.schemas.enums import Probability, RiskCategory, Severity
from tender_ai.schemas.extraction import ExtractedRisk
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

SEVERITY_RANK = {
    Severity.CRITICAL.value: 4,
    Severity.HIGH.value: 3,
    Severity.MEDIUM.value: 2,
    Severity.LOW.value: 1,
}

PROBABILITY_RANK = {
    Probability.CERTAIN.value: 4,
    Probability.LIKELY.value: 3,
    Probability.POSSIBLE.value: 2,
    Probability.UNLIKELY.value: 1,
}


def _value(member: Any) -> str:
    return member.value if hasattr(member, "value") else str(member)


def risk_score(severity: Any, probability: Any) -> int:
    """Severity rank times probability rank, from 1 to 16."""
    return SEVERITY_RANK.get(_value(severity), 1) * PROBABILITY_RANK.get(_value(probability), 1)


def is_critical(severity: Any, probability: Any) -> bool:
    """CRITICAL severity, or HIGH severity that is CERTAIN or LIKELY."""
    severity, probability = _value(severity), _value(probability)
    if severity == Severity.CRITICAL.value:
        return True
    return severity == Severity.HIGH.value and probability in (
        Probability.CERTAIN.value,
        Probability.LIKELY.value,
    )


def needs_mitigation(severity: Any, probability: Any, mitigation: Optional[Dict[str, Any]]) -> bool:
    """No mitigation yet, and CRITICAL/HIGH severity or CERTAIN probability."""
    if mitigation:
        return False
    severity, probability = _value(severity), _value(probability)
    return (
        severity in (Severity.CRITICAL.value, Severity.HIGH.value)
        or probability == Probability.CERTAIN.value
    )


def risk_key(category: str, title: str) -> str:
    return f"{category}:{title}"


class RiskService:
    """Creates risks from extraction output and answers ranking queries."""

    def __init__(self, session: AsyncSession):
        self.risk_repo = RiskRepository(session)
        self.entity_repo = EntityRepository(session)
        self.risk_ids_by_key: Dict[str, UUID] = {}

    async def build_risks(
        self,
        document_id: UUID,
        risks: List[ExtractedRisk],
        timeline_ids_by_key: Optional[Dict[str, UUID]] = None,
        section_ids_by_page: Optional[Dict[int, List[str]]] = None,
    ) -> List[Risk]:
        """Persist one batch's risks with entity and timeline links resolved.

        Args:
            document_id: Owning document
            risks: Risks parsed from the oracle output
            timeline_ids_by_key: Known timeline events by source key
            section_ids_by_page: Sections starting on each page, linked by the risk's page

        Returns:
            Created Risk rows
        """
        if not risks:
            return []
        timeline_ids_by_key = timeline_ids_by_key or {}
        section_ids_by_page = section_ids_by_page or {}

        keys = {key for risk in risks for key in risk.linked_entity_keys}
        entity_ids = {
            e.semantic_key: str(e.id) for e in await self.entity_repo.get_by_keys(document_id, keys)
        }

        rows = []
        for risk in risks:
            rows.append({
                "document_id": document_id,
                "category": risk.category.value,
                "subcategory": risk.subcategory,
                "title": risk.title,
                "description": risk.description,
                "trigger": risk.trigger,
                "consequence": risk.consequence,
                "severity": risk.severity.value,
                "probability": risk.probability.value,
                "mitigation": risk.mitigation.model_dump() if risk.mitigation else None,
                "linked_entity_ids": list(dict.fromkeys(
                    entity_ids[key] for key in risk.linked_entity_keys if key in entity_ids
                )),
                "linked_timeline_ids": list(dict.fromkeys(
                    str(timeline_ids_by_key[key]) for key in risk.linked_timeline_keys
                    if key in timeline_ids_by_key
                )),
                "linked_section_ids": list(section_ids_by_page.get(risk.page_number, [])),
                "sources": [{
                    "page_number": risk.page_number,
                    "excerpt": risk.excerpt,
                    "confidence": risk.confidence,
                }],
            })

        created = await self.risk_repo.create_many(rows)
        for risk in created:
            self.risk_ids_by_key[risk_key(risk.category, risk.title)] = risk.id
        return created

    async def get_ranked_risks(self, document_id: UUID) -> List[Dict[str, Any]]:
        """Risks with their score, highest score first."""
        risks = await self.risk_repo.get_by_document(document_id)
        ranked = [
            {"risk": risk, "score": risk_score(risk.severity, risk.probability)}
            for risk in risks
        ]
        ranked.sort(key=lambda item: item["score"], reverse=True)
        return ranked

    async def get_by_category(self, document_id: UUID, category: RiskCategory) -> List[Risk]:
        risks = await self.risk_repo.get_by_document(document_id)
        return [r for r in risks if r.category == category.value]

    async def get_by_severity(self, document_id: UUID, severity: Severity) -> List[Risk]:
        risks = await self.risk_repo.get_by_document(document_id)
        return [r for r in risks if r.severity == severity.value]

    async def get_critical_risks(self, document_id: UUID) -> List[Risk]:
        risks = await self.risk_repo.get_by_document(document_id)
        return [r for r in risks if is_critical(r.severity, r.probability)]

    async def get_risks_needing_mitigation(self, document_id: UUID) -> List[Risk]:
        risks = await self.risk_repo.get_by_document(document_id)
        pending = [r for r in risks if needs_mitigation(r.severity, r.probability, r.mitigation)]
        pending.sort(
            key=lambda r: (SEVERITY_RANK.get(r.severity, 0), PROBABILITY_RANK.get(r.probability, 0)),
            reverse=True,
        )
        return pending

    async def get_stats(self, document_id: UUID) -> Dict[str, Any]:
        risks = await self.risk_repo.get_by_document(document_id)
        return summarize_risks(risks)


def summarize_risks(risks: List[Risk]) -> Dict[str, Any]:
    by_severity = {level.value: 0 for level in Severity}
    by_probability = {level.value: 0 for level in Probability}
    by_category: Dict[str, int] = {}
    with_mitigation = 0
    critical_count = 0

    for risk in risks:
        by_severity[risk.severity] = by_severity.get(risk.severity, 0) + 1
        by_probability[risk.probability] = by_probability.get(risk.probability, 0) + 1
        by_category[risk.category] = by_category.get(risk.category, 0) + 1
        if risk.mitigation:
            with_mitigation += 1
        if is_critical(risk.severity, risk.probability):
            critical_count += 1

    return {
        "total": len(risks),
        "by_severity": by_severity,
        "by_probability": by_probability,
        "by_category": by_category,
        "with_mitigation": with_mitigation,
        "critical_count": critical_count,
    }
