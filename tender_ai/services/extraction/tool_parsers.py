"""Defensive parsing of oracle tool arguments into extraction models.

The oracle is untrusted: fields may be missing, mistyped, or JSON encoded
as strings. Every parser degrades to defaults instead of raising, and a
record that cannot be salvaged at all (no title, no name) is skipped.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from tender_ai.schemas.enums import (
    DateType,
    EntityType,
    EventType,
    Importance,
    OffsetDirection,
    OffsetUnit,
    Probability,
    RelationshipType,
    RiskCategory,
    SectionLevel,
    Severity,
)
from tender_ai.schemas.extraction import (
    ExtractedEntity,
    ExtractedRisk,
    ExtractedSection,
    ExtractedTimelineEvent,
    ExtractionPayload,
    Mitigation,
    ObligationDetails,
    RelatedKey,
    RelativeReference,
    ToolCall,
    metadata_for,
)
from tender_ai.services.extraction.tools import SAVE_EXTRACTION_RESULTS, SAVE_SECTIONS
from tender_ai.utils.canonical_key import deduplication_key
from tender_ai.utils.json_parser import parse_json_field
from tender_ai.utils.logging import get_logger
from tender_ai.utils.normalizers import normalize_value

LOGGER = get_logger(__name__)

DEFAULT_CONFIDENCE = 0.5

E = TypeVar("E", bound=Enum)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if not 0.0 <= confidence <= 1.0:
        return DEFAULT_CONFIDENCE
    return confidence


def _enum(enum_cls: Type[E], value: Any, default: E) -> E:
    try:
        return enum_cls(_text(value).upper())
    except ValueError:
        return default


def _string_list(value: Any) -> List[str]:
    items = parse_json_field(value, [])
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def _page(value: Any, page_numbers: Sequence[int]) -> int:
    """Clamp a page number to the batch; unknown pages map to the first."""
    page = _int(value)
    if page_numbers:
        if page is None or page not in page_numbers:
            return page_numbers[0]
        return page
    return page if page and page > 0 else 1


def _records(arguments: Dict[str, Any], field: str) -> List[Dict[str, Any]]:
    records = parse_json_field(arguments.get(field), [])
    return [record for record in records if isinstance(record, dict)]


def parse_section(raw: Dict[str, Any], page_numbers: Sequence[int] = ()) -> Optional[ExtractedSection]:
    title = _text(raw.get("title"))
    if not title:
        return None
    return ExtractedSection(
        level=_enum(SectionLevel, raw.get("level"), SectionLevel.SECTION),
        number=_optional_text(raw.get("number")),
        title=title,
        parent_number=_optional_text(raw.get("parent_number")),
        summary=_optional_text(raw.get("summary")),
        page_number=_page(raw.get("page_number"), page_numbers),
        line_start=_int(raw.get("line_start")) or None,
        line_end=_int(raw.get("line_end")) or None,
    )


def parse_sections(calls: List[ToolCall], page_numbers: Sequence[int] = ()) -> List[ExtractedSection]:
    """Collect sections from every ``save_sections`` call."""
    sections: List[ExtractedSection] = []
    for call in calls:
        if call.name != SAVE_SECTIONS:
            continue
        for raw in _records(call.arguments, "sections"):
            section = parse_section(raw, page_numbers)
            if section is not None:
                sections.append(section)
    return sections


def _related_keys(value: Any) -> List[RelatedKey]:
    related = []
    for item in parse_json_field(value, []):
        if isinstance(item, str):
            key, relationship = item, None
        elif isinstance(item, dict):
            key, relationship = item.get("semantic_key") or item.get("key"), item.get("relationship")
        else:
            continue
        key = _text(key)
        if key:
            related.append(RelatedKey(
                semantic_key=key,
                relationship=_enum(RelationshipType, relationship, RelationshipType.DEPENDS_ON),
            ))
    return related


def _obligation_details(value: Any) -> Optional[ObligationDetails]:
    raw = parse_json_field(value, {})
    if not raw:
        return None
    try:
        return ObligationDetails.model_validate(raw)
    except PydanticValidationError:
        LOGGER.debug(f"Dropping malformed obligation details: {raw!r}")
        return None


def parse_entity(raw: Dict[str, Any], page_numbers: Sequence[int] = ()) -> Optional[ExtractedEntity]:
    name = _text(raw.get("name"))
    if not name:
        return None

    entity_type = _enum(EntityType, raw.get("type"), EntityType.OTHER)
    raw_value = _text(raw.get("raw_value"))
    metadata_raw = parse_json_field(raw.get("metadata_json", raw.get("metadata")), {})
    metadata = metadata_for(entity_type, metadata_raw)

    semantic_key = _text(raw.get("semantic_key"))
    if not semantic_key:
        semantic_key = deduplication_key(
            entity_type.value,
            normalize_value(entity_type.value, raw_value or name, metadata.model_dump()),
        )

    return ExtractedEntity(
        type=entity_type,
        name=name,
        raw_value=raw_value,
        semantic_key=semantic_key,
        section_id=_optional_text(raw.get("section_id")),
        metadata=metadata,
        obligation_details=_obligation_details(raw.get("obligation_details_json")),
        related_keys=_related_keys(raw.get("related_semantic_keys_json")),
        confidence=_confidence(raw.get("confidence")),
        page_number=_page(raw.get("page_number"), page_numbers),
        excerpt=_text(raw.get("excerpt_text", raw.get("excerpt"))),
    )


def _relative_to(value: Any) -> Optional[RelativeReference]:
    raw = parse_json_field(value, {})
    key = _text(raw.get("event_semantic_key") or raw.get("event_key")) if raw else ""
    if not key:
        return None
    return RelativeReference(
        event_semantic_key=key,
        offset=_int(raw.get("offset")) or 0,
        unit=_enum(OffsetUnit, raw.get("unit"), OffsetUnit.DAYS),
        direction=_enum(OffsetDirection, raw.get("direction"), OffsetDirection.AFTER),
    )


def parse_timeline_event(
    raw: Dict[str, Any], page_numbers: Sequence[int] = ()
) -> Optional[ExtractedTimelineEvent]:
    title = _text(raw.get("title"))
    if not title:
        return None
    relative_to = _relative_to(raw.get("relative_to_json"))
    date_type = _enum(DateType, raw.get("date_type"), DateType.FIXED)
    if relative_to is not None and date_type == DateType.FIXED:
        date_type = DateType.RELATIVE

    return ExtractedTimelineEvent(
        date_raw=_text(raw.get("date_raw")),
        date_normalized=_optional_text(raw.get("date_normalized")),
        date_type=date_type,
        event_type=_enum(EventType, raw.get("event_type"), EventType.OTHER),
        title=title,
        description=_text(raw.get("description")),
        importance=_enum(Importance, raw.get("importance"), Importance.MEDIUM),
        action_required=_optional_text(raw.get("action_required")),
        tags=_string_list(raw.get("tags_json")),
        linked_penalty_keys=_string_list(raw.get("linked_penalty_keys_json")),
        linked_requirement_keys=_string_list(raw.get("linked_requirement_keys_json")),
        linked_obligation_keys=_string_list(raw.get("linked_obligation_keys_json")),
        linked_risk_keys=_string_list(raw.get("linked_risk_keys_json")),
        relative_to=relative_to,
        source_semantic_key=_text(raw.get("source_semantic_key")),
        page_number=_page(raw.get("page_number"), page_numbers),
        excerpt=_text(raw.get("excerpt")),
        confidence=_confidence(raw.get("confidence")),
    )


def _mitigation(value: Any) -> Optional[Mitigation]:
    raw = parse_json_field(value, {})
    action = _text(raw.get("action")) if raw else ""
    if not action:
        return None
    return Mitigation(
        action=action,
        deadline=_optional_text(raw.get("deadline")),
        cost=_optional_text(raw.get("cost")),
    )


def parse_risk(raw: Dict[str, Any], page_numbers: Sequence[int] = ()) -> Optional[ExtractedRisk]:
    title = _text(raw.get("title"))
    if not title:
        return None
    return ExtractedRisk(
        category=_enum(RiskCategory, raw.get("category"), RiskCategory.OTHER),
        subcategory=_optional_text(raw.get("subcategory")),
        title=title,
        description=_text(raw.get("description")),
        trigger=_text(raw.get("trigger")),
        consequence=_text(raw.get("consequence")),
        severity=_enum(Severity, raw.get("severity"), Severity.MEDIUM),
        probability=_enum(Probability, raw.get("probability"), Probability.POSSIBLE),
        mitigation=_mitigation(raw.get("mitigation_json")),
        linked_entity_keys=_string_list(raw.get("linked_entity_keys_json")),
        linked_timeline_keys=_string_list(raw.get("linked_timeline_keys_json")),
        page_number=_page(raw.get("page_number"), page_numbers),
        excerpt=_text(raw.get("excerpt")),
        confidence=_confidence(raw.get("confidence")),
    )


def parse_extraction_results(
    calls: List[ToolCall], page_numbers: Sequence[int] = ()
) -> ExtractionPayload:
    """Merge every ``save_extraction_results`` call into one payload.

    Args:
        calls: Tool calls returned by the oracle (other tools are ignored)
        page_numbers: Pages of the batch, used to clamp page references

    Returns:
        ExtractionPayload, empty when the oracle saved nothing
    """
    payload = ExtractionPayload()
    skipped = 0
    for call in calls:
        if call.name != SAVE_EXTRACTION_RESULTS:
            continue
        args = call.arguments
        for raw in _records(args, "entities"):
            entity = parse_entity(raw, page_numbers)
            if entity is None:
                skipped += 1
            else:
                payload.entities.append(entity)
        for raw in _records(args, "timeline_events"):
            event = parse_timeline_event(raw, page_numbers)
            if event is None:
                skipped += 1
            else:
                payload.timeline_events.append(event)
        for raw in _records(args, "risks"):
            risk = parse_risk(raw, page_numbers)
            if risk is None:
                skipped += 1
            else:
                payload.risks.append(risk)

    if skipped:
        LOGGER.warning(f"Skipped {skipped} unusable extraction records")
    return payload
