"""Tool schemas for the extraction oracle.

Nested structures (metadata, linked keys, relative dates, mitigation) travel
as JSON strings so that every provider can express them; empty strings mean
"absent".
"""

from typing import Any, Dict, List, Optional

from tender_ai.core.llm_client import ToolHandler, ToolSpec
from tender_ai.schemas.enums import (
    DateType,
    EntityType,
    EventType,
    Importance,
    Probability,
    RiskCategory,
    SectionLevel,
    Severity,
)

SAVE_SECTIONS = "save_sections"
SAVE_EXTRACTION_RESULTS = "save_extraction_results"
FIND_ENTITIES = "find_entities"
GET_EXISTING_KEYS = "get_existing_keys"


def _string(description: str, enum: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "STRING", "description": description}
    if enum:
        schema["enum"] = enum
    return schema


def _number(description: str) -> Dict[str, Any]:
    return {"type": "NUMBER", "description": description}


def _integer(description: str) -> Dict[str, Any]:
    return {"type": "INTEGER", "description": description}


def _object(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "OBJECT", "properties": properties, "required": required}


def _array(items: Dict[str, Any], description: str = "") -> Dict[str, Any]:
    return {"type": "ARRAY", "items": items, "description": description}


def _values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


SECTION_SCHEMA = _object(
    {
        "level": _string("Structural level", _values(SectionLevel)),
        "number": _string("Numbering as written (e.g. '1.1', 'I'); empty if none"),
        "title": _string("Title as written"),
        "parent_number": _string("Number of the parent section; empty if none"),
        "summary": _string("Short summary, at most 100 characters"),
        "page_number": _integer("Page where the section starts"),
        "line_start": _integer("First line on the page; 0 if unknown"),
        "line_end": _integer("Last line on the page; 0 if unknown"),
    },
    ["level", "title", "page_number"],
)

ENTITY_SCHEMA = _object(
    {
        "type": _string("Entity type", _values(EntityType)),
        "name": _string("Short descriptive name"),
        "raw_value": _string("Value as written in the document"),
        "semantic_key": _string("Stable identity, reused across batches"),
        "section_id": _string("Id of the enclosing section; empty if unknown"),
        "metadata_json": _string("JSON object with type-specific fields"),
        "obligation_details_json": _string(
            "JSON {action, responsible: BIDDER|AGENCY|BOTH, mandatory, linked_deadline_key}; empty if not an obligation"
        ),
        "related_semantic_keys_json": _string(
            "JSON array of {semantic_key, relationship} with relationship in "
            "DEPENDS_ON|TRIGGERS|SAME_DATE|SAME_VALUE|PREREQUISITE|CONSEQUENCE|PENALTY_FOR|REQUIRED_BY"
        ),
        "confidence": _number("Confidence between 0 and 1"),
        "page_number": _integer("Page where the entity appears"),
        "excerpt_text": _string("Verbatim excerpt supporting the entity"),
    },
    ["type", "name", "semantic_key", "page_number"],
)

TIMELINE_EVENT_SCHEMA = _object(
    {
        "date_raw": _string("Date or period as written"),
        "date_normalized": _string("YYYY-MM-DD when known; empty otherwise"),
        "date_type": _string("Kind of date", _values(DateType)),
        "event_type": _string("Event type", _values(EventType)),
        "title": _string("Short title"),
        "description": _string("What happens at this date"),
        "importance": _string("Importance", _values(Importance)),
        "action_required": _string("Action the bidder must take; empty if none"),
        "tags_json": _string("JSON array of short tags"),
        "linked_penalty_keys_json": _string("JSON array of penalty/sanction semantic keys"),
        "linked_requirement_keys_json": _string("JSON array of requirement semantic keys"),
        "linked_obligation_keys_json": _string("JSON array of obligation semantic keys"),
        "linked_risk_keys_json": _string("JSON array of risk keys 'CATEGORY:title'"),
        "relative_to_json": _string(
            "JSON {event_semantic_key, offset, unit: DAYS|BUSINESS_DAYS|WEEKS|MONTHS, "
            "direction: BEFORE|AFTER}; empty for fixed dates"
        ),
        "source_semantic_key": _string("Semantic key of the entity this event comes from"),
        "page_number": _integer("Page where the event appears"),
        "excerpt": _string("Verbatim excerpt"),
        "confidence": _number("Confidence between 0 and 1"),
    },
    ["title", "date_type", "page_number"],
)

RISK_SCHEMA = _object(
    {
        "category": _string("Risk category", _values(RiskCategory)),
        "subcategory": _string("Optional subcategory"),
        "title": _string("Short title"),
        "description": _string("Description of the risk"),
        "trigger": _string("What triggers it"),
        "consequence": _string("What happens if it materializes"),
        "severity": _string("Severity", _values(Severity)),
        "probability": _string("Probability", _values(Probability)),
        "mitigation_json": _string("JSON {action, deadline, cost}; empty if none"),
        "linked_entity_keys_json": _string("JSON array of related entity semantic keys"),
        "linked_timeline_keys_json": _string("JSON array of related timeline source keys"),
        "page_number": _integer("Page where the risk is described"),
        "excerpt": _string("Verbatim excerpt"),
        "confidence": _number("Confidence between 0 and 1"),
    },
    ["title", "severity", "probability", "page_number"],
)


def structure_tools() -> List[ToolSpec]:
    """Stage 1 tools: propose sections only."""
    return [
        ToolSpec(
            name=SAVE_SECTIONS,
            description="Save the hierarchical sections identified in this batch.",
            parameters=_object({"sections": _array(SECTION_SCHEMA)}, ["sections"]),
        )
    ]


def extraction_tools(
    find_entities: Optional[ToolHandler] = None,
    get_existing_keys: Optional[ToolHandler] = None,
) -> List[ToolSpec]:
    """Stage 2 tools: save results, plus optional read-only lookups."""
    tools = [
        ToolSpec(
            name=SAVE_EXTRACTION_RESULTS,
            description="Save the entities, timeline events and risks extracted from this batch.",
            parameters=_object(
                {
                    "entities": _array(ENTITY_SCHEMA),
                    "timeline_events": _array(TIMELINE_EVENT_SCHEMA),
                    "risks": _array(RISK_SCHEMA),
                },
                [],
            ),
        )
    ]
    if find_entities is not None:
        tools.append(ToolSpec(
            name=FIND_ENTITIES,
            description="Search entities already extracted from this document.",
            parameters=_object(
                {
                    "query": _string("Text to look for in names and values"),
                    "type": _string("Optional entity type filter", _values(EntityType)),
                },
                [],
            ),
            handler=find_entities,
        ))
    if get_existing_keys is not None:
        tools.append(ToolSpec(
            name=GET_EXISTING_KEYS,
            description="List semantic keys and timeline keys already used in this document.",
            parameters=_object({}, []),
            handler=get_existing_keys,
        ))
    return tools
