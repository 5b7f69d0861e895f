"""Schemas for structured extraction output.

The oracle returns loosely typed tool arguments; the parsers in
``tender_ai.services.extraction.tool_parsers`` turn them into these models.
Entity metadata is a tagged union keyed by ``kind``; ``metadata_for`` maps an
entity type to its variant.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
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
    RequirementCategory,
    ResponsibleParty,
    RiskCategory,
    SectionLevel,
    Severity,
)


# Entity metadata variants
class _MetadataBase(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)


class DeadlineMetadata(_MetadataBase):
    kind: Literal["deadline"] = "deadline"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    time_limit: Optional[str] = None
    event_kind: Optional[str] = None
    business_days: Optional[bool] = None
    duration_days: Optional[int] = None


class PenaltyMetadata(_MetadataBase):
    kind: Literal["penalty"] = "penalty"
    percentage: Optional[float] = None
    fixed_amount: Optional[float] = None
    infraction_type: Optional[str] = None
    calculation_base: Optional[str] = None
    application_condition: Optional[str] = None


class RequirementMetadata(_MetadataBase):
    kind: Literal["requirement"] = "requirement"
    category: RequirementCategory = RequirementCategory.OTHER
    mandatory: bool = True
    related_item: Optional[str] = None
    specification: Optional[str] = None


class DeliveryRuleMetadata(_MetadataBase):
    kind: Literal["delivery_rule"] = "delivery_rule"
    location: Optional[str] = None
    delivery_term: Optional[str] = None
    transport_conditions: Optional[str] = None
    packaging: Optional[str] = None
    receiving_hours: Optional[str] = None


class RiskMetadata(_MetadataBase):
    kind: Literal["risk"] = "risk"
    risk_type: Optional[str] = None
    severity: Optional[Severity] = None
    activation_condition: Optional[str] = None


class TechnicalCertificateMetadata(_MetadataBase):
    kind: Literal["technical_certificate"] = "technical_certificate"
    certificate_type: Optional[str] = None
    issuer: Optional[str] = None
    minimum_validity: Optional[str] = None
    minimum_quantity: Optional[int] = None
    requirement_description: Optional[str] = None


class DocumentationMetadata(_MetadataBase):
    kind: Literal["documentation"] = "documentation"
    document_type: Optional[str] = None
    validity_period: Optional[str] = None
    issuer: Optional[str] = None
    purpose: Optional[str] = None


class GenericMetadata(_MetadataBase):
    kind: Literal["generic"] = "generic"
    attributes: dict[str, Any] = Field(default_factory=dict)


EntityMetadata = Annotated[
    Union[
        DeadlineMetadata,
        PenaltyMetadata,
        RequirementMetadata,
        DeliveryRuleMetadata,
        RiskMetadata,
        TechnicalCertificateMetadata,
        DocumentationMetadata,
        GenericMetadata,
    ],
    Field(discriminator="kind"),
]

METADATA_BY_TYPE: dict[EntityType, type[BaseModel]] = {
    EntityType.DEADLINE: DeadlineMetadata,
    EntityType.PENALTY: PenaltyMetadata,
    EntityType.SANCTION: PenaltyMetadata,
    EntityType.REQUIREMENT: RequirementMetadata,
    EntityType.DELIVERY_RULE: DeliveryRuleMetadata,
    EntityType.RISK: RiskMetadata,
    EntityType.TECHNICAL_CERTIFICATE: TechnicalCertificateMetadata,
    EntityType.DOCUMENTATION: DocumentationMetadata,
}


def metadata_for(entity_type: EntityType, raw: Optional[dict[str, Any]]) -> BaseModel:
    """Build the metadata variant for an entity type.

    Fields that fail validation are dropped rather than failing the entity;
    types without a dedicated variant keep their raw attributes.
    """
    raw = raw if isinstance(raw, dict) else {}
    variant = METADATA_BY_TYPE.get(entity_type)
    if variant is None:
        return GenericMetadata(attributes=raw)

    fields = {k: v for k, v in raw.items() if k != "kind"}
    try:
        return variant.model_validate(fields)
    except PydanticValidationError as e:
        bad = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
        return variant.model_validate({k: v for k, v in fields.items() if k not in bad})


# Extracted records
class ProvenanceRef(BaseModel):
    """Where an entity (or risk) was observed."""

    page_number: int
    excerpt: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class RelatedKey(BaseModel):
    semantic_key: str
    relationship: RelationshipType
    entity_id: Optional[str] = None


class ObligationDetails(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    action: str = ""
    responsible: ResponsibleParty = ResponsibleParty.BIDDER
    mandatory: bool = True
    linked_deadline_key: Optional[str] = None


class ExtractedSection(BaseModel):
    level: SectionLevel
    number: Optional[str] = None
    title: str
    parent_number: Optional[str] = None
    summary: Optional[str] = None
    page_number: int
    line_start: Optional[int] = None
    line_end: Optional[int] = None


class ExtractedEntity(BaseModel):
    type: EntityType
    name: str
    raw_value: str = ""
    semantic_key: str
    section_id: Optional[str] = None
    metadata: EntityMetadata = Field(default_factory=GenericMetadata)
    obligation_details: Optional[ObligationDetails] = None
    related_keys: list[RelatedKey] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    page_number: int
    excerpt: str = ""


class RelativeReference(BaseModel):
    event_semantic_key: str
    offset: int = 0
    unit: OffsetUnit = OffsetUnit.DAYS
    direction: OffsetDirection = OffsetDirection.AFTER


class ExtractedTimelineEvent(BaseModel):
    date_raw: str = ""
    date_normalized: Optional[str] = None
    date_type: DateType = DateType.FIXED
    event_type: EventType = EventType.OTHER
    title: str
    description: str = ""
    importance: Importance = Importance.MEDIUM
    action_required: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    linked_penalty_keys: list[str] = Field(default_factory=list)
    linked_requirement_keys: list[str] = Field(default_factory=list)
    linked_obligation_keys: list[str] = Field(default_factory=list)
    linked_risk_keys: list[str] = Field(default_factory=list)
    relative_to: Optional[RelativeReference] = None
    source_semantic_key: str = ""
    page_number: int
    excerpt: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class Mitigation(BaseModel):
    action: str
    deadline: Optional[str] = None
    cost: Optional[str] = None


class ExtractedRisk(BaseModel):
    category: RiskCategory = RiskCategory.OTHER
    subcategory: Optional[str] = None
    title: str
    description: str = ""
    trigger: str = ""
    consequence: str = ""
    severity: Severity = Severity.MEDIUM
    probability: Probability = Probability.POSSIBLE
    mitigation: Optional[Mitigation] = None
    linked_entity_keys: list[str] = Field(default_factory=list)
    linked_timeline_keys: list[str] = Field(default_factory=list)
    page_number: int
    excerpt: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @property
    def risk_key(self) -> str:
        return f"{self.category.value}:{self.title}"


class ExtractionPayload(BaseModel):
    """Everything one Stage 2 call produced."""

    entities: list[ExtractedEntity] = Field(default_factory=list)
    timeline_events: list[ExtractedTimelineEvent] = Field(default_factory=list)
    risks: list[ExtractedRisk] = Field(default_factory=list)


class ToolCall(BaseModel):
    """A single structured invocation returned by the extraction oracle."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


# Outcomes
class BatchResult(BaseModel):
    batch_number: int
    pages_processed: int
    page_numbers: list[int] = Field(default_factory=list)
    success: bool
    error: Optional[str] = None
    sections_extracted: int = 0
    entities_extracted: int = 0
    timeline_events_extracted: int = 0
    risks_extracted: int = 0
    conflicts_recorded: int = 0
    processing_time_ms: int = 0


class DocumentExtractionResult(BaseModel):
    success: bool
    total_batches: int
    failed_batches: int = 0
    total_sections: int = 0
    total_entities: int = 0
    total_timeline_events: int = 0
    total_risks: int = 0
    total_conflicts: int = 0
    batches: list[BatchResult] = Field(default_factory=list)

    @classmethod
    def from_batches(cls, batches: list[BatchResult]) -> "DocumentExtractionResult":
        return cls(
            success=all(b.success for b in batches),
            total_batches=len(batches),
            failed_batches=sum(1 for b in batches if not b.success),
            total_sections=sum(b.sections_extracted for b in batches),
            total_entities=sum(b.entities_extracted for b in batches),
            total_timeline_events=sum(b.timeline_events_extracted for b in batches),
            total_risks=sum(b.risks_extracted for b in batches),
            total_conflicts=sum(b.conflicts_recorded for b in batches),
            batches=batches,
        )
