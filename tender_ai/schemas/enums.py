"""Enumerations shared by schemas, models and services."""

from enum import Enum


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PageStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SectionLevel(str, Enum):
    """Structural levels, outermost first."""

    CHAPTER = "CHAPTER"
    SECTION = "SECTION"
    CLAUSE = "CLAUSE"
    SUBCLAUSE = "SUBCLAUSE"
    ITEM = "ITEM"

    @property
    def order(self) -> int:
        return list(SectionLevel).index(self)


class EntityType(str, Enum):
    DEADLINE = "DEADLINE"
    DATE = "DATE"
    OBLIGATION = "OBLIGATION"
    REQUIREMENT = "REQUIREMENT"
    PENALTY = "PENALTY"
    SANCTION = "SANCTION"
    RISK = "RISK"
    DELIVERY_RULE = "DELIVERY_RULE"
    TECHNICAL_CERTIFICATE = "TECHNICAL_CERTIFICATE"
    DOCUMENTATION = "DOCUMENTATION"
    OTHER = "OTHER"


PENALTY_TYPES = frozenset({EntityType.PENALTY, EntityType.SANCTION})
REQUIREMENT_TYPES = frozenset(
    {EntityType.REQUIREMENT, EntityType.TECHNICAL_CERTIFICATE, EntityType.DOCUMENTATION}
)


class RelationshipType(str, Enum):
    DEPENDS_ON = "DEPENDS_ON"
    TRIGGERS = "TRIGGERS"
    SAME_DATE = "SAME_DATE"
    SAME_VALUE = "SAME_VALUE"
    PREREQUISITE = "PREREQUISITE"
    CONSEQUENCE = "CONSEQUENCE"
    PENALTY_FOR = "PENALTY_FOR"
    REQUIRED_BY = "REQUIRED_BY"


class RequirementCategory(str, Enum):
    TECHNICAL = "TECHNICAL"
    QUALIFICATION = "QUALIFICATION"
    FISCAL = "FISCAL"
    LEGAL = "LEGAL"
    ECONOMIC = "ECONOMIC"
    OTHER = "OTHER"


class ResponsibleParty(str, Enum):
    BIDDER = "BIDDER"
    AGENCY = "AGENCY"
    BOTH = "BOTH"


class DateType(str, Enum):
    FIXED = "FIXED"
    RELATIVE = "RELATIVE"
    RANGE = "RANGE"


class EventType(str, Enum):
    SESSION_OPENING = "SESSION_OPENING"
    PROPOSAL_DEADLINE = "PROPOSAL_DEADLINE"
    CLARIFICATION_DEADLINE = "CLARIFICATION_DEADLINE"
    CHALLENGE_DEADLINE = "CHALLENGE_DEADLINE"
    DOCUMENT_SUBMISSION = "DOCUMENT_SUBMISSION"
    DELIVERY_DEADLINE = "DELIVERY_DEADLINE"
    CONTRACT_SIGNATURE = "CONTRACT_SIGNATURE"
    CONTRACT_START = "CONTRACT_START"
    CONTRACT_END = "CONTRACT_END"
    PAYMENT_DEADLINE = "PAYMENT_DEADLINE"
    WARRANTY_END = "WARRANTY_END"
    OTHER = "OTHER"


class Importance(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class OffsetUnit(str, Enum):
    DAYS = "DAYS"
    BUSINESS_DAYS = "BUSINESS_DAYS"
    WEEKS = "WEEKS"
    MONTHS = "MONTHS"


class OffsetDirection(str, Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Probability(str, Enum):
    CERTAIN = "CERTAIN"
    LIKELY = "LIKELY"
    POSSIBLE = "POSSIBLE"
    UNLIKELY = "UNLIKELY"


class RiskCategory(str, Enum):
    LEGAL = "LEGAL"
    FINANCIAL = "FINANCIAL"
    OPERATIONAL = "OPERATIONAL"
    TECHNICAL = "TECHNICAL"
    SCHEDULE = "SCHEDULE"
    QUALIFICATION = "QUALIFICATION"
    COMPLIANCE = "COMPLIANCE"
    CONTRACTUAL = "CONTRACTUAL"
    OTHER = "OTHER"


class ConflictType(str, Enum):
    VALUE_MISMATCH = "VALUE_MISMATCH"
    METADATA_CONFLICT = "METADATA_CONFLICT"


class ConflictResolution(str, Enum):
    KEPT_EXISTING = "KEPT_EXISTING"
    REPLACED_WITH_INCOMING = "REPLACED_WITH_INCOMING"
    MERGED = "MERGED"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
