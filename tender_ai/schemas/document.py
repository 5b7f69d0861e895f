"""Request and result models for the exposed document operations."""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from tender_ai.schemas.enums import DocumentStatus
from tender_ai.schemas.extraction import BatchResult


class ProcessingConfig(BaseModel):
    """Per-run segmentation settings."""

    word_cap: int = Field(default=5000, ge=1)
    max_pages_per_batch: int = Field(default=10, ge=1)

    @classmethod
    def from_settings(cls) -> "ProcessingConfig":
        from tender_ai.core.config import settings

        return cls(
            word_cap=settings.pipeline.word_cap,
            max_pages_per_batch=settings.pipeline.max_pages_per_batch,
        )


class ProcessingTotals(BaseModel):
    pages: int = 0
    batches: int = 0
    failed_batches: int = 0
    sections: int = 0
    entities: int = 0
    timeline_events: int = 0
    risks: int = 0
    conflicts: int = 0


class ProcessingResult(BaseModel):
    document_id: UUID
    status: DocumentStatus
    success: bool
    totals: ProcessingTotals = Field(default_factory=ProcessingTotals)
    batches: list[BatchResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    retrieval: Optional[dict[str, Any]] = None
    processing_time_ms: int = 0


class PageStats(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    pending: int = 0
    processing: int = 0


class StructureStats(BaseModel):
    total_sections: int = 0
    by_level: dict[str, int] = Field(default_factory=dict)
    max_depth: int = 0


class EntityStats(BaseModel):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)


class TimelineSummary(BaseModel):
    total_events: int = 0
    by_importance: dict[str, int] = Field(default_factory=dict)
    upcoming_critical: int = 0


class RiskSummary(BaseModel):
    total: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
    critical_count: int = 0


class DocumentStats(BaseModel):
    document_id: UUID
    status: DocumentStatus
    pages: PageStats = Field(default_factory=PageStats)
    structure: StructureStats = Field(default_factory=StructureStats)
    entities: EntityStats = Field(default_factory=EntityStats)
    timeline: TimelineSummary = Field(default_factory=TimelineSummary)
    risks: RiskSummary = Field(default_factory=RiskSummary)
