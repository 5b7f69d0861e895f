"""Grounded chat models."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SimilarPage(BaseModel):
    """A page ranked by cosine similarity against a query."""

    page_id: Optional[UUID] = None
    page_number: int
    text: str
    similarity: float


class SourceSnippet(BaseModel):
    page_number: int
    excerpt: str
    similarity: float


class ChatResponse(BaseModel):
    message_id: UUID
    conversation_id: UUID
    content: str
    source_pages_used: list[int] = Field(default_factory=list)
    source_snippets: list[SourceSnippet] = Field(default_factory=list)


class RetrievalStatus(BaseModel):
    total_pages: int = 0
    embedded_pages: int = 0
    ready: bool = False


class EmbeddingResult(BaseModel):
    created: int = 0
    skipped: int = 0
