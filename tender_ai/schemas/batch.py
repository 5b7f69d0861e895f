"""Page and batch models used by the segmenter and orchestrator."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PageText(BaseModel):
    """A page as returned by the text extractor (1-indexed, ordered)."""

    page_number: int = Field(..., ge=1)
    text: str = ""


class PageInput(BaseModel):
    """A persisted page handed to the segmenter."""

    id: Optional[UUID] = None
    page_number: int
    text: str = ""
    word_count: int = 0


class Batch(BaseModel):
    """A contiguous run of pages processed in one extraction cycle."""

    batch_number: int
    pages: list[PageInput] = Field(default_factory=list)
    total_words: int = 0
    consolidated_text: str = ""

    @property
    def page_numbers(self) -> list[int]:
        return [page.page_number for page in self.pages]

    @property
    def page_range(self) -> str:
        if not self.pages:
            return ""
        first, last = self.pages[0].page_number, self.pages[-1].page_number
        return str(first) if first == last else f"{first}-{last}"
