"""Batch segmentation of ordered pages for extraction.

Pages are grouped greedily into contiguous batches bounded by a word cap and
a page cap. A page is never split; a page larger than the word cap on its
own becomes a single-page batch.
"""

from typing import Any, Dict, List, Sequence

from tender_ai.core.exceptions import ValidationError
from tender_ai.schemas.batch import Batch, PageInput
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

PAGE_SEPARATOR = "\n\n---\n\n"


def count_words(text: str) -> int:
    """Count whitespace-separated tokens (0 for blank text)."""
    if not text or not text.strip():
        return 0
    return len(text.split())


class BatchSegmenter:
    """Partitions ordered pages into extraction batches."""

    def __init__(self, word_cap: int = 5000, max_pages_per_batch: int = 10):
        """Initialize the segmenter.

        Args:
            word_cap: Maximum words per batch (a single oversized page may exceed it)
            max_pages_per_batch: Maximum pages per batch

        Raises:
            ValidationError: If either cap is below 1
        """
        if word_cap < 1 or max_pages_per_batch < 1:
            raise ValidationError(
                f"Invalid batch configuration: word_cap={word_cap}, "
                f"max_pages_per_batch={max_pages_per_batch}"
            )
        self.word_cap = word_cap
        self.max_pages_per_batch = max_pages_per_batch

    def calculate_batches(self, pages: Sequence[PageInput]) -> List[Batch]:
        """Group pages into batches, preserving order.

        Args:
            pages: Pages ordered by page number

        Returns:
            Batches covering every page exactly once

        Example:
            >>> segmenter = BatchSegmenter(word_cap=100, max_pages_per_batch=2)
            >>> pages = [PageInput(page_number=i, text="w " * 40, word_count=40) for i in (1, 2, 3)]
            >>> [b.page_numbers for b in segmenter.calculate_batches(pages)]
            [[1, 2], [3]]
        """
        batches: List[Batch] = []
        current: List[PageInput] = []
        current_words = 0

        def close() -> None:
            nonlocal current, current_words
            if current:
                batches.append(self._build_batch(len(batches) + 1, current, current_words))
            current = []
            current_words = 0

        for page in pages:
            words = page.word_count

            if current and current_words + words > self.word_cap:
                close()

            current.append(page)
            current_words += words

            if words > self.word_cap and len(current) == 1:
                # Oversized page stands alone
                close()
            elif len(current) >= self.max_pages_per_batch:
                close()

        close()

        LOGGER.debug(
            f"Segmented {len(pages)} pages into {len(batches)} batches",
            extra={"word_cap": self.word_cap, "max_pages_per_batch": self.max_pages_per_batch},
        )
        return batches

    @staticmethod
    def _build_batch(batch_number: int, pages: List[PageInput], total_words: int) -> Batch:
        consolidated = PAGE_SEPARATOR.join(
            f"Page {page.page_number}:\n{page.text}" for page in pages
        )
        return Batch(
            batch_number=batch_number,
            pages=list(pages),
            total_words=total_words,
            consolidated_text=consolidated,
        )

    @staticmethod
    def summarize(batches: Sequence[Batch]) -> Dict[str, Any]:
        """Log-ready statistics for a batch plan.

        Returns:
            Dict with total_batches, total_pages, total_words and
            min/max/avg words per batch
        """
        if not batches:
            return {
                "total_batches": 0,
                "total_pages": 0,
                "total_words": 0,
                "min_words": 0,
                "max_words": 0,
                "avg_words": 0,
            }
        words = [batch.total_words for batch in batches]
        return {
            "total_batches": len(batches),
            "total_pages": sum(len(batch.pages) for batch in batches),
            "total_words": sum(words),
            "min_words": min(words),
            "max_words": max(words),
            "avg_words": round(sum(words) / len(batches)),
        }
