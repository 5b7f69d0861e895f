"""Unit tests for BatchSegmenter.

Covers the greedy word/page caps, oversized pages and batch text layout.
"""

import pytest

from tender_ai.core.exceptions import ValidationError
from tender_ai.services.pipeline.batch_segmenter import PAGE_SEPARATOR, BatchSegmenter, count_words


class TestCountWords:

    def test_blank_text_has_no_words(self):
        assert count_words("") == 0
        assert count_words("   \n\t ") == 0

    def test_counts_whitespace_tokens(self):
        assert count_words("Prazo de entrega:\n 5 dias úteis") == 6


class TestCalculateBatches:

    @pytest.fixture
    def segmenter(self):
        return BatchSegmenter(word_cap=100, max_pages_per_batch=3)

    def test_empty_input_gives_no_batches(self, segmenter):
        assert segmenter.calculate_batches([]) == []

    def test_word_cap_closes_batch(self, segmenter, make_pages):
        batches = segmenter.calculate_batches(make_pages(40, 40, 40))

        assert [b.page_numbers for b in batches] == [[1, 2], [3]]
        assert [b.total_words for b in batches] == [80, 40]

    def test_exact_cap_fits(self, segmenter, make_pages):
        batches = segmenter.calculate_batches(make_pages(50, 50, 10))

        assert [b.page_numbers for b in batches] == [[1, 2], [3]]

    def test_page_cap_closes_batch(self, segmenter, make_pages):
        batches = segmenter.calculate_batches(make_pages(1, 1, 1, 1, 1, 1, 1))

        assert [b.page_numbers for b in batches] == [[1, 2, 3], [4, 5, 6], [7]]

    def test_oversized_page_stands_alone(self, segmenter, make_pages):
        batches = segmenter.calculate_batches(make_pages(30, 250, 30))

        assert [b.page_numbers for b in batches] == [[1], [2], [3]]
        assert batches[1].total_words == 250

    def test_every_page_exactly_once_in_order(self, segmenter, make_pages):
        pages = make_pages(10, 90, 5, 120, 0, 0, 60, 60)
        batches = segmenter.calculate_batches(pages)

        flattened = [n for b in batches for n in b.page_numbers]
        assert flattened == [p.page_number for p in pages]
        assert [b.batch_number for b in batches] == list(range(1, len(batches) + 1))
        for batch in batches:
            assert len(batch.pages) <= 3
            assert batch.total_words <= 100 or len(batch.pages) == 1

    def test_blank_pages_are_kept(self, segmenter, make_pages):
        batches = segmenter.calculate_batches(make_pages(0, 0))

        assert batches[0].page_numbers == [1, 2]
        assert batches[0].total_words == 0

    def test_consolidated_text_labels_pages(self, make_pages):
        pages = make_pages(2, 3, start=7)
        batch = BatchSegmenter(word_cap=100).calculate_batches(pages)[0]

        assert batch.consolidated_text == (
            f"Page 7:\n{pages[0].text}{PAGE_SEPARATOR}Page 8:\n{pages[1].text}"
        )
        assert batch.page_range == "7-8"


class TestConfiguration:

    @pytest.mark.parametrize("word_cap,max_pages", [(0, 10), (100, 0), (-5, -1)])
    def test_rejects_caps_below_one(self, word_cap, max_pages):
        with pytest.raises(ValidationError):
            BatchSegmenter(word_cap=word_cap, max_pages_per_batch=max_pages)


class TestSummarize:

    def test_empty_plan(self):
        summary = BatchSegmenter.summarize([])
        assert summary["total_batches"] == 0
        assert summary["avg_words"] == 0

    def test_statistics(self, make_pages):
        batches = BatchSegmenter(word_cap=100).calculate_batches(make_pages(60, 60, 20))
        summary = BatchSegmenter.summarize(batches)

        assert summary == {
            "total_batches": 2,
            "total_pages": 3,
            "total_words": 140,
            "min_words": 60,
            "max_words": 80,
            "avg_words": 70,
        }
