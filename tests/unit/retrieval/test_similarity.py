"""Unit tests for cosine similarity ranking."""

import pytest

from tender_ai.schemas.chat import SimilarPage
from tender_ai.services.retrieval.similarity import cosine_similarity, find_similar


class TestCosineSimilarity:

    def test_identical_and_orthogonal(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


class TestFindSimilar:

    @pytest.fixture
    def candidates(self):
        return [SimilarPage(page_number=n, text=f"page {n}", similarity=0.0) for n in (1, 2, 3, 4)]

    def test_threshold_order_and_top_k(self, candidates):
        embeddings = [[1.0, 0.0], [0.8, 0.6], [0.0, 1.0], [0.6, 0.8]]

        pages = find_similar([1.0, 0.0], candidates, embeddings, top_k=2, min_similarity=0.3)

        assert [p.page_number for p in pages] == [1, 2]
        assert pages[0].similarity == pytest.approx(1.0)
        assert pages[1].similarity == pytest.approx(0.8)

    def test_nothing_above_threshold(self, candidates):
        embeddings = [[0.0, 1.0]] * 4

        assert find_similar([1.0, 0.0], candidates, embeddings) == []

    def test_candidates_are_not_mutated(self, candidates):
        find_similar([1.0, 0.0], candidates, [[1.0, 0.0]] * 4)

        assert all(c.similarity == 0.0 for c in candidates)
