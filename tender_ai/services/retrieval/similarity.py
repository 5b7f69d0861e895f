"""Cosine similarity ranking over page embeddings."""

from typing import List, Sequence

import numpy as np

from tender_ai.schemas.chat import SimilarPage


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Raises:
        ValueError: If the vectors have different dimensions

    A zero-norm vector has similarity 0.0 with anything.
    """
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise ValueError(f"Dimension mismatch: {left.shape[0]} vs {right.shape[0]}")

    norm = np.linalg.norm(left) * np.linalg.norm(right)
    if norm == 0:
        return 0.0
    return float(np.dot(left, right) / norm)


def find_similar(
    query: Sequence[float],
    candidates: Sequence[SimilarPage],
    embeddings: Sequence[Sequence[float]],
    top_k: int = 5,
    min_similarity: float = 0.3,
) -> List[SimilarPage]:
    """Rank candidate pages against a query embedding.

    Args:
        query: Query embedding
        candidates: Pages aligned with ``embeddings`` (similarity is filled in)
        embeddings: One embedding per candidate
        top_k: Maximum number of pages returned
        min_similarity: Pages below this similarity are discarded

    Returns:
        At most ``top_k`` pages, descending by similarity
    """
    scored = []
    for candidate, embedding in zip(candidates, embeddings):
        similarity = cosine_similarity(query, embedding)
        if similarity >= min_similarity:
            scored.append(candidate.model_copy(update={"similarity": similarity}))

    scored.sort(key=lambda page: page.similarity, reverse=True)
    return scored[:top_k]
