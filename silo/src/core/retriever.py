"""
Silo - Retriever
=================
Brute-force cosine ranking of one user's stored embeddings against a
query vector.  A user holds tens to hundreds of records, so every record
is scored; there is no approximate index.

Ranking rule:
    1. Score every record with cosine similarity.
    2. Sort descending.
    3. Keep scores strictly greater than ``RELEVANCE_THRESHOLD`` (0.3).
    4. Truncate to ``TOP_K`` (5).

An empty result is a normal outcome; the fallback chain treats it as
"insufficient context" and moves on.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from silo.config.settings import settings
from silo.src.models.embedding_models import EmbeddingRecord, ScoredRecord
from silo.src.utils.logger import get_logger

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    ``dot(a, b) / (||a|| * ||b||)`` clipped to [-1, 1].

    Returns 0.0 when either vector is empty, the dimensions differ, or
    either norm is zero.  A dimension mismatch means the store holds
    records from another embedding model; that must not crash a query.
    """
    if len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    if not np.isfinite(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


class Retriever:
    """
    Parameters
    ----------
    threshold
        Exclusive minimum similarity.  Defaults to ``settings.RELEVANCE_THRESHOLD``.
    top_k
        Maximum matches returned.  Defaults to ``settings.TOP_K``.
    """

    __slots__ = ("_threshold", "_top_k")

    def __init__(self, threshold: float | None = None, top_k: int | None = None) -> None:
        self._threshold = settings.RELEVANCE_THRESHOLD if threshold is None else threshold
        self._top_k = top_k or settings.TOP_K


    def retrieve(self, query_vector: Sequence[float], records: Sequence[EmbeddingRecord]) -> list[ScoredRecord]:
        """Rank *records* against *query_vector*; see module docstring for the rule."""
        if not records:
            return []

        scored = [ScoredRecord(record=r, similarity=cosine_similarity(query_vector, r.vector)) for r in records]
        mismatched = sum(1 for r in records if len(r.vector) != len(query_vector))
        if mismatched:
            logger.warning("[RETRIEVE] %d/%d record(s) have a dimension mismatch (query dim=%d) — scored 0.", mismatched, len(records), len(query_vector))

        scored.sort(key=lambda s: s.similarity, reverse=True)
        matches = [s for s in scored if s.similarity > self._threshold][: self._top_k]

        logger.debug("[RETRIEVE] %d/%d passed threshold (%.2f), returning top %d.", sum(1 for s in scored if s.similarity > self._threshold), len(scored), self._threshold, len(matches))
        return matches
