"""Tests for cosine similarity and threshold / top-k ranking."""

from __future__ import annotations

import math

import pytest

from silo.src.core.retriever import Retriever, cosine_similarity
from silo.src.models.embedding_models import EmbeddingRecord, ItemMetadata


def _record(item_id: str, vector: list[float]) -> EmbeddingRecord:
    return EmbeddingRecord(item_id=item_id, vector=vector, metadata=ItemMetadata(title=item_id))


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 1.0], [10.0, 10.0]) == pytest.approx(1.0)

    @pytest.mark.parametrize(
        "a, b",
        [
            ([], []),
            ([], [1.0]),
            ([1.0, 0.0], [1.0, 0.0, 0.0]),
            ([0.0, 0.0], [1.0, 1.0]),
        ],
    )
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0

    def test_always_within_bounds(self):
        vectors = [[1e300, 1e300], [-3.0, 7.5], [0.1, -0.2], [5.0, 5.0000001], [-1e-300, 1e-300]]
        for a in vectors:
            for b in vectors:
                s = cosine_similarity(a, b)
                assert -1.0 <= s <= 1.0
                assert math.isfinite(s)


class TestRetriever:
    def test_threshold_is_strict(self):
        query = [1.0, 0.0]
        boundary = cosine_similarity(query, [1.0, 1.0])
        records = [_record("exact", [1.0, 1.0]), _record("above", [1.0, 0.1])]

        matches = Retriever(threshold=boundary, top_k=5).retrieve(query, records)

        assert [m.record.item_id for m in matches] == ["above"]
        assert all(m.similarity > boundary for m in matches)

    def test_caps_at_top_k_in_descending_order(self):
        query = [1.0, 0.0]
        records = [_record(f"r{i}", [1.0, i * 0.1]) for i in range(8)]

        matches = Retriever(threshold=0.3, top_k=5).retrieve(query, records)

        assert len(matches) == 5
        assert [m.record.item_id for m in matches] == ["r0", "r1", "r2", "r3", "r4"]
        sims = [m.similarity for m in matches]
        assert sims == sorted(sims, reverse=True)

    def test_below_threshold_excluded(self):
        matches = Retriever(threshold=0.3, top_k=5).retrieve([1.0, 0.0], [_record("low", [0.2, 1.0]), _record("neg", [-1.0, 0.0])])
        assert matches == []

    def test_dimension_mismatch_scores_zero(self):
        matches = Retriever(threshold=0.3, top_k=5).retrieve([1.0, 0.0], [_record("other-model", [1.0, 0.0, 0.0]), _record("ok", [1.0, 0.0])])
        assert [m.record.item_id for m in matches] == ["ok"]

    def test_empty_records(self):
        assert Retriever().retrieve([1.0, 0.0], []) == []

    def test_defaults_come_from_settings(self):
        query = [1.0, 0.0]
        records = [_record(f"r{i}", [1.0, i * 0.01]) for i in range(10)]
        assert len(Retriever().retrieve(query, records)) == 5
