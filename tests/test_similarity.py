"""Tests for cosine scoring and top-K ranking."""
import math

import pytest

from elearn.db import Chunk
from elearn.rag.similarity import (
    ScoredChunk,
    cosine_similarity,
    rank,
    score_candidates,
    top_k,
)


def _chunk(index: int) -> Chunk:
    return Chunk(id=f"c{index}", document_id="doc", content=f"chunk {index}", chunk_index=index)


def test_self_similarity_is_one():
    v = [0.3, -1.2, 4.5, 0.0, 2.2]
    assert cosine_similarity(v, v) == pytest.approx(1.0)


def test_orthogonal_vectors_score_zero():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0


def test_opposite_vectors_score_minus_one():
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)


def test_length_mismatch_scores_exactly_zero():
    assert cosine_similarity([1.0, 0.0, 0.0], [1.0, 0.0]) == 0.0


def test_zero_norm_scores_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([1.0, 1.0], [0.0, 0.0]) == 0.0


def test_empty_vectors_score_zero():
    assert cosine_similarity([], []) == 0.0


def test_non_finite_scores_zero():
    assert cosine_similarity([math.inf, 1.0], [1.0, 1.0]) == 0.0


def test_top_k_larger_than_candidates_returns_all_sorted():
    scored = [ScoredChunk(_chunk(i), s) for i, s in enumerate([0.1, 0.9, -0.5, 0.4])]
    result = top_k(scored, 10)

    assert [s.score for s in result] == [0.9, 0.4, 0.1, -0.5]


def test_top_k_truncates_and_handles_non_positive_k():
    scored = [ScoredChunk(_chunk(i), s) for i, s in enumerate([0.1, 0.9, 0.4])]

    assert [s.chunk.id for s in top_k(scored, 2)] == ["c1", "c2"]
    assert top_k(scored, 0) == []
    assert top_k([], 3) == []


def test_top_k_is_stable_for_ties():
    scored = [ScoredChunk(_chunk(i), 0.5) for i in range(5)]
    first = top_k(scored, 5)
    second = top_k(scored, 5)

    assert [s.chunk.id for s in first] == ["c0", "c1", "c2", "c3", "c4"]
    assert first == second


def test_score_candidates_skips_chunks_without_vectors():
    candidates = [(_chunk(0), [1.0, 0.0]), (_chunk(1), None), (_chunk(2), [0.0, 1.0])]
    scored = score_candidates([1.0, 0.0], candidates)

    assert [s.chunk.id for s in scored] == ["c0", "c2"]


def test_rank_three_chunks_top_two():
    candidates = [
        (_chunk(1), [1.0, 0.0]),
        (_chunk(2), [0.0, 1.0]),
        (_chunk(3), [0.9, 0.1]),
    ]
    result = rank([1.0, 0.0], candidates, 2)

    assert [s.chunk.id for s in result] == ["c1", "c3"]
    assert result[0].score == pytest.approx(1.0)
    assert result[1].score == pytest.approx(0.9 / math.sqrt(0.82))
    assert round(result[1].score, 3) == 0.994
