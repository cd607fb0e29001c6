"""Cosine similarity scoring and top-K selection.

Pure functions with no shared state, safe to call from concurrent requests.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
import numpy as np

from elearn.db import Chunk


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk paired with its similarity to one query."""

    chunk: Chunk
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Vectors of different lengths, empty vectors and zero-norm vectors score
    exactly 0.0 instead of raising, so one malformed embedding cannot break
    a whole ranking.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    if not np.isfinite(score):
        return 0.0
    return score


def score_candidates(
    query: Sequence[float],
    candidates: Iterable[Tuple[Chunk, Optional[Sequence[float]]]],
) -> List[ScoredChunk]:
    """Score every candidate against the query, keeping input order.

    Chunks stored without a vector are skipped.
    """
    return [
        ScoredChunk(chunk=chunk, score=cosine_similarity(query, vector))
        for chunk, vector in candidates
        if vector is not None
    ]


def top_k(scored: Iterable[ScoredChunk], k: int) -> List[ScoredChunk]:
    """Return the ``min(k, n)`` best candidates, highest score first.

    The sort is stable, so equal scores keep their input order.
    """
    if k <= 0:
        return []
    return sorted(scored, key=lambda s: s.score, reverse=True)[:k]


def rank(
    query: Sequence[float],
    candidates: Iterable[Tuple[Chunk, Optional[Sequence[float]]]],
    k: int,
) -> List[ScoredChunk]:
    return top_k(score_candidates(query, candidates), k)
