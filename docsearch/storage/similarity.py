"""Similarity metrics and ranking."""

from __future__ import annotations

from enum import Enum
from typing import Sequence

import numpy as np

from docsearch.errors import EmbeddingDimensionMismatchError, InvalidInputError


class Metric(str, Enum):
    """Supported vector comparison metrics."""

    COSINE = "cosine"
    L2 = "l2"

    @property
    def higher_is_better(self) -> bool:
        return self is Metric.COSINE

    @classmethod
    def parse(cls, value: "Metric | str | None", default: "Metric | None" = None) -> "Metric":
        if value is None:
            return default or cls.COSINE
        if isinstance(value, Metric):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as e:
            raise InvalidInputError(f"Unsupported similarity metric: {value}", cause=e) from e


def as_matrix(vectors: Sequence[Sequence[float]], dimension: int) -> np.ndarray:
    """Stack vectors into an (N, dimension) float64 array."""
    if not vectors:
        return np.empty((0, dimension), dtype=np.float64)
    return np.asarray(vectors, dtype=np.float64).reshape(len(vectors), dimension)


def score_matrix(metric: Metric, query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Score every row of ``matrix`` against ``query`` in one pass.

    Cosine scores are clamped to [-1, 1]; rows or queries with zero norm
    score 0. L2 scores are Euclidean distances.
    """
    q = np.asarray(query, dtype=np.float64)
    if matrix.shape[1] != q.shape[0]:
        raise EmbeddingDimensionMismatchError(matrix.shape[1], q.shape[0])

    if metric is Metric.L2:
        return np.linalg.norm(matrix - q, axis=1)

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return np.clip(scores, -1.0, 1.0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """(A·B)/(‖A‖‖B‖), clamped to [-1, 1]. Zero vectors score 0."""
    return float(score_matrix(Metric.COSINE, a, as_matrix([b], len(b)))[0])


def l2_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance."""
    return float(score_matrix(Metric.L2, a, as_matrix([b], len(b)))[0])


def threshold_mask(metric: Metric, scores: np.ndarray, threshold: float | None) -> np.ndarray:
    """Similarity must reach the threshold; distance must not exceed it."""
    if threshold is None:
        return np.ones(scores.shape, dtype=bool)
    if metric.higher_is_better:
        return scores >= threshold
    return scores <= threshold


def passes_threshold(metric: Metric, value: float, threshold: float | None) -> bool:
    return bool(threshold_mask(metric, np.asarray([value]), threshold)[0])


def rank_order(metric: Metric, scores: np.ndarray, seqs: np.ndarray, limit: int) -> np.ndarray:
    """Positions of the best ``limit`` scores, best first.

    Equal scores keep insertion order (lower ``seqs`` first).
    """
    keys = -scores if metric.higher_is_better else scores
    # lexsort sorts by the last key first.
    return np.lexsort((seqs, keys))[:limit]
