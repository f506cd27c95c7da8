"""Vector math on plain ``list[float]`` values.

Every binary operation raises ``DimensionMismatch`` when the operands
have different lengths. Reductions walk the operands once with no
per-element temporaries so they stay cheap for large dimensions.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from mnemovec.errors import DimensionMismatch
from mnemovec.errors import InvalidInput

logger = logging.getLogger(__name__)

Vector = list[float]


def _check_same_length(a: Sequence[float], b: Sequence[float]) -> None:
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    """Sum of element-wise products."""
    _check_same_length(a, b)
    total = 0.0
    for x, y in zip(a, b):
        total += x * y
    return total


def magnitude(vector: Sequence[float]) -> float:
    """Euclidean length of *vector*."""
    total = 0.0
    for x in vector:
        total += x * x
    return math.sqrt(total)


def normalize(vector: Sequence[float]) -> Vector:
    """Return *vector* scaled to unit length.

    Raises ``InvalidInput`` for a zero vector, which has no direction.
    """
    mag = magnitude(vector)
    if mag == 0.0:
        raise InvalidInput("Cannot normalize a zero vector")
    return [x / mag for x in vector]


def add(a: Sequence[float], b: Sequence[float]) -> Vector:
    _check_same_length(a, b)
    return [x + y for x, y in zip(a, b)]


def subtract(a: Sequence[float], b: Sequence[float]) -> Vector:
    _check_same_length(a, b)
    return [x - y for x, y in zip(a, b)]


def scale(vector: Sequence[float], scalar: float) -> Vector:
    return [x * scalar for x in vector]


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between *a* and *b*."""
    _check_same_length(a, b)
    total = 0.0
    for x, y in zip(a, b):
        diff = x - y
        total += diff * diff
    return math.sqrt(total)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*, in ``[-1, 1]``.

    Returns ``0.0`` when either vector has zero magnitude so that empty
    vectors never outrank real matches.
    """
    _check_same_length(a, b)
    dot_ab = 0.0
    sq_a = 0.0
    sq_b = 0.0
    for x, y in zip(a, b):
        dot_ab += x * y
        sq_a += x * x
        sq_b += y * y
    if sq_a == 0.0 or sq_b == 0.0:
        return 0.0
    score = dot_ab / (math.sqrt(sq_a) * math.sqrt(sq_b))
    # Rounding can push identical vectors marginally past 1.0
    return max(-1.0, min(1.0, score))


def batch_cosine_similarity(
    query: Sequence[float], vectors: Sequence[Sequence[float]]
) -> list[float]:
    """Score every vector against *query*, preserving input order.

    Vectors whose length differs from the query score ``0.0``.
    """
    scores: list[float] = []
    for index, vector in enumerate(vectors):
        try:
            scores.append(cosine_similarity(query, vector))
        except DimensionMismatch as exc:
            logger.warning("Scoring vector %d as 0.0: %s", index, exc)
            scores.append(0.0)
    return scores
