"""Threshold-based nearest-neighbour search over a vector corpus.

The search keeps a bounded min-heap of the best ``limit`` matches. Once
the heap is full its minimum becomes the floor a new candidate must
beat, so clearly worse candidates are dropped without re-sorting. The
small heap is sorted once before returning.
"""

from __future__ import annotations

import heapq
import logging
import math
from collections.abc import Collection
from collections.abc import Iterable
from collections.abc import Sequence
from dataclasses import dataclass

from mnemovec.errors import DimensionMismatch
from mnemovec.vector.ops import cosine_similarity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorpusEntry:
    """One searchable item: an id, its vector, and the text it encodes."""

    id: str
    vector: Sequence[float] | None
    content: str = ""


@dataclass(frozen=True)
class SimilarityMatch:
    """A corpus entry that scored at or above the search threshold."""

    id: str
    score: float
    content: str


def find_similar(
    query: Sequence[float],
    corpus: Iterable[CorpusEntry],
    *,
    threshold: float = 0.7,
    limit: int = 10,
    exclude_ids: Collection[str] | None = None,
) -> list[SimilarityMatch]:
    """Return up to *limit* matches scoring ``>= threshold``, best first.

    Entries without a vector are skipped. Entries whose vector length
    differs from the query are skipped with a warning. Equal scores keep
    corpus iteration order.
    """
    if limit <= 0:
        return []
    excluded = set(exclude_ids or ())

    # Heap items are (score, -position, match): the root is the lowest score,
    # and among equal scores the latest corpus entry, which is evicted first.
    heap: list[tuple[float, int, SimilarityMatch]] = []
    floor = threshold

    for position, entry in enumerate(corpus):
        if entry.id in excluded or entry.vector is None:
            continue
        try:
            score = cosine_similarity(query, entry.vector)
        except DimensionMismatch as exc:
            logger.warning("Skipping corpus entry %s: %s", entry.id, exc)
            continue

        if score < floor:
            continue

        item = (score, -position, SimilarityMatch(entry.id, score, entry.content))
        if len(heap) < limit:
            heapq.heappush(heap, item)
        elif score > heap[0][0]:
            heapq.heapreplace(heap, item)
        else:
            continue

        if len(heap) == limit:
            floor = max(threshold, heap[0][0])

    heap.sort(key=lambda item: (-item[0], -item[1]))
    return [match for _, _, match in heap]


def top_n_similar(
    query: Sequence[float],
    corpus: Iterable[CorpusEntry],
    n: int,
    *,
    exclude_ids: Collection[str] | None = None,
) -> list[SimilarityMatch]:
    """Rank the whole corpus and return the best *n*, with no threshold."""
    return find_similar(
        query,
        corpus,
        threshold=-math.inf,
        limit=n,
        exclude_ids=exclude_ids,
    )
