"""In-process latency and cache hit-rate counters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)

CACHE_TIERS = ("memory", "durable", "miss")


@dataclass
class LatencySummary:
    """Aggregated latency metrics for one operation."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_ms: float = 0.0


class _MetricsRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._latency: dict[str, LatencySummary] = {}
        self._cache: dict[str, int] = dict.fromkeys(CACHE_TIERS, 0)

    def record_latency(self, *, operation: str, duration_ms: float, ok: bool) -> None:
        duration = max(float(duration_ms), 0.0)
        with self._lock:
            summary = self._latency.setdefault(operation, LatencySummary())
            summary.count += 1
            if not ok:
                summary.error_count += 1
            summary.total_ms += duration
            summary.last_ms = duration
            summary.max_ms = max(summary.max_ms, duration)

        logger.debug(
            "latency operation=%s duration_ms=%.3f ok=%s",
            operation,
            duration,
            ok,
        )

    def record_cache_lookup(self, tier: str) -> None:
        if tier not in self._cache:
            raise ValueError(f"Unknown cache tier '{tier}'")
        with self._lock:
            self._cache[tier] += 1

    def latency_snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                operation: {
                    "count": s.count,
                    "error_count": s.error_count,
                    "avg_ms": round(s.total_ms / s.count if s.count else 0.0, 3),
                    "max_ms": round(s.max_ms, 3),
                    "last_ms": round(s.last_ms, 3),
                }
                for operation, s in sorted(self._latency.items())
            }

    def cache_snapshot(self) -> dict[str, float | int]:
        with self._lock:
            counts = dict(self._cache)
        lookups = sum(counts.values())
        hits = lookups - counts["miss"]
        return {
            **counts,
            "lookups": lookups,
            "hit_rate": round(hits / lookups, 4) if lookups else 0.0,
        }

    def reset(self) -> None:
        with self._lock:
            self._latency.clear()
            self._cache = dict.fromkeys(CACHE_TIERS, 0)


_RECORDER = _MetricsRecorder()


def record_latency(*, operation: str, duration_ms: float, ok: bool = True) -> None:
    """Record one latency sample."""
    _RECORDER.record_latency(operation=operation, duration_ms=duration_ms, ok=ok)


def record_cache_lookup(*, tier: str) -> None:
    """Count one cache lookup resolved by *tier* (``memory``, ``durable`` or ``miss``)."""
    _RECORDER.record_cache_lookup(tier)


def latency_metrics_snapshot() -> dict[str, dict[str, float | int]]:
    """Return current in-process latency aggregates."""
    return _RECORDER.latency_snapshot()


def cache_metrics_snapshot() -> dict[str, float | int]:
    """Return cache lookup counts per tier and the overall hit rate."""
    return _RECORDER.cache_snapshot()


def reset_metrics() -> None:
    """Clear all aggregates (test helper)."""
    _RECORDER.reset()
