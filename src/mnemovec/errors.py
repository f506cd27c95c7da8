"""Error taxonomy.

Invariant violations (``InvalidInput``, ``DimensionMismatch``) fail fast.
Availability failures of best-effort layers (``CacheError`` subclasses,
``ParseFailure``) are logged by their callers and degrade gracefully.
"""

from __future__ import annotations


class MnemovecError(Exception):
    """Base class for every error raised by this package."""


class InvalidInput(MnemovecError, ValueError):
    """Empty or malformed content, query, or field value."""


class DimensionMismatch(MnemovecError, ValueError):
    """A vector does not have the expected length."""

    def __init__(self, expected: int, actual: int, message: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            message or f"Vector dimension mismatch: expected {expected}, got {actual}"
        )


class GenerationFailed(MnemovecError):
    """The embedding generator could not produce a vector."""


class CacheError(MnemovecError):
    """Base class for durable cache tier failures."""


class CacheWriteFailed(CacheError):
    """A write to the durable cache tier failed."""


class CacheUnavailable(CacheError):
    """The durable cache tier could not be read or maintained."""


class ParseFailure(MnemovecError):
    """A classification response could not be decoded."""


class NotFound(MnemovecError, KeyError):
    """No memory exists with the given id."""

    def __init__(self, memory_id: str) -> None:
        self.memory_id = memory_id
        super().__init__(memory_id)

    def __str__(self) -> str:
        return f"Memory {self.memory_id} not found"
