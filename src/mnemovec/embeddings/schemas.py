"""Embedding cache data models."""

from __future__ import annotations

import time

from pydantic import BaseModel
from pydantic import Field


class CacheEntry(BaseModel):
    """A cached embedding keyed by the exact text it was generated from."""

    text: str = Field(description="Exact source text; the cache key.")
    vector: list[float] = Field(description="Embedding vector for the text.")
    inserted_at: float = Field(
        default_factory=time.time,
        description="Unix epoch when the entry was written.",
    )


class CacheStats(BaseModel):
    """Point-in-time cache statistics."""

    count: int = Field(description="Number of entries in the in-memory tier.")
    oldest_entry: float | None = Field(
        default=None,
        description="Oldest insertion time across both tiers.",
    )
    newest_entry: float | None = Field(
        default=None,
        description="Newest insertion time across both tiers.",
    )
    approx_memory_bytes: int = Field(
        default=0,
        description="Rough size of the in-memory tier (8 bytes per float + overhead).",
    )
