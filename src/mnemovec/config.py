"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem.
No env-var loading or YAML parsing. Just plain defaults that can
be overridden at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass

_THIRTY_DAYS = 30 * 24 * 60 * 60


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding backend settings.

    ``dimension`` is the system-wide vector length: every cached or stored
    vector must match it exactly.
    """

    provider: str = "hashing"
    model: str = "text-embedding-3-small"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    dimension: int = 384
    timeout_seconds: float = 30.0
    # Bounded retry with exponential backoff for the HTTP backend
    max_retries: int = 3
    backoff_base_seconds: float = 1.0


@dataclass(frozen=True)
class CacheConfig:
    """Bounds for the two-tier embedding cache."""

    max_entries: int = 1000
    max_age_seconds: float = _THIRTY_DAYS
    key_prefix: str = "mnemovec"


@dataclass(frozen=True)
class DetectionConfig:
    """Thresholds for the duplicate / contradiction pipeline."""

    candidate_threshold: float = 0.70
    duplicate_threshold: float = 0.85
    candidate_limit: int = 10


@dataclass(frozen=True)
class SearchConfig:
    """Defaults for corpus-wide semantic search."""

    threshold: float = 0.7
    limit: int = 20


@dataclass(frozen=True)
class LLMConfig:
    """LLM provider settings used for contradiction classification."""

    provider: str = "openai"
    model: str = "gpt-4"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.2
    max_tokens: int = 512
    timeout_seconds: float = 30.0
