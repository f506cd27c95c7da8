"""Embedding generator boundary and concrete backends.

The rest of the package only depends on the ``EmbeddingGenerator``
protocol. Backends raise ``GenerationFailed`` for any internal error.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import math
import re
from collections.abc import Sequence
from typing import Protocol
from typing import runtime_checkable
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from mnemovec.config import EmbeddingConfig
from mnemovec.errors import GenerationFailed

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingGenerator(Protocol):
    """Turns text into fixed-dimension vectors."""

    @property
    def dimension(self) -> int: ...

    async def generate(self, text: str) -> list[float]: ...

    async def generate_batch(self, texts: Sequence[str]) -> list[list[float]]: ...


# ---------------------------------------------------------------------------
# Feature hashing (offline, deterministic)
# ---------------------------------------------------------------------------

_WORD_RE = re.compile(r"[a-z0-9]+")


def _tokenize(text: str) -> list[str]:
    """Extract lowercase alphanumeric tokens from *text*."""
    return _WORD_RE.findall(text.lower())


class HashingEmbeddingGenerator:
    """Deterministic bag-of-words embeddings via signed feature hashing.

    Each token (and each adjacent token pair) is hashed into one of
    ``dimension`` buckets with a hash-derived sign, then the vector is
    L2-normalised. Texts sharing vocabulary score high; texts with no
    tokens map to the zero vector. Useful offline and in tests; it has
    no notion of synonyms.
    """

    def __init__(self, dimension: int = 384) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def generate(self, text: str) -> list[float]:
        return self._embed(text)

    async def generate_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:
        tokens = _tokenize(text)
        features = tokens + [f"{a}_{b}" for a, b in zip(tokens, tokens[1:])]
        vector = [0.0] * self._dimension
        for feature in features:
            digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "big")
            sign = 1.0 if value & 1 else -1.0
            # Bigrams weigh less than the words they join
            weight = 0.5 if "_" in feature else 1.0
            vector[(value >> 1) % self._dimension] += sign * weight
        norm = math.sqrt(sum(x * x for x in vector))
        if norm == 0.0:
            return vector
        return [x / norm for x in vector]


# ---------------------------------------------------------------------------
# OpenAI-compatible HTTP backend
# ---------------------------------------------------------------------------

_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class _RetryableError(Exception):
    pass


class OpenAICompatibleEmbeddingGenerator:
    """``/embeddings`` endpoint client with bounded exponential-backoff retry."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        dimension: int,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        backoff_base_seconds: float = 1.0,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._dimension = dimension
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._backoff_base = backoff_base_seconds

    @property
    def dimension(self) -> int:
        return self._dimension

    async def generate(self, text: str) -> list[float]:
        vectors = await self.generate_batch([text])
        return vectors[0]

    async def generate_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        payload = list(texts)
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(self._embed_sync, payload)
            except _RetryableError as exc:
                if attempt >= self._max_retries:
                    raise GenerationFailed(
                        f"embedding provider failed after {attempt + 1} attempts: {exc}"
                    ) from exc
                delay = self._backoff_base * (2**attempt)
                attempt += 1
                logger.warning(
                    "Embedding request failed (%s); retry %d/%d in %.1fs",
                    exc,
                    attempt,
                    self._max_retries,
                    delay,
                )
                await asyncio.sleep(delay)

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        body = {
            "model": self._model,
            "input": texts,
            "dimensions": self._dimension,
        }
        request = Request(
            url=f"{self._base_url}/embeddings",
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urlopen(request, timeout=self._timeout) as response:
                raw = response.read().decode("utf-8")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            message = f"provider HTTP {exc.code}: {detail[:200]}"
            if exc.code in _RETRYABLE_STATUS:
                raise _RetryableError(message) from exc
            raise GenerationFailed(message) from exc
        except URLError as exc:
            raise _RetryableError(f"provider network error: {exc.reason}") from exc
        except OSError as exc:
            raise _RetryableError(f"provider IO error: {exc}") from exc

        try:
            data = json.loads(raw)
            items = sorted(data["data"], key=lambda item: item["index"])
            vectors = [[float(x) for x in item["embedding"]] for item in items]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise GenerationFailed("provider response missing data[].embedding") from exc

        if len(vectors) != len(texts):
            raise GenerationFailed(
                f"provider returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        return vectors


def build_embedding_generator(config: EmbeddingConfig) -> EmbeddingGenerator:
    """Create a concrete generator from ``EmbeddingConfig``."""

    provider = config.provider.strip().lower()
    if provider == "hashing":
        return HashingEmbeddingGenerator(config.dimension)
    if provider == "openai":
        if not config.api_key:
            raise ValueError(
                "embedding_config.api_key is required when provider='openai'"
            )
        return OpenAICompatibleEmbeddingGenerator(
            model=config.model,
            api_key=config.api_key,
            dimension=config.dimension,
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
            backoff_base_seconds=config.backoff_base_seconds,
        )
    raise ValueError(
        f"Unsupported embedding_config.provider '{config.provider}'. "
        "Supported providers: hashing, openai."
    )
