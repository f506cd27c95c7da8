"""Cache-aware embedding generation.

``EmbeddingService`` validates input, consults the ``EmbeddingCache``,
and falls back to the ``EmbeddingGenerator``. Generation failures are
surfaced once as ``GenerationFailed``; nothing here retries.
"""

from __future__ import annotations

from collections.abc import Sequence
from time import perf_counter

from mnemovec.embeddings.cache import EmbeddingCache
from mnemovec.embeddings.generators import EmbeddingGenerator
from mnemovec.errors import DimensionMismatch
from mnemovec.errors import GenerationFailed
from mnemovec.errors import InvalidInput
from mnemovec.observability import record_latency


def require_text(text: object, *, field: str = "text") -> str:
    """Return *text* if it is a non-blank string, else raise ``InvalidInput``."""
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput(f"{field} must be a non-empty string")
    return text


class EmbeddingService:
    """Generate embeddings through the two-tier cache."""

    def __init__(self, generator: EmbeddingGenerator, cache: EmbeddingCache) -> None:
        generator_dim = getattr(generator, "dimension", cache.dimension)
        if generator_dim != cache.dimension:
            raise ValueError(
                f"generator dimension {generator_dim} does not match "
                f"cache dimension {cache.dimension}"
            )
        self._generator = generator
        self._cache = cache

    @property
    def dimension(self) -> int:
        return self._cache.dimension

    @property
    def cache(self) -> EmbeddingCache:
        return self._cache

    async def generate(self, text: str, *, use_cache: bool = True) -> list[float]:
        """Return the embedding for *text*.

        Concurrent calls for the same uncached text trigger one
        generator call.
        """
        require_text(text)
        start = perf_counter()
        ok = False
        try:
            if use_cache:
                vector = await self._cache.get_or_generate(text, self._generate_one)
            else:
                vector = await self._generate_one(text)
            ok = True
            return vector
        finally:
            record_latency(
                operation="embedding.generate",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def generate_batch(
        self, texts: Sequence[str], *, use_cache: bool = True
    ) -> list[list[float]]:
        """Return embeddings for *texts*, in order.

        Cached texts are served from the cache, texts already being
        generated join the in-flight generation, and the remaining unique
        texts go to the generator in one batch call. While that call runs
        its texts are in flight, so ``generate`` joins it. Every generated
        vector is dimension-checked before any of them is cached.
        """
        if isinstance(texts, str) or not texts:
            raise InvalidInput("texts must be a non-empty sequence of strings")
        for index, text in enumerate(texts):
            require_text(text, field=f"texts[{index}]")

        start = perf_counter()
        ok = False
        try:
            if use_cache:
                vectors = await self._cache.get_or_generate_many(texts, self._call_batch)
            else:
                unique = list(dict.fromkeys(texts))
                generated = dict(zip(unique, await self._call_batch(unique)))
                vectors = [list(generated[text]) for text in texts]
            ok = True
            return vectors
        finally:
            record_latency(
                operation="embedding.generate_batch",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _generate_one(self, text: str) -> list[float]:
        try:
            vector = await self._generator.generate(text)
        except GenerationFailed:
            raise
        except Exception as exc:
            raise GenerationFailed(f"embedding generation failed: {exc}") from exc
        return self._checked(vector)

    async def _call_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await self._generator.generate_batch(texts)
        except GenerationFailed:
            raise
        except Exception as exc:
            raise GenerationFailed(f"batch embedding generation failed: {exc}") from exc
        if len(vectors) != len(texts):
            raise GenerationFailed(
                f"generator returned {len(vectors)} embeddings for {len(texts)} texts"
            )
        return [self._checked(vector) for vector in vectors]

    def _checked(self, vector: Sequence[float]) -> list[float]:
        if len(vector) != self.dimension:
            raise DimensionMismatch(self.dimension, len(vector))
        return [float(x) for x in vector]
