"""Composition root.

``MemoryEngine`` wires the embedding cache, embedding service, detector
and memory service from config objects. Collaborators can be injected
(tests pass fakes); anything not injected is built from config, with
Redis-backed storage when ``redis_url`` is given.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis  # type: ignore[import-untyped]

from mnemovec.config import CacheConfig
from mnemovec.config import DetectionConfig
from mnemovec.config import EmbeddingConfig
from mnemovec.config import LLMConfig
from mnemovec.config import SearchConfig
from mnemovec.embeddings.cache import EmbeddingCache
from mnemovec.embeddings.durable import DurableTier
from mnemovec.embeddings.durable import RedisDurableTier
from mnemovec.embeddings.generators import build_embedding_generator
from mnemovec.embeddings.generators import EmbeddingGenerator
from mnemovec.embeddings.service import EmbeddingService
from mnemovec.engine.detector import ContradictionDetector
from mnemovec.engine.llm_adapters import build_llm_adapter
from mnemovec.engine.llm_adapters import LLMAdapter
from mnemovec.memory.operations import MemoryService
from mnemovec.memory.store import MemoryStore
from mnemovec.memory.store import RedisMemoryStore

logger = logging.getLogger(__name__)


class MemoryEngine:
    """Owns the long-lived components and their lifecycle."""

    def __init__(
        self,
        *,
        cache: EmbeddingCache,
        embeddings: EmbeddingService,
        detector: ContradictionDetector,
        memories: MemoryService,
        store: MemoryStore,
    ) -> None:
        self.cache = cache
        self.embeddings = embeddings
        self.detector = detector
        self.memories = memories
        self.store = store
        self._initialized = False

    @classmethod
    def build(
        cls,
        *,
        redis_url: str | None = None,
        embedding_config: EmbeddingConfig | None = None,
        cache_config: CacheConfig | None = None,
        detection_config: DetectionConfig | None = None,
        search_config: SearchConfig | None = None,
        llm_config: LLMConfig | None = None,
        store: MemoryStore | None = None,
        durable: DurableTier | None = None,
        generator: EmbeddingGenerator | None = None,
        llm: LLMAdapter | None = None,
    ) -> MemoryEngine:
        """Assemble an engine; call ``initialize()`` before use."""
        embedding_cfg = embedding_config or EmbeddingConfig()
        cache_cfg = cache_config or CacheConfig()
        llm_cfg = llm_config or LLMConfig()

        if store is None:
            if redis_url is None:
                raise ValueError("redis_url is required when no store is injected")
            store = RedisMemoryStore(
                Redis.from_url(redis_url), prefix=cache_cfg.key_prefix
            )
        if durable is None and redis_url is not None:
            durable = RedisDurableTier(
                Redis.from_url(redis_url), prefix=cache_cfg.key_prefix
            )

        generator = generator or build_embedding_generator(embedding_cfg)
        cache = EmbeddingCache(
            generator.dimension,
            max_entries=cache_cfg.max_entries,
            max_age_seconds=cache_cfg.max_age_seconds,
            durable=durable,
        )
        embeddings = EmbeddingService(generator, cache)
        detector = ContradictionDetector(
            llm or build_llm_adapter(llm_cfg),
            config=detection_config,
            llm_config=llm_cfg,
        )
        memories = MemoryService(
            store,
            embeddings,
            detector=detector,
            search_config=search_config,
        )
        return cls(
            cache=cache,
            embeddings=embeddings,
            detector=detector,
            memories=memories,
            store=store,
        )

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.cache.initialize()
        self._initialized = True
        logger.info(
            "Memory engine ready (dimension=%d, durable cache=%s)",
            self.cache.dimension,
            self.cache.durable_active,
        )

    async def dispose(self) -> None:
        """Release the cache, durable tier and store connections."""
        await self.cache.dispose()
        await self.store.close()
        self._initialized = False
