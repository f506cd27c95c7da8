"""Two-tier embedding cache with in-flight request deduplication.

The fast tier is an insertion-ordered dict bounded to ``max_entries``;
when it overflows the oldest-inserted entry is evicted (FIFO). The
optional durable tier is written through on every ``set`` and consulted
on fast-tier misses; durable hits are promoted into the fast tier.

The durable tier is best-effort: initialisation, read and write failures
are logged and the cache keeps serving from memory.

``get_or_generate`` and ``get_or_generate_many`` share a pending table of
futures keyed by text so that concurrent callers for the same uncached
text share one generation, whether it was started alone or in a batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence

from mnemovec.embeddings.durable import DurableTier
from mnemovec.embeddings.schemas import CacheEntry
from mnemovec.embeddings.schemas import CacheStats
from mnemovec.errors import CacheError
from mnemovec.errors import CacheWriteFailed
from mnemovec.errors import DimensionMismatch
from mnemovec.observability import record_cache_lookup

logger = logging.getLogger(__name__)

# Rough per-entry overhead on top of 8 bytes per float
_ENTRY_OVERHEAD_BYTES = 100

Generate = Callable[[str], Awaitable[list[float]]]
GenerateMany = Callable[[list[str]], Awaitable[list[list[float]]]]


class EmbeddingCache:
    """Fast in-memory tier backed by an optional durable tier."""

    def __init__(
        self,
        dimension: int,
        *,
        max_entries: int = 1000,
        max_age_seconds: float = 30 * 24 * 60 * 60,
        durable: DurableTier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._dimension = dimension
        self._max_entries = max_entries
        self._max_age = max_age_seconds
        self._durable = durable
        self._durable_active = False
        self._initialized = False
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._pending: dict[str, asyncio.Future[list[float]]] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def durable_active(self) -> bool:
        """Whether the durable tier initialised and is in use."""
        return self._durable_active

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the durable tier and purge entries older than ``max_age``.

        Idempotent. A durable tier that fails to initialise is disabled
        for the lifetime of this cache instance.
        """
        if self._initialized:
            return
        self._initialized = True
        if self._durable is None:
            return
        try:
            await self._durable.initialize()
            purged = await self._durable.purge_older_than(self._clock() - self._max_age)
        except CacheError as exc:
            logger.warning(
                "Durable embedding cache unavailable, continuing in memory only: %s",
                exc,
            )
            return
        self._durable_active = True
        if purged:
            logger.info("Purged %d expired durable cache entries", purged)

    async def dispose(self) -> None:
        """Cancel in-flight generations and close the durable tier."""
        pending = list(self._pending.values())
        for future in pending:
            future.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()
        self._entries.clear()

        if self._durable is not None and self._durable_active:
            try:
                await self._durable.close()
            except Exception:
                logger.exception("Failed to close durable embedding cache")
        self._durable_active = False
        self._initialized = False

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get(self, text: str) -> list[float] | None:
        """Return the cached vector for *text*, or ``None``."""
        entry = self._entries.get(text)
        if entry is not None:
            record_cache_lookup(tier="memory")
            return list(entry.vector)

        stored = await self._durable_get(text)
        if stored is not None:
            self._insert(stored)
            record_cache_lookup(tier="durable")
            return list(stored.vector)

        record_cache_lookup(tier="miss")
        return None

    async def has(self, text: str) -> bool:
        if text in self._entries:
            return True
        return await self._durable_get(text) is not None

    def size(self) -> int:
        """Number of entries in the in-memory tier."""
        return len(self._entries)

    def pending_count(self) -> int:
        """Number of generations currently in flight."""
        return len(self._pending)

    def in_flight(self, text: str) -> asyncio.Future[list[float]] | None:
        """Return the unfinished generation for *text*, if any."""
        future = self._pending.get(text)
        if future is None or future.done():
            return None
        return future

    async def total_size(self) -> int:
        """Best estimate of the total entry count across both tiers."""
        total = len(self._entries)
        if self._durable_active:
            try:
                total = max(total, await self._durable.count())
            except CacheError as exc:
                logger.warning("Durable cache count failed: %s", exc)
        return total

    async def stats(self) -> CacheStats:
        oldest: float | None = None
        newest: float | None = None
        for entry in self._entries.values():
            if oldest is None or entry.inserted_at < oldest:
                oldest = entry.inserted_at
            if newest is None or entry.inserted_at > newest:
                newest = entry.inserted_at

        if self._durable_active:
            try:
                d_oldest, d_newest = await self._durable.timestamp_bounds()
            except CacheError as exc:
                logger.warning("Durable cache stats failed: %s", exc)
            else:
                if d_oldest is not None and (oldest is None or d_oldest < oldest):
                    oldest = d_oldest
                if d_newest is not None and (newest is None or d_newest > newest):
                    newest = d_newest

        count = len(self._entries)
        return CacheStats(
            count=count,
            oldest_entry=oldest,
            newest_entry=newest,
            approx_memory_bytes=count * (self._dimension * 8 + _ENTRY_OVERHEAD_BYTES),
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def set(self, text: str, vector: Sequence[float]) -> None:
        """Write *vector* to both tiers.

        Raises ``DimensionMismatch`` before touching either tier. A
        durable write failure is logged; the fast-tier write stands.
        """
        entry = CacheEntry(
            text=text,
            vector=self._checked(vector),
            inserted_at=self._clock(),
        )
        self._insert(entry)

        if not self._durable_active:
            return
        try:
            await self._durable.put(entry)
        except CacheWriteFailed as exc:
            logger.warning("Durable cache write failed, kept in memory only: %s", exc)

    async def clear(self) -> None:
        self._entries.clear()
        if not self._durable_active:
            return
        try:
            await self._durable.clear()
        except CacheError as exc:
            logger.warning("Failed to clear durable embedding cache: %s", exc)

    async def preload(self, limit: int = 100) -> int:
        """Warm the fast tier with up to *limit* of the newest durable entries."""
        if not self._durable_active:
            return 0
        try:
            entries = await self._durable.newest(limit)
        except CacheError as exc:
            logger.warning("Failed to preload embedding cache: %s", exc)
            return 0
        loaded = 0
        # Oldest first so the newest end up last in insertion order
        for entry in reversed(entries):
            if len(entry.vector) != self._dimension:
                continue
            self._insert(entry)
            loaded += 1
        return loaded

    # ------------------------------------------------------------------
    # Deduplicated generation
    # ------------------------------------------------------------------

    async def get_or_generate(self, text: str, generate: Generate) -> list[float]:
        """Return the vector for *text*, generating it at most once.

        Concurrent callers for the same uncached text await the same task.
        Each caller awaits through ``asyncio.shield`` so cancelling one
        caller does not cancel the generation the others are waiting on.
        """
        entry = self._entries.get(text)
        if entry is not None:
            record_cache_lookup(tier="memory")
            return list(entry.vector)

        task = self._pending.get(text)
        if task is None:
            task = asyncio.create_task(self._resolve(text, generate))
            self._pending[text] = task
            task.add_done_callback(lambda done, key=text: self._forget(key, done))
        vector = await asyncio.shield(task)
        return list(vector)

    async def get_or_generate_many(
        self, texts: Sequence[str], generate_many: GenerateMany
    ) -> list[list[float]]:
        """Return vectors for *texts* in order, generating each at most once.

        Cached texts are served directly and texts already in flight join
        the running generation. The remaining unique texts are registered
        as pending before the single ``generate_many`` call, so a
        ``get_or_generate`` for one of them joins the batch.
        """
        resolved: dict[str, list[float]] = {}
        uncached: list[str] = []
        for text in dict.fromkeys(texts):
            cached = await self.get(text)
            if cached is None:
                uncached.append(text)
            else:
                resolved[text] = cached

        # No await between the in-flight check and registration
        joined: dict[str, asyncio.Future[list[float]]] = {}
        missing: list[str] = []
        for text in uncached:
            running = self.in_flight(text)
            if running is None:
                missing.append(text)
            else:
                joined[text] = running
        futures = self._register(missing)

        try:
            if missing:
                vectors = await generate_many(missing)
                for text, vector in zip(missing, vectors):
                    await self.set(text, vector)
                for text, vector in zip(missing, vectors):
                    resolved[text] = list(vector)
                    if not futures[text].done():
                        futures[text].set_result(list(vector))
        except Exception as exc:
            for future in futures.values():
                if not future.done():
                    future.set_exception(exc)
            raise
        finally:
            for future in futures.values():
                if not future.done():
                    future.cancel()

        for text, running in joined.items():
            resolved[text] = list(await asyncio.shield(running))
        return [list(resolved[text]) for text in texts]

    def _register(
        self, texts: Sequence[str]
    ) -> dict[str, asyncio.Future[list[float]]]:
        loop = asyncio.get_running_loop()
        futures: dict[str, asyncio.Future[list[float]]] = {}
        for text in texts:
            future: asyncio.Future[list[float]] = loop.create_future()
            future.add_done_callback(lambda done, key=text: self._forget(key, done))
            self._pending[text] = future
            futures[text] = future
        return futures

    async def _resolve(self, text: str, generate: Generate) -> list[float]:
        cached = await self.get(text)
        if cached is not None:
            return cached
        vector = await generate(text)
        await self.set(text, vector)
        return list(vector)

    def _forget(self, key: str, future: asyncio.Future[list[float]]) -> None:
        if self._pending.get(key) is future:
            del self._pending[key]
        # Mark the outcome as retrieved; waiting callers still receive it
        if not future.cancelled():
            future.exception()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _checked(self, vector: Sequence[float]) -> list[float]:
        if len(vector) != self._dimension:
            raise DimensionMismatch(self._dimension, len(vector))
        return [float(x) for x in vector]

    def _insert(self, entry: CacheEntry) -> None:
        self._entries.pop(entry.text, None)
        self._entries[entry.text] = entry
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted oldest cached embedding (%d chars)", len(evicted))

    async def _durable_get(self, text: str) -> CacheEntry | None:
        if not self._durable_active:
            return None
        try:
            stored = await self._durable.get(text)
        except CacheError as exc:
            logger.warning("Durable cache read failed, treating as miss: %s", exc)
            return None
        if stored is None:
            return None
        if len(stored.vector) != self._dimension:
            logger.warning(
                "Ignoring durable cache entry with dimension %d (expected %d)",
                len(stored.vector),
                self._dimension,
            )
            return None
        return stored
