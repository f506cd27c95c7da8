"""Durable embedding cache tier.

Entries are stored as JSON strings keyed by
``{prefix}:embedding:{digest}`` where *digest* is a short blake2b hash
of the text. A sorted set ``{prefix}:embedding_age`` (score = insertion
time) supports age-based purging and timestamp bounds without scanning
every entry.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Protocol
from typing import runtime_checkable

from pydantic import ValidationError
from redis.asyncio import Redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from mnemovec.embeddings.schemas import CacheEntry
from mnemovec.errors import CacheUnavailable
from mnemovec.errors import CacheWriteFailed

logger = logging.getLogger(__name__)

_PURGE_BATCH_SIZE = 100


def text_digest(text: str) -> str:
    """Fast, fixed-length key for *text* (not collision-proof)."""
    return hashlib.blake2b(text.encode("utf-8"), digest_size=16).hexdigest()


@runtime_checkable
class DurableTier(Protocol):
    """Slow, persistent backing store for the embedding cache."""

    async def initialize(self) -> None: ...

    async def get(self, text: str) -> CacheEntry | None: ...

    async def put(self, entry: CacheEntry) -> None: ...

    async def exists(self, text: str) -> bool: ...

    async def delete(self, text: str) -> None: ...

    async def clear(self) -> None: ...

    async def purge_older_than(self, cutoff: float) -> int: ...

    async def count(self) -> int: ...

    async def timestamp_bounds(self) -> tuple[float | None, float | None]: ...

    async def newest(self, limit: int) -> list[CacheEntry]: ...

    async def close(self) -> None: ...


class RedisDurableTier:
    """Redis-backed durable tier.

    Write failures raise ``CacheWriteFailed``; read and maintenance
    failures raise ``CacheUnavailable``. The cache decides how to degrade.
    """

    def __init__(self, redis: Redis, *, prefix: str = "mnemovec") -> None:
        self._redis = redis
        self._entry_prefix = f"{prefix}:embedding"
        self._age_key = f"{prefix}:embedding_age"

    def _key(self, digest: str) -> str:
        return f"{self._entry_prefix}:{digest}"

    # -- lifecycle --

    async def initialize(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"durable tier unreachable: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()

    # -- read --

    async def get(self, text: str) -> CacheEntry | None:
        try:
            raw = await self._redis.get(self._key(text_digest(text)))
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"durable read failed: {exc}") from exc
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed durable cache entry for digest")
            return None
        # Digest collision: the slot belongs to another text
        if entry.text != text:
            return None
        return entry

    async def exists(self, text: str) -> bool:
        return await self.get(text) is not None

    async def count(self) -> int:
        try:
            return await self._redis.zcard(self._age_key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"durable count failed: {exc}") from exc

    async def timestamp_bounds(self) -> tuple[float | None, float | None]:
        try:
            oldest = await self._redis.zrange(self._age_key, 0, 0, withscores=True)
            newest = await self._redis.zrevrange(self._age_key, 0, 0, withscores=True)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"durable stats failed: {exc}") from exc
        return (
            float(oldest[0][1]) if oldest else None,
            float(newest[0][1]) if newest else None,
        )

    async def newest(self, limit: int) -> list[CacheEntry]:
        """Return up to *limit* entries, newest first."""
        if limit <= 0:
            return []
        try:
            digests = await self._redis.zrevrange(self._age_key, 0, limit - 1)
            if not digests:
                return []
            pipe = self._redis.pipeline()
            for raw_digest in digests:
                pipe.get(self._key(_decode(raw_digest)))
            raw_entries = await pipe.execute()
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"durable scan failed: {exc}") from exc

        entries: list[CacheEntry] = []
        for raw in raw_entries:
            if raw is None:
                continue
            try:
                entries.append(CacheEntry.model_validate_json(raw))
            except ValidationError:
                continue
        return entries

    # -- write --

    async def put(self, entry: CacheEntry) -> None:
        digest = text_digest(entry.text)
        pipe = self._redis.pipeline(transaction=True)
        pipe.set(self._key(digest), entry.model_dump_json())
        pipe.zadd(self._age_key, {digest: entry.inserted_at})
        try:
            await pipe.execute()
        except (RedisError, OSError) as exc:
            raise CacheWriteFailed(f"durable write failed: {exc}") from exc

    async def delete(self, text: str) -> None:
        digest = text_digest(text)
        pipe = self._redis.pipeline(transaction=True)
        pipe.delete(self._key(digest))
        pipe.zrem(self._age_key, digest)
        try:
            await pipe.execute()
        except (RedisError, OSError) as exc:
            raise CacheWriteFailed(f"durable delete failed: {exc}") from exc

    async def purge_older_than(self, cutoff: float) -> int:
        """Delete entries inserted before *cutoff*; return how many were removed.

        Works in batches so a large backlog is never loaded at once.
        """
        removed = 0
        try:
            while True:
                stale = await self._redis.zrangebyscore(
                    self._age_key,
                    "-inf",
                    f"({cutoff}",
                    start=0,
                    num=_PURGE_BATCH_SIZE,
                )
                if not stale:
                    break
                digests = [_decode(d) for d in stale]
                pipe = self._redis.pipeline(transaction=True)
                pipe.delete(*(self._key(d) for d in digests))
                pipe.zrem(self._age_key, *digests)
                await pipe.execute()
                removed += len(digests)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(f"durable purge failed: {exc}") from exc
        return removed

    async def clear(self) -> None:
        try:
            batch: list = []
            async for key in self._redis.scan_iter(match=f"{self._entry_prefix}:*"):
                batch.append(key)
                if len(batch) >= _PURGE_BATCH_SIZE:
                    await self._redis.delete(*batch)
                    batch.clear()
            if batch:
                await self._redis.delete(*batch)
            await self._redis.delete(self._age_key)
        except (RedisError, OSError) as exc:
            raise CacheWriteFailed(f"durable clear failed: {exc}") from exc


def _decode(raw: bytes | str) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw
