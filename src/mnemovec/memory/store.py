"""Persistent memory record store.

``MemoryStore`` is the boundary the operations layer depends on.
``RedisMemoryStore`` implements it with:

- ``{prefix}:memory:{id}``: the record as JSON
- ``{prefix}:memory_created``: sorted set of ids scored by ``created_at``
- ``{prefix}:memory_type:{type}``: set of ids per memory type

Multi-record writes run in one MULTI/EXEC transaction so a batch is
applied entirely or not at all.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol
from typing import runtime_checkable

from redis.asyncio import Redis  # type: ignore[import-untyped]

from mnemovec.memory.schemas import Memory
from mnemovec.memory.schemas import MemoryType

logger = logging.getLogger(__name__)

_CLEAR_BATCH_SIZE = 100


@runtime_checkable
class MemoryStore(Protocol):
    """Owner of memory records."""

    async def get(self, memory_id: str) -> Memory | None: ...

    async def put(self, memory: Memory) -> None: ...

    async def put_many(self, memories: Sequence[Memory]) -> None: ...

    async def delete(self, memory_id: str) -> bool: ...

    async def list_by_created(
        self, *, newest_first: bool = True, limit: int | None = None
    ) -> list[Memory]: ...

    async def filter_by_type(
        self, memory_type: MemoryType, *, newest_first: bool = True
    ) -> list[Memory]: ...

    async def count(self) -> int: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class RedisMemoryStore:
    """Redis-backed memory record store."""

    def __init__(self, redis: Redis, *, prefix: str = "mnemovec") -> None:
        self._redis = redis
        self._prefix = prefix
        self._record_prefix = f"{prefix}:memory"
        self._created_key = f"{prefix}:memory_created"
        self._type_prefix = f"{prefix}:memory_type"

    def _key(self, memory_id: str) -> str:
        return f"{self._record_prefix}:{memory_id}"

    def _type_key(self, memory_type: MemoryType | str) -> str:
        value = memory_type.value if isinstance(memory_type, MemoryType) else memory_type
        return f"{self._type_prefix}:{value}"

    # -- write --

    async def put(self, memory: Memory) -> None:
        await self.put_many([memory])

    async def put_many(self, memories: Sequence[Memory]) -> None:
        """Write every record in a single transaction."""
        if not memories:
            return
        pipe = self._redis.pipeline(transaction=True)
        for memory in memories:
            pipe.set(self._key(memory.id), memory.model_dump_json())
            pipe.zadd(self._created_key, {memory.id: memory.created_at})
            # A type change must drop the id from its previous type set
            for memory_type in MemoryType:
                if memory_type is not memory.type:
                    pipe.srem(self._type_key(memory_type), memory.id)
            pipe.sadd(self._type_key(memory.type), memory.id)
        await pipe.execute()

    async def delete(self, memory_id: str) -> bool:
        """Delete a record and its index entries; return whether it existed."""
        pipe = self._redis.pipeline(transaction=True)
        pipe.delete(self._key(memory_id))
        pipe.zrem(self._created_key, memory_id)
        for memory_type in MemoryType:
            pipe.srem(self._type_key(memory_type), memory_id)
        results = await pipe.execute()
        return bool(results[0])

    async def clear(self) -> None:
        """Remove all records and indexes.

        Deletes in batches to avoid loading all keys into memory at once.
        """
        batch: list = []
        patterns = (f"{self._record_prefix}:*", f"{self._type_prefix}:*")
        for pattern in patterns:
            async for key in self._redis.scan_iter(match=pattern):
                batch.append(key)
                if len(batch) >= _CLEAR_BATCH_SIZE:
                    await self._redis.delete(*batch)
                    batch.clear()
        if batch:
            await self._redis.delete(*batch)
        await self._redis.delete(self._created_key)

    async def close(self) -> None:
        await self._redis.aclose()

    # -- read --

    async def get(self, memory_id: str) -> Memory | None:
        data = await self._redis.get(self._key(memory_id))
        if data is None:
            return None
        return Memory.model_validate_json(data)

    async def list_by_created(
        self, *, newest_first: bool = True, limit: int | None = None
    ) -> list[Memory]:
        """Return records ordered by ``created_at``."""
        end = -1 if limit is None else limit - 1
        if limit is not None and limit <= 0:
            return []
        if newest_first:
            ids = await self._redis.zrevrange(self._created_key, 0, end)
        else:
            ids = await self._redis.zrange(self._created_key, 0, end)
        return await self._fetch([_decode(raw_id) for raw_id in ids])

    async def filter_by_type(
        self, memory_type: MemoryType, *, newest_first: bool = True
    ) -> list[Memory]:
        members = await self._redis.smembers(self._type_key(memory_type))
        memories = await self._fetch([_decode(raw_id) for raw_id in members])
        memories.sort(key=lambda m: m.created_at, reverse=newest_first)
        return memories

    async def count(self) -> int:
        return await self._redis.zcard(self._created_key)

    # -- internal --

    async def _fetch(self, ids: list[str]) -> list[Memory]:
        """Batch-fetch records, pruning index entries whose record is gone."""
        if not ids:
            return []
        pipe = self._redis.pipeline()
        for memory_id in ids:
            pipe.get(self._key(memory_id))
        raw_results = await pipe.execute()

        stale_ids: list[str] = []
        results: list[Memory] = []
        for memory_id, raw in zip(ids, raw_results):
            if raw is None:
                stale_ids.append(memory_id)
            else:
                results.append(Memory.model_validate_json(raw))

        if stale_ids:
            logger.debug("Pruning %d stale memory index entries", len(stale_ids))
            cleanup = self._redis.pipeline()
            for memory_id in stale_ids:
                cleanup.zrem(self._created_key, memory_id)
                for memory_type in MemoryType:
                    cleanup.srem(self._type_key(memory_type), memory_id)
            await cleanup.execute()
        return results


def _decode(raw: bytes | str) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw
