"""Unit test fixtures: in-process fakes for every external boundary."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence

import pytest

from mnemovec.embeddings.durable import text_digest
from mnemovec.embeddings.schemas import CacheEntry
from mnemovec.errors import CacheUnavailable
from mnemovec.errors import CacheWriteFailed
from mnemovec.memory.schemas import Memory
from mnemovec.memory.schemas import MemoryType
from mnemovec.observability import reset_metrics


class FakeDurableTier:
    """Dict-backed ``DurableTier`` with switchable failures."""

    def __init__(
        self,
        *,
        fail_initialize: bool = False,
        fail_reads: bool = False,
        fail_writes: bool = False,
    ) -> None:
        self.entries: dict[str, CacheEntry] = {}
        self.fail_initialize = fail_initialize
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.closed = False
        self.put_calls = 0

    async def initialize(self) -> None:
        if self.fail_initialize:
            raise CacheUnavailable("durable tier unreachable")

    async def get(self, text: str) -> CacheEntry | None:
        if self.fail_reads:
            raise CacheUnavailable("durable read failed")
        entry = self.entries.get(text_digest(text))
        if entry is None or entry.text != text:
            return None
        return entry

    async def put(self, entry: CacheEntry) -> None:
        self.put_calls += 1
        if self.fail_writes:
            raise CacheWriteFailed("durable write failed")
        self.entries[text_digest(entry.text)] = entry

    async def exists(self, text: str) -> bool:
        return await self.get(text) is not None

    async def delete(self, text: str) -> None:
        self.entries.pop(text_digest(text), None)

    async def clear(self) -> None:
        if self.fail_writes:
            raise CacheWriteFailed("durable clear failed")
        self.entries.clear()

    async def purge_older_than(self, cutoff: float) -> int:
        stale = [k for k, e in self.entries.items() if e.inserted_at < cutoff]
        for key in stale:
            del self.entries[key]
        return len(stale)

    async def count(self) -> int:
        return len(self.entries)

    async def timestamp_bounds(self) -> tuple[float | None, float | None]:
        if not self.entries:
            return None, None
        stamps = [e.inserted_at for e in self.entries.values()]
        return min(stamps), max(stamps)

    async def newest(self, limit: int) -> list[CacheEntry]:
        ordered = sorted(self.entries.values(), key=lambda e: e.inserted_at, reverse=True)
        return ordered[:limit]

    async def close(self) -> None:
        self.closed = True


class FakeMemoryStore:
    """Dict-backed ``MemoryStore``; records are stored as JSON like Redis."""

    def __init__(self) -> None:
        self.records: dict[str, str] = {}
        self.put_many_calls = 0
        self.closed = False

    async def get(self, memory_id: str) -> Memory | None:
        raw = self.records.get(memory_id)
        return None if raw is None else Memory.model_validate_json(raw)

    async def put(self, memory: Memory) -> None:
        await self.put_many([memory])

    async def put_many(self, memories: Sequence[Memory]) -> None:
        self.put_many_calls += 1
        for memory in memories:
            self.records[memory.id] = memory.model_dump_json()

    async def delete(self, memory_id: str) -> bool:
        return self.records.pop(memory_id, None) is not None

    async def list_by_created(
        self, *, newest_first: bool = True, limit: int | None = None
    ) -> list[Memory]:
        memories = [Memory.model_validate_json(raw) for raw in self.records.values()]
        memories.sort(key=lambda m: m.created_at, reverse=newest_first)
        return memories if limit is None else memories[:limit]

    async def filter_by_type(
        self, memory_type: MemoryType, *, newest_first: bool = True
    ) -> list[Memory]:
        memories = await self.list_by_created(newest_first=newest_first)
        return [m for m in memories if m.type is memory_type]

    async def count(self) -> int:
        return len(self.records)

    async def clear(self) -> None:
        self.records.clear()

    async def close(self) -> None:
        self.closed = True


class StubEmbeddingGenerator:
    """Generator returning preset vectors per text, with call tracking.

    Unknown texts map to a fixed unit vector along the last axis. An
    optional ``gate`` event holds every call until it is set.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        *,
        dimension: int = 4,
        gate: asyncio.Event | None = None,
        error: Exception | None = None,
    ) -> None:
        self.vectors = vectors or {}
        self._dimension = dimension
        self.gate = gate
        self.error = error
        self.calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def _lookup(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        return [0.0] * (self._dimension - 1) + [1.0]

    async def generate(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self._lookup(text)

    async def generate_batch(self, texts: Sequence[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [self._lookup(text) for text in texts]


class MockLLMAdapter:
    """Test double for LLMAdapter.

    Answers from a queue of canned responses (the last one repeats).
    An ``Exception`` instance in the queue is raised instead. Tracks
    calls for assertion.
    """

    def __init__(self, *responses: str | Exception) -> None:
        self.calls: list[dict] = []
        self._responses = list(responses) or [
            json.dumps(
                {"contradicts": False, "confidence": 10, "explanation": "Compatible"}
            )
        ]

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 512,
        timeout_seconds: float = 30.0,
    ) -> str:
        self.calls.append(
            {
                "prompt": prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "timeout_seconds": timeout_seconds,
            }
        )
        index = min(len(self.calls) - 1, len(self._responses) - 1)
        response = self._responses[index]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def _reset_observability():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def durable_tier() -> FakeDurableTier:
    return FakeDurableTier()


@pytest.fixture()
def memory_store() -> FakeMemoryStore:
    return FakeMemoryStore()


@pytest.fixture()
def make_durable():
    return FakeDurableTier


@pytest.fixture()
def make_generator():
    return StubEmbeddingGenerator


@pytest.fixture()
def make_llm():
    return MockLLMAdapter


@pytest.fixture()
async def mcp_client(memory_store):
    """Yield a FastMCP Client wired to a server backed by in-process fakes."""
    from fastmcp import Client

    from mnemovec.config import LLMConfig
    from mnemovec.server import configure
    from mnemovec.server import mcp
    from mnemovec.server import shutdown

    await configure(
        redis_url=None,
        store=memory_store,
        llm_config=LLMConfig(provider="noop"),
    )
    async with Client(mcp) as client:
        yield client
    await shutdown()
