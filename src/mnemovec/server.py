"""mnemovec: FastMCP v2 server exposing the memory tools.

Tools delegate to a ``MemoryEngine``. Call ``configure(...)`` before using
the server and ``shutdown()`` to release it. Domain errors come back as
``{"status": "rejected", "error_code": ..., "message": ...}`` payloads.
"""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any

from fastmcp import FastMCP

from mnemovec.app import MemoryEngine
from mnemovec.config import CacheConfig
from mnemovec.config import DetectionConfig
from mnemovec.config import EmbeddingConfig
from mnemovec.config import LLMConfig
from mnemovec.config import SearchConfig
from mnemovec.embeddings.durable import DurableTier
from mnemovec.embeddings.generators import EmbeddingGenerator
from mnemovec.engine.llm_adapters import LLMAdapter
from mnemovec.errors import DimensionMismatch
from mnemovec.errors import GenerationFailed
from mnemovec.errors import InvalidInput
from mnemovec.errors import MnemovecError
from mnemovec.errors import NotFound
from mnemovec.memory.schemas import Memory
from mnemovec.memory.store import MemoryStore
from mnemovec.observability import cache_metrics_snapshot
from mnemovec.observability import latency_metrics_snapshot
from mnemovec.observability import record_latency

logger = logging.getLogger(__name__)

mcp = FastMCP("mnemovec")

# ---------------------------------------------------------------------------
# Engine instance (set via configure())
# ---------------------------------------------------------------------------

_engine: MemoryEngine | None = None


async def configure(
    redis_url: str | None = "redis://localhost:6379",
    *,
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
    """Build and initialise the engine behind the tools.

    Must be called before the MCP tools can function. Reconfiguring
    disposes the previous engine first.
    """
    global _engine
    if _engine is not None:
        try:
            await _engine.dispose()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass
        _engine = None

    engine = MemoryEngine.build(
        redis_url=redis_url,
        embedding_config=embedding_config,
        cache_config=cache_config,
        detection_config=detection_config,
        search_config=search_config,
        llm_config=llm_config,
        store=store,
        durable=durable,
        generator=generator,
        llm=llm,
    )
    await engine.initialize()
    _engine = engine
    return engine


async def shutdown() -> None:
    """Dispose the engine and release server resources."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def _get_engine() -> MemoryEngine:
    """Return the engine instance or raise."""
    if _engine is None:
        raise RuntimeError("Memory engine not configured. Call configure() first.")
    return _engine


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

_ERROR_CODES: dict[type[MnemovecError], str] = {
    InvalidInput: "invalid_input",
    DimensionMismatch: "dimension_mismatch",
    NotFound: "not_found",
    GenerationFailed: "generation_failed",
}


def _rejected(exc: MnemovecError) -> dict[str, Any]:
    error_code = "error"
    for exc_type, code in _ERROR_CODES.items():
        if isinstance(exc, exc_type):
            error_code = code
            break
    return {"status": "rejected", "error_code": error_code, "message": str(exc)}


def _memory_payload(memory: Memory) -> dict[str, Any]:
    """Serialise a memory without its (large) embedding vector."""
    payload = memory.model_dump(mode="json", exclude={"embedding"})
    payload["has_embedding"] = memory.embedding is not None
    return payload


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool
async def create_memory(
    content: str,
    memory_type: str = "knowledge",
    tags: list[str] | None = None,
    metadata: dict | None = None,
    check: bool = False,
) -> dict:
    """Store a new memory and embed its content.

    Args:
        content: The fact, experience or method as text.
        memory_type: One of: knowledge, experience, method.
        tags: Optional tag names.
        metadata: Optional caller-owned key-value data.
        check: Also report duplicates and contradictions of the new memory.
    """
    start = perf_counter()
    ok = False
    try:
        memories = _get_engine().memories
        try:
            memory = await memories.create_memory(
                {
                    "content": content,
                    "type": memory_type,
                    "tags": tags or [],
                    "metadata": metadata or {},
                }
            )
            result: dict[str, Any] = {
                "status": "accepted",
                "memory": _memory_payload(memory),
            }
        except MnemovecError as exc:
            return _rejected(exc)
        if check:
            # The memory is already stored; a failed check does not undo it
            try:
                report = await memories.check_memory(memory.id)
            except MnemovecError as exc:
                logger.warning("Check failed for new memory %s: %s", memory.id, exc)
                rejected = _rejected(exc)
                result["check_error"] = {
                    "error_code": rejected["error_code"],
                    "message": rejected["message"],
                }
            else:
                result["check"] = report.model_dump(mode="json")
        ok = True
        return result
    finally:
        record_latency(
            operation="mcp.create_memory",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def update_memory(
    memory_id: str,
    content: str | None = None,
    memory_type: str | None = None,
    tags: list[str] | None = None,
    metadata: dict | None = None,
) -> dict:
    """Update fields of an existing memory.

    Args:
        memory_id: ID of the memory to update.
        content: New content; re-embeds the memory.
        memory_type: New type (knowledge, experience, method).
        tags: Replacement tag list.
        metadata: Replacement metadata.
    """
    start = perf_counter()
    ok = False
    try:
        patch: dict[str, Any] = {}
        if content is not None:
            patch["content"] = content
        if memory_type is not None:
            patch["type"] = memory_type
        if tags is not None:
            patch["tags"] = tags
        if metadata is not None:
            patch["metadata"] = metadata
        try:
            memory = await _get_engine().memories.update_memory(memory_id, patch)
        except MnemovecError as exc:
            return _rejected(exc)
        ok = True
        return {"status": "updated", "memory": _memory_payload(memory)}
    finally:
        record_latency(
            operation="mcp.update_memory",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def delete_memory(memory_id: str) -> dict:
    """Delete a memory by ID.

    Args:
        memory_id: ID of the memory to delete.
    """
    start = perf_counter()
    ok = False
    try:
        try:
            await _get_engine().memories.delete_memory(memory_id)
        except MnemovecError as exc:
            return _rejected(exc)
        ok = True
        return {"status": "deleted", "memory_id": memory_id}
    finally:
        record_latency(
            operation="mcp.delete_memory",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def search_memories(
    query: str,
    threshold: float | None = None,
    limit: int | None = None,
) -> dict:
    """Find stored memories semantically similar to a query.

    Args:
        query: Natural language query.
        threshold: Minimum cosine similarity (default 0.7).
        limit: Max results returned (default 20).
    """
    start = perf_counter()
    ok = False
    try:
        try:
            results = await _get_engine().memories.search_memories(
                query, threshold=threshold, limit=limit
            )
        except MnemovecError as exc:
            return _rejected(exc)
        ok = True
        return {
            "status": "ok",
            "results": [
                {"memory": _memory_payload(r.memory), "score": r.score}
                for r in results
            ],
        }
    finally:
        record_latency(
            operation="mcp.search_memories",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def detect_contradictions(memory_id: str) -> dict:
    """List stored memories that contradict the given one.

    Args:
        memory_id: ID of the memory to check.
    """
    start = perf_counter()
    ok = False
    try:
        try:
            results = await _get_engine().memories.detect_contradictions(memory_id)
        except MnemovecError as exc:
            return _rejected(exc)
        ok = True
        return {
            "status": "ok",
            "contradictions": [r.model_dump(mode="json") for r in results],
        }
    finally:
        record_latency(
            operation="mcp.detect_contradictions",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def detect_duplicates(memory_id: str, threshold: float | None = None) -> dict:
    """List stored memories that near-duplicate the given one.

    Args:
        memory_id: ID of the memory to check.
        threshold: Minimum cosine similarity (default 0.85).
    """
    start = perf_counter()
    ok = False
    try:
        try:
            results = await _get_engine().memories.detect_duplicates(
                memory_id, threshold=threshold
            )
        except MnemovecError as exc:
            return _rejected(exc)
        ok = True
        return {
            "status": "ok",
            "duplicates": [r.model_dump(mode="json") for r in results],
        }
    finally:
        record_latency(
            operation="mcp.detect_duplicates",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def cache_stats() -> dict:
    """Report embedding cache statistics and hit/miss counters."""
    engine = _get_engine()
    stats = await engine.cache.stats()
    return {
        "status": "ok",
        "stats": stats.model_dump(mode="json"),
        "durable_active": engine.cache.durable_active,
        "lookups": cache_metrics_snapshot(),
        "latency": latency_metrics_snapshot(),
    }
