"""Memory record operations.

``MemoryService`` keeps every stored memory paired with an embedding of
its current content and answers semantic queries over the corpus. The
embedding cache is never touched by record deletes: cached vectors are
keyed by text and stay valid for any record with the same content.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from time import perf_counter
from typing import Any

from pydantic import ValidationError

from mnemovec.config import SearchConfig
from mnemovec.embeddings.service import EmbeddingService
from mnemovec.embeddings.service import require_text
from mnemovec.engine.detector import ContradictionDetector
from mnemovec.engine.schemas import ContradictionResult
from mnemovec.engine.schemas import DuplicateResult
from mnemovec.errors import DimensionMismatch
from mnemovec.errors import InvalidInput
from mnemovec.errors import NotFound
from mnemovec.memory.schemas import Memory
from mnemovec.memory.schemas import MemoryCheckReport
from mnemovec.memory.schemas import MemoryCreate
from mnemovec.memory.schemas import MemoryPatch
from mnemovec.memory.schemas import MemorySearchResult
from mnemovec.memory.schemas import MemoryType
from mnemovec.memory.store import MemoryStore
from mnemovec.observability import record_latency
from mnemovec.vector.similarity import CorpusEntry
from mnemovec.vector.similarity import find_similar

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(part) for part in err.get("loc", ()))
    msg = str(err.get("msg", "Invalid input"))
    return f"{loc}: {msg}" if loc else msg


class MemoryService:
    """Create, update, delete and search memories."""

    def __init__(
        self,
        store: MemoryStore,
        embeddings: EmbeddingService,
        *,
        detector: ContradictionDetector | None = None,
        search_config: SearchConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._detector = detector
        self._search_config = search_config or SearchConfig()
        self._clock = clock

    @property
    def dimension(self) -> int:
        return self._embeddings.dimension

    @property
    def store(self) -> MemoryStore:
        return self._store

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_memory(self, data: MemoryCreate | Mapping[str, Any]) -> Memory:
        """Validate *data*, embed its content and persist the new memory."""
        if not isinstance(data, MemoryCreate):
            try:
                data = MemoryCreate.model_validate(data)
            except ValidationError as exc:
                raise InvalidInput(_validation_message(exc)) from exc

        embedding = await self._embeddings.generate(data.content)
        now = self._clock()
        memory = Memory(
            content=data.content,
            type=data.type,
            tags=data.tags,
            metadata=data.metadata,
            embedding=embedding,
            created_at=now,
            updated_at=now,
        )
        await self._store.put(memory)
        logger.debug("Created memory %s", memory.id)
        return memory

    async def update_memory(
        self, memory_id: str, patch: MemoryPatch | Mapping[str, Any]
    ) -> Memory:
        """Apply *patch*; any patch carrying content regenerates the embedding."""
        if not isinstance(patch, MemoryPatch):
            try:
                patch = MemoryPatch.model_validate(patch)
            except ValidationError as exc:
                raise InvalidInput(_validation_message(exc)) from exc

        existing = await self._require(memory_id)
        changes = patch.model_dump(exclude_none=True)
        if patch.content is not None:
            changes["embedding"] = await self._embeddings.generate(patch.content)
        changes["updated_at"] = self._touch(existing)

        updated = existing.model_copy(update=changes)
        # model_copy skips validation; rebuild so validators run on the result
        updated = Memory.model_validate(updated.model_dump())
        await self._store.put(updated)
        return updated

    async def delete_memory(self, memory_id: str) -> None:
        """Remove a memory; raises ``NotFound`` if it does not exist."""
        if not await self._store.delete(memory_id):
            raise NotFound(memory_id)
        logger.debug("Deleted memory %s", memory_id)

    async def get_memory(self, memory_id: str) -> Memory:
        return await self._require(memory_id)

    async def list_memories(self, *, limit: int | None = None) -> list[Memory]:
        """Return memories newest first."""
        return await self._store.list_by_created(newest_first=True, limit=limit)

    async def filter_memories(self, memory_type: MemoryType | str) -> list[Memory]:
        try:
            memory_type = MemoryType(memory_type)
        except ValueError as exc:
            raise InvalidInput(f"unknown memory type: {memory_type!r}") from exc
        return await self._store.filter_by_type(memory_type)

    async def count_memories(self) -> int:
        return await self._store.count()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_memories(
        self,
        query: str,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> list[MemorySearchResult]:
        """Return stored memories semantically closest to *query*.

        Memories without an embedding are skipped.
        """
        require_text(query, field="query")
        threshold = self._search_config.threshold if threshold is None else threshold
        limit = self._search_config.limit if limit is None else limit

        start = perf_counter()
        ok = False
        try:
            vector = await self._embeddings.generate(query)
            memories = await self._store.list_by_created()
            by_id = {memory.id: memory for memory in memories}
            matches = find_similar(
                vector,
                (memory.corpus_entry() for memory in memories),
                threshold=threshold,
                limit=limit,
            )
            ok = True
            return [
                MemorySearchResult(memory=by_id[match.id], score=match.score)
                for match in matches
            ]
        finally:
            record_latency(
                operation="memory.search",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    # ------------------------------------------------------------------
    # Embedding maintenance
    # ------------------------------------------------------------------

    async def update_memory_embedding(
        self, memory_id: str, embedding: Sequence[float]
    ) -> Memory:
        self._check_dimension(embedding)
        existing = await self._require(memory_id)
        updated = existing.model_copy(
            update={
                "embedding": [float(x) for x in embedding],
                "updated_at": self._touch(existing),
            }
        )
        await self._store.put(updated)
        return updated

    async def batch_update_embeddings(
        self, updates: Iterable[tuple[str, Sequence[float]]]
    ) -> int:
        """Replace several embeddings at once, all or nothing.

        Every vector's dimension and every id is checked before anything is
        written; a failure leaves all records untouched. Returns the number
        of records written.
        """
        pending = list(updates)
        for _, embedding in pending:
            self._check_dimension(embedding)
        if not pending:
            return 0

        records: dict[str, Memory] = {}
        for memory_id, _ in pending:
            if memory_id not in records:
                records[memory_id] = await self._require(memory_id)

        # Later updates for the same id win
        for memory_id, embedding in pending:
            memory = records[memory_id]
            records[memory_id] = memory.model_copy(
                update={
                    "embedding": [float(x) for x in embedding],
                    "updated_at": self._touch(memory),
                }
            )
        await self._store.put_many(list(records.values()))
        return len(records)

    async def ensure_memory_has_embedding(self, memory_id: str) -> list[float]:
        """Return the stored embedding, generating and storing it if absent."""
        memory = await self._require(memory_id)
        if memory.embedding is not None:
            return list(memory.embedding)
        embedding = await self._embeddings.generate(memory.content)
        await self._store.put(
            memory.model_copy(
                update={"embedding": embedding, "updated_at": self._touch(memory)}
            )
        )
        return embedding

    async def memories_without_embeddings(self) -> list[Memory]:
        memories = await self._store.list_by_created(newest_first=False)
        return [memory for memory in memories if memory.embedding is None]

    async def ensure_all_memories_have_embeddings(
        self, on_progress: ProgressCallback | None = None
    ) -> int:
        """Backfill missing embeddings, oldest first; returns how many were made."""
        missing = await self.memories_without_embeddings()
        total = len(missing)
        for index, memory in enumerate(missing, start=1):
            await self.ensure_memory_has_embedding(memory.id)
            if on_progress is not None:
                on_progress(index, total)
        if total:
            logger.info("Generated %d missing embeddings", total)
        return total

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def detect_contradictions(self, memory_id: str) -> list[ContradictionResult]:
        """Check a stored memory against the rest of the corpus."""
        detector = self._get_detector()
        memory, vector = await self._with_embedding(memory_id)
        corpus = await self._corpus()
        return await detector.detect_contradictions(
            memory.id, memory.content, vector, corpus
        )

    async def detect_duplicates(
        self, memory_id: str, threshold: float | None = None
    ) -> list[DuplicateResult]:
        detector = self._get_detector()
        memory, vector = await self._with_embedding(memory_id)
        corpus = await self._corpus()
        return detector.detect_duplicates(
            vector, corpus, threshold=threshold, exclude_ids={memory.id}
        )

    async def check_memory(self, memory_id: str) -> MemoryCheckReport:
        """Run both duplicate and contradiction detection for one memory."""
        return MemoryCheckReport(
            memory_id=memory_id,
            duplicates=await self.detect_duplicates(memory_id),
            contradictions=await self.detect_contradictions(memory_id),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _require(self, memory_id: str) -> Memory:
        memory = await self._store.get(memory_id)
        if memory is None:
            raise NotFound(memory_id)
        return memory

    async def _with_embedding(self, memory_id: str) -> tuple[Memory, list[float]]:
        vector = await self.ensure_memory_has_embedding(memory_id)
        return await self._require(memory_id), vector

    async def _corpus(self) -> list[CorpusEntry]:
        memories = await self._store.list_by_created()
        return [memory.corpus_entry() for memory in memories]

    def _get_detector(self) -> ContradictionDetector:
        if self._detector is None:
            raise RuntimeError("No contradiction detector configured")
        return self._detector

    def _check_dimension(self, embedding: Sequence[float]) -> None:
        if len(embedding) != self.dimension:
            raise DimensionMismatch(self.dimension, len(embedding))

    def _touch(self, memory: Memory) -> float:
        return max(self._clock(), memory.created_at)
