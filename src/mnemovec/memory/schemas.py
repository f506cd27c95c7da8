"""Memory record data models."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from mnemovec.engine.schemas import ContradictionResult
from mnemovec.engine.schemas import DuplicateResult
from mnemovec.vector.similarity import CorpusEntry


class MemoryType(str, Enum):
    """Memory categories."""

    knowledge = "knowledge"
    experience = "experience"
    method = "method"


def _unique_tags(value: list[str]) -> list[str]:
    return list(dict.fromkeys(tag.strip() for tag in value if tag.strip()))


def _non_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("content must not be empty")
    return value


class Memory(BaseModel):
    """A stored memory and its embedding."""

    id: str = Field(
        default_factory=lambda: f"mem_{uuid.uuid4().hex}",
        description="Unique identifier, auto-generated as mem_{uuid4_hex}.",
    )
    content: str = Field(description="Raw textual content of the memory.")
    type: MemoryType = Field(
        default=MemoryType.knowledge,
        description="Memory category.",
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Tag names; unique, insertion order kept.",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque caller-owned key-value data.",
    )
    embedding: list[float] | None = Field(
        default=None,
        description="Embedding of content, or None if not generated yet.",
    )
    created_at: float = Field(
        default_factory=time.time,
        description="Unix epoch when the memory was created.",
    )
    updated_at: float = Field(
        default_factory=time.time,
        description="Unix epoch of the last modification.",
    )

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return _unique_tags(value)

    @model_validator(mode="after")
    def _timestamps_ordered(self) -> Memory:
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self

    def corpus_entry(self) -> CorpusEntry:
        """Project this memory for similarity search."""
        return CorpusEntry(id=self.id, vector=self.embedding, content=self.content)


class MemoryCreate(BaseModel):
    """Caller-supplied fields for a new memory."""

    model_config = ConfigDict(extra="forbid")

    content: str
    type: MemoryType = MemoryType.knowledge
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        return _non_blank(value)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return _unique_tags(value)


class MemoryPatch(BaseModel):
    """Partial update; ``None`` means "leave unchanged"."""

    model_config = ConfigDict(extra="forbid")

    content: str | None = None
    type: MemoryType | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str | None) -> str | None:
        return None if value is None else _non_blank(value)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _unique_tags(value)


class MemorySearchResult(BaseModel):
    """A memory matched by semantic search."""

    memory: Memory
    score: float


class MemoryCheckReport(BaseModel):
    """Duplicate and contradiction findings for one stored memory."""

    memory_id: str
    duplicates: list[DuplicateResult] = Field(default_factory=list)
    contradictions: list[ContradictionResult] = Field(default_factory=list)
