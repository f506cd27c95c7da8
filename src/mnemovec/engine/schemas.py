"""Detection result models."""

from __future__ import annotations

from pydantic import BaseModel
from pydantic import Field


class ContradictionResult(BaseModel):
    """Verdict for one (new memory, existing memory) pair."""

    memory1_id: str = Field(description="Id of the memory being checked.")
    memory2_id: str = Field(description="Id of the existing memory it was compared to.")
    contradicts: bool = Field(description="Whether the two cannot both be true.")
    confidence: int = Field(ge=0, le=100, description="Classifier certainty, 0-100.")
    explanation: str = Field(description="Human-readable reason.")


class DuplicateResult(BaseModel):
    """An existing memory that is a near-duplicate of the query."""

    id: str
    similarity: float
    content: str


class ContradictionCandidate(BaseModel):
    """A Phase 1 shortlist entry, not yet classified."""

    id: str
    similarity: float
    content: str
    semantically_similar: bool = True


class MemoryPair(BaseModel):
    """Two statements to classify against each other."""

    id1: str
    content1: str
    id2: str
    content2: str
