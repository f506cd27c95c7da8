"""Memory domain: records, persistent store and record operations."""

from mnemovec.memory.operations import MemoryService
from mnemovec.memory.schemas import Memory
from mnemovec.memory.schemas import MemoryCheckReport
from mnemovec.memory.schemas import MemoryCreate
from mnemovec.memory.schemas import MemoryPatch
from mnemovec.memory.schemas import MemorySearchResult
from mnemovec.memory.schemas import MemoryType
from mnemovec.memory.store import MemoryStore
from mnemovec.memory.store import RedisMemoryStore

__all__ = [
    "Memory",
    "MemoryCheckReport",
    "MemoryCreate",
    "MemoryPatch",
    "MemorySearchResult",
    "MemoryService",
    "MemoryStore",
    "MemoryType",
    "RedisMemoryStore",
]
