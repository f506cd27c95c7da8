"""Embeddings domain: generator boundary, two-tier cache, cached generation."""

from mnemovec.embeddings.cache import EmbeddingCache
from mnemovec.embeddings.durable import DurableTier
from mnemovec.embeddings.durable import RedisDurableTier
from mnemovec.embeddings.generators import build_embedding_generator
from mnemovec.embeddings.generators import EmbeddingGenerator
from mnemovec.embeddings.generators import HashingEmbeddingGenerator
from mnemovec.embeddings.generators import OpenAICompatibleEmbeddingGenerator
from mnemovec.embeddings.schemas import CacheEntry
from mnemovec.embeddings.schemas import CacheStats
from mnemovec.embeddings.service import EmbeddingService

__all__ = [
    "CacheEntry",
    "CacheStats",
    "DurableTier",
    "EmbeddingCache",
    "EmbeddingGenerator",
    "EmbeddingService",
    "HashingEmbeddingGenerator",
    "OpenAICompatibleEmbeddingGenerator",
    "RedisDurableTier",
    "build_embedding_generator",
]
