"""Vector domain: math primitives and similarity search."""

from mnemovec.vector.ops import add
from mnemovec.vector.ops import batch_cosine_similarity
from mnemovec.vector.ops import cosine_similarity
from mnemovec.vector.ops import distance
from mnemovec.vector.ops import dot
from mnemovec.vector.ops import magnitude
from mnemovec.vector.ops import normalize
from mnemovec.vector.ops import scale
from mnemovec.vector.ops import subtract
from mnemovec.vector.ops import Vector
from mnemovec.vector.similarity import CorpusEntry
from mnemovec.vector.similarity import find_similar
from mnemovec.vector.similarity import SimilarityMatch
from mnemovec.vector.similarity import top_n_similar

__all__ = [
    "CorpusEntry",
    "SimilarityMatch",
    "Vector",
    "add",
    "batch_cosine_similarity",
    "cosine_similarity",
    "distance",
    "dot",
    "find_similar",
    "magnitude",
    "normalize",
    "scale",
    "subtract",
    "top_n_similar",
]
