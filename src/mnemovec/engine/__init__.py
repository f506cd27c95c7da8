"""Engine domain: duplicate and contradiction detection."""

from mnemovec.engine.classification import ClassificationOutcome
from mnemovec.engine.classification import ClassificationUnavailable
from mnemovec.engine.classification import parse_classification
from mnemovec.engine.classification import ParsedClassification
from mnemovec.engine.classification import ParseError
from mnemovec.engine.detector import ContradictionDetector
from mnemovec.engine.llm_adapters import build_llm_adapter
from mnemovec.engine.llm_adapters import LLMAdapter
from mnemovec.engine.llm_adapters import LLMError
from mnemovec.engine.llm_adapters import NoopLLMAdapter
from mnemovec.engine.llm_adapters import OpenAICompatibleLLMAdapter
from mnemovec.engine.schemas import ContradictionCandidate
from mnemovec.engine.schemas import ContradictionResult
from mnemovec.engine.schemas import DuplicateResult
from mnemovec.engine.schemas import MemoryPair

__all__ = [
    "ClassificationOutcome",
    "ClassificationUnavailable",
    "ContradictionCandidate",
    "ContradictionDetector",
    "ContradictionResult",
    "DuplicateResult",
    "LLMAdapter",
    "LLMError",
    "MemoryPair",
    "NoopLLMAdapter",
    "OpenAICompatibleLLMAdapter",
    "ParseError",
    "ParsedClassification",
    "build_llm_adapter",
    "parse_classification",
]
