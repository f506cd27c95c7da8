"""Two-phase duplicate and contradiction detection.

Phase 1 shortlists semantically close memories with a cosine-similarity
search; it never calls the LLM and is cheap enough to run on every save.
Phase 2 (contradictions only) asks the LLM to classify each shortlisted
pair. A failed or undecodable classification excludes that pair and the
batch carries on.

Duplicates skip Phase 2: similarity at or above the duplicate threshold
is the verdict.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from collections.abc import Iterable
from collections.abc import Sequence
from time import perf_counter

from mnemovec.config import DetectionConfig
from mnemovec.config import LLMConfig
from mnemovec.engine.classification import ClassificationOutcome
from mnemovec.engine.classification import ClassificationUnavailable
from mnemovec.engine.classification import parse_classification
from mnemovec.engine.classification import ParsedClassification
from mnemovec.engine.llm_adapters import LLMAdapter
from mnemovec.engine.llm_adapters import LLMError
from mnemovec.engine.prompt_builder import build_contradiction_prompt
from mnemovec.engine.schemas import ContradictionCandidate
from mnemovec.engine.schemas import ContradictionResult
from mnemovec.engine.schemas import DuplicateResult
from mnemovec.engine.schemas import MemoryPair
from mnemovec.observability import record_latency
from mnemovec.vector.similarity import CorpusEntry
from mnemovec.vector.similarity import find_similar
from mnemovec.vector.similarity import SimilarityMatch

logger = logging.getLogger(__name__)


class ContradictionDetector:
    """Flags near-duplicate and contradicting memories."""

    def __init__(
        self,
        llm: LLMAdapter,
        *,
        config: DetectionConfig | None = None,
        llm_config: LLMConfig | None = None,
    ) -> None:
        self._llm = llm
        self._config = config or DetectionConfig()
        self._llm_config = llm_config or LLMConfig()

    @property
    def config(self) -> DetectionConfig:
        return self._config

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def candidates(
        self,
        vector: Sequence[float],
        corpus: Iterable[CorpusEntry],
        *,
        exclude_ids: Collection[str] | None = None,
    ) -> list[SimilarityMatch]:
        """Shortlist corpus entries at or above the candidate threshold."""
        return find_similar(
            vector,
            corpus,
            threshold=self._config.candidate_threshold,
            limit=self._config.candidate_limit,
            exclude_ids=exclude_ids,
        )

    def candidate_pairs(
        self,
        vector: Sequence[float],
        corpus: Iterable[CorpusEntry],
        *,
        exclude_ids: Collection[str] | None = None,
    ) -> list[ContradictionCandidate]:
        """Phase 1 output as reviewable candidates, without classification."""
        return [
            ContradictionCandidate(id=m.id, similarity=m.score, content=m.content)
            for m in self.candidates(vector, corpus, exclude_ids=exclude_ids)
        ]

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    async def analyze_pair(self, text1: str, text2: str) -> ClassificationOutcome:
        """Classify one pair, keeping "could not determine" distinguishable."""
        prompt = build_contradiction_prompt(text1, text2)
        try:
            raw = await self._llm.complete(
                prompt,
                temperature=self._llm_config.temperature,
                max_tokens=self._llm_config.max_tokens,
                timeout_seconds=self._llm_config.timeout_seconds,
            )
        except LLMError as exc:
            logger.warning("Contradiction classifier call failed: %s", exc)
            return ClassificationUnavailable(reason=str(exc))
        except Exception as exc:
            logger.exception("Contradiction classifier raised unexpectedly")
            return ClassificationUnavailable(reason=f"{type(exc).__name__}: {exc}")

        outcome = parse_classification(raw)
        if not isinstance(outcome, ParsedClassification):
            logger.warning("Could not parse classifier response: %s", outcome.reason)
        return outcome

    async def detect_contradictions(
        self,
        memory_id: str,
        content: str,
        vector: Sequence[float],
        corpus: Iterable[CorpusEntry],
    ) -> list[ContradictionResult]:
        """Return the existing memories that contradict *content*.

        Only pairs the classifier decoded as ``contradicts=True`` are
        returned, in candidate order (most similar first).
        """
        start = perf_counter()
        ok = False
        try:
            shortlist = self.candidates(vector, corpus, exclude_ids={memory_id})
            results: list[ContradictionResult] = []
            for match in shortlist:
                outcome = await self.analyze_pair(content, match.content)
                if isinstance(outcome, ParsedClassification) and outcome.contradicts:
                    results.append(
                        ContradictionResult(
                            memory1_id=memory_id,
                            memory2_id=match.id,
                            contradicts=True,
                            confidence=outcome.confidence,
                            explanation=outcome.explanation,
                        )
                    )
            ok = True
            return results
        finally:
            record_latency(
                operation="detector.contradictions",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def batch_analyze(
        self, pairs: Iterable[MemoryPair]
    ) -> list[ContradictionResult]:
        """Classify every pair; one result per pair, in input order.

        Pairs whose classification failed are reported as
        ``contradicts=False`` with confidence ``0``.
        """
        results: list[ContradictionResult] = []
        for pair in pairs:
            outcome = await self.analyze_pair(pair.content1, pair.content2)
            if isinstance(outcome, ParsedClassification):
                contradicts = outcome.contradicts
                confidence = outcome.confidence
                explanation = outcome.explanation
            else:
                contradicts = False
                confidence = 0
                explanation = "Could not analyze for contradiction"
            results.append(
                ContradictionResult(
                    memory1_id=pair.id1,
                    memory2_id=pair.id2,
                    contradicts=contradicts,
                    confidence=confidence,
                    explanation=explanation,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    def detect_duplicates(
        self,
        vector: Sequence[float],
        corpus: Iterable[CorpusEntry],
        *,
        threshold: float | None = None,
        exclude_ids: Collection[str] | None = None,
    ) -> list[DuplicateResult]:
        """Return corpus entries at or above the duplicate threshold, best first."""
        matches = find_similar(
            vector,
            corpus,
            threshold=(
                self._config.duplicate_threshold if threshold is None else threshold
            ),
            limit=self._config.candidate_limit,
            exclude_ids=exclude_ids,
        )
        return [
            DuplicateResult(id=m.id, similarity=m.score, content=m.content)
            for m in matches
        ]
