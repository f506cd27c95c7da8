"""Prompt construction for contradiction classification.

Separate module because the prompt wording evolves independently of
the detector that sends it.
"""

from __future__ import annotations

import json

# Few-shot calibration pairs: (statement 1, statement 2, contradicts, confidence)
EXAMPLES = [
    ("I love coffee", "I hate coffee", True, 95),
    ("I drink coffee in the morning", "I avoid caffeine at night", False, 90),
    ("My favorite color is blue", "My favorite color is red", True, 100),
    ("I work at Google", "I work in tech", False, 95),
]

_OUTPUT_SCHEMA = {
    "contradicts": "true/false",
    "confidence": "integer 0-100",
    "explanation": "brief explanation of why they do or don't contradict",
}


def _format_example(first: str, second: str, contradicts: bool, confidence: int) -> str:
    verdict = "CONTRADICTS" if contradicts else "NO CONTRADICTION"
    return f'- "{first}" vs "{second}" = {verdict} (confidence: {confidence})'


def build_contradiction_prompt(statement1: str, statement2: str) -> str:
    """Build the classification prompt for one pair of statements.

    Statements are embedded as JSON strings so quotes inside them cannot
    break the prompt structure.
    """
    examples = "\n".join(_format_example(*example) for example in EXAMPLES)
    return (
        "Analyze if these two statements contradict each other.\n\n"
        f"Statement 1: {json.dumps(statement1, ensure_ascii=False)}\n"
        f"Statement 2: {json.dumps(statement2, ensure_ascii=False)}\n\n"
        "Respond with a single JSON object and nothing else:\n"
        f"{json.dumps(_OUTPUT_SCHEMA, indent=2)}\n\n"
        "Consider:\n"
        "- Direct contradictions (X is true vs X is false)\n"
        "- Contextual contradictions (may be true in different contexts)\n"
        "- Complementary statements (both can be true)\n\n"
        f"Examples:\n{examples}\n\n"
        "Only mark as contradiction if the statements cannot both be true "
        "at the same time."
    )
