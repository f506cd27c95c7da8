"""Decoding of contradiction classifier responses.

``parse_classification`` turns raw LLM text into a tagged outcome:
``ParsedClassification`` when a JSON payload could be decoded, or
``ParseError`` when it could not. Field values inside a decoded payload
are normalised rather than rejected: confidence is clamped into
``[0, 100]``, and anything unusable falls back to a default.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator
from pydantic import ValidationError

from mnemovec.errors import ParseFailure

DEFAULT_EXPLANATION = "No explanation provided"

# Regex to strip Markdown code fences wrapping JSON output
_CODE_FENCE_RE = re.compile(
    r"^\s*```(?:json)?\s*\n?(.*?)\n?\s*```\s*$",
    re.DOTALL,
)
# First "{" to last "}"; tolerates prose before and after the payload
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def clamp_confidence(value: object) -> int:
    """Coerce *value* to an integer in ``[0, 100]``.

    Missing, boolean, non-numeric and NaN values become ``0``.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return 0
    if not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and math.isnan(value):
        return 0
    if value >= 100:
        return 100
    if value <= 0:
        return 0
    return int(round(value))


class ParsedClassification(BaseModel):
    """A decoded classifier verdict for one pair of statements."""

    contradicts: bool = Field(
        default=False,
        description="True only when the classifier answered JSON true.",
    )
    confidence: int = Field(
        default=0,
        ge=0,
        le=100,
        description="Classifier certainty, clamped into [0, 100].",
    )
    explanation: str = Field(
        default=DEFAULT_EXPLANATION,
        description="Classifier's stated reason.",
    )

    @field_validator("contradicts", mode="before")
    @classmethod
    def _strict_true(cls, value: object) -> bool:
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return value is True

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: object) -> int:
        return clamp_confidence(value)

    @field_validator("explanation", mode="before")
    @classmethod
    def _explanation(cls, value: object) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return DEFAULT_EXPLANATION


@dataclass(frozen=True)
class ParseError:
    """The classifier answered, but the answer could not be decoded."""

    reason: str
    raw: str = ""


@dataclass(frozen=True)
class ClassificationUnavailable:
    """The classifier could not be reached or raised an error."""

    reason: str


ClassificationOutcome = ParsedClassification | ParseError | ClassificationUnavailable


def _decode(raw: str) -> ParsedClassification:
    text = raw.strip()
    match = _CODE_FENCE_RE.match(text)
    if match:
        text = match.group(1).strip()

    obj = _OBJECT_RE.search(text)
    if obj is None:
        raise ParseFailure("no JSON object in classifier response")
    try:
        data = json.loads(obj.group(0))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ParseFailure(f"invalid JSON from classifier: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseFailure("classifier payload is not a JSON object")
    try:
        return ParsedClassification.model_validate(data)
    except ValidationError as exc:
        raise ParseFailure(f"schema validation failed: {exc}") from exc


def parse_classification(raw: str) -> ParsedClassification | ParseError:
    """Decode a raw classifier response into a tagged outcome."""
    if not isinstance(raw, str):
        return ParseError(reason="classifier response is not text")
    try:
        return _decode(raw)
    except ParseFailure as exc:
        return ParseError(reason=str(exc), raw=raw[:500])
