"""
LLM classification schema.

Defines the dataclass an LLM classification answer is parsed into and
the tolerant parser that extracts it from raw model text.  Models
frequently wrap JSON in markdown fences or add a sentence before it,
so the parser looks for the first ``{...}`` block.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Optional

UNKNOWN_KEY = "UNKNOWN"

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class ClassificationResponse:
    """Structured answer of an LLM classification request."""

    canonical_key: str
    confidence: Optional[float] = None
    reasoning: str = ""

    @property
    def is_unknown(self) -> bool:
        return self.canonical_key.strip().upper() == UNKNOWN_KEY


def parse_classification_json(content: str) -> ClassificationResponse:
    """Parse raw model output into a `ClassificationResponse`.

    Raises:
        ValueError: if no JSON object with a ``canonical_key`` can be found.
    """
    if not content:
        raise ValueError("empty LLM response")
    text = _FENCE_RE.sub("", content).strip()
    match = _OBJECT_RE.search(text)
    if not match:
        raise ValueError(f"no JSON object in LLM response: {content[:80]!r}")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON in LLM response: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("LLM response is not a JSON object")
    key = data.get("canonical_key")
    if not isinstance(key, str) or not key.strip():
        raise ValueError("LLM response missing canonical_key")
    confidence = data.get("confidence")
    parsed_conf: Optional[float]
    try:
        parsed_conf = float(confidence) if confidence is not None else None
    except (TypeError, ValueError):
        parsed_conf = None
    return ClassificationResponse(
        canonical_key=key.strip(),
        confidence=parsed_conf,
        reasoning=str(data.get("reasoning") or ""),
    )
