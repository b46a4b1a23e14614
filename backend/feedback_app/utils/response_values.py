"""Canonical storage form for submitted answer values.

Answers arrive as arbitrary JSON. They are stored as canonical JSON text
so that equal values always produce equal strings, and are read back as a
small tagged `ResponseValue` whose kind follows the question type.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Optional

RATING_TYPES = {"rating", "scale", "likert"}
CHOICE_TYPES = {"choice", "mcq", "select", "radio"}
TEXT_TYPES = {"text", "comment", "textarea"}


@dataclass(frozen=True)
class ResponseValue:
    kind: str
    value: Any
    score: Optional[float] = None


def encode_response(value: Any) -> str:
    """Serialize `value` to canonical JSON text.

    Keys are sorted and separators compact so the same value always maps
    to the same string. NaN and infinities are rejected because they are
    not valid JSON.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def _score(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    if isinstance(value, dict):
        nested = value.get("score")
        return _score(nested) if isinstance(nested, (int, float)) else None
    return None


def decode_response(raw: str, question_type: str = "") -> ResponseValue:
    """Parse stored text back into a `ResponseValue` keyed by question type."""
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return ResponseValue(kind="raw", value=raw)
    qtype = (question_type or "").strip().lower()
    if qtype in RATING_TYPES:
        return ResponseValue(kind="rating", value=value, score=_score(value))
    if qtype in CHOICE_TYPES:
        return ResponseValue(kind="choice", value=value)
    if qtype in TEXT_TYPES:
        return ResponseValue(kind="text", value=value if isinstance(value, str) else encode_response(value))
    return ResponseValue(kind="raw", value=value)
