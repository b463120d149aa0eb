# src/second_brain/core/json_extract.py

"""
Recover a JSON value from provider output.

Models do not always honour "return ONLY JSON". Each strategy below is a pure
function returning the decoded value or None; `decode_json_loose` tries them
in order and the first success wins:

1. the whole text
2. a ```json fenced block
3. any ``` fenced block
4. the first {...} object found anywhere in the text
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any

logger = logging.getLogger(__name__)

Strategy = Callable[[str], Any | None]

_JSON_FENCE_RE = re.compile(r"```json\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```\s*\n?([\s\S]*?)\n?```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _loads(candidate: str | None) -> Any | None:
    if candidate is None:
        return None
    candidate = candidate.strip()
    if not candidate:
        return None
    try:
        return json.loads(candidate)
    except ValueError:
        return None


def decode_direct(text: str) -> Any | None:
    return _loads(text)


def decode_json_fence(text: str) -> Any | None:
    m = _JSON_FENCE_RE.search(text)
    return _loads(m.group(1)) if m else None


def decode_any_fence(text: str) -> Any | None:
    m = _ANY_FENCE_RE.search(text)
    return _loads(m.group(1)) if m else None


def decode_brace_object(text: str) -> Any | None:
    m = _OBJECT_RE.search(text)
    if m:
        value = _loads(m.group(0))
        if value is not None:
            return value
    # Greedy match failed (e.g. trailing prose with braces): try first..last brace.
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        return _loads(text[first : last + 1])
    return None


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    decode_direct,
    decode_json_fence,
    decode_any_fence,
    decode_brace_object,
)


def decode_json_loose(text: str | None, strategies: Sequence[Strategy] = DEFAULT_STRATEGIES) -> Any | None:
    """Return the first value any strategy decodes, or None."""
    if not text or not text.strip():
        return None
    for strategy in strategies:
        value = strategy(text)
        if value is not None:
            return value
    logger.debug("No JSON recovered from provider output: %r", text[:500])
    return None
