# =============================================================================
# lib/response_normalizer.py - Lenient Model Output Parser
# =============================================================================
# Turns free-form model text into a JSON object using an ordered chain of
# independent, pure strategies. The first strategy that yields a dict wins:
#
#   1. direct        - parse the text as-is
#   2. unfenced      - strip ``` fences (optional language tag)
#   3. braces        - extract the first balanced top-level {...}
#   4. sanitized     - escape raw newlines/tabs inside strings, drop control bytes
#
# If every strategy fails, ParseError carries the reason and a snippet of
# the original text.
#
# Usage:
#   from lib.response_normalizer import normalize, parse_listing
#   data = normalize('```json\n{"a": 1}\n```')  # {"a": 1}
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

from core.models.generation import ListingCopy
from lib.errors import ParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\r?\n?(.*?)\r?\n?```\s*$", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_CLOSE_FENCE_RE = re.compile(r"\r?\n?```\s*$")

_STRING_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}
_WHITESPACE = {"\n", "\r", "\t"}


# =============================================================================
# Text Transforms (pure)
# =============================================================================

def strip_fences(text: str) -> str:
    """
    Remove leading/trailing Markdown code fences.

    Handles a missing closing fence, which truncated model output produces.
    """
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    stripped = _OPEN_FENCE_RE.sub("", text, count=1)
    stripped = _CLOSE_FENCE_RE.sub("", stripped, count=1)
    return stripped.strip()


def extract_braced(text: str) -> str | None:
    """
    Return the first balanced top-level {...} substring, or None.

    The scan is string-aware: braces inside JSON string literals (and escaped
    quotes) do not affect the depth count.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from this brace; try the next opening brace
        start = text.find("{", start + 1)
    return None


def sanitize_control_chars(text: str) -> str:
    """
    Make raw control characters JSON-legal.

    Inside string literals, literal newlines/carriage returns/tabs become
    their escape sequences and other control bytes are dropped. Outside
    strings, whitespace is kept and other control bytes are dropped.
    """
    out = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
                out.append(char)
                continue
            if char == "\\":
                escaped = True
                out.append(char)
            elif char == '"':
                in_string = False
                out.append(char)
            elif char in _STRING_ESCAPES:
                out.append(_STRING_ESCAPES[char])
            elif ord(char) < 0x20 or ord(char) == 0x7F:
                continue
            else:
                out.append(char)
            continue

        if char == '"':
            in_string = True
            out.append(char)
        elif char in _WHITESPACE or (ord(char) >= 0x20 and ord(char) != 0x7F):
            out.append(char)
    return "".join(out)


# =============================================================================
# Strategies
# =============================================================================
# Each strategy takes the raw text and returns the candidate string to
# json-decode, or None when it does not apply.

def _direct(text: str) -> str | None:
    return text


def _unfenced(text: str) -> str | None:
    stripped = strip_fences(text)
    return stripped if stripped != text.strip() else None


def _braces(text: str) -> str | None:
    return extract_braced(strip_fences(text))


def _sanitized(text: str) -> str | None:
    base = strip_fences(text)
    candidate = extract_braced(base)
    if candidate is None:
        # No balanced object (e.g. an unterminated string); sanitize the whole body
        candidate = base
    return sanitize_control_chars(candidate)


STRATEGIES: list[tuple[str, Callable[[str], str | None]]] = [
    ("direct", _direct),
    ("unfenced", _unfenced),
    ("braces", _braces),
    ("sanitized", _sanitized),
]


# =============================================================================
# Public API
# =============================================================================

def _decode_object(candidate: str) -> dict[str, Any]:
    value = json.loads(candidate)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def normalize(raw_text: str | None) -> dict[str, Any]:
    """
    Parse model output into a dict using the ordered strategies.

    Args:
        raw_text: Free-form model output

    Returns:
        The first JSON object any strategy produces

    Raises:
        ParseError: If every strategy fails
    """
    text = raw_text or ""
    if not text.strip():
        raise ParseError("empty response", text)

    reasons = []
    for name, strategy in STRATEGIES:
        candidate = strategy(text)
        if candidate is None:
            continue
        try:
            value = _decode_object(candidate)
        except (json.JSONDecodeError, ValueError) as e:
            reasons.append(f"{name}: {e}")
            continue
        if name != "direct":
            logger.debug(f"Model output parsed with '{name}' strategy")
        return value

    reason = reasons[-1] if reasons else "no JSON object found"
    logger.warning(f"Model output could not be parsed ({len(reasons)} strategies failed)")
    raise ParseError(reason, text)


def parse_listing(raw_text: str | None) -> ListingCopy:
    """
    Parse listing copy from model output.

    Missing optional fields default to empty strings / empty lists.

    Raises:
        ParseError: If no JSON object can be recovered
    """
    return ListingCopy.model_validate(normalize(raw_text))
