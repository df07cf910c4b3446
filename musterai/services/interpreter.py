from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any


logger = logging.getLogger(__name__)

# Bound the outward walk so pathological outputs stay linear-ish.
_MAX_ENCLOSING_CANDIDATES = 64


@dataclass(frozen=True)
class ExtractionFailure:
    expected_key: str
    reason: str


def _balanced_end(text: str, start: int) -> int | None:
    # Index of the brace closing text[start], skipping braces inside JSON strings.
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
                return index
    return None


def _enclosing_starts(text: str, anchor: int) -> list[int]:
    # Opening braces before the anchor, nearest first.
    starts: list[int] = []
    index = text.rfind("{", 0, anchor)
    while index != -1 and len(starts) < _MAX_ENCLOSING_CANDIDATES:
        starts.append(index)
        index = text.rfind("{", 0, index)
    return starts


def extract_structured(raw_text: str | None, expected_key: str) -> Any | ExtractionFailure:
    """Pull ``expected_key`` out of the first JSON object in free text that holds it.

    Never raises; callers get an ``ExtractionFailure`` to degrade on.
    """
    if not raw_text:
        return ExtractionFailure(expected_key=expected_key, reason="empty_text")

    literal = json.dumps(expected_key)
    anchor = raw_text.find(literal)
    if anchor == -1:
        return ExtractionFailure(expected_key=expected_key, reason="key_not_found")

    while anchor != -1:
        for start in _enclosing_starts(raw_text, anchor):
            end = _balanced_end(raw_text, start)
            if end is None or end < anchor:
                continue
            try:
                parsed = json.loads(raw_text[start : end + 1])
            except (ValueError, RecursionError):
                # Pathologically nested candidates are treated as unparseable.
                continue
            if isinstance(parsed, dict) and expected_key in parsed:
                return parsed[expected_key]
        anchor = raw_text.find(literal, anchor + len(literal))

    logger.info("structured_extraction_failed expected_key=%s", expected_key)
    return ExtractionFailure(expected_key=expected_key, reason="no_parseable_object")


def text_or_fallback(raw_text: str | None, fallback: str) -> str:
    # Free-text endpoints substitute a fixed string for blank completions.
    if raw_text and raw_text.strip():
        return raw_text
    return fallback
