"""Structured-data extraction from model responses.

``parse_structured`` runs the stages in order and reports which one
succeeded:

1. ``DIRECT``    the whole text is valid JSON.
2. ``UNWRAPPED`` JSON inside a fenced block, or the first brace-balanced
   object/array embedded in prose.
3. ``REPAIRED``  a truncated object closed off (open strings, brackets and
   braces terminated).
4. ``FAILED``    nothing usable.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OPEN_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_DANGLING_KEY_RE = re.compile(r',?\s*"(?:[^"\\]|\\.)*"\s*:\s*$')


class ParseStage(StrEnum):
    DIRECT = "direct"
    UNWRAPPED = "unwrapped"
    REPAIRED = "repaired"
    FAILED = "failed"


@dataclass(frozen=True)
class ParseOutcome:
    stage: ParseStage
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.stage is not ParseStage.FAILED


FAILED = ParseOutcome(ParseStage.FAILED)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def parse_direct(text: str) -> ParseOutcome:
    data = _loads(text.strip())
    if data is None:
        return FAILED
    return ParseOutcome(ParseStage.DIRECT, data)


def parse_unwrapped(text: str) -> ParseOutcome:
    """Recover JSON from a fenced block or from surrounding prose."""
    for match in _FENCE_RE.finditer(text):
        data = _loads(match.group(1))
        if data is not None:
            return ParseOutcome(ParseStage.UNWRAPPED, data)

    data = _extract_embedded(text)
    if data is not None:
        return ParseOutcome(ParseStage.UNWRAPPED, data)
    return FAILED


def parse_repaired(text: str) -> ParseOutcome:
    """Close off a response that was cut short (e.g. by ``max_tokens``)."""
    body = text
    fence = _OPEN_FENCE_RE.search(body)
    if fence:
        body = body[fence.end():]
    start = body.find("{")
    if start == -1:
        return FAILED

    candidate = repair_truncated_json(body[start:].rstrip("`").rstrip())
    data = _loads(candidate)
    if data is None:
        return FAILED
    logger.info("Recovered truncated JSON response (%d chars)", len(text))
    return ParseOutcome(ParseStage.REPAIRED, data)


def parse_structured(text: str | None) -> ParseOutcome:
    if not text or not text.strip():
        return FAILED

    for stage in (parse_direct, parse_unwrapped, parse_repaired):
        outcome = stage(text)
        if outcome.ok:
            return outcome

    logger.warning("No structured data found in response (%d chars)", len(text))
    return FAILED


def extract_json(text: str | None) -> dict | list | None:
    """Return the parsed payload or ``None``; stage-agnostic shortcut."""
    return parse_structured(text).data


def _extract_embedded(text: str) -> dict | list | None:
    # Sliding brace-balance over the first candidate that parses.
    for i, ch in enumerate(text):
        if ch == "{":
            result = _extract_balanced(text, i, "{", "}")
        elif ch == "[":
            result = _extract_balanced(text, i, "[", "]")
        else:
            continue
        if result is not None:
            return result
    return None


def _extract_balanced(
    text: str, start: int, open_ch: str, close_ch: str
) -> dict | list | None:
    """Extract a brace-balanced substring starting at *start* and parse it."""
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape:
            escape = False
            continue

        if ch == "\\":
            if in_string:
                escape = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return _loads(text[start : i + 1])

    return None


def repair_truncated_json(fragment: str) -> str:
    """Terminate an unfinished JSON document.

    An unterminated string value becomes ``null``; an unterminated key or
    array element is dropped.  Open containers are closed innermost first.
    """
    stack: list[str] = []
    in_string = False
    escape = False
    string_start = -1

    for i, ch in enumerate(fragment):
        if escape:
            escape = False
            continue
        if in_string:
            if ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            string_start = i
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        head = fragment[:string_start].rstrip()
        if head.endswith(":"):
            return repair_truncated_json(head + "null")
        return repair_truncated_json(head)

    body = fragment.rstrip()
    body = _DANGLING_KEY_RE.sub("", body)
    body = body.rstrip().rstrip(",")
    return body + "".join(reversed(stack))
