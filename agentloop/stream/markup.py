"""
Fallback handling for tool calls and reasoning embedded in plain text.

Some backends (or relays in front of them) do not return structured tool
calls, or return them under a finish reason that contradicts them.  Models
served that way usually still write the call inline::

    <tool_call>{"name": "get_weather", "arguments": {"city": "Paris"}}</tool_call>

The helpers here recover such calls and remove the markup from any text that
is about to be displayed.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Iterable

from agentloop.llm.types import ToolCall
from agentloop.stream.demux import THINK_TAG_NAMES, TagDemultiplexer, build_tag_table

logger = logging.getLogger(__name__)

FALLBACK_ID_PREFIX = "fallback-"

_TOOL_CALL_OPEN_RE = re.compile(r"<tool_call>", re.IGNORECASE)
_TOOL_CALL_BLOCK_RE = re.compile(r"<tool_call>([\s\S]*?)</tool_call>", re.IGNORECASE)


def _reasoning_re(tags: Iterable[str]) -> re.Pattern[str]:
    names = "|".join(re.escape(t) for t in tags)
    return re.compile(rf"<({names})>([\s\S]*?)</\1>", re.IGNORECASE)


_DEFAULT_REASONING_RE = _reasoning_re(THINK_TAG_NAMES)


def has_tool_call_markup(text: str) -> bool:
    """Return True if *text* contains an opening ``<tool_call>`` marker."""
    return bool(text) and _TOOL_CALL_OPEN_RE.search(text) is not None


def extract_tool_calls(text: str) -> list[ToolCall] | None:
    """
    Recover every ``<tool_call>`` block in *text* as a ``ToolCall``.

    Each block must hold a JSON object with a string ``name`` and
    ``arguments`` given either as a string or as an object (re-serialized).
    Malformed blocks are logged and skipped.  Returns ``None`` when no valid
    call was found.
    """
    calls: list[ToolCall] = []
    for match in _TOOL_CALL_BLOCK_RE.finditer(text or ""):
        raw = match.group(1).strip()
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse tool_call block: %s (%s)", raw[:200], exc)
            continue

        if not isinstance(parsed, dict):
            logger.warning("tool_call block is not a JSON object: %s", raw[:200])
            continue

        name = parsed.get("name")
        arguments = parsed.get("arguments")
        if not isinstance(name, str) or not name:
            logger.warning("tool_call block has no usable name: %s", raw[:200])
            continue
        if isinstance(arguments, dict):
            arguments = json.dumps(arguments, ensure_ascii=False)
        elif not isinstance(arguments, str):
            logger.warning("tool_call block has no usable arguments: %s", raw[:200])
            continue

        calls.append(
            ToolCall(
                id=f"{FALLBACK_ID_PREFIX}{uuid.uuid4().hex}",
                name=name,
                arguments=arguments,
            )
        )

    return calls or None


def strip_tool_calls(text: str) -> str:
    """Remove complete ``<tool_call>`` blocks; everything else is untouched."""
    if not text:
        return ""
    return _TOOL_CALL_BLOCK_RE.sub("", text)


def extract_reasoning(
    text: str, tags: Iterable[str] | None = None
) -> tuple[str, str]:
    """
    Split *text* into ``(reasoning, clean_text)``.

    Complete reasoning blocks are collected (stripped, newline-joined) and
    removed from the text.
    """
    if not text:
        return "", ""
    pattern = _DEFAULT_REASONING_RE if tags is None else _reasoning_re(tags)
    parts = [m.group(2).strip() for m in pattern.finditer(text)]
    clean = pattern.sub("", text)
    return "\n".join(p for p in parts if p), clean


def strip_reasoning(text: str, tags: Iterable[str] | None = None) -> str:
    return extract_reasoning(text, tags)[1]


def sanitize_answer(text: str, tags: Iterable[str] | None = None) -> str:
    """
    Display form of a final answer: no reasoning, no tool calls, trimmed.

    The text runs through one ``TagDemultiplexer`` pass and only its
    ``on_text`` output is kept, so the result matches what streaming shows
    even when reasoning and tool-call markup overlap.  Spans left open at
    the end are dropped.
    """
    if not text:
        return ""
    parts: list[str] = []
    demux = TagDemultiplexer(on_text=parts.append, tags=build_tag_table(tags))
    demux.push(text)
    demux.flush()
    return "".join(parts).strip()
