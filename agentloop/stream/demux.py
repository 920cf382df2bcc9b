"""
Incremental tag demultiplexer for streamed model output.

Splits a chunked text stream into three kinds of spans:

  - plain answer text,
  - reasoning spans wrapped in ``<think>``-style tags,
  - tool-call spans wrapped in ``<tool_call>`` tags (never shown to the user).

Chunk boundaries are arbitrary: a marker may be split across any number of
``push`` calls.  The demultiplexer keeps back only the shortest trailing
fragment that could still grow into a marker, so memory stays bounded and no
character is lost or emitted twice.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

_TAG_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_\-]*$")


class SpanKind(Enum):
    THINK = "think"
    TOOL_CALL = "tool_call"


class ParserMode(Enum):
    TEXT = "text"
    THINK = "think"
    TOOL_CALL = "tool_call"


@dataclass(frozen=True)
class TagSpec:
    """One row of the marker table: ``<name>`` opens, ``</name>`` closes."""

    name: str
    kind: SpanKind

    def __post_init__(self) -> None:
        if not _TAG_NAME_RE.match(self.name):
            raise ValueError(f"Invalid tag name: {self.name!r}")

    @property
    def start(self) -> str:
        return f"<{self.name}>"

    @property
    def end(self) -> str:
        return f"</{self.name}>"


THINK_TAG_NAMES = ("think", "analysis", "reasoning", "reflection", "thought", "thinking")
TOOL_CALL_TAG = TagSpec("tool_call", SpanKind.TOOL_CALL)

DEFAULT_TAGS: tuple[TagSpec, ...] = tuple(
    TagSpec(name, SpanKind.THINK) for name in THINK_TAG_NAMES
) + (TOOL_CALL_TAG,)


def build_tag_table(think_tags: Iterable[str] | None = None) -> tuple[TagSpec, ...]:
    """Build a marker table from reasoning tag names plus the tool-call tag."""
    if think_tags is None:
        return DEFAULT_TAGS
    specs = [TagSpec(name.lower(), SpanKind.THINK) for name in think_tags]
    specs.append(TOOL_CALL_TAG)
    return tuple(specs)


def _alternation(markers: Iterable[str]) -> re.Pattern[str]:
    return re.compile("|".join(re.escape(m) for m in markers), re.IGNORECASE)


def _held_suffix_length(buffer: str, markers: Iterable[str], window: int) -> int:
    """
    Length of the longest suffix of *buffer* that is a proper,
    case-insensitive prefix of one of *markers*.

    Only the last *window* characters are inspected.
    """
    start = max(0, len(buffer) - window)
    for i in range(start, len(buffer)):
        if buffer[i] != "<":
            continue
        tail = buffer[i:]
        for marker in markers:
            if len(tail) < len(marker) and re.fullmatch(
                re.escape(marker[: len(tail)]), tail, re.IGNORECASE
            ):
                return len(tail)
    return 0


class TagDemultiplexer:
    """
    Classifies incrementally-arriving text into content, reasoning and
    tool-call spans.

    Parameters
    ----------
    on_text:
        Receives answer text.
    on_think:
        Receives reasoning text together with the tag name that opened it.
    on_think_start, on_think_end:
        Fired when a reasoning span opens or closes, with its tag name.
    on_tool_call:
        Receives the raw interior of ``<tool_call>`` spans.  Optional; the
        interior never reaches ``on_text``.
    tags:
        The marker table.  Defaults to ``DEFAULT_TAGS``.
    """

    def __init__(
        self,
        on_text: Callable[[str], None],
        on_think: Callable[[str, str], None] | None = None,
        on_think_start: Callable[[str], None] | None = None,
        on_think_end: Callable[[str], None] | None = None,
        on_tool_call: Callable[[str], None] | None = None,
        tags: Iterable[TagSpec] | None = None,
    ) -> None:
        self._on_text = on_text
        self._on_think = on_think
        self._on_think_start = on_think_start
        self._on_think_end = on_think_end
        self._on_tool_call = on_tool_call

        self._tags = tuple(tags) if tags is not None else DEFAULT_TAGS
        if not self._tags:
            raise ValueError("At least one tag is required")
        self._start_markers = [t.start for t in self._tags]
        self._start_re = re.compile(
            "|".join(
                f"(?P<t{i}>{re.escape(t.start)})" for i, t in enumerate(self._tags)
            ),
            re.IGNORECASE,
        )
        self.max_marker_length = max(len(m) for m in self._start_markers)

        self._buffer = ""
        self._mode = ParserMode.TEXT
        self._current: TagSpec | None = None
        self._end_re: re.Pattern[str] | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ParserMode:
        return self._mode

    @property
    def buffer(self) -> str:
        """Text held back because it may be the beginning of a marker."""
        return self._buffer

    @property
    def current_tag(self) -> str | None:
        """Name of the open reasoning tag while in THINK mode."""
        if self._mode is ParserMode.THINK and self._current is not None:
            return self._current.name
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def push(self, text: str) -> None:
        """Feed the next chunk of the stream."""
        if not text:
            return
        self._buffer += text
        self._process()

    def flush(self) -> None:
        """
        Emit everything still buffered as content of the current mode.

        Call once at stream end.  An unterminated reasoning span is delivered
        to ``on_think``; an unterminated tool-call span to ``on_tool_call``.
        The demultiplexer is back in TEXT mode afterwards.
        """
        if self._buffer:
            if self._mode is ParserMode.TEXT:
                self._emit_text(self._buffer)
            elif self._mode is ParserMode.THINK:
                self._emit_think(self._buffer)
            else:
                self._emit_tool_call(self._buffer)
        self._buffer = ""
        self._enter_text()

    # ------------------------------------------------------------------
    # Classification loop
    # ------------------------------------------------------------------

    def _process(self) -> None:
        while self._buffer:
            if self._mode is ParserMode.TEXT:
                if not self._step_text():
                    break
            elif not self._step_span():
                break

    def _step_text(self) -> bool:
        """Returns False when more input is needed."""
        match = self._start_re.search(self._buffer)
        if match is None:
            held = _held_suffix_length(
                self._buffer, self._start_markers, self.max_marker_length - 1
            )
            self._emit_text(self._buffer[: len(self._buffer) - held])
            self._buffer = self._buffer[len(self._buffer) - held :]
            return False

        self._emit_text(self._buffer[: match.start()])
        self._buffer = self._buffer[match.end() :]

        spec = self._tags[int(match.lastgroup[1:])]
        self._current = spec
        self._end_re = _alternation([spec.end])
        if spec.kind is SpanKind.THINK:
            self._mode = ParserMode.THINK
            if self._on_think_start is not None:
                self._on_think_start(spec.name)
        else:
            self._mode = ParserMode.TOOL_CALL
        return True

    def _step_span(self) -> bool:
        """Advance inside a THINK or TOOL_CALL span."""
        assert self._current is not None and self._end_re is not None
        emit = self._emit_think if self._mode is ParserMode.THINK else self._emit_tool_call
        end_marker = self._current.end

        match = self._end_re.search(self._buffer)
        if match is None:
            held = _held_suffix_length(
                self._buffer, [end_marker], len(end_marker) - 1
            )
            emit(self._buffer[: len(self._buffer) - held])
            self._buffer = self._buffer[len(self._buffer) - held :]
            return False

        emit(self._buffer[: match.start()])
        self._buffer = self._buffer[match.end() :]

        closed = self._current
        was_think = self._mode is ParserMode.THINK
        self._enter_text()
        if was_think and self._on_think_end is not None:
            self._on_think_end(closed.name)
        return True

    def _enter_text(self) -> None:
        self._mode = ParserMode.TEXT
        self._current = None
        self._end_re = None

    # ------------------------------------------------------------------
    # Emitters
    # ------------------------------------------------------------------

    def _emit_text(self, text: str) -> None:
        if text:
            self._on_text(text)

    def _emit_think(self, text: str) -> None:
        if text and self._on_think is not None:
            tag = self._current.name if self._current is not None else "think"
            self._on_think(text, tag)

    def _emit_tool_call(self, text: str) -> None:
        if text and self._on_tool_call is not None:
            self._on_tool_call(text)
