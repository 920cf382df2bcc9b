"""
Stream event model.

A streaming agent run reports its progress as an ordered sequence of
StreamEvents.  The sequence ends with exactly one terminal event: ``done``
on success or cancellation, ``error`` when the run aborts on a failure.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from agentloop.llm.types import TokenUsage
from agentloop.tools.executor import ToolOutcome


@dataclass
class StreamEvent:
    """
    A single progress event of a streaming run.

    Attributes
    ----------
    event_type:
        One of ``content``, ``think``, ``tool_start``, ``tool_result``,
        ``done``, ``error``.
    payload:
        Event-specific data as a JSON-compatible dict.
    timestamp:
        UTC timestamp of event creation.
    """

    event_type: str
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.event_type in (EVENT_DONE, EVENT_ERROR)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


EVENT_CONTENT = "content"
EVENT_THINK = "think"
EVENT_TOOL_START = "tool_start"
EVENT_TOOL_RESULT = "tool_result"
EVENT_DONE = "done"
EVENT_ERROR = "error"


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def content_event(text: str, replace: bool = False) -> StreamEvent:
    """
    Create a ``content`` event.

    With ``replace=True`` the text is the complete answer and supersedes
    everything shown for it so far.
    """
    return StreamEvent(
        event_type=EVENT_CONTENT,
        payload={"text": text, "replace": replace},
    )


def think_event(
    text: str,
    tag: str,
    duration_ms: int | None = None,
) -> StreamEvent:
    """Create a ``think`` event; the closing event carries ``duration_ms``."""
    payload: dict[str, Any] = {"text": text, "tag": tag}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    return StreamEvent(event_type=EVENT_THINK, payload=payload)


def tool_start_event(
    tool_name: str,
    params: dict[str, Any] | None,
) -> StreamEvent:
    return StreamEvent(
        event_type=EVENT_TOOL_START,
        payload={"tool_name": tool_name, "params": params},
    )


def tool_result_event(tool_name: str, outcome: ToolOutcome) -> StreamEvent:
    payload: dict[str, Any] = {"tool_name": tool_name, "success": outcome.success}
    if outcome.success:
        payload["result"] = outcome.result
    else:
        payload["error"] = outcome.error
    return StreamEvent(event_type=EVENT_TOOL_RESULT, payload=payload)


def done_event(usage: TokenUsage) -> StreamEvent:
    """Create the terminal ``done`` event with cumulative usage."""
    return StreamEvent(event_type=EVENT_DONE, payload={"usage": asdict(usage)})


def error_event(message: str) -> StreamEvent:
    return StreamEvent(event_type=EVENT_ERROR, payload={"message": message})
