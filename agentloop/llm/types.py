"""Core types for the LLM subsystem."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agentloop.orchestrator.cancellation import CancellationToken


class FinishReason(str, Enum):
    """Why the model stopped generating."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    ERROR = "error"

    @classmethod
    def from_wire(cls, value: str | None) -> FinishReason:
        """Map a provider's raw finish reason onto the fixed enum."""
        if value is None:
            return cls.STOP
        value = value.lower()
        if value in ("tool_calls", "function_call", "tool_use", "tool-calls"):
            return cls.TOOL_CALLS
        if value in ("length", "max_tokens"):
            return cls.LENGTH
        if value in ("error", "content_filter"):
            return cls.ERROR
        return cls.STOP


@dataclass
class ToolCall:
    """A model-requested tool invocation. ``arguments`` stays JSON-encoded."""

    id: str
    name: str
    arguments: str = "{}"
    signature: str | None = None

    def parse_arguments(self) -> dict[str, Any]:
        """
        Decode ``arguments``.

        Raises ``ValueError`` when the payload is not a JSON object.
        """
        parsed = json.loads(self.arguments or "{}")
        if not isinstance(parsed, dict):
            raise ValueError(
                f"tool arguments must be a JSON object, got {type(parsed).__name__}"
            )
        return parsed


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: TokenUsage | None) -> None:
        """Accumulate *other* into this counter field by field."""
        if other is None:
            return
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens

    def copy(self) -> TokenUsage:
        return TokenUsage(
            self.prompt_tokens, self.completion_tokens, self.total_tokens
        )


@dataclass
class ChatOptions:
    """Generation options passed through to the provider."""

    temperature: float = 0.7
    max_tokens: int = 2048
    cancel_token: CancellationToken | None = None


@dataclass
class ChatResponse:
    """A complete (non-streamed) completion."""

    content: str = ""
    finish_reason: FinishReason = FinishReason.STOP
    tool_calls: list[ToolCall] | None = None
    usage: TokenUsage | None = None


@dataclass
class RawToolDelta:
    """
    An incremental delta for a streaming tool call.

    Providers emit these as tool-call fragments arrive.  The ToolCallAssembler
    accumulates them and produces finished ToolCall objects.
    """

    call_index: int
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""
    signature: str | None = None
    done: bool = False


@dataclass
class StreamChunk:
    """
    A single chunk yielded while streaming a chat completion.

    *delta* carries new text content; when *cumulative* is set it carries the
    whole text generated so far instead.
    *tool_calls* carries fully-assembled tool calls, usually on the last chunk.
    *usage* carries token counters, usually on the last chunk.
    *done* is ``True`` on the final chunk, together with *finish_reason*.
    """

    delta: str = ""
    finish_reason: FinishReason | None = None
    tool_calls: list[ToolCall] | None = None
    usage: TokenUsage | None = None
    done: bool = False
    cumulative: bool = False
