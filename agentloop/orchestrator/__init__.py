"""Agent orchestration: the tool-calling loop, cancellation, stream events."""

from agentloop.orchestrator.cancellation import CancellationToken
from agentloop.orchestrator.core import (
    Agent,
    AgentConfig,
    AgentResult,
    run_agent,
    run_agent_stream,
)
from agentloop.orchestrator.events import (
    EVENT_CONTENT,
    EVENT_DONE,
    EVENT_ERROR,
    EVENT_THINK,
    EVENT_TOOL_RESULT,
    EVENT_TOOL_START,
    StreamEvent,
    content_event,
    done_event,
    error_event,
    think_event,
    tool_result_event,
    tool_start_event,
)

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentResult",
    "CancellationToken",
    "StreamEvent",
    "run_agent",
    "run_agent_stream",
    # Event type constants
    "EVENT_CONTENT",
    "EVENT_DONE",
    "EVENT_ERROR",
    "EVENT_THINK",
    "EVENT_TOOL_RESULT",
    "EVENT_TOOL_START",
    # Factory functions
    "content_event",
    "done_event",
    "error_event",
    "think_event",
    "tool_result_event",
    "tool_start_event",
]
