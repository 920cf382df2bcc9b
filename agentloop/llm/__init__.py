"""LLM subsystem -- provider interface, routing, and streaming tool-call assembly."""

from agentloop.llm.types import (
    ChatOptions,
    ChatResponse,
    FinishReason,
    Message,
    RawToolDelta,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from agentloop.llm.router import LLMRouter
from agentloop.llm.tool_call_assembler import ToolCallAssembler

__all__ = [
    "ChatOptions",
    "ChatResponse",
    "FinishReason",
    "LLMRouter",
    "Message",
    "RawToolDelta",
    "StreamChunk",
    "TokenUsage",
    "ToolCall",
    "ToolCallAssembler",
]
