"""Stream classification -- tag demultiplexing and fallback tool-call markup."""

from agentloop.stream.demux import (
    DEFAULT_TAGS,
    ParserMode,
    SpanKind,
    TagDemultiplexer,
    TagSpec,
    build_tag_table,
)
from agentloop.stream.markup import (
    FALLBACK_ID_PREFIX,
    extract_reasoning,
    extract_tool_calls,
    has_tool_call_markup,
    sanitize_answer,
    strip_reasoning,
    strip_tool_calls,
)

__all__ = [
    "DEFAULT_TAGS",
    "FALLBACK_ID_PREFIX",
    "ParserMode",
    "SpanKind",
    "TagDemultiplexer",
    "TagSpec",
    "build_tag_table",
    "extract_reasoning",
    "extract_tool_calls",
    "has_tool_call_markup",
    "sanitize_answer",
    "strip_reasoning",
    "strip_tool_calls",
]
