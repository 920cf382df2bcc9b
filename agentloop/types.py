from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    metadata: dict = field(default_factory=dict)


class ErrorCode:
    INVALID_ARGUMENTS = "invalid_arguments"
    VALIDATION_ERROR = "validation_error"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"
    UNKNOWN_TOOL = "unknown_tool"


class ToolExecutionError(RuntimeError):
    """The tool executor broke its contract (e.g. result count mismatch)."""
