"""Tools -- base class, registry, schema validation and execution."""

from agentloop.tools.base import Tool, normalize_schema
from agentloop.tools.executor import RegistryToolExecutor, ToolExecutor, ToolOutcome
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.validation import ToolValidator

__all__ = [
    "RegistryToolExecutor",
    "Tool",
    "ToolExecutor",
    "ToolOutcome",
    "ToolRegistry",
    "ToolValidator",
    "normalize_schema",
]
