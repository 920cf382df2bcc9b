"""
Tool execution.

The agent hands each round's tool calls to a ``ToolExecutor`` and gets back
one ``ToolOutcome`` per call, in the same order.  ``RegistryToolExecutor``
runs calls against a ``ToolRegistry``:

1. Decode the JSON argument string
2. Registry lookup
3. Validate args against the tool's schema
4. Execute with timeout

Any failure along the way becomes that call's failed outcome; it never
aborts the remaining calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from agentloop.llm.types import ToolCall
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.validation import ToolValidator
from agentloop.types import ErrorCode

logger = logging.getLogger(__name__)


@dataclass
class ToolOutcome:
    """Result of one tool call as seen by the agent."""

    success: bool
    result: Any = None
    error: str | None = None
    error_code: str | None = None
    duration_ms: int = 0


class ToolExecutor(ABC):
    @abstractmethod
    async def execute(self, calls: list[ToolCall]) -> list[ToolOutcome]:
        """Run *calls* in order and return one outcome per call, 1:1 by position."""
        ...


class RegistryToolExecutor(ToolExecutor):
    """
    Executes tool calls against registered ``Tool`` objects, one at a time.

    Parameters
    ----------
    registry : ToolRegistry
        Registered tools.
    timeout : float
        Max seconds for a single tool execution.
    """

    def __init__(self, registry: ToolRegistry, timeout: float = 30.0) -> None:
        self.registry = registry
        self.timeout = timeout

    async def execute(self, calls: list[ToolCall]) -> list[ToolOutcome]:
        outcomes: list[ToolOutcome] = []
        for call in calls:
            outcomes.append(await self._execute_one(call))
        return outcomes

    async def _execute_one(self, call: ToolCall) -> ToolOutcome:
        # 1. Decode arguments
        try:
            arguments = call.parse_arguments()
        except ValueError as e:
            return ToolOutcome(
                success=False,
                error=f"Invalid arguments for {call.name}: {e}",
                error_code=ErrorCode.INVALID_ARGUMENTS,
            )

        # 2. Registry lookup
        tool = self.registry.get(call.name)
        if tool is None:
            return ToolOutcome(
                success=False,
                error=f"Unknown tool: {call.name}",
                error_code=ErrorCode.UNKNOWN_TOOL,
            )

        # 3. Validate args
        valid, error_msg = ToolValidator.validate(tool, arguments)
        if not valid:
            return ToolOutcome(
                success=False,
                error=f"Validation error: {error_msg}",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        # 4. Execute with timeout
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                tool.execute(**arguments),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return ToolOutcome(
                success=False,
                error=f"Timeout after {self.timeout}s",
                error_code=ErrorCode.TIMEOUT,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except Exception as e:
            logger.exception("Tool %s raised", call.name)
            return ToolOutcome(
                success=False,
                error=f"Tool exception: {e}",
                error_code=ErrorCode.TOOL_EXCEPTION,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        if not result.success:
            return ToolOutcome(
                success=False,
                error=result.error or "Tool reported failure",
                error_code=result.error_code,
                duration_ms=duration_ms,
            )
        return ToolOutcome(success=True, result=result.data, duration_ms=duration_ms)
