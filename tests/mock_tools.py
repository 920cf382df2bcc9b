"""Mock tool implementations for testing."""

import asyncio

from agentloop.llm.types import ToolCall
from agentloop.tools.base import Tool
from agentloop.tools.executor import ToolExecutor, ToolOutcome
from agentloop.types import ToolResult


class EchoTool(Tool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echoes the input message back."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to echo"},
            },
            "required": ["message"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=True, data=kwargs.get("message", ""))


class WeatherTool(Tool):
    """Returns canned weather for a city."""

    def __init__(self, temperature: int = 18, condition: str = "cloudy") -> None:
        self.temperature = temperature
        self.condition = condition
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "get_weather"

    @property
    def description(self) -> str:
        return "Get the current weather for a city."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "city": {"type": "string", "description": "City name"},
            },
            "required": ["city"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        self.calls.append(kwargs)
        return ToolResult(
            success=True,
            data={
                "city": kwargs["city"],
                "temperature_c": self.temperature,
                "condition": self.condition,
            },
        )


class FailingTool(Tool):
    """Reports failure through its result."""

    @property
    def name(self) -> str:
        return "failing"

    @property
    def description(self) -> str:
        return "Always reports a failure."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=False, error="backend unavailable", error_code="backend_down")


class RaisingTool(Tool):
    @property
    def name(self) -> str:
        return "raising"

    @property
    def description(self) -> str:
        return "Raises while executing."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        raise RuntimeError("kaboom")


class SlowTool(Tool):
    def __init__(self, delay: float = 1.0) -> None:
        self.delay = delay

    @property
    def name(self) -> str:
        return "slow"

    @property
    def description(self) -> str:
        return "Sleeps before answering."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, **kwargs) -> ToolResult:
        await asyncio.sleep(self.delay)
        return ToolResult(success=True, data="done")


class ExtraKeysTool(Tool):
    """A tool that explicitly allows additionalProperties in its schema."""

    @property
    def name(self) -> str:
        return "flexible"

    @property
    def description(self) -> str:
        return "Accepts arbitrary extra keys."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "base_param": {"type": "string", "description": "A base parameter"},
            },
            "required": ["base_param"],
            "additionalProperties": True,
        }

    async def execute(self, **kwargs) -> ToolResult:
        return ToolResult(success=True, data=kwargs)


class RecordingExecutor(ToolExecutor):
    """Returns a scripted outcome per call and records every batch."""

    def __init__(self, outcome: ToolOutcome | None = None) -> None:
        self.outcome = outcome or ToolOutcome(success=True, result={"ok": True})
        self.batches: list[list[ToolCall]] = []

    async def execute(self, calls: list[ToolCall]) -> list[ToolOutcome]:
        self.batches.append(list(calls))
        return [self.outcome for _ in calls]


class ShortExecutor(ToolExecutor):
    """Breaks the one-outcome-per-call contract."""

    async def execute(self, calls: list[ToolCall]) -> list[ToolOutcome]:
        return []
