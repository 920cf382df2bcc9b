"""
Tool interface.

A tool is a named async function with a JSON-schema parameter description.
The agent only sees the catalog entry (``to_openai_schema``); execution goes
through a ``ToolExecutor``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from agentloop.types import ToolResult


def normalize_schema(schema: dict) -> dict:
    """Object schema with closed properties unless the tool opts out."""
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    s.setdefault("additionalProperties", False)
    return s


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict: ...

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult: ...

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.parameters),
            },
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class FunctionTool(Tool):
    """
    Wraps a plain async function as a tool.

    The function receives the decoded arguments as keyword arguments.  A
    returned ``ToolResult`` is passed through; any other value becomes the
    data of a successful result.

    Parameters
    ----------
    name, description :
        Catalog entry shown to the model.
    parameters : dict
        JSON schema of the arguments.
    func : callable
        ``async def func(**kwargs)``.
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict,
        func: Callable[..., Awaitable[Any]],
    ) -> None:
        self._name = name
        self._description = description
        self._parameters = parameters
        self._func = func

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict:
        return self._parameters

    async def execute(self, **kwargs) -> ToolResult:
        value = await self._func(**kwargs)
        if isinstance(value, ToolResult):
            return value
        return ToolResult(success=True, data=value)
