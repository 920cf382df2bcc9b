"""Named tool catalog with entry-point plugin loading."""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import Iterable

from agentloop.tools.base import Tool

logger = logging.getLogger(__name__)

PLUGIN_GROUP = "agentloop.tools"


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug("Registered tool %s", tool.name)

    def unregister(self, name: str) -> Tool:
        """Remove and return the tool registered as *name*."""
        return self._tools.pop(name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        tool = self.get(name)
        if tool is None:
            raise KeyError(name)
        return tool

    def list(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def to_openai_schema(self, names: Iterable[str] | None = None) -> list[dict]:
        """
        The tool catalog handed to the model, sorted by name.

        With *names*, only those tools are included; unknown names raise
        ``KeyError``.
        """
        if names is None:
            tools = self.list()
        else:
            tools = sorted((self.require(n) for n in set(names)), key=lambda t: t.name)
        return [t.to_openai_schema() for t in tools]

    def load_plugins(
        self,
        *,
        enabled: bool,
        group: str = PLUGIN_GROUP,
        allow_distributions: set[str] | None = None,
        allow_tools: set[str] | None = None,
    ) -> int:
        """Register tools advertised under the *group* entry point.

        Each entry point must resolve to a ``Tool`` subclass constructible
        without arguments; anything else is logged and skipped.  Returns the
        number of tools loaded.
        """
        if not enabled:
            return 0
        loaded = 0
        for ep in entry_points(group=group):
            dist = getattr(ep, "dist", None)
            dist_name = getattr(dist, "name", None)
            if allow_distributions and dist_name and dist_name not in allow_distributions:
                logger.info("Skipping plugin %s from %s (distribution not allowed)", ep.name, dist_name)
                continue
            if allow_tools and ep.name not in allow_tools:
                logger.info("Skipping plugin %s (tool not allowed)", ep.name)
                continue
            tool_cls = ep.load()
            if not (isinstance(tool_cls, type) and issubclass(tool_cls, Tool)):
                logger.warning("Plugin %s does not resolve to a Tool subclass: %r", ep.name, tool_cls)
                continue
            self.register(tool_cls())
            loaded += 1
        logger.info("Loaded %d tool plugin(s) from %s", loaded, group)
        return loaded
