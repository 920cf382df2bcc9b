"""
LLM router: the client the agent talks to.

Holds any number of named ``Provider`` instances and forwards each request
to the one currently selected.  Wire formats are entirely the providers'
business; the router only picks a target and logs the call shape.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Mapping

from agentloop.llm.providers.base import Provider
from agentloop.llm.types import ChatOptions, ChatResponse, Message, StreamChunk

logger = logging.getLogger(__name__)


class LLMRouter:
    """Named provider table with one selected entry."""

    def __init__(self, providers: Mapping[str, Provider] | None = None) -> None:
        self._providers: dict[str, Provider] = {}
        self._selected: str | None = None
        for name, provider in (providers or {}).items():
            self.register_provider(name, provider)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    # ------------------------------------------------------------------
    # Provider table
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: Provider) -> None:
        """Add or replace *name*.  The first registration becomes selected."""
        self._providers[name] = provider
        if self._selected is None:
            self._selected = name
        logger.debug("Registered LLM provider %r (%s)", name, type(provider).__name__)

    def unregister_provider(self, name: str) -> Provider:
        """Remove *name*; selection falls back to the oldest remaining entry."""
        provider = self._providers.pop(name)
        if self._selected == name:
            self._selected = next(iter(self._providers), None)
        return provider

    def use(self, name: str) -> None:
        """Select *name* for subsequent requests; ``KeyError`` if unknown."""
        if name not in self._providers:
            known = ", ".join(self._providers) or "none"
            raise KeyError(f"Unknown provider {name!r} (registered: {known})")
        self._selected = name

    @property
    def active_name(self) -> str | None:
        return self._selected

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    @property
    def active_provider(self) -> Provider:
        if self._selected is None:
            raise RuntimeError("No LLM provider registered")
        return self._providers[self._selected]

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _target(self, kind: str, messages: list[Message], tools: list[dict] | None) -> Provider:
        provider = self.active_provider
        logger.debug(
            "%s -> %s (%d messages, %d tools)",
            kind, self._selected, len(messages), len(tools or ()),
        )
        return provider

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        provider = self._target("complete", messages, tools)
        return await provider.complete(messages, tools=tools, options=options)

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        provider = self._target("stream", messages, tools)
        async for chunk in provider.stream(messages, tools=tools, options=options):
            yield chunk
