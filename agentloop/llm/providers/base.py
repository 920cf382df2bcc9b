"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from agentloop.llm.types import ChatOptions, ChatResponse, Message, StreamChunk


class Provider(ABC):
    """
    A provider encapsulates access to a single LLM endpoint.

    This is the only seam between the agent and a backend: the agent never
    inspects which provider it talks to.  Implementations must support:
      - One-shot completions (``complete``).
      - Streaming completions (``stream``).
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Run a completion and return the whole response."""
        ...

    @abstractmethod
    async def stream(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Start a streaming completion.

        Yields ``StreamChunk`` objects.  The last chunk has ``done=True`` and
        carries the finish reason, any assembled tool calls and usage.
        """
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield StreamChunk()  # type: ignore[misc]

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compat"``)."""
        ...
