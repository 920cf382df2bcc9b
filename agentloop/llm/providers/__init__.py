"""LLM provider implementations."""

from agentloop.llm.providers.base import Provider
from agentloop.llm.providers.openai_compat import OpenAICompatProvider

__all__ = ["OpenAICompatProvider", "Provider"]
