"""agentloop -- a bounded, streaming tool-calling agent loop for chat LLMs."""

__version__ = "0.1.0"
