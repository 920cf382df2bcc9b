"""Cooperative cancellation for agent runs."""

from __future__ import annotations

import threading


class CancellationToken:
    """
    A polled, thread-safe cancellation flag.

    The agent checks the token at fixed points (before a run, before each
    model request, after each streamed delta).  Requests and tool executions
    already in flight run to completion.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
