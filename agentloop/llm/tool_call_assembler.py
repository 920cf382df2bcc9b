"""
Stitches streamed tool-call fragments back into ``ToolCall`` objects.

OpenAI-style streams spread one call over many deltas that share a
``call_index``: the id and name usually arrive first, the argument JSON in
pieces afterwards.  Arguments are kept as the raw string the model wrote;
decoding them is left to the tool executor so a malformed payload fails
only its own call.  A call that never received a name is dropped and noted
in ``errors``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from agentloop.llm.types import RawToolDelta, ToolCall


@dataclass
class _PendingCall:
    index: int
    id: str | None = None
    name_parts: list[str] = field(default_factory=list)
    arg_parts: list[str] = field(default_factory=list)
    signature: str | None = None

    def absorb(self, delta: RawToolDelta) -> None:
        self.id = self.id or delta.id
        if delta.name_delta:
            self.name_parts.append(delta.name_delta)
        if delta.args_delta:
            self.arg_parts.append(delta.args_delta)
        if delta.signature:
            self.signature = delta.signature

    def build(self) -> ToolCall | None:
        name = "".join(self.name_parts).strip()
        if not name:
            return None
        return ToolCall(
            id=self.id or f"call_{self.index}",
            name=name,
            arguments="".join(self.arg_parts) or "{}",
            signature=self.signature,
        )


class ToolCallAssembler:
    """Collects ``RawToolDelta`` fragments per call index."""

    def __init__(self) -> None:
        self._pending: dict[int, _PendingCall] = {}
        self.errors: list[str] = []

    @property
    def pending(self) -> int:
        """Number of calls still waiting for ``done`` or ``flush``."""
        return len(self._pending)

    def feed(self, delta: RawToolDelta) -> list[ToolCall]:
        """Absorb one fragment; returns the call it completes, if any."""
        call = self._pending.get(delta.call_index)
        if call is None:
            call = self._pending[delta.call_index] = _PendingCall(delta.call_index)
        call.absorb(delta)
        return self._complete(delta.call_index) if delta.done else []

    def flush(self) -> list[ToolCall]:
        """Complete every pending call in index order, done or not."""
        finished: list[ToolCall] = []
        for index in sorted(self._pending):
            finished.extend(self._complete(index))
        return finished

    def reset(self) -> None:
        self._pending.clear()
        self.errors.clear()

    def _complete(self, index: int) -> list[ToolCall]:
        call = self._pending.pop(index, None)
        if call is None:
            return []
        built = call.build()
        if built is None:
            self.errors.append(f"tool_call_missing_name idx={index}")
            return []
        return [built]
