"""
Provider for endpoints speaking the OpenAI ``/v1/chat/completions`` protocol.

That covers OpenAI itself and the many servers that mimic it: DeepSeek,
DashScope compatible mode, vLLM, LM Studio, LocalAI and friends.  Talks
plain HTTP through ``httpx``; the ``openai`` SDK is not required.

Some reasoning models return a separate ``reasoning_content`` field.  It is
folded into the text as a ``<think>...</think>`` span so the agent only has
one channel to demultiplex.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from agentloop.llm.providers.base import Provider
from agentloop.llm.tool_call_assembler import ToolCallAssembler
from agentloop.llm.types import (
    ChatOptions,
    ChatResponse,
    FinishReason,
    Message,
    RawToolDelta,
    StreamChunk,
    TokenUsage,
    ToolCall,
)

logger = logging.getLogger(__name__)

SSE_DATA = "data:"
SSE_DONE = "[DONE]"


def _retryable(status: int) -> bool:
    return status == 429 or status >= 500


def _status_error(response: httpx.Response) -> httpx.HTTPStatusError:
    return httpx.HTTPStatusError(
        f"HTTP {response.status_code}", request=response.request, response=response
    )


def _parse_usage(raw: dict | None) -> TokenUsage | None:
    if not raw:
        return None
    prompt = int(raw.get("prompt_tokens") or 0)
    completion = int(raw.get("completion_tokens") or 0)
    return TokenUsage(prompt, completion, int(raw.get("total_tokens") or prompt + completion))


def _arguments_text(arguments: Any) -> str:
    """Some servers send arguments as an object instead of a JSON string."""
    if isinstance(arguments, str):
        return arguments
    return json.dumps({} if arguments is None else arguments, ensure_ascii=False)


def _wire_message(msg: Message) -> dict:
    wire: dict = {"role": msg.role, "content": msg.content}
    if msg.tool_calls:
        wire["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in msg.tool_calls
        ]
    if msg.tool_call_id:
        wire["tool_call_id"] = msg.tool_call_id
    return wire


def _with_reasoning(reasoning: str, content: str) -> str:
    return f"<think>{reasoning}</think>{content}" if reasoning else content


class _StreamState:
    """
    Per-stream bookkeeping for SSE deltas.

    Collects tool-call fragments, the finish reason and usage across events
    and tracks whether a ``<think>`` span opened for ``reasoning_content`` is
    still open.
    """

    def __init__(self, cumulative: bool) -> None:
        self.cumulative = cumulative
        self.assembler = ToolCallAssembler()
        self.tool_calls: list[ToolCall] = []
        self.finish_reason: FinishReason | None = None
        self.usage: TokenUsage | None = None
        self.reasoning_open = False

    def absorb(self, event: dict) -> str:
        """Record one decoded event; returns the text it contributes."""
        self.usage = _parse_usage(event.get("usage")) or self.usage
        choices = event.get("choices")
        if not choices:
            return ""
        choice = choices[0]
        delta = choice.get("delta") or {}

        for raw in delta.get("tool_calls") or []:
            function = raw.get("function") or {}
            self.tool_calls.extend(self.assembler.feed(RawToolDelta(
                call_index=raw.get("index", 0),
                id=raw.get("id"),
                name_delta=function.get("name") or "",
                args_delta=_arguments_text(function.get("arguments") or ""),
                signature=raw.get("signature"),
            )))

        if choice.get("finish_reason"):
            self.finish_reason = FinishReason.from_wire(choice["finish_reason"])

        content = delta.get("content") or ""
        if self.cumulative:
            # Relay resends the whole answer each time.
            return content
        return self._interleave(delta.get("reasoning_content") or "", content)

    def _interleave(self, reasoning: str, content: str) -> str:
        parts: list[str] = []
        if reasoning:
            if not self.reasoning_open:
                parts.append("<think>")
                self.reasoning_open = True
            parts.append(reasoning)
        if content:
            if self.reasoning_open:
                parts.append("</think>")
                self.reasoning_open = False
            parts.append(content)
        return "".join(parts)

    def final_chunks(self) -> list[StreamChunk]:
        chunks = []
        if self.reasoning_open:
            chunks.append(StreamChunk(delta="</think>"))
        self.tool_calls.extend(self.assembler.flush())
        if self.assembler.errors:
            logger.warning("Dropped streamed tool calls: %s", self.assembler.errors)
        chunks.append(StreamChunk(
            finish_reason=self.finish_reason or FinishReason.STOP,
            tool_calls=self.tool_calls or None,
            usage=self.usage,
            done=True,
        ))
        return chunks


class OpenAICompatProvider(Provider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        API base, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:8080/v1"``.
    model:
        Sent as the request's ``model`` field.
    api_key:
        Bearer token; ``""`` for unauthenticated local servers.
    timeout:
        Per-request timeout in seconds.
    max_retries:
        Extra attempts after a 429, a 5xx or a transport failure.  A stream
        is never retried once a chunk has been handed to the caller.
    cumulative:
        For relays whose stream deltas carry the full text so far.
    transport:
        Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        cumulative: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = f"{url.rstrip('/')}/chat/completions"
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._cumulative = cumulative
        self._transport = transport

    @property
    def name(self) -> str:
        return "openai-compat"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self, stream: bool) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if stream:
            headers["Accept"] = "text/event-stream"
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[Message],
        tools: list[dict] | None,
        options: ChatOptions,
        stream: bool,
    ) -> dict:
        body: dict = {
            "model": self._model,
            "messages": [_wire_message(m) for m in messages],
            "stream": stream,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if stream:
            body["stream_options"] = {"include_usage": True}
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        logger.info(
            "REQUEST: model=%s tools=%d messages=%d stream=%s",
            self._model, len(tools or ()), len(messages), stream,
        )
        return body

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        body = self._build_body(messages, tools, options or ChatOptions(), stream=False)
        headers = self._build_headers(stream=False)

        attempts = 1 + self._max_retries
        for attempt in range(1, attempts + 1):
            try:
                async with self._client() as client:
                    resp = await client.post(self._endpoint, json=body, headers=headers)
            except httpx.TransportError as exc:
                if attempt == attempts:
                    raise
                logger.warning("Attempt %d/%d failed: %s", attempt, attempts, exc)
                continue

            if _retryable(resp.status_code) and attempt < attempts:
                logger.warning("Attempt %d/%d got HTTP %d", attempt, attempts, resp.status_code)
                continue
            resp.raise_for_status()
            return self._parse_non_stream(resp.json())
        raise RuntimeError("unreachable")  # pragma: no cover

    def _parse_non_stream(self, data: dict) -> ChatResponse:
        usage = _parse_usage(data.get("usage"))
        choices = data.get("choices") or []
        if not choices:
            return ChatResponse(usage=usage)

        choice = choices[0]
        message = choice.get("message") or {}
        calls: list[ToolCall] = []
        for idx, raw in enumerate(message.get("tool_calls") or []):
            function = raw.get("function") or {}
            if not function.get("name"):
                logger.warning("Dropping tool call without name at index %d", idx)
                continue
            calls.append(ToolCall(
                id=raw.get("id") or f"call_{idx}",
                name=function["name"],
                arguments=_arguments_text(function.get("arguments")),
                signature=raw.get("signature"),
            ))

        return ChatResponse(
            content=_with_reasoning(
                message.get("reasoning_content") or "", message.get("content") or ""
            ),
            finish_reason=FinishReason.from_wire(choice.get("finish_reason")),
            tool_calls=calls or None,
            usage=usage,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        body = self._build_body(messages, tools, options or ChatOptions(), stream=True)
        headers = self._build_headers(stream=True)

        attempts = 1 + self._max_retries
        for attempt in range(1, attempts + 1):
            started = False
            try:
                async with self._client() as client:
                    async with client.stream(
                        "POST", self._endpoint, json=body, headers=headers
                    ) as response:
                        if _retryable(response.status_code) and attempt < attempts:
                            # Drain so the connection is released.
                            await response.aread()
                            logger.warning(
                                "Attempt %d/%d got HTTP %d",
                                attempt, attempts, response.status_code,
                            )
                            continue
                        if response.is_error:
                            await response.aread()
                            raise _status_error(response)

                        async for chunk in self._parse_sse_stream(response.aiter_lines()):
                            started = True
                            yield chunk
                        return
            except httpx.TransportError as exc:
                if started or attempt == attempts:
                    raise
                logger.warning("Attempt %d/%d failed: %s", attempt, attempts, exc)

    async def _parse_sse_stream(self, lines: AsyncIterator[str]) -> AsyncIterator[StreamChunk]:
        """
        Turn ``data: {json}`` lines into ``StreamChunk`` objects.

        ``data: [DONE]`` ends the stream.  Tool calls, the finish reason and
        usage are gathered along the way and attached to one final chunk.
        """
        state = _StreamState(self._cumulative)
        async for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(SSE_DATA):
                continue
            payload = line[len(SSE_DATA):].strip()
            if payload == SSE_DONE:
                break
            try:
                event = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("Failed to parse SSE data: %s", payload[:200])
                continue

            text = state.absorb(event)
            if text:
                yield StreamChunk(delta=text, cumulative=self._cumulative)

        for chunk in state.final_chunks():
            yield chunk
