"""
Orchestrator core -- the agent loop that ties everything together.

The agent:
1. Builds a transcript from the system prompt, prior history and user message
2. Sends it to the LLM via the router with the tool catalog
3. Runs requested tool calls through the tool executor, in model order
4. Loops until the model answers without tool calls, or the round budget
   is spent (then forces one final request with tools disabled)
5. Supports streaming (reports StreamEvents to an async callback)

Backends that lack reliable native tool calling often write the call inline
as ``<tool_call>`` markup; such calls are recovered from the text.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from agentloop.llm.router import LLMRouter
from agentloop.llm.types import (
    ChatOptions,
    FinishReason,
    Message,
    StreamChunk,
    TokenUsage,
    ToolCall,
)
from agentloop.orchestrator.cancellation import CancellationToken
from agentloop.orchestrator.events import (
    StreamEvent,
    content_event,
    done_event,
    error_event,
    think_event,
    tool_result_event,
    tool_start_event,
)
from agentloop.prompts.system import FINAL_ANSWER_INSTRUCTION, TOOL_ERROR_TEMPLATE
from agentloop.stream.demux import THINK_TAG_NAMES, TagDemultiplexer, build_tag_table
from agentloop.stream.markup import (
    extract_tool_calls,
    has_tool_call_markup,
    sanitize_answer,
)
from agentloop.tools.executor import ToolExecutor
from agentloop.types import ToolExecutionError

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent], Awaitable[None]]


@dataclass
class AgentConfig:
    """
    Settings for one agent.

    Parameters
    ----------
    max_tool_rounds : int
        Max tool-call rounds before forcing a final answer without tools.
    temperature, max_tokens :
        Generation options passed to every request.
    think_tags : sequence of str
        Reasoning tag names recognised in model output.
    final_answer_instruction : str
        User message appended when the round budget is spent.
    tool_error_template : str
        Transcript content for a failed tool call; ``{error}`` is filled in.
    """

    max_tool_rounds: int = 5
    temperature: float = 0.7
    max_tokens: int = 2048
    think_tags: Sequence[str] = THINK_TAG_NAMES
    final_answer_instruction: str = FINAL_ANSWER_INSTRUCTION
    tool_error_template: str = TOOL_ERROR_TEMPLATE


@dataclass
class AgentResult:
    content: str
    tools_used: list[str]
    tool_rounds: int
    usage: TokenUsage


@dataclass
class _Run:
    """State owned by a single execution."""

    messages: list[Message]
    usage: TokenUsage = field(default_factory=TokenUsage)
    tools_used: list[str] = field(default_factory=list)
    rounds: int = 0

    def result(self, content: str) -> AgentResult:
        return AgentResult(
            content=content,
            tools_used=list(self.tools_used),
            tool_rounds=self.rounds,
            usage=self.usage.copy(),
        )


@dataclass
class _StreamedResponse:
    """What one streamed request produced."""

    raw: str = ""
    shown: str = ""
    finish_reason: FinishReason | None = None
    tool_calls: list[ToolCall] | None = None
    cancelled: bool = False


class Agent:
    """
    Bounded, cancellable tool-calling loop.

    Parameters
    ----------
    router : LLMRouter
        LLM client.
    executor : ToolExecutor
        Runs tool calls; returns one outcome per call.
    tools : list of dict
        Tool catalog (OpenAI function schemas).  Empty disables tool use.
    system_prompt : str
        System prompt for every request of a run.
    history : list of Message
        Prior conversation inserted between the system prompt and the user
        message.
    config : AgentConfig
        Round budget, generation options and injected templates.
    cancel_token : CancellationToken
        Polled before the run, before each request and after each streamed
        delta.
    """

    def __init__(
        self,
        router: LLMRouter,
        executor: ToolExecutor,
        tools: list[dict] | None = None,
        system_prompt: str = "",
        history: list[Message] | None = None,
        config: AgentConfig | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.router = router
        self.executor = executor
        self.tools = list(tools or [])
        self.system_prompt = system_prompt
        self.history = list(history or [])
        self.config = config or AgentConfig()
        self.cancel_token = cancel_token
        self._tag_table = build_tag_table(self.config.think_tags)
        self._running = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, user_message: str) -> AgentResult:
        """Run the loop with one-shot completions and return the final answer."""
        logger.info("User question: %s", user_message)
        if self._cancelled():
            return AgentResult(content="", tools_used=[], tool_rounds=0, usage=TokenUsage())

        with self._guard():
            run = self._start_run(user_message)

            while run.rounds < self.config.max_tool_rounds:
                if self._cancelled():
                    return run.result("")

                response = await self.router.complete(
                    run.messages, self.tools or None, self._options()
                )
                run.usage.add(response.usage)

                calls, answer = self._decide(
                    response.content, response.finish_reason, response.tool_calls
                )
                if calls is None:
                    logger.info("AI response: %s", answer)
                    return run.result(answer)

                await self._run_tools(run, calls)

            logger.warning(
                "Max tool call rounds reached (%d), requesting final answer",
                self.config.max_tool_rounds,
            )
            if self._cancelled():
                return run.result("")

            run.messages.append(
                Message(role="user", content=self.config.final_answer_instruction)
            )
            response = await self.router.complete(run.messages, None, self._options())
            run.usage.add(response.usage)
            answer = sanitize_answer(response.content, self.config.think_tags)
            logger.info("AI response: %s", answer)
            return run.result(answer)

    async def execute_stream(
        self, user_message: str, on_event: EventCallback
    ) -> AgentResult:
        """
        Run the loop with streamed completions.

        Progress is reported to *on_event*.  The event sequence ends with one
        ``done`` event, or with an ``error`` event when a provider failure
        aborts the run (the exception is re-raised afterwards).
        """
        logger.info("User question: %s", user_message)
        if self._cancelled():
            await on_event(done_event(TokenUsage()))
            return AgentResult(content="", tools_used=[], tool_rounds=0, usage=TokenUsage())

        with self._guard():
            run = self._start_run(user_message)
            try:
                content = await self._stream_loop(run, on_event)
            except Exception as e:
                logger.exception("Agent run failed")
                await on_event(error_event(str(e)))
                raise

            await on_event(done_event(run.usage))
            return run.result(content)

    # ------------------------------------------------------------------
    # Streaming loop
    # ------------------------------------------------------------------

    async def _stream_loop(self, run: _Run, on_event: EventCallback) -> str:
        while run.rounds < self.config.max_tool_rounds:
            if self._cancelled():
                return ""

            streamed = await self._stream_request(run, self.tools or None, on_event)
            if streamed.cancelled:
                return streamed.shown

            calls, answer = self._decide(
                streamed.raw, streamed.finish_reason, streamed.tool_calls
            )
            if calls is None:
                answer = await self._reconcile(streamed.shown, answer, on_event)
                logger.info("AI response: %s", answer)
                return answer

            await self._run_tools(run, calls, on_event)

        logger.warning(
            "Max tool call rounds reached (%d), requesting final answer",
            self.config.max_tool_rounds,
        )
        if self._cancelled():
            return ""

        run.messages.append(
            Message(role="user", content=self.config.final_answer_instruction)
        )
        streamed = await self._stream_request(run, None, on_event)
        if streamed.cancelled:
            return streamed.shown

        answer = sanitize_answer(streamed.raw, self.config.think_tags)
        answer = await self._reconcile(streamed.shown, answer, on_event)
        logger.info("AI response: %s", answer)
        return answer

    async def _stream_request(
        self,
        run: _Run,
        tools: list[dict] | None,
        on_event: EventCallback,
    ) -> _StreamedResponse:
        """Stream one completion through a fresh demultiplexer."""
        streamed = _StreamedResponse()
        pending: list[StreamEvent] = []
        think_started: float | None = None

        def on_text(text: str) -> None:
            streamed.shown += text
            pending.append(content_event(text))

        def on_think(text: str, tag: str) -> None:
            pending.append(think_event(text, tag))

        def on_think_start(tag: str) -> None:
            nonlocal think_started
            think_started = time.monotonic()

        def on_think_end(tag: str) -> None:
            nonlocal think_started
            if think_started is None:
                return
            duration_ms = int((time.monotonic() - think_started) * 1000)
            think_started = None
            pending.append(think_event("", tag, duration_ms=duration_ms))

        demux = TagDemultiplexer(
            on_text=on_text,
            on_think=on_think,
            on_think_start=on_think_start,
            on_think_end=on_think_end,
            tags=self._tag_table,
        )

        async def drain() -> None:
            while pending:
                await on_event(pending.pop(0))

        stream = self.router.stream(run.messages, tools, self._options())
        try:
            async for chunk in stream:
                if self._cancelled():
                    streamed.cancelled = True
                    break

                delta = self._unseen_text(streamed, chunk)
                if delta:
                    demux.push(delta)
                    await drain()

                if chunk.tool_calls:
                    streamed.tool_calls = chunk.tool_calls
                    logger.info(
                        "tool_calls received: %s", [tc.name for tc in chunk.tool_calls]
                    )
                if chunk.usage:
                    run.usage.add(chunk.usage)
                if chunk.done:
                    streamed.finish_reason = chunk.finish_reason
                    logger.info(
                        "Stream ended: finish_reason=%s tool_calls=%d",
                        chunk.finish_reason,
                        len(streamed.tool_calls or []),
                    )
        finally:
            await stream.aclose()

        if not streamed.cancelled:
            demux.flush()
            await drain()
        return streamed

    def _unseen_text(self, streamed: _StreamedResponse, chunk: StreamChunk) -> str:
        """Return the part of *chunk* not received before, tracking raw text."""
        if not chunk.delta:
            return ""
        if not chunk.cumulative:
            streamed.raw += chunk.delta
            return chunk.delta
        if chunk.delta.startswith(streamed.raw):
            suffix = chunk.delta[len(streamed.raw):]
            streamed.raw = chunk.delta
            return suffix
        logger.warning(
            "Cumulative stream text does not extend the text received so far "
            "(received=%d chunk=%d); deferring to final reconciliation",
            len(streamed.raw),
            len(chunk.delta),
        )
        streamed.raw = chunk.delta
        return ""

    async def _reconcile(
        self, shown: str, answer: str, on_event: EventCallback
    ) -> str:
        """
        Make the displayed text match the sanitized *answer*.

        The sanitized answer is authoritative: an unseen suffix is appended,
        anything else is replaced wholesale.
        """
        if shown.strip() == answer:
            return answer
        lead = shown.lstrip()
        if answer.startswith(lead):
            await on_event(content_event(answer[len(lead):]))
            return answer
        logger.warning(
            "Streamed content differs from sanitized answer (shown=%d answer=%d); "
            "replacing displayed content",
            len(shown),
            len(answer),
        )
        await on_event(content_event(answer, replace=True))
        return answer

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _decide(
        self,
        content: str,
        finish_reason: FinishReason | None,
        tool_calls: list[ToolCall] | None,
    ) -> tuple[list[ToolCall] | None, str]:
        """
        Decide between executing tools and answering.

        Returns ``(calls, "")`` to execute *calls*, or ``(None, answer)``.
        """
        if tool_calls:
            if finish_reason is not FinishReason.TOOL_CALLS:
                logger.info(
                    "Structured tool calls received with finish_reason=%s", finish_reason
                )
            return tool_calls, ""

        if has_tool_call_markup(content):
            recovered = extract_tool_calls(content)
            if recovered:
                logger.info(
                    "Recovered %d tool call(s) from text: %s",
                    len(recovered),
                    [tc.name for tc in recovered],
                )
                return recovered, ""
            logger.warning("Tool call markup present but no valid call could be parsed")

        return None, sanitize_answer(content, self.config.think_tags)

    async def _run_tools(
        self,
        run: _Run,
        calls: list[ToolCall],
        on_event: EventCallback | None = None,
    ) -> None:
        for tc in calls:
            logger.info("Tool call: %s %s", tc.name, tc.arguments)

        run.messages.append(Message(role="assistant", content="", tool_calls=list(calls)))

        if on_event is not None:
            for tc in calls:
                await on_event(tool_start_event(tc.name, _decode_params(tc)))

        outcomes = await self.executor.execute(calls)
        if len(outcomes) != len(calls):
            raise ToolExecutionError(
                f"Tool executor returned {len(outcomes)} results for {len(calls)} calls"
            )

        for tc, outcome in zip(calls, outcomes):
            if tc.name not in run.tools_used:
                run.tools_used.append(tc.name)

            if on_event is not None:
                await on_event(tool_result_event(tc.name, outcome))

            if outcome.success:
                logger.info("Tool result: %s", tc.name)
                content = json.dumps(outcome.result, ensure_ascii=False, default=str)
            else:
                logger.warning("Tool failed: %s: %s", tc.name, outcome.error)
                content = self.config.tool_error_template.format(error=outcome.error)

            run.messages.append(Message(role="tool", content=content, tool_call_id=tc.id))

        run.rounds += 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start_run(self, user_message: str) -> _Run:
        messages: list[Message] = []
        if self.system_prompt:
            messages.append(Message(role="system", content=self.system_prompt))
        messages.extend(self.history)
        messages.append(Message(role="user", content=user_message))
        return _Run(messages=messages)

    def _options(self) -> ChatOptions:
        return ChatOptions(
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            cancel_token=self.cancel_token,
        )

    def _cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled

    def _guard(self) -> _RunGuard:
        return _RunGuard(self)


class _RunGuard:
    """Rejects a second concurrent run on the same Agent."""

    def __init__(self, agent: Agent) -> None:
        self._agent = agent

    def __enter__(self) -> None:
        if self._agent._running:
            raise RuntimeError("Agent is already running")
        self._agent._running = True

    def __exit__(self, *exc) -> None:
        self._agent._running = False


def _decode_params(tc: ToolCall) -> dict | None:
    try:
        return tc.parse_arguments()
    except ValueError:
        return None


async def run_agent(
    user_message: str,
    router: LLMRouter,
    executor: ToolExecutor,
    **kwargs,
) -> AgentResult:
    """Create an Agent and run it once (one-shot completions)."""
    agent = Agent(router, executor, **kwargs)
    return await agent.execute(user_message)


async def run_agent_stream(
    user_message: str,
    router: LLMRouter,
    executor: ToolExecutor,
    on_event: EventCallback,
    **kwargs,
) -> AgentResult:
    """Create an Agent and run it once with streaming."""
    agent = Agent(router, executor, **kwargs)
    return await agent.execute_stream(user_message, on_event)
