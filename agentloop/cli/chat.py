"""Interactive chat session: one Agent run per user turn over shared history."""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import contextmanager
from typing import Iterator

from rich.console import Console

from agentloop.cli.output import OutputFormatter
from agentloop.llm.router import LLMRouter
from agentloop.llm.types import Message
from agentloop.orchestrator.cancellation import CancellationToken
from agentloop.orchestrator.core import Agent, AgentConfig, AgentResult
from agentloop.tools.executor import ToolExecutor
from agentloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

PROMPT = "you> "


class ChatHandler:
    """
    Drives the read-eval-print loop for ``agentloop chat``.

    Lines starting with ``/`` are commands (see ``/help``).  Anything else
    becomes a user turn.  Ctrl+C during a turn cancels only that turn.
    """

    def __init__(
        self,
        router: LLMRouter,
        executor: ToolExecutor,
        registry: ToolRegistry,
        system_prompt: str,
        agent_config: AgentConfig | None = None,
        stream: bool = True,
        console: Console | None = None,
    ) -> None:
        self.router = router
        self.executor = executor
        self.registry = registry
        self.system_prompt = system_prompt
        self.agent_config = agent_config or AgentConfig()
        self.stream = stream
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.history: list[Message] = []
        self._running = True
        self._commands = {
            "/quit": self._cmd_quit,
            "/clear": self._cmd_clear,
            "/tools": self._cmd_tools,
            "/switch": self._cmd_switch,
            "/help": self._cmd_help,
        }

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def handle_command(self, command: str) -> bool:
        """Dispatch a slash command; False means it was not recognised."""
        name, _, arg = command.strip().partition(" ")
        handler = self._commands.get(name.lower())
        if handler is None:
            return False
        handler(arg.strip())
        return True

    def _cmd_quit(self, arg: str) -> None:
        """Exit the chat"""
        self._running = False
        self.console.print("[dim]Goodbye.[/dim]")

    def _cmd_clear(self, arg: str) -> None:
        """Forget the conversation so far"""
        self.history.clear()
        self.console.print("  [dim]History cleared.[/dim]")

    def _cmd_tools(self, arg: str) -> None:
        """List available tools"""
        self.formatter.format_tool_list(self.registry.list())

    def _cmd_switch(self, arg: str) -> None:
        """Show or change the LLM provider"""
        if not arg:
            self.console.print(f"  Providers: {', '.join(self.router.provider_names)}")
            self.console.print(f"  Active: {self.router.active_name}")
            return
        try:
            self.router.use(arg)
        except KeyError as e:
            self.console.print(f"  [red]Error:[/red] {e.args[0]}")
            return
        self.console.print(f"  Now using [bold]{arg}[/bold]")

    def _cmd_help(self, arg: str) -> None:
        """Show this help"""
        lines = ["  [bold]Commands:[/bold]"]
        for name, handler in self._commands.items():
            lines.append(f"  {name:<9} {handler.__doc__}")
        self.console.print("\n".join(lines))

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _agent(self, token: CancellationToken) -> Agent:
        return Agent(
            self.router,
            self.executor,
            tools=self.registry.to_openai_schema(),
            system_prompt=self.system_prompt,
            history=self.history,
            config=self.agent_config,
            cancel_token=token,
        )

    async def handle_input(self, user_input: str) -> AgentResult | None:
        """Run one turn; on success the exchange is appended to the history."""
        token = CancellationToken()
        agent = self._agent(token)
        self.formatter.reset()

        with _sigint_cancels(token):
            try:
                if self.stream:
                    result = await agent.execute_stream(user_input, self.formatter.on_event)
                else:
                    result = await agent.execute(user_input)
                    self.console.print(result.content, markup=False)
            except Exception as e:
                logger.exception("Chat turn failed")
                if not self.stream:
                    self.console.print(f"\n[red]Error:[/red] {e}", highlight=False)
                return None

        if token.cancelled:
            self.console.print("[dim](cancelled)[/dim]")

        self.history.append(Message(role="user", content=user_input))
        if result.content:
            self.history.append(Message(role="assistant", content=result.content))
        self.formatter.format_usage(result.usage, result.tools_used, result.tool_rounds)
        return result

    async def _read_line(self) -> str:
        loop = asyncio.get_running_loop()
        line = await loop.run_in_executor(None, input, PROMPT)
        return line.strip()

    async def run_loop(self) -> None:
        self.console.print(
            "[bold]agentloop[/bold] - tool-calling assistant\n"
            "[dim]/help lists commands. Ctrl+C cancels a running answer.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await self._read_line()
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                return

            if not user_input:
                continue
            if user_input.startswith("/") and await self.handle_command(user_input):
                continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            await self.handle_input(user_input)


@contextmanager
def _sigint_cancels(token: CancellationToken) -> Iterator[None]:
    """Route Ctrl+C to *token* while the block runs, where the loop allows it."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported on this event loop")
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
