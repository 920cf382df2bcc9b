"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from agentloop.llm.types import TokenUsage
from agentloop.orchestrator.events import (
    EVENT_CONTENT,
    EVENT_DONE,
    EVENT_ERROR,
    EVENT_THINK,
    EVENT_TOOL_RESULT,
    EVENT_TOOL_START,
    StreamEvent,
)
from agentloop.tools.base import Tool


class OutputFormatter:
    """Rich-based output formatting for the agentloop CLI."""

    def __init__(self, console: Console | None = None, show_thinking: bool = False) -> None:
        self.console = console or Console()
        self.show_thinking = show_thinking
        self._answer: list[str] = []

    # ------------------------------------------------------------------
    # Stream events
    # ------------------------------------------------------------------

    async def on_event(self, event: StreamEvent) -> None:
        """Render one stream event; usable directly as an Agent callback."""
        payload = event.payload
        etype = event.event_type

        if etype == EVENT_CONTENT:
            if payload.get("replace"):
                self.format_replacement(payload.get("text", ""))
            else:
                text = payload.get("text", "")
                self._answer.append(text)
                self.console.print(text, end="", markup=False, highlight=False)
        elif etype == EVENT_THINK:
            if "duration_ms" in payload:
                self.console.print(
                    f"[dim]({payload.get('tag', 'think')}: {payload['duration_ms']} ms)[/dim]"
                )
            elif self.show_thinking:
                self.console.print(payload.get("text", ""), end="", style="dim italic", markup=False)
        elif etype == EVENT_TOOL_START:
            params = json.dumps(payload.get("params"), default=str)
            self.console.print(
                f"\n  [yellow]>[/yellow] {escape(payload.get('tool_name', '?'))}({escape(params[:120])})"
            )
        elif etype == EVENT_TOOL_RESULT:
            self.format_tool_result(payload.get("tool_name", "?"), payload)
        elif etype == EVENT_DONE:
            self.console.print()
        elif etype == EVENT_ERROR:
            self.console.print(f"\n[red]Error:[/red] {escape(payload.get('message', ''))}")

    def format_replacement(self, text: str) -> None:
        """Show the authoritative answer after the streamed one diverged."""
        self._answer = [text]
        self.console.print()
        self.console.print(Panel(escape(text), title="Answer", border_style="green"))

    def reset(self) -> None:
        self._answer = []

    @property
    def answer(self) -> str:
        return "".join(self._answer)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def format_tool_list(self, tools: list[Tool]) -> None:
        if not tools:
            self.console.print("[dim]No tools registered.[/dim]")
            return

        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Parameters", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            props = ", ".join((t.parameters.get("properties") or {}).keys())
            table.add_row(t.name, props or "-", t.description)

        self.console.print(table)

    def format_tool_result(self, tool_name: str, payload: dict[str, Any]) -> None:
        if payload.get("success"):
            body = json.dumps(payload.get("result"), default=str)
            self.console.print(f"  [green]OK[/green] {escape(tool_name)}: {escape(body[:200])}")
        else:
            self.console.print(f"  [red]FAILED[/red] {escape(tool_name)}: {escape(str(payload.get('error', '')))}")

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    def format_usage(self, usage: TokenUsage, tools_used: list[str], rounds: int) -> None:
        tools = ", ".join(tools_used) if tools_used else "none"
        self.console.print(
            f"[dim]tokens: {usage.prompt_tokens} in / {usage.completion_tokens} out "
            f"({usage.total_tokens} total) | rounds: {rounds} | tools: {tools}[/dim]"
        )

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))
