"""
Command-line entry point.

Usage:
    agentloop ask QUESTION [--stream/--no-stream] [--profile NAME]
    agentloop chat [--profile NAME]
    agentloop tools list
    agentloop config show|validate
    agentloop version
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console

from agentloop import __version__
from agentloop.config import AgentLoopConfig, load_config

app = typer.Typer(name="agentloop", help="agentloop - tool-calling agent CLI")
tools_app = typer.Typer(help="Inspect registered tools")
config_app = typer.Typer(help="Inspect and check configuration")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()

CONFIG_SEARCH_PATHS = (
    Path("agentloop.yaml"),
    Path("agentloop.yml"),
    Path("~/.config/agentloop/config.yaml"),
)
DEFAULT_API_BASE = "https://api.openai.com/v1"

_state: dict[str, Optional[str]] = {"config": None}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """--config wins; otherwise the first existing file on the search path."""
    if _state["config"]:
        return Path(_state["config"])
    return next(
        (p for p in (c.expanduser() for c in CONFIG_SEARCH_PATHS) if p.is_file()),
        None,
    )


def _build_registry(cfg: AgentLoopConfig):
    from agentloop.tools.registry import ToolRegistry

    plugins = cfg.plugins
    registry = ToolRegistry()
    registry.load_plugins(
        enabled=plugins.enabled,
        allow_distributions=set(plugins.allow_distributions) or None,
        allow_tools=set(plugins.allow_tools) or None,
    )
    return registry


@dataclass
class _Stack:
    """Everything a command needs to run the agent."""

    cfg: AgentLoopConfig
    router: Any
    registry: Any
    executor: Any
    agent_config: Any
    system_prompt: str

    def agent(self):
        from agentloop.orchestrator.core import Agent

        return Agent(
            self.router,
            self.executor,
            tools=self.registry.to_openai_schema(),
            system_prompt=self.system_prompt,
            config=self.agent_config,
        )


def _setup_stack(profile: str | None, overrides: dict | None = None) -> _Stack:
    """Build provider, tools and prompt from the layered config."""
    from agentloop.llm.providers.openai_compat import OpenAICompatProvider
    from agentloop.llm.router import LLMRouter
    from agentloop.orchestrator.core import AgentConfig
    from agentloop.prompts.system import build_system_prompt
    from agentloop.tools.executor import RegistryToolExecutor

    cfg = load_config(_get_config_path(), profile=profile, cli_overrides=overrides)
    llm = cfg.llm

    provider = OpenAICompatProvider(
        url=llm.api_base or DEFAULT_API_BASE,
        model=llm.model,
        api_key=os.environ.get(llm.api_key_env, ""),
        timeout=float(llm.timeout_seconds),
        max_retries=llm.max_retries,
        cumulative=llm.cumulative_stream,
    )
    registry = _build_registry(cfg)

    return _Stack(
        cfg=cfg,
        router=LLMRouter({llm.name: provider}),
        registry=registry,
        executor=RegistryToolExecutor(registry, timeout=cfg.agent.tool_timeout_seconds),
        agent_config=AgentConfig(
            max_tool_rounds=cfg.agent.max_tool_rounds,
            temperature=llm.temperature,
            max_tokens=llm.max_tokens,
            think_tags=tuple(cfg.parser.think_tags),
        ),
        system_prompt=build_system_prompt(
            role_definition=cfg.prompt.role_definition,
            response_rules=cfg.prompt.response_rules,
        ),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.callback()
def _main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to YAML config file"),
):
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config"] = config


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question for the agent"),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Stream the answer"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    model: Optional[str] = typer.Option(None, help="Override llm.model"),
    max_rounds: Optional[int] = typer.Option(None, help="Override agent.max_tool_rounds"),
    show_thinking: bool = typer.Option(False, help="Print reasoning as it streams"),
):
    """Ask one question and print the answer."""
    from agentloop.cli.output import OutputFormatter

    overrides = {
        key: value
        for key, value in (("llm.model", model), ("agent.max_tool_rounds", max_rounds))
        if value is not None
    }
    stack = _setup_stack(profile, overrides)
    use_stream = stack.cfg.agent.stream if stream is None else stream
    formatter = OutputFormatter(console, show_thinking=show_thinking)
    agent = stack.agent()

    async def _run():
        if use_stream:
            return await agent.execute_stream(question, formatter.on_event)
        result = await agent.execute(question)
        console.print(result.content, markup=False)
        return result

    try:
        result = asyncio.run(_run())
    except Exception as e:
        # Streaming runs already rendered their error event.
        if not use_stream:
            console.print(f"[red]Error:[/red] {e}", highlight=False)
        raise typer.Exit(1)
    formatter.format_usage(result.usage, result.tools_used, result.tool_rounds)


@app.command()
def chat(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Stream answers"),
):
    """Start an interactive chat session."""
    from agentloop.cli.chat import ChatHandler

    stack = _setup_stack(profile)
    handler = ChatHandler(
        stack.router,
        stack.executor,
        stack.registry,
        stack.system_prompt,
        agent_config=stack.agent_config,
        stream=stack.cfg.agent.stream if stream is None else stream,
        console=console,
    )
    asyncio.run(handler.run_loop())


@tools_app.command("list")
def tools_list():
    """List registered tools."""
    from agentloop.cli.output import OutputFormatter

    registry = _build_registry(load_config(_get_config_path()))
    OutputFormatter(console).format_tool_list(registry.list())


@config_app.command("show")
def config_show(profile: Optional[str] = typer.Option(None, help="Config profile name")):
    """Print the effective config as JSON."""
    from agentloop.cli.output import OutputFormatter

    cfg = load_config(_get_config_path(), profile=profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate():
    """Check the config and summarise the key settings."""
    config_path = _get_config_path()
    try:
        cfg = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Config could not be loaded:[/red] {e}", highlight=False)
        raise typer.Exit(1)

    problems = cfg.validate()
    if problems:
        console.print("[red]Config has problems:[/red]")
        for problem in problems:
            console.print(f"  - {problem}", markup=False)
        raise typer.Exit(1)

    source = str(config_path) if config_path else "defaults (no config file found)"
    console.print("[green]Config is valid.[/green]")
    console.print(f"  Source: {source}", markup=False)
    console.print(f"  LLM provider: {cfg.llm.name} ({cfg.llm.model})", markup=False)
    console.print(f"  Max tool rounds: {cfg.agent.max_tool_rounds}", markup=False)
    console.print(f"  Plugins enabled: {cfg.plugins.enabled}", markup=False)


@app.command()
def version():
    """Show version."""
    console.print(f"agentloop v{__version__}", highlight=False)


def main():
    app()


if __name__ == "__main__":
    main()
