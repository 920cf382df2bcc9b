"""
Typed configuration for the agent, its LLM endpoint and the CLI.

Layers, lowest to highest precedence::

    defaults < YAML file < named profile < AGENTLOOP_* env vars < CLI flags

Per-session overrides (``AgentLoopConfig.set_override``) are applied on top
of a loaded config.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from agentloop.stream.demux import THINK_TAG_NAMES, TagSpec, SpanKind


@dataclass
class LLMProviderConfig:
    name: str = "openai"
    model: str = "gpt-4o"
    api_base: str = ""
    api_key_env: str = "OPENAI_API_KEY"
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout_seconds: int = 120
    max_retries: int = 2
    cumulative_stream: bool = False


@dataclass
class AgentSection:
    max_tool_rounds: int = 5
    tool_timeout_seconds: float = 30.0
    stream: bool = True


@dataclass
class PromptSection:
    role_definition: str = ""
    response_rules: str = ""


@dataclass
class ParserSection:
    think_tags: list[str] = field(default_factory=lambda: list(THINK_TAG_NAMES))


@dataclass
class PluginsConfig:
    enabled: bool = False
    allow_distributions: list[str] = field(default_factory=list)
    allow_tools: list[str] = field(default_factory=list)


_SECTIONS: dict[str, type] = {
    "llm": LLMProviderConfig,
    "agent": AgentSection,
    "prompt": PromptSection,
    "parser": ParserSection,
    "plugins": PluginsConfig,
}


@dataclass
class AgentLoopConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    agent: AgentSection = field(default_factory=AgentSection)
    prompt: PromptSection = field(default_factory=PromptSection)
    parser: ParserSection = field(default_factory=ParserSection)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AgentLoopConfig:
        """Build from a nested dict; unknown sections and keys are ignored."""
        sections = {}
        for name, section_cls in _SECTIONS.items():
            known = {f.name for f in fields(section_cls)}
            values = raw.get(name) or {}
            sections[name] = section_cls(**{k: v for k, v in values.items() if k in known})
        return cls(profiles=raw.get("profiles") or {}, **sections)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'llm.model')."""
        _set_attr_path(self, dotpath, value)
        self._overrides[dotpath] = value

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d

    def validate(self) -> list[str]:
        """Return human-readable problems; an empty list means usable."""
        problems: list[str] = []
        if not 0.0 <= self.llm.temperature <= 2.0:
            problems.append(f"llm.temperature must be within [0, 2], got {self.llm.temperature}")
        if self.llm.max_tokens <= 0:
            problems.append(f"llm.max_tokens must be positive, got {self.llm.max_tokens}")
        if self.llm.max_retries < 0:
            problems.append(f"llm.max_retries must not be negative, got {self.llm.max_retries}")
        if self.agent.max_tool_rounds < 0:
            problems.append(
                f"agent.max_tool_rounds must not be negative, got {self.agent.max_tool_rounds}"
            )
        if self.agent.tool_timeout_seconds <= 0:
            problems.append("agent.tool_timeout_seconds must be positive")
        for tag in self.parser.think_tags:
            try:
                TagSpec(tag, SpanKind.THINK)
            except ValueError as e:
                problems.append(f"parser.think_tags: {e}")
        return problems


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _set_attr_path(obj: Any, dotpath: str, value: Any) -> None:
    *parents, leaf = dotpath.split(".")
    for part in parents:
        obj = getattr(obj, part, None)
        if obj is None:
            raise AttributeError(f"Unknown config key: {dotpath}")
    if not hasattr(obj, leaf):
        raise AttributeError(f"Unknown config key: {dotpath}")
    setattr(obj, leaf, value)


def _set_key_path(target: dict, dotpath: str, value: Any) -> None:
    *parents, leaf = dotpath.split(".")
    for part in parents:
        target = target.setdefault(part, {})
    target[leaf] = value


def _merge(base: dict, overlay: dict) -> dict:
    out = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _field_default(dotpath: str) -> Any:
    section, key = dotpath.split(".")
    return getattr(_SECTIONS[section](), key)


def _parse_env_value(raw: str, default: Any) -> Any:
    """Parse an env string into the type of the field's default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


_ENV_MAP: dict[str, str] = {
    "AGENTLOOP_LLM_NAME": "llm.name",
    "AGENTLOOP_LLM_MODEL": "llm.model",
    "AGENTLOOP_LLM_API_BASE": "llm.api_base",
    "AGENTLOOP_LLM_API_KEY_ENV": "llm.api_key_env",
    "AGENTLOOP_LLM_TEMPERATURE": "llm.temperature",
    "AGENTLOOP_LLM_MAX_TOKENS": "llm.max_tokens",
    "AGENTLOOP_LLM_TIMEOUT": "llm.timeout_seconds",
    "AGENTLOOP_LLM_MAX_RETRIES": "llm.max_retries",
    "AGENTLOOP_LLM_CUMULATIVE": "llm.cumulative_stream",
    "AGENTLOOP_AGENT_MAX_ROUNDS": "agent.max_tool_rounds",
    "AGENTLOOP_AGENT_TOOL_TIMEOUT": "agent.tool_timeout_seconds",
    "AGENTLOOP_AGENT_STREAM": "agent.stream",
    "AGENTLOOP_PARSER_THINK_TAGS": "parser.think_tags",
    "AGENTLOOP_PLUGINS_ENABLED": "plugins.enabled",
}


def _env_layer(environ: dict[str, str]) -> dict:
    layer: dict = {}
    for var, dotpath in _ENV_MAP.items():
        if var in environ:
            _set_key_path(layer, dotpath, _parse_env_value(environ[var], _field_default(dotpath)))
    return layer


def _read_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AgentLoopConfig:
    """
    Build an AgentLoopConfig from all layers.

    Parameters
    ----------
    config_path : path to a YAML config file; a missing file is skipped
    profile : name of an entry under ``profiles`` in that file
    cli_overrides : dotpath -> value, e.g. ``{"llm.model": "gpt-4o-mini"}``.
        Unknown dotpaths raise ``AttributeError``.
    """
    raw: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path).expanduser()
        if path.is_file():
            raw = _read_yaml(path)

    if profile:
        raw = _merge(raw, (raw.get("profiles") or {}).get(profile) or {})

    raw = _merge(raw, _env_layer(dict(os.environ)))
    cfg = AgentLoopConfig.from_dict(raw)

    for dotpath, value in (cli_overrides or {}).items():
        _set_attr_path(cfg, dotpath, value)
    return cfg
