"""Tests for the layered config loader."""

from __future__ import annotations

import pytest

from agentloop.config import AgentLoopConfig, _ENV_MAP, load_config
from agentloop.stream.demux import THINK_TAG_NAMES


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _ENV_MAP:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "agentloop.yaml"
    path.write_text(
        """
llm:
  name: local
  model: qwen2.5
  api_base: http://localhost:8080/v1
  cumulative_stream: true
  unknown_key: ignored
agent:
  max_tool_rounds: 3
parser:
  think_tags: [think, scratchpad]
profiles:
  fast:
    llm:
      model: qwen2.5-mini
    agent:
      max_tool_rounds: 1
""",
        encoding="utf-8",
    )
    return path


class TestDefaults:
    def test_defaults(self):
        cfg = load_config()
        assert cfg.llm.temperature == 0.7
        assert cfg.llm.max_tokens == 2048
        assert cfg.agent.max_tool_rounds == 5
        assert cfg.agent.stream is True
        assert cfg.parser.think_tags == list(THINK_TAG_NAMES)
        assert cfg.plugins.enabled is False

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg.llm.model == "gpt-4o"


class TestLayering:
    def test_file_values(self, config_file):
        cfg = load_config(config_file)
        assert cfg.llm.name == "local"
        assert cfg.llm.model == "qwen2.5"
        assert cfg.llm.cumulative_stream is True
        assert cfg.agent.max_tool_rounds == 3
        assert cfg.parser.think_tags == ["think", "scratchpad"]

    def test_profile_overlays_file(self, config_file):
        cfg = load_config(config_file, profile="fast")
        assert cfg.llm.model == "qwen2.5-mini"
        assert cfg.llm.name == "local"
        assert cfg.agent.max_tool_rounds == 1

    def test_unknown_profile_is_ignored(self, config_file):
        cfg = load_config(config_file, profile="nope")
        assert cfg.llm.model == "qwen2.5"

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("AGENTLOOP_LLM_MODEL", "from-env")
        monkeypatch.setenv("AGENTLOOP_AGENT_MAX_ROUNDS", "7")
        monkeypatch.setenv("AGENTLOOP_AGENT_STREAM", "no")
        monkeypatch.setenv("AGENTLOOP_PARSER_THINK_TAGS", "think, plan ,")
        cfg = load_config(config_file, profile="fast")
        assert cfg.llm.model == "from-env"
        assert cfg.agent.max_tool_rounds == 7
        assert cfg.agent.stream is False
        assert cfg.parser.think_tags == ["think", "plan"]

    def test_cli_overrides_env(self, config_file, monkeypatch):
        monkeypatch.setenv("AGENTLOOP_LLM_MODEL", "from-env")
        cfg = load_config(config_file, cli_overrides={"llm.model": "from-cli"})
        assert cfg.llm.model == "from-cli"

    def test_unknown_cli_key_raises(self):
        with pytest.raises(AttributeError, match="llm.nope"):
            load_config(cli_overrides={"llm.nope": 1})


class TestOverrides:
    def test_session_override(self):
        cfg = AgentLoopConfig()
        cfg.set_override("agent.max_tool_rounds", 2)
        assert cfg.agent.max_tool_rounds == 2
        assert cfg.get_override("agent.max_tool_rounds") == 2
        assert cfg.get_override("llm.model") is None

    def test_to_dict_hides_overrides(self):
        cfg = AgentLoopConfig()
        cfg.set_override("llm.model", "x")
        d = cfg.to_dict()
        assert "_overrides" not in d
        assert d["llm"]["model"] == "x"
        assert set(d) == {"llm", "agent", "prompt", "parser", "plugins", "profiles"}


class TestValidate:
    def test_defaults_are_valid(self):
        assert AgentLoopConfig().validate() == []

    def test_reports_each_problem(self):
        cfg = load_config(cli_overrides={
            "llm.temperature": 3.5,
            "agent.max_tool_rounds": -1,
            "parser.think_tags": ["think", "not valid"],
        })
        problems = cfg.validate()
        assert len(problems) == 3
        assert problems[0].startswith("llm.temperature")
        assert problems[1].startswith("agent.max_tool_rounds")
        assert problems[2].startswith("parser.think_tags")

    def test_non_mapping_file_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)
