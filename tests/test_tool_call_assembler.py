"""Tests for agentloop.llm.tool_call_assembler.ToolCallAssembler."""

from __future__ import annotations

import json

from agentloop.llm.tool_call_assembler import ToolCallAssembler
from agentloop.llm.types import RawToolDelta, ToolCall


class TestSingleToolCall:
    """Assemble a single tool call from incremental deltas."""

    def test_basic_assembly(self):
        asm = ToolCallAssembler()

        assert asm.feed(RawToolDelta(call_index=0, id="call_1", name_delta="get_")) == []
        assert asm.feed(RawToolDelta(call_index=0, name_delta="weather")) == []
        assert asm.feed(RawToolDelta(call_index=0, args_delta='{"city": ')) == []
        assert asm.feed(RawToolDelta(call_index=0, args_delta='"Paris"}')) == []

        result = asm.feed(RawToolDelta(call_index=0, done=True))
        assert len(result) == 1

        tc = result[0]
        assert tc.id == "call_1"
        assert tc.name == "get_weather"
        assert tc.arguments == '{"city": "Paris"}'
        assert tc.parse_arguments() == {"city": "Paris"}

    def test_single_delta_with_everything(self):
        """A provider may send all data in one delta with done=True."""
        asm = ToolCallAssembler()
        result = asm.feed(
            RawToolDelta(
                call_index=0,
                id="call_x",
                name_delta="ping",
                args_delta='{"host": "localhost"}',
                done=True,
            )
        )
        assert len(result) == 1
        assert result[0].name == "ping"
        assert result[0].parse_arguments() == {"host": "localhost"}

    def test_no_errors_on_success(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="ok", name_delta="test", args_delta="{}", done=True))
        assert asm.errors == []

    def test_signature_is_carried(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="s", name_delta="sig", signature="abc"))
        result = asm.feed(RawToolDelta(call_index=0, done=True))
        assert result[0].signature == "abc"


class TestMultipleConcurrentToolCalls:
    """Two or more tool calls assembled in parallel (different call_index)."""

    def test_two_parallel_calls(self):
        asm = ToolCallAssembler()

        asm.feed(RawToolDelta(call_index=0, id="c0", name_delta="alpha"))
        asm.feed(RawToolDelta(call_index=1, id="c1", name_delta="beta"))
        asm.feed(RawToolDelta(call_index=0, args_delta='{"x": 1}'))
        asm.feed(RawToolDelta(call_index=1, args_delta='{"y": 2}'))

        r0 = asm.feed(RawToolDelta(call_index=0, done=True))
        assert [(tc.name, tc.parse_arguments()) for tc in r0] == [("alpha", {"x": 1})]

        r1 = asm.feed(RawToolDelta(call_index=1, done=True))
        assert [(tc.name, tc.parse_arguments()) for tc in r1] == [("beta", {"y": 2})]

    def test_three_interleaved_calls(self):
        asm = ToolCallAssembler()

        for idx in range(3):
            asm.feed(RawToolDelta(call_index=idx, id=f"c{idx}", name_delta=f"tool_{idx}"))
        for idx in range(3):
            asm.feed(RawToolDelta(call_index=idx, args_delta=json.dumps({"idx": idx})))

        all_calls: list[ToolCall] = []
        for idx in range(3):
            all_calls.extend(asm.feed(RawToolDelta(call_index=idx, done=True)))

        assert [tc.name for tc in all_calls] == ["tool_0", "tool_1", "tool_2"]


class TestMalformedArguments:
    """Argument strings are not decoded here; the executor reports bad JSON."""

    def test_invalid_json_is_kept_verbatim(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="bad", name_delta="broken"))
        asm.feed(RawToolDelta(call_index=0, args_delta="NOT VALID JSON {{{"))
        result = asm.feed(RawToolDelta(call_index=0, done=True))

        assert len(result) == 1
        assert result[0].arguments == "NOT VALID JSON {{{"
        assert asm.errors == []

    def test_empty_arguments_default_to_object(self):
        asm = ToolCallAssembler()
        result = asm.feed(RawToolDelta(call_index=0, id="e", name_delta="noargs", done=True))
        assert result[0].arguments == "{}"
        assert result[0].parse_arguments() == {}


class TestMissingName:
    def test_nameless_call_is_dropped(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="anon", args_delta='{"a": 1}'))
        result = asm.feed(RawToolDelta(call_index=0, done=True))

        assert result == []
        assert len(asm.errors) == 1
        assert "missing_name" in asm.errors[0]

    def test_whitespace_name_is_dropped(self):
        asm = ToolCallAssembler()
        result = asm.feed(RawToolDelta(call_index=0, name_delta="  ", done=True))
        assert result == []
        assert asm.errors


class TestFlush:
    def test_flush_finalizes_pending_calls_in_index_order(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=1, id="b", name_delta="second"))
        asm.feed(RawToolDelta(call_index=0, id="a", name_delta="first"))

        calls = asm.flush()
        assert [tc.name for tc in calls] == ["first", "second"]
        assert asm.flush() == []

    def test_missing_id_gets_positional_id(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=2, name_delta="x"))
        assert asm.flush()[0].id == "call_2"

    def test_done_twice_does_not_duplicate(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="a", name_delta="x", done=True))
        assert asm.feed(RawToolDelta(call_index=0, done=True)) == []
        assert len(asm.errors) == 1

    def test_reset_clears_state(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="a", name_delta="x"))
        asm.errors.append("stale")
        asm.reset()
        assert asm.flush() == []
        assert asm.errors == []

    def test_pending_count(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="a", name_delta="x"))
        asm.feed(RawToolDelta(call_index=1, id="b", name_delta="y"))
        assert asm.pending == 2
        asm.feed(RawToolDelta(call_index=0, done=True))
        assert asm.pending == 1
