"""Tests for fallback tool-call extraction and answer sanitizing."""

from __future__ import annotations

import json
import logging

from agentloop.stream.demux import TagDemultiplexer
from agentloop.stream.markup import (
    FALLBACK_ID_PREFIX,
    extract_reasoning,
    extract_tool_calls,
    has_tool_call_markup,
    sanitize_answer,
    strip_reasoning,
    strip_tool_calls,
)


class TestExtractToolCalls:
    def test_round_trip_with_object_arguments(self):
        text = '<tool_call>{"name":"foo","arguments":{"x":1}}</tool_call>'
        calls = extract_tool_calls(text)

        assert len(calls) == 1
        assert calls[0].name == "foo"
        assert json.loads(calls[0].arguments) == {"x": 1}
        assert calls[0].id.startswith(FALLBACK_ID_PREFIX)

    def test_string_arguments_kept_verbatim(self):
        text = '<tool_call>{"name": "foo", "arguments": "{\\"x\\": 1}"}</tool_call>'
        [call] = extract_tool_calls(text)
        assert call.arguments == '{"x": 1}'

    def test_non_ascii_arguments_stay_readable(self):
        [call] = extract_tool_calls('<tool_call>{"name": "w", "arguments": {"city": "Zürich"}}</tool_call>')
        assert "Zürich" in call.arguments

    def test_multiple_blocks_in_order_with_unique_ids(self):
        text = (
            '<tool_call>{"name": "a", "arguments": {}}</tool_call> and '
            '<TOOL_CALL>{"name": "b", "arguments": {}}</tool_call>'
        )
        calls = extract_tool_calls(text)
        assert [c.name for c in calls] == ["a", "b"]
        assert calls[0].id != calls[1].id

    def test_whitespace_around_json(self):
        [call] = extract_tool_calls('<tool_call>\n  {"name": "a", "arguments": {}}\n</tool_call>')
        assert call.name == "a"

    def test_malformed_blocks_are_skipped_and_logged(self, caplog):
        text = (
            "<tool_call>not json</tool_call>"
            '<tool_call>["a", "list"]</tool_call>'
            '<tool_call>{"arguments": {}}</tool_call>'
            '<tool_call>{"name": "x", "arguments": 5}</tool_call>'
            '<tool_call>{"name": "ok", "arguments": {}}</tool_call>'
        )
        with caplog.at_level(logging.WARNING, logger="agentloop.stream.markup"):
            calls = extract_tool_calls(text)

        assert [c.name for c in calls] == ["ok"]
        assert len(caplog.records) == 4

    def test_nothing_valid_returns_none(self):
        assert extract_tool_calls("<tool_call>oops</tool_call>") is None
        assert extract_tool_calls("no markup here") is None
        assert extract_tool_calls("") is None

    def test_unterminated_block_is_not_extracted(self):
        assert extract_tool_calls('<tool_call>{"name": "a", "arguments": {}}') is None


class TestHasToolCallMarkup:
    def test_detects_opening_marker(self):
        assert has_tool_call_markup("x <tool_call>")
        assert has_tool_call_markup("x <Tool_Call>{")
        assert not has_tool_call_markup("plain")
        assert not has_tool_call_markup("")


class TestStripping:
    def test_strip_tool_calls_leaves_surroundings_byte_identical(self):
        text = 'Before  <tool_call>{"name":"foo","arguments":{"x":1}}</tool_call>\n after '
        assert strip_tool_calls(text) == "Before  \n after "

    def test_strip_tool_calls_keeps_unterminated(self):
        assert strip_tool_calls("a <tool_call>b") == "a <tool_call>b"

    def test_extract_reasoning(self):
        reasoning, clean = extract_reasoning("<think> one </think>A<analysis>two</analysis>B")
        assert reasoning == "one\ntwo"
        assert clean == "AB"

    def test_reasoning_with_custom_tags(self):
        assert strip_reasoning("<scratch>x</scratch>y<think>z</think>", ["scratch"]) == "y<think>z</think>"

    def test_extract_reasoning_empty(self):
        assert extract_reasoning("") == ("", "")


class TestSanitizeAnswer:
    def test_removes_reasoning_and_calls_then_trims(self):
        text = '<think>hmm</think>\n  Answer here <tool_call>{"name": "a"}</tool_call>\n'
        assert sanitize_answer(text) == "Answer here"

    def test_drops_unterminated_trailing_reasoning(self):
        assert sanitize_answer("Final answer.<thinking>and more thoughts") == "Final answer."

    def test_drops_unterminated_trailing_tool_call(self):
        assert sanitize_answer('Done. <tool_call>{"name": ') == "Done."

    def test_plain_text_only_trimmed(self):
        assert sanitize_answer("  just text \n") == "just text"

    def test_case_insensitive(self):
        assert sanitize_answer("<THINK>x</think>y") == "y"

    def test_overlapping_markup_follows_stream_classification(self):
        text = "<tool_call>x <think> y</tool_call> z </think> w"
        shown: list[str] = []
        demux = TagDemultiplexer(on_text=shown.append)
        demux.push(text)
        demux.flush()

        assert sanitize_answer(text) == "".join(shown).strip()
        assert sanitize_answer(text) == "z </think> w"

    def test_custom_tags(self):
        assert sanitize_answer("<scratch>x</scratch>y<think>z</think>", ["scratch"]) == "y<think>z</think>"
