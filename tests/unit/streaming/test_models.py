"""Unit tests for ToolAccumulator, ToolResult and StreamSummary."""

import logging

from src.ai.streaming.models import StreamSummary, ToolAccumulator, ToolResult


class TestToolAccumulator:
    def test_fragments_append_in_order(self):
        acc = ToolAccumulator(call_id="c1")
        acc.update(name="lookup", arguments='{"val')
        acc.update(arguments='ue":')
        acc.update(arguments="1}")

        assert acc.argument_chunks == ['{"val', 'ue":', "1}"]
        assert acc.parse_arguments() == {"value": 1}

    def test_repeated_fragments_are_not_deduplicated(self):
        acc = ToolAccumulator(call_id="c1")
        acc.update(arguments='"a')
        acc.update(arguments='"a')

        assert acc.arguments_text == '"a"a'

    def test_later_non_empty_values_overwrite(self):
        acc = ToolAccumulator(call_id="c1", name="first", response_id="resp_1")
        acc.update(name="", response_id=None)
        assert acc.name == "first"
        assert acc.response_id == "resp_1"

        acc.update(name="second", response_id="resp_2")
        assert acc.name == "second"
        assert acc.response_id == "resp_2"

    def test_empty_arguments_parse_to_empty_dict(self):
        assert ToolAccumulator(call_id="c1").parse_arguments() == {}

    def test_malformed_json_logs_and_returns_empty(self, caplog):
        acc = ToolAccumulator(call_id="c1", name="lookup", argument_chunks=['{"value":'])

        with caplog.at_level(logging.WARNING, logger="src.ai.streaming.models"):
            assert acc.parse_arguments() == {}

        assert "could not be parsed" in caplog.text

    def test_non_object_json_is_ignored(self):
        acc = ToolAccumulator(call_id="c1", argument_chunks=["[1, 2]"])
        assert acc.parse_arguments() == {}


class TestSummaryShapes:
    def test_tool_result_wire_shape(self):
        tool = ToolResult(
            call_id="c1",
            task_id="t1",
            name="lookup",
            arguments={"value": 1},
            status="error",
            error="boom",
        )
        assert tool.to_dict() == {
            "id": "c1",
            "taskId": "t1",
            "name": "lookup",
            "arguments": {"value": 1},
            "status": "error",
            "result": None,
            "error": "boom",
        }

    def test_summary_wire_shape(self):
        tool = ToolResult(
            call_id="c1",
            task_id="t1",
            name="lookup",
            arguments={},
            status="success",
            result={"result": 42},
        )
        summary = StreamSummary(
            message="Hello",
            model="gpt-x",
            usage=None,
            completed=True,
            tool_calls=[tool],
        )

        payload = summary.to_dict()

        assert payload["message"] == "Hello"
        assert payload["completed"] is True
        assert payload["toolCalls"] == [tool.to_dict()]
        assert "error" not in payload["toolCalls"][0]
