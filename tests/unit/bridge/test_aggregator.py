"""Tests unitaires: agrégation du résultat et ordre de composition."""

from __future__ import annotations

import pytest

from opencode_mcp.bridge.aggregator import ResponseAggregator, compose_result_text
from opencode_mcp.bridge.events import StepBoundaryEvent, TextEvent, ToolUseEvent, UnrecognizedEvent


@pytest.mark.unit
def test_composition_order_text_tools_stderr_exit_code():
    agg = ResponseAggregator()
    agg.add(TextEvent("A"))
    agg.add(ToolUseEvent(tool="T", status="completed", output="B"))
    result = agg.finalize(stderr_text="C", exit_code=1)

    assert result.text == "A\n\n--- Tool Outputs ---\n[Tool: T]\nB\n\n[stderr]\nC\n[exit code: 1]"
    assert result.failed is True
    assert result.tool_outputs == ["[Tool: T]\nB"]


@pytest.mark.unit
def test_text_fragments_concatenate_and_produce_milestones():
    agg = ResponseAggregator()
    first = agg.add(TextEvent("Hel"))
    second = agg.add(TextEvent("lo"))

    assert first.kind == "text" and first.message == "Hel"
    assert second.text_length == 5
    assert agg.finalize(stderr_text="", exit_code=0).text == "Hello"


@pytest.mark.unit
def test_only_completed_tools_with_output_are_kept():
    agg = ResponseAggregator()
    assert agg.add(ToolUseEvent(tool="bash", status="in_progress")) is None
    assert agg.add(ToolUseEvent(tool="bash", status="error", error="denied")) is None
    milestone = agg.add(ToolUseEvent(tool="edit", status="completed"))

    assert milestone.message == "edit completed"
    assert agg.tool_outputs == []


@pytest.mark.unit
def test_step_milestones_and_unrecognized_events():
    agg = ResponseAggregator()
    assert agg.add(StepBoundaryEvent(phase="finish", reason="stop")).message == "step_finish: stop"
    assert agg.add(UnrecognizedEvent(raw="???")) is None


@pytest.mark.unit
def test_stderr_without_preceding_text_has_no_separator():
    text = compose_result_text(text="", tool_outputs=[], stderr_text="boom", exit_code=2)
    assert text == "[stderr]\nboom\n[exit code: 2]"


@pytest.mark.unit
def test_timeout_marker_follows_exit_code():
    text = compose_result_text(text="partial", tool_outputs=[], stderr_text="", exit_code=-1, timed_out=True, timeout_s=1)
    assert text == "partial\n[exit code: -1]\n[timeout after 1s]"


@pytest.mark.unit
def test_raw_mode_joins_lines_with_trailing_newline():
    agg = ResponseAggregator(structured=False)
    agg.add_raw_line("modelA")
    agg.add_raw_line("modelB")

    result = agg.finalize(stderr_text="", exit_code=0)
    assert result.text == "modelA\nmodelB\n"
    assert result.failed is False


@pytest.mark.unit
def test_structured_without_content_falls_back_to_raw_lines():
    agg = ResponseAggregator()
    agg.add(UnrecognizedEvent(raw="plain output"), raw_line="plain output")

    assert agg.finalize(stderr_text="", exit_code=0).text == "plain output\n"


@pytest.mark.unit
def test_finalize_twice_raises():
    agg = ResponseAggregator()
    agg.finalize(stderr_text="", exit_code=0)
    with pytest.raises(RuntimeError):
        agg.finalize(stderr_text="", exit_code=0)


@pytest.mark.unit
def test_tool_section_follows_interleaved_text():
    agg = ResponseAggregator()
    agg.add(TextEvent("A"))
    agg.add(ToolUseEvent(tool="x", status="completed", output="B"))
    agg.add(TextEvent("C"))
    result = agg.finalize(stderr_text="", exit_code=0)

    assert agg.text == "AC"
    assert result.tool_outputs == ["[Tool: x]\nB"]
    assert result.text == "AC\n\n--- Tool Outputs ---\n[Tool: x]\nB"


@pytest.mark.unit
def test_raw_lines_released_once_content_arrives():
    agg = ResponseAggregator()
    agg.add(StepBoundaryEvent(phase="start", reason=None), raw_line='{"type":"step_start"}')
    assert agg._raw_lines == ['{"type":"step_start"}']

    agg.add(TextEvent("Hi"), raw_line='{"type":"text"}')
    agg.add(UnrecognizedEvent(raw="noise"), raw_line="noise")

    assert agg._raw_lines == []
    assert agg.finalize(stderr_text="", exit_code=0).text == "Hi"
