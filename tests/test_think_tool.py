"""Think tool tests."""

import pytest

from dealflow.tools import ThinkTool, ToolDispatcher


@pytest.mark.asyncio
async def test_empty_thought_fails_without_recording(tool_context):
    tool = ThinkTool()

    for thought in ("", "   "):
        result = await tool.execute({"thought": thought}, tool_context)
        assert not result.success
        assert result.error.code == "INVALID_PARAMETERS"
        assert result.message == "Thought parameter cannot be empty"
    assert tool.history == []


@pytest.mark.asyncio
async def test_empty_thought_through_dispatcher(tool_context):
    dispatcher = ToolDispatcher()

    result = await dispatcher.execute_tool("think", {"thought": ""}, tool_context)

    assert not result.success
    assert dispatcher.think_tool.history == []


@pytest.mark.asyncio
async def test_non_string_focus_areas_are_rejected_before_running(tool_context):
    dispatcher = ToolDispatcher()

    result = await dispatcher.execute_tool(
        "think", {"thought": "plan it", "focus_areas": [1, 2]}, tool_context
    )

    assert not result.success
    assert result.error.code == "INVALID_PARAMETERS"
    assert result.error.retryable is False
    assert "focus_areas.0: 1 is not of type 'string'" in result.error.details["problems"]
    assert dispatcher.think_tool.history == []


@pytest.mark.asyncio
async def test_thought_is_recorded_with_insights(tool_context):
    tool = ThinkTool()

    result = await tool.execute(
        {
            "thought": "  Create a deal for Acme after a search  ",
            "reasoning_type": "planning",
            "focus_areas": ["pricing"],
        },
        tool_context,
    )

    assert result.success
    assert len(tool.history) == 1
    step = tool.history[0]
    assert step.thought == "Create a deal for Acme after a search"
    assert step.reasoning_type == "planning"
    assert result.data["thinking_step_id"] == step.id
    assert result.data["reasoning_type"] == "planning"
    assert any("pricing" in insight for insight in result.data["insights"])
    assert len(result.data["next_actions"]) > 1
    assert result.metadata.confidence == step.confidence


@pytest.mark.asyncio
async def test_default_and_invalid_reasoning_type(tool_context):
    tool = ThinkTool()

    default = await tool.execute({"thought": "What now?"}, tool_context)
    assert default.data["reasoning_type"] == "analysis"

    invalid = await tool.execute(
        {"thought": "What now?", "reasoning_type": "daydream"}, tool_context
    )
    assert not invalid.success
    assert len(tool.history) == 1

    tool.clear_history()
    assert tool.history == []
