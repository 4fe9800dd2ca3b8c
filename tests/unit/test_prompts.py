"""Prompt composer tests."""

from dealflow.contracts import (
    BusinessRule,
    Constraint,
    ConversationMessage,
    DecisionContext,
    RulePriority,
    SystemSnapshot,
    ToolCall,
    ToolSpec,
)
from dealflow.prompts import OperationType, PromptComposer, compose

SECTION_MARKERS = [
    "**Current Request:**",
    "System State",
    "**Business Rules & Guidelines:**",
    "**Available Tools:**",
    "Conversation Context",
    "**Example Interactions:**",
    "**Operating Constraints:**",
    "**Output Format:**",
]


def _context(**overrides) -> DecisionContext:
    values = dict(
        objective="create_deal",
        user_message="Create a deal for Acme",
        available_tools=[
            ToolSpec(
                name="create_deal",
                description="Create a deal",
                category="deals",
                parameters={
                    "type": "object",
                    "properties": {"name": {"type": "string"}, "value": {"type": "number"}},
                    "required": ["name"],
                },
            )
        ],
        business_rules=[
            BusinessRule(id="c", category="x", priority=RulePriority.CRITICAL, rule="Critical rule"),
            BusinessRule(id="h", category="x", priority=RulePriority.HIGH, rule="High rule"),
            BusinessRule(id="l", category="x", priority=RulePriority.LOW, rule="Low rule"),
        ],
    )
    values.update(overrides)
    return DecisionContext(**values)


def test_sections_in_fixed_order():
    for operation_type in OperationType:
        prompt = compose(_context(), operation_type)
        positions = [prompt.index(marker) for marker in SECTION_MARKERS]
        assert positions == sorted(positions), operation_type


def test_compose_is_deterministic():
    context = _context(system_state=SystemSnapshot())
    assert compose(context) == compose(context.model_copy(deep=True))


def test_rules_by_mode():
    complete = compose(_context())
    assert "Critical rule" in complete
    assert "High rule" in complete
    assert "Low rule" not in complete

    lightweight = compose(_context(), OperationType.LIGHTWEIGHT)
    assert "Critical rule" in lightweight
    assert "High rule" not in lightweight
    assert "Quick response" in lightweight


def test_tool_catalog_marks_optional_parameters():
    prompt = compose(_context())
    assert "`create_deal`(name, value?) [deals] - Create a deal" in prompt
    assert "run_workflow" in prompt

    empty = compose(_context(available_tools=[]))
    assert "None available for your permissions" in empty


def test_history_is_limited_and_truncated():
    history = [
        ConversationMessage(id=f"m{i}", role="user", content=f"message {i}") for i in range(7)
    ]
    history.append(
        ConversationMessage(
            id="long",
            role="assistant",
            content="x" * 150,
            tool_calls=[ToolCall(id="t", tool="search_deals")],
        )
    )

    prompt = compose(_context(conversation_history=history))

    assert "message 2" not in prompt
    assert "message 3" in prompt
    assert "x" * 100 + "..." in prompt
    assert "x" * 101 not in prompt
    assert "Tools used: search_deals" in prompt
    assert "New conversation" in compose(_context())


def test_system_state_and_constraints():
    snapshot = SystemSnapshot()
    snapshot.pipeline_health.key_insights = ["Pipeline is thin"]
    prompt = compose(
        _context(
            system_state=snapshot,
            constraints=[Constraint(description="Read only session", severity="blocking")],
        )
    )

    assert "Pipeline Health: STRONG" in prompt
    assert "Pipeline is thin" in prompt
    assert "Read only session (blocking)" in prompt
    assert "Not available" in compose(_context())


def test_workflow_and_error_recovery_modes():
    composer = PromptComposer()

    workflow = composer.compose(_context(), OperationType.WORKFLOW)
    assert "Multi-step workflow orchestration" in workflow
    assert "prefer `run_workflow`" in workflow

    recovery = composer.compose_error_recovery(
        {"code": "NOT_FOUND", "message": "Organization missing", "recoverable": True},
        _context(),
    )
    assert recovery.startswith("**Error Details:**")
    assert "Organization missing" in recovery
    assert "Error recovery" in recovery
