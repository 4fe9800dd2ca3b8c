"""Workflow planner tests."""

import pytest

from dealflow.contracts import WorkflowCondition, WorkflowPattern, WorkflowStepTemplate
from dealflow.errors import ValidationFailed
from dealflow.rules import RuleStore
from dealflow.workflow import WorkflowPlanner, build_steps, expand_pattern, unmet_conditions
from dealflow.workflow.planner import evaluate_condition


@pytest.mark.asyncio
async def test_search_objective_plans_think_then_search():
    planner = WorkflowPlanner(await RuleStore.with_defaults())

    pattern, steps = await planner.plan("find deals over 50000")

    assert pattern.name == "entity_search"
    assert [s.id for s in steps] == ["step-1", "step-2"]
    assert steps[0].tool_name == "think"
    assert steps[1].tool_name == "search_deals"
    assert steps[1].dependencies == ["step-1"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "objective,expected",
    [
        ("Create deal for BMW", "deal_creation"),
        ("Update the Acme deal", "entity_update"),
        ("Analyze pipeline performance", "analysis"),
        ("Hello there", "generic"),
    ],
)
async def test_objective_selects_pattern(objective, expected):
    planner = WorkflowPlanner(await RuleStore.with_defaults())

    pattern, steps = await planner.plan(objective)

    assert pattern.name == expected
    assert steps[0].tool_name == "think"


@pytest.mark.asyncio
async def test_deal_creation_renames_references():
    planner = WorkflowPlanner(await RuleStore.with_defaults())

    _, steps = await planner.plan("Create deal for BMW")

    create = steps[3]
    assert create.dependencies == ["step-1", "step-2", "step-3"]
    assert create.parameters["organization_id"] == "${step-3.data.0.id}"
    assert create.parameters["project_type_id"] == "${step-2.data.default_project_type_id}"


@pytest.mark.asyncio
async def test_missing_pattern_falls_back_to_generic():
    store = await RuleStore.with_defaults()
    await store.remove_workflow_pattern("entity_search")
    await store.remove_workflow_pattern("generic")

    pattern, steps = await WorkflowPlanner(store).plan("search for Acme")

    assert pattern.name == "generic"
    assert [s.tool_name for s in steps] == ["think"]


def test_pattern_without_think_gets_one():
    pattern = WorkflowPattern(
        name="bare",
        steps=[WorkflowStepTemplate(id="load", name="Load", tool="get_dropdown_data")],
    )

    steps = expand_pattern(pattern)

    assert [s.tool_name for s in steps] == ["think", "get_dropdown_data"]
    assert steps[1].id == "step-2"


def test_pattern_with_unknown_dependency_is_rejected():
    pattern = WorkflowPattern(
        name="broken",
        steps=[
            WorkflowStepTemplate(id="think", name="Think", tool="think"),
            WorkflowStepTemplate(id="a", name="A", tool="x", depends_on=["ghost"]),
        ],
    )

    with pytest.raises(ValidationFailed):
        expand_pattern(pattern)


def test_build_steps():
    steps = build_steps(
        [
            {"tool": "think", "parameters": {"thought": "go"}},
            {"id": "search", "tool_name": "search_deals", "dependencies": ["step-1"]},
        ]
    )

    assert [s.id for s in steps] == ["step-1", "search"]
    assert steps[1].dependencies == ["step-1"]
    assert steps[1].step_number == 2

    with pytest.raises(ValidationFailed):
        build_steps([{"parameters": {}}])
    with pytest.raises(ValidationFailed):
        build_steps([{"id": "a", "tool": "x"}, {"id": "a", "tool": "y"}])


@pytest.mark.parametrize(
    "specs",
    [
        "search_deals",
        ["search_deals"],
        {"tool": "search_deals"},
        [{"tool": "search_deals", "parameters": ["query"]}],
        [{"tool": "search_deals", "depends_on": 1}],
    ],
)
def test_build_steps_rejects_malformed_specs(specs):
    with pytest.raises(ValidationFailed):
        build_steps(specs)


def test_conditions():
    exists = WorkflowCondition(field="organization_name", operator="exists", value=True)
    assert evaluate_condition(exists, {"organization_name": "Acme"})
    assert not evaluate_condition(exists, {"organization_name": ""})
    assert evaluate_condition(
        WorkflowCondition(field="value", operator="greater_than", value=100), {"value": 500}
    )
    assert not evaluate_condition(
        WorkflowCondition(field="value", operator="less_than", value=100), {"value": "x"}
    )
    assert evaluate_condition(
        WorkflowCondition(field="name", operator="contains", value="cm"), {"name": "Acme"}
    )

    pattern = WorkflowPattern(
        name="p",
        conditions=[
            exists,
            WorkflowCondition(field="note", operator="exists", value=True, action="optional"),
        ],
    )
    assert unmet_conditions(pattern, {}) == [exists]
