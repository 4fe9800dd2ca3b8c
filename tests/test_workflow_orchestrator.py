"""Workflow orchestrator tests."""

import asyncio
from datetime import timedelta

import pytest
from conftest import make_crm_tools

from dealflow.cache import utc_now
from dealflow.config import WorkflowSettings
from dealflow.contracts import (
    StepStatus,
    ToolExecutionContext,
    ToolResult,
    WorkflowStatus,
)
from dealflow.errors import ErrorCategory, ExecutionFailed, InvalidTransition, NotFound
from dealflow.rules import RuleStore
from dealflow.tools import FunctionTool, ToolDispatcher
from dealflow.workflow import WorkflowOrchestrator, build_steps, workflow_to_tool_result


async def _orchestrator(*extra_tools, **settings) -> WorkflowOrchestrator:
    dispatcher = ToolDispatcher(make_crm_tools() + list(extra_tools))
    rule_store = await RuleStore.with_defaults()
    settings.setdefault("backoff_base_ms", 0)
    return WorkflowOrchestrator(dispatcher, rule_store, settings=WorkflowSettings(**settings))


def _counting_tool(name="unstable", fail_times=100):
    calls = []

    async def run(params, context):
        calls.append(context.tool_call_id)
        if len(calls) <= fail_times:
            raise ExecutionFailed("Upstream service unavailable")
        return ToolResult(success=True, data={"attempt": len(calls)})

    return FunctionTool(run, name=name, description="Fails a few times"), calls


@pytest.mark.asyncio
async def test_deal_creation_plan_runs_end_to_end(tool_context):
    orchestrator = await _orchestrator()

    workflow = await orchestrator.execute_workflow(
        "Create deal for Acme",
        tool_context,
        variables={
            "organization_name": "Acme",
            "deal_name": "Acme rollout",
            "value": 5000,
            "currency": "EUR",
        },
    )

    assert workflow.status == WorkflowStatus.COMPLETED
    assert [s.tool_name for s in workflow.steps] == [
        "think",
        "get_dropdown_data",
        "search_organizations",
        "create_deal",
    ]
    assert all(s.status == StepStatus.COMPLETED for s in workflow.steps)
    deal = workflow.results["step-4"].data
    assert deal["organization_id"] == "org-1"
    assert deal["project_type_id"] == "pt-1"
    assert deal["value"] == 5000
    assert workflow.end_time is not None
    assert workflow.errors == []


@pytest.mark.asyncio
async def test_steps_get_fresh_tool_call_ids(tool_context):
    tool, calls = _counting_tool(fail_times=0)
    orchestrator = await _orchestrator(tool)
    steps = build_steps([{"tool": "unstable"}, {"tool": "unstable"}])

    workflow = await orchestrator.execute_workflow("Run twice", tool_context, steps=steps)

    assert workflow.status == WorkflowStatus.COMPLETED
    assert len(set(calls)) == 2
    assert tool_context.tool_call_id not in calls


@pytest.mark.asyncio
async def test_incomplete_dependency_never_executes(tool_context):
    orchestrator = await _orchestrator()
    steps = build_steps(
        [
            {"id": "a", "tool": "get_dropdown_data"},
            {"id": "b", "tool": "get_dropdown_data", "depends_on": ["c"]},
            {"id": "c", "tool": "get_dropdown_data"},
        ]
    )

    workflow = await orchestrator.execute_workflow("Out of order", tool_context, steps=steps)

    assert workflow.status == WorkflowStatus.FAILED
    blocked = workflow.find_step("b")
    assert blocked.status == StepStatus.PENDING
    assert blocked.start_time is None
    assert workflow.find_step("c").status == StepStatus.PENDING
    assert "dependencies not met" in workflow.errors[-1].error


@pytest.mark.asyncio
async def test_unknown_dependency_fails_workflow(tool_context):
    orchestrator = await _orchestrator()
    steps = build_steps([{"tool": "get_dropdown_data", "depends_on": ["missing"]}])

    workflow = await orchestrator.execute_workflow("Broken", tool_context, steps=steps)

    assert workflow.status == WorkflowStatus.FAILED
    assert workflow.steps[0].status == StepStatus.PENDING


@pytest.mark.asyncio
async def test_step_is_retried_at_most_three_times(tool_context):
    tool, calls = _counting_tool()
    orchestrator = await _orchestrator(tool)

    workflow = await orchestrator.execute_workflow(
        "Keep failing", tool_context, steps=build_steps([{"tool": "unstable"}])
    )

    assert workflow.status == WorkflowStatus.FAILED
    assert len(calls) == 4
    assert workflow.steps[0].retry_count == 4
    assert workflow.steps[0].status == StepStatus.FAILED


@pytest.mark.asyncio
async def test_step_succeeds_after_retries(tool_context):
    tool, calls = _counting_tool(fail_times=2)
    orchestrator = await _orchestrator(tool)

    workflow = await orchestrator.execute_workflow(
        "Eventually works", tool_context, steps=build_steps([{"tool": "unstable"}])
    )

    assert workflow.status == WorkflowStatus.COMPLETED
    assert len(calls) == 3
    assert workflow.results["step-1"].data == {"attempt": 3}
    assert len(workflow.errors) == 2


@pytest.mark.asyncio
async def test_permission_failure_is_not_retried(tool_context):
    orchestrator = await _orchestrator()
    context = tool_context.model_copy(update={"permissions": ["deal:read"]})

    workflow = await orchestrator.execute_workflow(
        "Create",
        context,
        steps=build_steps([{"tool": "create_deal", "parameters": {"name": "x", "organization_id": "o"}}]),
    )

    assert workflow.status == WorkflowStatus.FAILED
    assert workflow.steps[0].retry_count == 1
    assert workflow.errors[0].category == ErrorCategory.PERMISSION
    assert workflow.errors[0].recovery_action == "Check user permissions for this operation"


@pytest.mark.asyncio
async def test_unresolved_placeholder_fails_validation(tool_context):
    orchestrator = await _orchestrator()

    workflow = await orchestrator.execute_workflow(
        "Create deal for someone",
        tool_context,
        variables={"deal_name": "No org"},
    )

    assert workflow.status == WorkflowStatus.FAILED
    failed = workflow.find_step("step-3")
    assert failed.tool_name == "search_organizations"
    assert failed.retry_count == 1
    assert any(e.category == ErrorCategory.VALIDATION for e in workflow.errors)
    assert "organization_name" in failed.result.message
    # the unmet required condition is recorded at planning time
    assert workflow.errors[0].step_id == "planning"


@pytest.mark.asyncio
async def test_step_timeout_counts_as_failure(tool_context):
    async def slow(params, context):
        await asyncio.sleep(1)
        return ToolResult(success=True)

    orchestrator = await _orchestrator(
        FunctionTool(slow, name="slow"), step_timeout_seconds=0.05, max_retries=1
    )

    workflow = await orchestrator.execute_workflow(
        "Slow", tool_context, steps=build_steps([{"tool": "slow"}])
    )

    assert workflow.status == WorkflowStatus.FAILED
    assert workflow.steps[0].retry_count == 2
    assert workflow.errors[0].category == ErrorCategory.TIMEOUT
    assert workflow.steps[0].result.error.code == "STEP_TIMEOUT"
    assert workflow.steps[0].result.error.details == {"step_id": "step-1", "tool_name": "slow"}
    assert workflow.errors[0].recovery_action == "Retry with increased timeout or check system load"


@pytest.mark.asyncio
async def test_pause_and_resume_at_step_boundary(tool_context):
    orchestrator = await _orchestrator()

    async def pause_me(params, context):
        workflow = (await orchestrator.get_active_workflows())[0]
        await orchestrator.pause_workflow(workflow.id)
        return ToolResult(success=True, data="paused")

    orchestrator.dispatcher.register_tool(FunctionTool(pause_me, name="pause_me"))
    steps = build_steps([{"tool": "pause_me"}, {"tool": "get_dropdown_data"}])

    workflow = await orchestrator.execute_workflow("Pause me", tool_context, steps=steps)

    assert workflow.status == WorkflowStatus.PAUSED
    assert workflow.steps[0].status == StepStatus.COMPLETED
    assert workflow.steps[1].status == StepStatus.PENDING
    assert (await orchestrator.get_metrics()).active == 1

    resumed = await orchestrator.resume_workflow(workflow.id)
    assert resumed.status == WorkflowStatus.COMPLETED
    assert resumed.steps[1].status == StepStatus.COMPLETED


@pytest.mark.asyncio
async def test_cancel_stops_before_next_step(tool_context):
    orchestrator = await _orchestrator()

    async def cancel_me(params, context):
        workflow = (await orchestrator.get_active_workflows())[0]
        await orchestrator.cancel_workflow(workflow.id)
        return ToolResult(success=True)

    orchestrator.dispatcher.register_tool(FunctionTool(cancel_me, name="cancel_me"))
    steps = build_steps([{"tool": "cancel_me"}, {"tool": "get_dropdown_data"}])

    workflow = await orchestrator.execute_workflow("Cancel me", tool_context, steps=steps)

    assert workflow.status == WorkflowStatus.CANCELLED
    assert workflow.steps[1].status == StepStatus.PENDING
    with pytest.raises(InvalidTransition):
        await orchestrator.resume_workflow(workflow.id)


@pytest.mark.asyncio
async def test_cancel_during_retry_backoff_stops_retries(tool_context):
    tool, calls = _counting_tool()
    orchestrator = await _orchestrator(tool, backoff_base_ms=200)

    task = asyncio.create_task(
        orchestrator.execute_workflow(
            "Keep failing", tool_context, steps=build_steps([{"tool": "unstable"}])
        )
    )
    await asyncio.sleep(0.05)
    active = await orchestrator.get_active_workflows()
    await orchestrator.cancel_workflow(active[0].id)
    workflow = await task

    assert workflow.status == WorkflowStatus.CANCELLED
    assert len(calls) == 1
    assert workflow.steps[0].retry_count == 1


@pytest.mark.asyncio
async def test_pause_during_retry_backoff_then_resume(tool_context):
    tool, calls = _counting_tool(fail_times=1)
    orchestrator = await _orchestrator(tool, backoff_base_ms=200)

    task = asyncio.create_task(
        orchestrator.execute_workflow(
            "Fails once", tool_context, steps=build_steps([{"tool": "unstable"}])
        )
    )
    await asyncio.sleep(0.05)
    active = await orchestrator.get_active_workflows()
    await orchestrator.pause_workflow(active[0].id)
    paused = await task

    assert paused.status == WorkflowStatus.PAUSED
    assert len(calls) == 1

    resumed = await orchestrator.resume_workflow(paused.id)
    assert resumed.status == WorkflowStatus.COMPLETED
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_unknown_workflow_raises_not_found():
    orchestrator = await _orchestrator()

    with pytest.raises(NotFound):
        await orchestrator.pause_workflow("workflow-missing")
    assert await orchestrator.get_workflow_status("workflow-missing") is None
    assert await orchestrator.update_step_parameters("workflow-missing", "step-1", {}) is False


@pytest.mark.asyncio
async def test_step_parameters_and_results(tool_context):
    orchestrator = await _orchestrator()
    workflow = await orchestrator.execute_workflow(
        "Find deals over 50000", tool_context
    )

    assert workflow.status == WorkflowStatus.COMPLETED
    result = await orchestrator.get_step_result(workflow.id, "step-2")
    assert result.data[0]["id"] == "deal-9"
    assert await orchestrator.get_step_result(workflow.id, "step-9") is None
    assert await orchestrator.update_step_parameters(workflow.id, "step-2", {"limit": 5})
    stored = await orchestrator.get_workflow_status(workflow.id)
    assert stored.find_step("step-2").parameters["limit"] == 5
    assert await orchestrator.update_step_parameters(workflow.id, "step-9", {}) is False


@pytest.mark.asyncio
async def test_plan_workflow_for_search_objective():
    orchestrator = await _orchestrator()

    steps = await orchestrator.plan_workflow("find deals over 50000")

    assert steps[0].tool_name == "think"
    assert steps[1].tool_name == "search_deals"
    assert steps[1].dependencies == [steps[0].id]


@pytest.mark.asyncio
async def test_metrics_and_cleanup(tool_context):
    tool, _ = _counting_tool()
    orchestrator = await _orchestrator(tool, max_retries=0)

    await orchestrator.execute_workflow("Find deals", tool_context)
    await orchestrator.execute_workflow(
        "Fail", tool_context, steps=build_steps([{"tool": "unstable"}])
    )

    metrics = await orchestrator.get_metrics()
    assert metrics.completed == 1
    assert metrics.failed == 1
    assert metrics.active == 0
    assert metrics.success_rate == 0.5
    assert metrics.average_execution_time_ms >= 0

    assert await orchestrator.cleanup_finished() == 0
    removed = await orchestrator.cleanup_finished(now=utc_now() + timedelta(minutes=61))
    assert removed == 2
    assert await orchestrator.get_active_workflows() == []


@pytest.mark.asyncio
async def test_workflow_to_tool_result(tool_context):
    orchestrator = await _orchestrator(max_retries=0)

    completed = await orchestrator.execute_workflow("Find deals", tool_context)
    failed = await orchestrator.execute_workflow(
        "Fail", tool_context, steps=build_steps([{"tool": "flaky"}])
    )

    ok = workflow_to_tool_result(completed)
    assert ok.success
    assert ok.data["status"] == "completed"
    assert set(ok.data["results"]) == {"step-1", "step-2"}

    bad = workflow_to_tool_result(failed)
    assert not bad.success
    assert bad.error.code == "WORKFLOW_FAILED"
    assert bad.error.details["workflow_id"] == failed.id


@pytest.mark.asyncio
async def test_auth_token_reaches_tools_but_not_serialised(tool_context):
    seen = []

    async def whoami(params, context: ToolExecutionContext):
        seen.append(context.auth_token)
        return ToolResult(success=True)

    orchestrator = await _orchestrator(FunctionTool(whoami, name="whoami"))
    workflow = await orchestrator.execute_workflow(
        "Who", tool_context, steps=build_steps([{"tool": "whoami"}])
    )

    assert seen == ["secret-token"]
    assert "secret-token" not in workflow.model_dump_json()
