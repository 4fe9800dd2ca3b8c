"""Dependency-gated, retrying execution of multi-step tool workflows."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel

from ..cache import utc_now
from ..classify import suggest_recovery
from ..config import WorkflowSettings
from ..constants import WORKFLOW_TOOL_NAME
from ..contracts import (
    StepStatus,
    ToolError,
    ToolExecutionContext,
    ToolResult,
    ToolSpec,
    WorkflowError,
    WorkflowExecution,
    WorkflowExecutionStep,
    WorkflowStatus,
)
from ..errors import ErrorCategory, InvalidTransition, NotFound, StepTimeout, ValidationFailed
from ..rules import RuleStore
from ..stores import BaseStore, InMemoryStore
from ..tools import ToolDispatcher
from ..utils import retry
from .planner import WorkflowPlanner, unmet_conditions
from .templating import resolve_parameters

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    WorkflowStatus.PLANNING: {
        WorkflowStatus.EXECUTING,
        WorkflowStatus.FAILED,
        WorkflowStatus.CANCELLED,
    },
    WorkflowStatus.EXECUTING: {
        WorkflowStatus.PAUSED,
        WorkflowStatus.COMPLETED,
        WorkflowStatus.FAILED,
        WorkflowStatus.CANCELLED,
    },
    WorkflowStatus.PAUSED: {WorkflowStatus.EXECUTING, WorkflowStatus.CANCELLED},
    WorkflowStatus.COMPLETED: set(),
    WorkflowStatus.FAILED: set(),
    WorkflowStatus.CANCELLED: set(),
}

WORKFLOW_TOOL_SPEC = ToolSpec(
    name=WORKFLOW_TOOL_NAME,
    description=(
        "Run a multi-step workflow for an objective. Steps are planned from "
        "templates unless given explicitly."
    ),
    category="system",
    parameters={
        "type": "object",
        "properties": {
            "objective": {"type": "string", "description": "What the workflow must achieve"},
            "variables": {
                "type": "object",
                "description": "Values for ${name} placeholders in step parameters",
            },
            "steps": {
                "type": "array",
                "description": "Optional explicit steps: {tool, parameters, depends_on}",
            },
        },
        "required": ["objective"],
    },
)


class WorkflowMetrics(BaseModel):
    active: int = 0
    completed: int = 0
    failed: int = 0
    average_execution_time_ms: float = 0.0
    success_rate: float = 0.0


def workflow_to_tool_result(workflow: WorkflowExecution) -> ToolResult:
    """Summarise a finished workflow as a single ToolResult."""
    data = {
        "workflow_id": workflow.id,
        "status": workflow.status.value,
        "steps": [
            {"id": s.id, "tool": s.tool_name, "status": s.status.value}
            for s in workflow.steps
        ],
        "results": {sid: r.data for sid, r in workflow.results.items()},
    }
    if workflow.status == WorkflowStatus.COMPLETED:
        return ToolResult(
            success=True,
            data=data,
            message=f"Workflow completed {len(workflow.results)} of {workflow.total_steps} steps",
        )
    last_error = workflow.errors[-1] if workflow.errors else None
    return ToolResult.failure(
        ToolError(
            code=f"WORKFLOW_{workflow.status.value.upper()}",
            message=last_error.error if last_error else f"Workflow {workflow.status.value}",
            category=last_error.category if last_error else ErrorCategory.EXECUTION,
            recoverable=True,
            retryable=False,
            details={"workflow_id": workflow.id},
            suggested_fix=last_error.recovery_action if last_error else None,
        ),
        data=data,
    )


class WorkflowOrchestrator:
    """Plan and run workflows through a :class:`ToolDispatcher`.

    Steps run strictly in declared order. Pause and cancel requests are
    honoured at step boundaries; an in-flight tool call is never
    interrupted.
    """

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        rule_store: RuleStore,
        store: Optional[BaseStore[WorkflowExecution]] = None,
        settings: Optional[WorkflowSettings] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.rule_store = rule_store
        self.planner = WorkflowPlanner(rule_store)
        self.settings = settings or WorkflowSettings()
        self._store: BaseStore[WorkflowExecution] = store or InMemoryStore()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._running: Set[str] = set()

    # ------------------------------------------------------------------
    # State machine

    @staticmethod
    def _transition(workflow: WorkflowExecution, status: WorkflowStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[workflow.status]:
            raise InvalidTransition(
                f"Workflow {workflow.id} cannot move from {workflow.status.value} to {status.value}"
            )
        workflow.status = status
        if status.is_terminal:
            workflow.end_time = utc_now()

    async def _load(self, workflow_id: str) -> WorkflowExecution:
        workflow = await self._store.get(workflow_id)
        if workflow is None:
            raise NotFound(f"Workflow {workflow_id} not found")
        return workflow

    async def _checkpoint(self, workflow: WorkflowExecution) -> None:
        """Adopt pause/cancel requests made elsewhere, then persist."""
        async with self._locks[workflow.id]:
            stored = await self._store.get(workflow.id)
            if (
                stored is not None
                and stored is not workflow
                and stored.status in (WorkflowStatus.PAUSED, WorkflowStatus.CANCELLED)
                and workflow.status == WorkflowStatus.EXECUTING
            ):
                workflow.status = stored.status
                workflow.end_time = stored.end_time
            await self._store.set(workflow.id, workflow)

    def _record_error(
        self,
        workflow: WorkflowExecution,
        step_id: str,
        message: str,
        category: ErrorCategory,
    ) -> None:
        workflow.errors.append(
            WorkflowError(
                step_id=step_id,
                error=message,
                category=category,
                recovery_action=suggest_recovery(message),
            )
        )

    def _fail(
        self,
        workflow: WorkflowExecution,
        step_id: str,
        message: str,
        category: ErrorCategory = ErrorCategory.EXECUTION,
    ) -> None:
        self._record_error(workflow, step_id, message, category)
        self._transition(workflow, WorkflowStatus.FAILED)
        logger.warning(f"Workflow {workflow.id} failed at {step_id}: {message}")

    # ------------------------------------------------------------------
    # Planning

    async def plan_workflow(self, objective: str) -> List[WorkflowExecutionStep]:
        """Return the steps that would run for ``objective`` without executing them."""
        _, steps = await self.planner.plan(objective)
        return steps

    # ------------------------------------------------------------------
    # Execution

    async def execute_workflow(
        self,
        objective: str,
        context: ToolExecutionContext,
        steps: Optional[List[WorkflowExecutionStep]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecution:
        workflow = WorkflowExecution(
            id=f"workflow-{uuid.uuid4()}",
            objective=objective,
            steps=list(steps or []),
            execution_context=context,
            variables={**(variables or {}), "objective": objective},
        )
        await self._store.set(workflow.id, workflow)
        logger.info(f"Starting workflow {workflow.id}: {objective}")

        if not workflow.steps:
            try:
                pattern, planned = await self.planner.plan(objective)
            except ValidationFailed as e:
                self._fail(workflow, "planning", e.message, e.category)
                await self._checkpoint(workflow)
                return workflow
            workflow.steps = planned
            fallback = pattern.fallback_strategies[0] if pattern.fallback_strategies else None
            for condition in unmet_conditions(pattern, workflow.variables):
                workflow.errors.append(
                    WorkflowError(
                        step_id="planning",
                        error=f"Condition not met: {condition.field} {condition.operator}",
                        category=ErrorCategory.VALIDATION,
                        recovery_action=fallback,
                    )
                )

        async with self._locks[workflow.id]:
            stored = await self._store.get(workflow.id)
            if stored is not None and stored.status == WorkflowStatus.CANCELLED:
                return stored
            self._transition(workflow, WorkflowStatus.EXECUTING)
            await self._store.set(workflow.id, workflow)
        return await self._run(workflow)

    async def _run(self, workflow: WorkflowExecution) -> WorkflowExecution:
        self._running.add(workflow.id)
        try:
            for index in range(workflow.current_step, len(workflow.steps)):
                workflow.current_step = index
                await self._checkpoint(workflow)
                if workflow.status != WorkflowStatus.EXECUTING:
                    logger.info(f"Workflow {workflow.id} stopped at step {index + 1}: {workflow.status.value}")
                    return workflow

                step = workflow.steps[index]
                missing = []
                for dep in step.dependencies:
                    found = workflow.find_step(dep)
                    if found is None or found.status != StepStatus.COMPLETED:
                        missing.append(dep)
                if missing:
                    self._fail(
                        workflow,
                        step.id,
                        f"Step {step.step_number} dependencies not met: {', '.join(missing)}",
                        ErrorCategory.VALIDATION,
                    )
                    await self._checkpoint(workflow)
                    return workflow

                if not await self._execute_step(workflow, step):
                    if workflow.status != WorkflowStatus.EXECUTING:
                        return workflow
                    self._fail(
                        workflow,
                        step.id,
                        f"Step {step.step_number} ({step.tool_name}) failed after {step.retry_count} attempts",
                        workflow.errors[-1].category if workflow.errors else ErrorCategory.EXECUTION,
                    )
                    await self._checkpoint(workflow)
                    return workflow

            workflow.current_step = len(workflow.steps)
            await self._checkpoint(workflow)
            if workflow.status == WorkflowStatus.EXECUTING:
                self._transition(workflow, WorkflowStatus.COMPLETED)
                await self._checkpoint(workflow)
                logger.info(f"Workflow {workflow.id} completed")
            return workflow
        finally:
            self._running.discard(workflow.id)

    async def _execute_step(
        self, workflow: WorkflowExecution, step: WorkflowExecutionStep
    ) -> bool:
        """Run one step with timeout and retries; report whether it completed."""
        while True:
            step.status = StepStatus.EXECUTING
            step.start_time = utc_now()
            step.end_time = None
            await self._checkpoint(workflow)

            result = await self._attempt(workflow, step)
            step.end_time = utc_now()
            if result.success:
                step.status = StepStatus.COMPLETED
                step.result = result
                workflow.results[step.id] = result
                await self._checkpoint(workflow)
                return True

            step.status = StepStatus.FAILED
            step.result = result
            step.retry_count += 1
            error = result.error
            category = error.category if error else ErrorCategory.EXECUTION
            retryable = error.retryable if error else True
            self._record_error(workflow, step.id, result.message or "Step failed", category)
            await self._checkpoint(workflow)

            if not retryable or step.retry_count > self.settings.max_retries:
                return False
            if workflow.status != WorkflowStatus.EXECUTING:
                # paused or cancelled mid-step; resume picks the retry up again
                return False
            logger.info(
                f"Retrying step {step.step_number} of workflow {workflow.id}, attempt {step.retry_count + 1}"
            )
            await retry.schedule_retry(step.retry_count, self.settings.backoff_base_ms)
            await self._checkpoint(workflow)
            if workflow.status != WorkflowStatus.EXECUTING:
                return False

    async def _attempt(
        self, workflow: WorkflowExecution, step: WorkflowExecutionStep
    ) -> ToolResult:
        try:
            params = resolve_parameters(step.parameters, workflow.variables, workflow.results)
        except ValidationFailed as e:
            return ToolResult.failure(ToolError.from_exception(e))

        base = workflow.execution_context
        context = base.model_copy(update={"tool_call_id": f"call-{uuid.uuid4()}"})
        context.auth_token = base.auth_token
        try:
            return await asyncio.wait_for(
                self.dispatcher.execute_tool(step.tool_name, params, context),
                timeout=self.settings.step_timeout_seconds,
            )
        except asyncio.TimeoutError:
            timeout = StepTimeout(
                f"Step execution timeout after {self.settings.step_timeout_seconds}s",
                details={"step_id": step.id, "tool_name": step.tool_name},
            )
            return ToolResult.failure(ToolError.from_exception(timeout))

    # ------------------------------------------------------------------
    # Control

    async def pause_workflow(self, workflow_id: str) -> WorkflowExecution:
        async with self._locks[workflow_id]:
            workflow = await self._load(workflow_id)
            self._transition(workflow, WorkflowStatus.PAUSED)
            await self._store.set(workflow_id, workflow)
        logger.info(f"Paused workflow {workflow_id}")
        return workflow

    async def resume_workflow(self, workflow_id: str) -> WorkflowExecution:
        async with self._locks[workflow_id]:
            workflow = await self._load(workflow_id)
            self._transition(workflow, WorkflowStatus.EXECUTING)
            await self._store.set(workflow_id, workflow)
        logger.info(f"Resumed workflow {workflow_id}")
        if workflow_id in self._running:
            return workflow
        return await self._run(workflow)

    async def cancel_workflow(self, workflow_id: str) -> WorkflowExecution:
        async with self._locks[workflow_id]:
            workflow = await self._load(workflow_id)
            self._transition(workflow, WorkflowStatus.CANCELLED)
            await self._store.set(workflow_id, workflow)
        logger.info(f"Cancelled workflow {workflow_id}")
        return workflow

    # ------------------------------------------------------------------
    # Introspection

    async def get_workflow_status(self, workflow_id: str) -> Optional[WorkflowExecution]:
        return await self._store.get(workflow_id)

    async def get_active_workflows(self) -> List[WorkflowExecution]:
        return [w for w in await self._store.values() if not w.status.is_terminal]

    async def update_step_parameters(
        self, workflow_id: str, step_id: str, parameters: Dict[str, Any]
    ) -> bool:
        async with self._locks[workflow_id]:
            workflow = await self._store.get(workflow_id)
            if workflow is None:
                return False
            step = workflow.find_step(step_id)
            if step is None:
                return False
            step.parameters = {**step.parameters, **parameters}
            await self._store.set(workflow_id, workflow)
        return True

    async def get_step_result(self, workflow_id: str, step_id: str) -> Optional[ToolResult]:
        workflow = await self._store.get(workflow_id)
        if workflow is None:
            return None
        return workflow.results.get(step_id)

    async def cleanup_finished(
        self,
        older_than_minutes: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Purge terminal workflows that ended before the retention window."""
        minutes = (
            self.settings.retention_minutes if older_than_minutes is None else older_than_minutes
        )
        cutoff = (now or utc_now()) - timedelta(minutes=minutes)
        removed = 0
        for workflow in await self._store.values():
            if workflow.status.is_terminal and workflow.end_time and workflow.end_time < cutoff:
                await self._store.delete(workflow.id)
                self._locks.pop(workflow.id, None)
                removed += 1
        if removed:
            logger.info(f"Purged {removed} finished workflows")
        return removed

    async def get_metrics(self) -> WorkflowMetrics:
        workflows = await self._store.values()
        finished = [w for w in workflows if w.end_time is not None]
        completed = sum(1 for w in workflows if w.status == WorkflowStatus.COMPLETED)
        failed = sum(1 for w in workflows if w.status == WorkflowStatus.FAILED)
        average = 0.0
        if finished:
            total = sum((w.end_time - w.start_time).total_seconds() for w in finished)
            average = total * 1000 / len(finished)
        return WorkflowMetrics(
            active=sum(
                1
                for w in workflows
                if w.status in (WorkflowStatus.EXECUTING, WorkflowStatus.PAUSED)
            ),
            completed=completed,
            failed=failed,
            average_execution_time_ms=average,
            success_rate=completed / (completed + failed) if completed + failed else 0.0,
        )
