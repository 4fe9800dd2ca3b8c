"""Expand workflow templates into executable steps."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Sequence, Tuple

from ..classify import WORKFLOW_PATTERNS, WorkflowKind, classify_workflow_objective
from ..constants import THINK_TOOL_NAME
from ..contracts import (
    WorkflowCondition,
    WorkflowExecutionStep,
    WorkflowPattern,
    WorkflowStepTemplate,
)
from ..errors import ValidationFailed
from ..rules import RuleStore, default_workflow_patterns
from .templating import rename_roots

logger = logging.getLogger(__name__)


def step_id(number: int) -> str:
    return f"step-{number}"


def _ensure_think_first(pattern: WorkflowPattern) -> List[WorkflowStepTemplate]:
    templates = list(pattern.steps)
    if templates and templates[0].tool == THINK_TOOL_NAME:
        return templates
    think = WorkflowStepTemplate(
        id="_think",
        name="Analyze Request",
        tool=THINK_TOOL_NAME,
        parameters={"reasoning_type": "planning", "thought": "Planning: ${objective}"},
    )
    return [think] + templates


def expand_pattern(pattern: WorkflowPattern) -> List[WorkflowExecutionStep]:
    """Turn a pattern's templates into numbered steps.

    Template ids become ``step-N`` ids in dependency lists and placeholder
    roots. A pattern that does not open with a ``think`` step gets one.
    """
    templates = _ensure_think_first(pattern)
    renames = {t.id: step_id(n) for n, t in enumerate(templates, start=1)}

    steps: List[WorkflowExecutionStep] = []
    for number, template in enumerate(templates, start=1):
        dependencies = []
        for dep in template.depends_on:
            if dep not in renames or renames[dep] == step_id(number):
                raise ValidationFailed(
                    f"Pattern {pattern.name}: step {template.id} depends on unknown step {dep}"
                )
            dependencies.append(renames[dep])
        steps.append(
            WorkflowExecutionStep(
                id=step_id(number),
                step_number=number,
                tool_name=template.tool,
                parameters=rename_roots(template.parameters, renames),
                dependencies=dependencies,
            )
        )
    return steps


def build_steps(specs: Sequence[Mapping[str, Any]]) -> List[WorkflowExecutionStep]:
    """Build explicit steps from plain mappings.

    Each mapping needs ``tool`` (or ``tool_name``) and may carry
    ``parameters``, ``depends_on`` (or ``dependencies``) and an ``id``.
    """
    if isinstance(specs, (str, bytes)) or not isinstance(specs, Sequence):
        raise ValidationFailed("Workflow steps must be a list of step objects")
    steps: List[WorkflowExecutionStep] = []
    seen = set()
    for number, spec in enumerate(specs, start=1):
        if not isinstance(spec, Mapping):
            raise ValidationFailed(
                f"Workflow step {number} must be an object with a tool, got {type(spec).__name__}"
            )
        parameters = spec.get("parameters") or {}
        if not isinstance(parameters, Mapping):
            raise ValidationFailed(f"Workflow step {number} parameters must be an object")
        dependencies = spec.get("depends_on") or spec.get("dependencies") or []
        if isinstance(dependencies, str):
            dependencies = [dependencies]
        if not isinstance(dependencies, (list, tuple)):
            raise ValidationFailed(f"Workflow step {number} dependencies must be a list of step ids")
        tool = spec.get("tool") or spec.get("tool_name")
        if not tool:
            raise ValidationFailed(f"Workflow step {number} has no tool")
        sid = str(spec.get("id") or step_id(number))
        if sid in seen:
            raise ValidationFailed(f"Duplicate workflow step id {sid}")
        seen.add(sid)
        steps.append(
            WorkflowExecutionStep(
                id=sid,
                step_number=number,
                tool_name=str(tool),
                parameters=dict(parameters),
                dependencies=[str(dep) for dep in dependencies],
            )
        )
    return steps


def evaluate_condition(condition: WorkflowCondition, variables: Mapping[str, Any]) -> bool:
    value = variables.get(condition.field)
    if condition.operator == "exists":
        present = value is not None and value != ""
        return present == bool(condition.value)
    if value is None:
        return False
    if condition.operator == "equals":
        return value == condition.value
    if condition.operator == "contains":
        try:
            return condition.value in value
        except TypeError:
            return False
    try:
        if condition.operator == "greater_than":
            return value > condition.value
        if condition.operator == "less_than":
            return value < condition.value
    except TypeError:
        return False
    return False


def unmet_conditions(
    pattern: WorkflowPattern, variables: Mapping[str, Any]
) -> List[WorkflowCondition]:
    return [
        c
        for c in pattern.conditions
        if c.action == "required" and not evaluate_condition(c, variables)
    ]


class WorkflowPlanner:
    """Classify an objective and expand the matching rule-store template."""

    def __init__(self, rule_store: RuleStore) -> None:
        self.rule_store = rule_store

    async def resolve_pattern(self, objective: str) -> Tuple[WorkflowKind, WorkflowPattern]:
        kind = classify_workflow_objective(objective)
        name = WORKFLOW_PATTERNS[kind]
        pattern = await self.rule_store.get_workflow_pattern(name)
        if pattern is None:
            logger.warning(f"Workflow pattern {name} missing, using generic plan")
            pattern = await self.rule_store.get_workflow_pattern("generic")
        if pattern is None:
            pattern = next(p for p in default_workflow_patterns() if p.name == "generic")
        return kind, pattern

    async def plan(self, objective: str) -> Tuple[WorkflowPattern, List[WorkflowExecutionStep]]:
        kind, pattern = await self.resolve_pattern(objective)
        steps = expand_pattern(pattern)
        logger.info(
            f"Planned {kind.value} workflow with {len(steps)} steps from pattern {pattern.name}"
        )
        return pattern, steps
