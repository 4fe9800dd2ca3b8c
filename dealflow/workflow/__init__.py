"""Workflow planning and orchestration."""

from .orchestrator import (
    WORKFLOW_TOOL_SPEC,
    WorkflowMetrics,
    WorkflowOrchestrator,
    workflow_to_tool_result,
)
from .planner import WorkflowPlanner, build_steps, expand_pattern, unmet_conditions
from .templating import resolve_parameters

__all__ = [
    "WORKFLOW_TOOL_SPEC",
    "WorkflowMetrics",
    "WorkflowOrchestrator",
    "WorkflowPlanner",
    "build_steps",
    "expand_pattern",
    "resolve_parameters",
    "unmet_conditions",
    "workflow_to_tool_result",
]
