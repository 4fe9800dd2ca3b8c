"""Built-in scratchpad tool for externalising intermediate reasoning."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from ..classify import synthesize_thought
from ..constants import THINK_TOOL_NAME
from ..contracts import (
    ThinkingStep,
    ToolError,
    ToolExecutionContext,
    ToolMetadata,
    ToolResult,
)
from ..errors import ErrorCategory
from .base import ToolDefinition

logger = logging.getLogger(__name__)

REASONING_TYPES = ["planning", "analysis", "decision", "validation", "synthesis"]

_STRUCTURED_THOUGHT = {
    "planning": "Planning approach for: {thought}. Breaking down into sequential steps with clear dependencies and success criteria.",
    "analysis": "Analytical examination of: {thought}. Identifying patterns, relationships, and implications for informed decision-making.",
    "decision": "Decision framework for: {thought}. Evaluating options against criteria to recommend optimal path forward.",
    "validation": "Validation process for: {thought}. Systematically verifying accuracy, completeness, and quality.",
    "synthesis": "Synthesis of: {thought}. Combining diverse elements into a unified, coherent understanding.",
}


class ThinkTool(ToolDefinition):
    """Record a thinking step and return template insights for it.

    No provider round trip is made: insights and next actions come from
    keyword matching over the thought text.
    """

    name = THINK_TOOL_NAME
    description = "Perform structured reasoning and analysis before taking actions"
    category = "reasoning"
    parameters = {
        "type": "object",
        "properties": {
            "reasoning_type": {
                "type": "string",
                "enum": REASONING_TYPES,
                "description": "Type of reasoning to perform",
            },
            "thought": {
                "type": "string",
                "description": "The thought or question to analyze",
            },
            "context": {
                "type": "string",
                "description": "Additional context for the reasoning",
            },
            "focus_areas": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Specific areas to focus the analysis on",
            },
            "constraints": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Constraints to consider in the reasoning",
            },
        },
        "required": ["thought"],
    }
    required_permissions: List[str] = []

    def __init__(self) -> None:
        self.history: List[ThinkingStep] = []

    async def execute(
        self, params: Dict[str, Any], context: ToolExecutionContext
    ) -> ToolResult:
        thought = params.get("thought")
        if not isinstance(thought, str) or not thought.strip():
            return ToolResult.failure(
                ToolError.for_category(
                    "INVALID_PARAMETERS",
                    "Thought parameter cannot be empty",
                    ErrorCategory.VALIDATION,
                    suggested_fix="Provide a non-empty thought",
                )
            )

        thought = thought.strip()
        reasoning_type = params.get("reasoning_type") or "analysis"
        if reasoning_type not in REASONING_TYPES:
            return ToolResult.failure(
                ToolError.for_category(
                    "INVALID_PARAMETERS",
                    f"Unknown reasoning type: {reasoning_type}",
                    ErrorCategory.VALIDATION,
                    details={"allowed": REASONING_TYPES},
                )
            )
        focus_areas = params.get("focus_areas") or []
        constraints = params.get("constraints") or []
        synthesis = synthesize_thought(
            thought,
            reasoning_type,
            context=params.get("context"),
            focus_areas=focus_areas,
            constraints=constraints,
        )

        step = ThinkingStep(
            id=f"think-{uuid.uuid4()}",
            reasoning_type=reasoning_type,
            thought=thought,
            confidence=synthesis["confidence"],
            focus_areas=focus_areas,
            constraints=constraints,
        )
        self.history.append(step)
        logger.debug(
            f"Recorded {reasoning_type} thinking step {step.id} for session {context.session_id}"
        )

        data = {
            "thinking_step_id": step.id,
            "reasoning_type": reasoning_type,
            "structured_thought": _STRUCTURED_THOUGHT[reasoning_type].format(
                thought=thought
            ),
            **synthesis,
        }
        return ToolResult(
            success=True,
            data=data,
            message=data["structured_thought"],
            metadata=ToolMetadata(
                data_sources_used=["thinking_tool"],
                confidence=step.confidence,
            ),
        )

    def clear_history(self) -> None:
        self.history.clear()
