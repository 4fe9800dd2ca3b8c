"""Keyword heuristics used across the pipeline.

Each function maps free text onto a small closed vocabulary. They are plain
``str -> value`` functions so they can be swapped for a model-based
classifier later without touching the callers.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple


class Objective(str, Enum):
    CREATE_DEAL = "create_deal"
    SEARCH_ENTITIES = "search_entities"
    UPDATE_ENTITY = "update_entity"
    GENERAL_INQUIRY = "general_inquiry"


class WorkflowKind(str, Enum):
    DEAL_CREATION = "deal_creation"
    SEARCH = "search"
    UPDATE = "update"
    ANALYSIS = "analysis"
    GENERIC = "generic"


# Rule-store pattern name for each workflow kind.
WORKFLOW_PATTERNS: Dict[WorkflowKind, str] = {
    WorkflowKind.DEAL_CREATION: "deal_creation",
    WorkflowKind.SEARCH: "entity_search",
    WorkflowKind.UPDATE: "entity_update",
    WorkflowKind.ANALYSIS: "analysis",
    WorkflowKind.GENERIC: "generic",
}

_WORKFLOW_KEYWORDS: Tuple[Tuple[WorkflowKind, Tuple[str, ...]], ...] = (
    (WorkflowKind.DEAL_CREATION, ("create deal", "new deal", "add deal", "deal for")),
    (WorkflowKind.SEARCH, ("find", "search", "look for", "show me")),
    (WorkflowKind.UPDATE, ("update", "change", "modify", "edit")),
    (WorkflowKind.ANALYSIS, ("analyze", "report", "insights", "performance")),
)


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def classify_objective(message: str) -> Objective:
    """Classify a raw user message into a coarse objective."""
    text = message.lower()
    if "create" in text and "deal" in text:
        return Objective.CREATE_DEAL
    if _contains_any(text, ("search", "find")):
        return Objective.SEARCH_ENTITIES
    if _contains_any(text, ("update", "edit")):
        return Objective.UPDATE_ENTITY
    return Objective.GENERAL_INQUIRY


def classify_workflow_objective(objective: str) -> WorkflowKind:
    text = objective.lower()
    for kind, keywords in _WORKFLOW_KEYWORDS:
        if _contains_any(text, keywords):
            return kind
    return WorkflowKind.GENERIC


_RECOVERY_SUGGESTIONS: Tuple[Tuple[str, str], ...] = (
    ("permission", "Check user permissions for this operation"),
    ("not found", "Verify entity exists or use search before create pattern"),
    ("timeout", "Retry with increased timeout or check system load"),
)
DEFAULT_RECOVERY_SUGGESTION = "Review step parameters and try again"


def suggest_recovery(error_message: str) -> str:
    """Return a recovery hint for a failed workflow step."""
    text = error_message.lower()
    for needle, suggestion in _RECOVERY_SUGGESTIONS:
        if needle in text:
            return suggestion
    return DEFAULT_RECOVERY_SUGGESTION


# ---------------------------------------------------------------------------
# Think tool templates


REASONING_CONFIDENCE: Dict[str, float] = {
    "planning": 0.85,
    "analysis": 0.8,
    "decision": 0.8,
    "validation": 0.85,
    "synthesis": 0.8,
}
GENERIC_REASONING_CONFIDENCE = 0.75

_TYPE_TEMPLATES: Dict[str, Dict[str, List[str]]] = {
    "planning": {
        "insights": [
            "Sequential approach recommended for complex plans",
            "Dependencies and prerequisites should be identified early",
        ],
        "next_actions": [
            "Break down objective into specific, actionable steps",
            "Identify required resources and dependencies",
            "Establish timeline and milestones",
        ],
        "assumptions": [
            "Necessary resources will be available",
            "No major external blockers will occur",
        ],
        "risks": [
            "Scope creep may extend timeline",
            "Dependencies may cause delays",
            "Resource availability may change",
        ],
        "alternatives": [
            "Phased approach with incremental delivery",
            "Parallel execution where dependencies allow",
            "Minimum viable approach with later enhancement",
        ],
    },
    "analysis": {
        "insights": ["Multiple perspectives should be considered"],
        "next_actions": [
            "Gather relevant data",
            "Apply analytical frameworks",
            "Document findings",
        ],
        "assumptions": [
            "Available data is accurate and complete",
            "Analytical methods are appropriate",
        ],
        "risks": [
            "Incomplete data may lead to incorrect conclusions",
            "Bias may affect analysis",
        ],
        "alternatives": [
            "Use different analytical frameworks",
            "Seek additional data sources",
        ],
    },
    "decision": {
        "insights": ["Multiple criteria should be considered"],
        "next_actions": [
            "Define decision criteria",
            "Evaluate options systematically",
            "Consider stakeholder impact",
        ],
        "assumptions": [
            "All relevant options have been identified",
            "Decision criteria are appropriate",
        ],
        "risks": [
            "Important factors may be overlooked",
            "Stakeholder buy-in may be lacking",
        ],
        "alternatives": [
            "Seek additional stakeholder input",
            "Use different decision frameworks",
        ],
    },
    "validation": {
        "insights": ["Systematic checking improves accuracy"],
        "next_actions": [
            "Define validation criteria",
            "Perform systematic checks",
            "Document validation results",
        ],
        "assumptions": [
            "Validation criteria are comprehensive",
            "Validation methods are appropriate",
        ],
        "risks": [
            "Important validation aspects may be missed",
            "Validation may be incomplete",
        ],
        "alternatives": [
            "Use multiple validation methods",
            "Seek external validation",
        ],
    },
    "synthesis": {
        "insights": ["Integration of multiple elements creates new understanding"],
        "next_actions": [
            "Identify all elements to synthesize",
            "Find connections and patterns",
            "Create unified framework",
        ],
        "assumptions": [
            "All relevant elements have been identified",
            "Synthesis approach is appropriate",
        ],
        "risks": [
            "Important elements may be overlooked",
            "Synthesis may oversimplify complexity",
        ],
        "alternatives": [
            "Use different synthesis frameworks",
            "Validate synthesis with stakeholders",
        ],
    },
}

_GENERIC_TEMPLATE: Dict[str, List[str]] = {
    "insights": [],
    "next_actions": ["Continue with more specific reasoning if needed"],
    "assumptions": ["General reasoning approach is appropriate"],
    "risks": ["May need more specific reasoning type"],
    "alternatives": ["Use more specific reasoning type like planning or analysis"],
}

_TYPE_LABELS: Dict[str, str] = {
    "planning": "Planning objective identified",
    "analysis": "Analysis target",
    "decision": "Decision context",
    "validation": "Validation target",
    "synthesis": "Synthesis objective",
}

# (keywords, insight, next action) matched against the thought text.
_DOMAIN_HINTS: Tuple[Tuple[Tuple[str, ...], str, str], ...] = (
    (
        ("deal",),
        "Deal operations need project type and currency data first",
        "Load dropdown data before creating or updating deals",
    ),
    (
        ("organization", "organisation", "company", "client"),
        "Organizations may already exist under a similar name",
        "Search organizations before creating a new one",
    ),
    (
        ("contact", "person", "people"),
        "Contacts should be linked to an existing organization",
        "Search contacts to avoid duplicates",
    ),
    (
        ("search", "find", "look for"),
        "Narrow search criteria give more relevant results",
        "Apply filters on stage, value or owner where known",
    ),
    (
        ("update", "change", "modify", "edit"),
        "Updates require the current entity state",
        "Fetch entity details before applying changes",
    ),
    (
        ("permission", "access"),
        "Operation may be restricted by user permissions",
        "Verify the user holds the required permissions",
    ),
)


def synthesize_thought(
    thought: str,
    reasoning_type: Optional[str] = None,
    context: Optional[str] = None,
    focus_areas: Optional[Sequence[str]] = None,
    constraints: Optional[Sequence[str]] = None,
) -> Dict[str, object]:
    """Build template insights and next actions for a scratchpad thought."""
    template = _TYPE_TEMPLATES.get(reasoning_type or "", _GENERIC_TEMPLATE)
    label = _TYPE_LABELS.get(reasoning_type or "", "General analysis of")

    insights = [f"{label}: {thought}"]
    if context:
        insights.append(f"Additional context considered: {context}")
    if focus_areas:
        insights.append(f"Key focus areas: {', '.join(focus_areas)}")
    insights.extend(template["insights"])

    next_actions = list(template["next_actions"])
    if focus_areas:
        next_actions.append(f"Address specific focus areas: {', '.join(focus_areas)}")

    text = thought.lower()
    for keywords, insight, action in _DOMAIN_HINTS:
        if _contains_any(text, keywords):
            insights.append(insight)
            next_actions.append(action)

    assumptions = list(template["assumptions"])
    risks = list(template["risks"])
    if constraints:
        assumptions.append(f"Constraints are accurately defined: {', '.join(constraints)}")
        risks.append("Constraints may be more restrictive than anticipated")

    return {
        "insights": insights,
        "next_actions": next_actions,
        "assumptions": assumptions,
        "risks": risks,
        "alternatives": list(template["alternatives"]),
        "confidence": REASONING_CONFIDENCE.get(
            reasoning_type or "", GENERIC_REASONING_CONFIDENCE
        ),
    }
