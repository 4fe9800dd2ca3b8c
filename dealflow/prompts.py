"""Prompt composition for the decision engine.

:func:`compose` is pure: the same :class:`DecisionContext` and operation type
always produce the same prompt text. Sections are emitted in a fixed order
and the operation type only changes their emphasis.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_PROMPT_HISTORY_TURNS, DEFAULT_PROMPT_PREVIEW_CHARS
from .contracts import (
    BusinessRule,
    Constraint,
    ConversationMessage,
    DecisionAction,
    DecisionContext,
    RulePriority,
    SystemSnapshot,
    ToolSpec,
)


class OperationType(str, Enum):
    COMPLETE = "complete"
    LIGHTWEIGHT = "lightweight"
    ERROR_RECOVERY = "error_recovery"
    WORKFLOW = "workflow"


_ROLE = """You are a CRM business agent: an intelligent assistant that understands business context, executes tools and provides actionable insights.

**Your Core Capabilities:**
- Real-time system awareness with business intelligence
- Structured reasoning using Think-First methodology
- Context preservation across conversation turns
- Proactive business insights and pattern recognition
- Error recovery and workflow orchestration"""

_MODE_TEXT = {
    OperationType.WORKFLOW: "Multi-step workflow orchestration - maintain context between steps and provide clear progress updates.",
    OperationType.ERROR_RECOVERY: "Error recovery - analyze the issue, suggest solutions, and attempt recovery.",
    OperationType.LIGHTWEIGHT: "Quick response - provide efficient answers without extensive analysis.",
}

_TOOL_GUIDANCE = """**Tool Usage Patterns:**
1. Think First: use `think` before complex or multi-step operations
2. Search Before Create: always search for existing entities
3. Load Dropdowns: use `get_dropdown_data` before creating entities with relationships
4. Multi-step plans: use `run_workflow` with an `objective` when several tools must run in order"""

_EXAMPLES = """**Example Interactions:**

**Deal Creation:**
User: "Create a deal for BMW worth 50,000 EUR"
You: think about the request, load dropdown data, search for the BMW organization, then create the deal with the found organization id and default project type.

**Business Intelligence:**
User: "What deals need attention?"
You: Analyze the system state, identify at-risk deals and give specific recommendations with reasoning.

**Search:**
User: "Show me all deals worth more than $50,000"
You: execute `search_deals` directly; do not ask for clarification unless the request is genuinely ambiguous."""

_CONSTRAINTS = """**Operating Constraints:**
- NEVER hardcode identifiers; fetch them from search results
- ALWAYS search before creating entities
- Preserve structured data between tool calls
- Respect user permissions for all operations
- Handle errors with specific recovery suggestions
- Explain reasoning for complex decisions"""

_DECISION_EXAMPLE: Dict[str, Any] = {
    "action": "execute_tool",
    "tool_name": "search_deals",
    "parameters": {"filters": {"amount_min": 50000}, "limit": 20},
    "reasoning": "User wants deals worth more than $50,000. This is a clear search request for search_deals.",
    "confidence": 0.95,
    "alternatives": [],
    "risks": [],
}


def _role_section(context: DecisionContext, operation_type: OperationType) -> str:
    section = _ROLE
    mode = _MODE_TEXT.get(operation_type)
    if mode:
        section += f"\n\n**Current Mode:** {mode}"
    section += f"\n\n**Current Request:** {context.objective}"
    if context.user_message:
        section += f'\n**User Message:** "{context.user_message}"'
    return section


def _system_state_section(snapshot: Optional[SystemSnapshot]) -> str:
    if snapshot is None:
        return "**Current System State:** Not available - rely on tools for current data."

    lines = [
        f"**Current System State ({snapshot.timestamp.isoformat()}):**",
        "",
        "**Pipeline Overview:**",
        f"- Total Deals: {snapshot.deals.total}",
        f"- Closing This Month: {len(snapshot.deals.closing_this_month)}",
        f"- At Risk: {len(snapshot.deals.at_risk)}",
        f"- Pipeline Health: {snapshot.pipeline_health.status.upper()}",
        "",
        "**Activity Status:**",
        f"- Overdue: {snapshot.activities.overdue}",
        f"- Due Today: {snapshot.activities.due_today}",
        f"- Upcoming (7 days): {snapshot.activities.upcoming}",
        "",
        "**Organization Data:**",
        f"- Total Organizations: {snapshot.organizations.total}",
        f"- Enterprise Clients: {snapshot.organizations.enterprise}",
        "",
        "**User Context:**",
        f"- Role: {snapshot.user_context.role}",
        f"- Permissions: {len(snapshot.user_context.permissions)} permissions",
    ]
    if snapshot.pipeline_health.key_insights:
        lines.append("")
        lines.append("**Key Insights:**")
        lines.extend(f"- {i}" for i in snapshot.pipeline_health.key_insights)
    if snapshot.intelligent_suggestions:
        lines.append("")
        lines.append("**System Suggestions:**")
        lines.extend(f"- {s}" for s in snapshot.intelligent_suggestions)
    return "\n".join(lines)


def _rules_section(rules: List[BusinessRule], operation_type: OperationType) -> str:
    critical = [r for r in rules if r.priority == RulePriority.CRITICAL]
    high = [r for r in rules if r.priority == RulePriority.HIGH]

    section = "**Business Rules & Guidelines:**\n\n**CRITICAL Rules (Must Follow):**"
    if not critical:
        section += "\n- None configured"
    for rule in critical:
        section += f"\n- {rule.rule}"
        if rule.examples:
            section += f"\n  Examples: {', '.join(rule.examples)}"

    if high and operation_type != OperationType.LIGHTWEIGHT:
        section += "\n\n**HIGH Priority Rules:**"
        for rule in high:
            section += f"\n- {rule.rule}"
    return section


def _tools_section(tools: List[ToolSpec]) -> str:
    if not tools:
        return "**Available Tools:** None available for your permissions.\n\n" + _TOOL_GUIDANCE

    lines = ["**Available Tools:**"]
    for tool in tools:
        params = tool.parameters.get("properties", {})
        required = set(tool.parameters.get("required", []))
        signature = ", ".join(
            f"{name}{'' if name in required else '?'}" for name in params
        )
        lines.append(f"- `{tool.name}`({signature}) [{tool.category}] - {tool.description}")
    return "\n".join(lines) + "\n\n" + _TOOL_GUIDANCE


def _preview(text: str, limit: int = DEFAULT_PROMPT_PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _history_section(history: List[ConversationMessage]) -> str:
    if not history:
        return "**Conversation Context:** New conversation - no prior history."

    lines = ["**Recent Conversation Context:**"]
    recent = history[-DEFAULT_PROMPT_HISTORY_TURNS:]
    for index, message in enumerate(recent, start=1):
        role = "User" if message.role == "user" else "Assistant"
        lines.append(f"{index}. {role}: {_preview(message.content)}")
        if message.tool_calls:
            lines.append(f"   Tools used: {', '.join(c.tool for c in message.tool_calls)}")
    return "\n".join(lines)


def _constraints_section(constraints: List[Constraint]) -> str:
    section = _CONSTRAINTS
    if constraints:
        section += "\n\n**Request Constraints:**"
        for constraint in constraints:
            section += f"\n- {constraint.description} ({constraint.severity})"
    return section


def _output_format_section(operation_type: OperationType) -> str:
    actions = ", ".join(f"`{a.value}`" for a in DecisionAction)
    section = f"""**Output Format:**
Return exactly one JSON object with:
- `action`: one of {actions}
- `tool_name`: tool to execute (only for execute_tool)
- `parameters`: tool parameters (only for execute_tool)
- `reasoning`: clear explanation of your decision
- `confidence`: confidence level between 0.0 and 1.0
- `alternatives`: list of {{"action", "reasoning", "confidence", "pros", "cons"}}
- `risks`: list of {{"type", "description", "likelihood", "impact", "mitigation"}} where type is one of data_loss, permission_violation, business_rule_violation, performance, user_experience"""
    if operation_type == OperationType.WORKFLOW:
        section += "\n\nFor multi-step requests prefer `run_workflow` and report progress for each step."
    example = json.dumps(_DECISION_EXAMPLE, indent=2)
    return f"{section}\n\n**Example Decision:**\n```json\n{example}\n```"


class PromptComposer:
    """Builds decision prompts from a :class:`DecisionContext`."""

    def compose(
        self,
        context: DecisionContext,
        operation_type: OperationType = OperationType.COMPLETE,
    ) -> str:
        operation_type = OperationType(operation_type)
        sections = [
            _role_section(context, operation_type),
            _system_state_section(context.system_state),
            _rules_section(context.business_rules, operation_type),
            _tools_section(context.available_tools),
            _history_section(context.conversation_history),
            _EXAMPLES,
            _constraints_section(context.constraints),
            _output_format_section(operation_type),
        ]
        return "\n\n".join(sections)

    def compose_error_recovery(
        self,
        error: Dict[str, Any],
        context: DecisionContext,
    ) -> str:
        """Prompt asking the model to recover from a failed operation."""
        details = (
            "**Error Details:**\n"
            f"- Code: {error.get('code', 'UNKNOWN')}\n"
            f"- Message: {error.get('message', 'No details available')}\n"
            f"- Recoverable: {bool(error.get('recoverable', False))}\n\n"
            "**Recovery Strategy:**\n"
            "1. Analyze the error cause\n"
            "2. Determine if retry is appropriate\n"
            "3. Suggest alternative approaches\n"
            "4. Provide clear next steps to the user"
        )
        return details + "\n\n" + self.compose(context, OperationType.ERROR_RECOVERY)


def compose(
    context: DecisionContext, operation_type: OperationType = OperationType.COMPLETE
) -> str:
    return PromptComposer().compose(context, operation_type)
