"""Default business rules and workflow templates seeded at startup."""

from __future__ import annotations

from typing import Dict, List

from ..contracts import (
    BusinessRule,
    RulePriority,
    WorkflowCondition,
    WorkflowPattern,
    WorkflowStepTemplate,
)

DEFAULT_CATEGORIES = [
    "data_handling",
    "workflow",
    "business_logic",
    "user_experience",
    "security",
]


def _rule(
    id: str,
    category: str,
    priority: RulePriority,
    rule: str,
    examples: List[str],
    source: str,
) -> BusinessRule:
    return BusinessRule(
        id=id,
        category=category,
        priority=priority,
        rule=rule,
        examples=examples,
        source=source,
    )


def default_rules() -> Dict[str, List[BusinessRule]]:
    """Return a fresh copy of the built-in rules keyed by category."""
    return {
        "data_handling": [
            _rule(
                "search-before-create",
                "data_handling",
                RulePriority.CRITICAL,
                "Always search for existing entities before creating new ones",
                [
                    "search_organizations before create_organization",
                    "search_people before create_person",
                    "Use get_dropdown_data to check existing options",
                ],
                "code_analysis",
            ),
            _rule(
                "uuid-handling",
                "data_handling",
                RulePriority.HIGH,
                "UUIDs are regenerated on database reset - never hardcode IDs",
                [
                    "Always fetch current UUIDs dynamically",
                    "Use search results to get actual IDs",
                    "Never assume ID values from previous sessions",
                ],
                "admin_config",
            ),
            _rule(
                "structured-data-preservation",
                "data_handling",
                RulePriority.HIGH,
                "Preserve structured data throughout tool execution workflow",
                [
                    "Maintain object references between tool calls",
                    "Store complex results in workflow context",
                    "Avoid converting structured data to strings unnecessarily",
                ],
                "user_feedback",
            ),
            _rule(
                "duplicate-prevention",
                "data_handling",
                RulePriority.CRITICAL,
                "Think before creating an entity when a search returns zero results",
                [
                    "Think through whether entity truly doesn't exist",
                    "Consider alternative search terms",
                    "Verify search parameters before creating duplicates",
                ],
                "ml_learning",
            ),
        ],
        "workflow": [
            _rule(
                "think-first-methodology",
                "workflow",
                RulePriority.CRITICAL,
                "Use Think-First methodology for complex operations",
                [
                    "think() -> analyze -> plan -> execute -> confirm",
                    "Always think before multi-step workflows",
                    "Use structured reasoning for decision making",
                ],
                "admin_config",
            ),
            _rule(
                "dropdown-first-pattern",
                "workflow",
                RulePriority.HIGH,
                "Get dropdown data before creating entities that require relationships",
                [
                    "get_dropdown_data() before create_deal",
                    "Load project types, statuses, and defaults first",
                    "Use default values when user doesn't specify",
                ],
                "code_analysis",
            ),
            _rule(
                "sequential-execution",
                "workflow",
                RulePriority.MEDIUM,
                "Execute workflow steps sequentially with context preservation",
                [
                    "Wait for tool results before proceeding",
                    "Maintain context between steps",
                    "Handle errors gracefully with recovery options",
                ],
                "user_feedback",
            ),
            _rule(
                "api-consistency",
                "workflow",
                RulePriority.HIGH,
                "Use the same operations as the application frontend for consistency",
                [
                    "Same queries and mutations as the frontend",
                    "Identical field selections",
                    "Features propagate automatically when the frontend evolves",
                ],
                "admin_config",
            ),
        ],
        "business_logic": [
            _rule(
                "deal-project-type-requirement",
                "business_logic",
                RulePriority.CRITICAL,
                "Every deal must have a project type (default: Sales Deal)",
                [
                    'Auto-select "Sales Deal" if not specified',
                    "get_dropdown_data provides default_project_type_id",
                    "Never create deals without project type",
                ],
                "business_rule",
            ),
            _rule(
                "currency-defaults",
                "business_logic",
                RulePriority.MEDIUM,
                "Currency defaults to USD unless explicitly specified",
                [
                    "Use USD for deals without currency",
                    "Support multi-currency when specified",
                    "Maintain currency consistency in calculations",
                ],
                "business_rule",
            ),
            _rule(
                "permission-awareness",
                "business_logic",
                RulePriority.HIGH,
                "Respect user permissions for all operations",
                [
                    "Check read_all vs read_own permissions",
                    "Filter data based on user access",
                    "Gracefully handle permission denials",
                ],
                "security",
            ),
        ],
        "user_experience": [
            _rule(
                "progress-transparency",
                "user_experience",
                RulePriority.HIGH,
                "Provide clear progress updates during multi-step operations",
                [
                    "Show what was accomplished",
                    "Indicate next steps clearly",
                    "Explain any delays or issues",
                ],
                "user_feedback",
            ),
            _rule(
                "success-confirmation",
                "user_experience",
                RulePriority.MEDIUM,
                "Always confirm successful completion with specific details",
                [
                    "Show created entity ID and key fields",
                    "Provide actionable next steps",
                    "Include relevant follow-up suggestions",
                ],
                "user_feedback",
            ),
            _rule(
                "intelligent-questioning",
                "user_experience",
                RulePriority.MEDIUM,
                "Ask intelligent clarifying questions when needed",
                [
                    "Suggest reasonable defaults",
                    "Provide context for decisions",
                    "Offer multiple options when appropriate",
                ],
                "ml_learning",
            ),
        ],
        "security": [
            _rule(
                "data-privacy",
                "security",
                RulePriority.CRITICAL,
                "Never expose sensitive data in logs or responses",
                [
                    "Mask email addresses when appropriate",
                    "Avoid logging authentication tokens",
                    "Respect data visibility permissions",
                ],
                "security",
            ),
            _rule(
                "permission-verification",
                "security",
                RulePriority.CRITICAL,
                "Verify permissions before executing any operation",
                [
                    "Check user permissions in context",
                    "Validate access to requested entities",
                    "Fail gracefully on permission denial",
                ],
                "security",
            ),
        ],
    }


def _think(reasoning_type: str, thought: str) -> WorkflowStepTemplate:
    return WorkflowStepTemplate(
        id="think",
        name="Analyze Request",
        tool="think",
        parameters={"reasoning_type": reasoning_type, "thought": thought},
    )


def default_workflow_patterns() -> List[WorkflowPattern]:
    """Return the built-in plan templates.

    Parameters may reference workflow variables (``${objective}`` is always
    set) or earlier template steps by id, e.g.
    ``${search_organizations.data.0.id}``.
    """
    return [
        WorkflowPattern(
            name="deal_creation",
            steps=[
                _think("planning", "Analyzing deal creation request: ${objective}"),
                WorkflowStepTemplate(
                    id="get_dropdown_data",
                    name="Load System Data",
                    tool="get_dropdown_data",
                ),
                WorkflowStepTemplate(
                    id="search_organizations",
                    name="Find Organization",
                    tool="search_organizations",
                    parameters={"query": "${organization_name}"},
                    depends_on=["think", "get_dropdown_data"],
                ),
                WorkflowStepTemplate(
                    id="create_deal",
                    name="Create Deal",
                    tool="create_deal",
                    parameters={
                        "name": "${deal_name}",
                        "organization_id": "${search_organizations.data.0.id}",
                        "value": "${value}",
                        "currency": "${currency}",
                        "project_type_id": "${get_dropdown_data.data.default_project_type_id}",
                    },
                    depends_on=["think", "get_dropdown_data", "search_organizations"],
                ),
            ],
            conditions=[
                WorkflowCondition(
                    field="organization_name", operator="exists", value=True
                )
            ],
            fallback_strategies=[
                "If organization not found, ask user to confirm creation",
                "If deal creation fails, provide specific error details",
                "If permissions insufficient, explain required permissions",
            ],
        ),
        WorkflowPattern(
            name="entity_search",
            steps=[
                _think("analysis", "Analyzing search request: ${objective}"),
                WorkflowStepTemplate(
                    id="search_deals",
                    name="Search Entities",
                    tool="search_deals",
                    parameters={"query": "${objective}"},
                    depends_on=["think"],
                ),
            ],
            conditions=[
                WorkflowCondition(field="objective", operator="exists", value=True)
            ],
            fallback_strategies=[
                "If no results found, suggest alternative search terms",
                "If too many results, recommend more specific criteria",
            ],
        ),
        WorkflowPattern(
            name="entity_update",
            steps=[
                _think("planning", "Planning update workflow: ${objective}"),
                WorkflowStepTemplate(
                    id="get_deal_details",
                    name="Load Current State",
                    tool="get_deal_details",
                    parameters={"deal_id": "${deal_id}"},
                    depends_on=["think"],
                ),
                WorkflowStepTemplate(
                    id="update_deal",
                    name="Apply Update",
                    tool="update_deal",
                    parameters={"deal_id": "${deal_id}", "updates": "${updates}"},
                    depends_on=["think", "get_deal_details"],
                ),
            ],
            conditions=[
                WorkflowCondition(field="deal_id", operator="exists", value=True)
            ],
            fallback_strategies=[
                "If the deal cannot be found, search for it by name first",
            ],
        ),
        WorkflowPattern(
            name="analysis",
            steps=[
                _think("analysis", "Analyzing analysis request: ${objective}"),
                WorkflowStepTemplate(
                    id="search_deals",
                    name="Collect Deals",
                    tool="search_deals",
                    parameters={"query": "${objective}"},
                    depends_on=["think"],
                ),
            ],
        ),
        WorkflowPattern(
            name="generic",
            steps=[
                _think("planning", "Understanding and planning response to: ${objective}"),
            ],
        ),
    ]
