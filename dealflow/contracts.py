"""Core data contracts for the dealflow orchestration pipeline."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .cache import CacheEntry, utc_now
from .errors import CATEGORY_POLICY, DealflowError, ErrorCategory

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Business rules and workflow templates


class RulePriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    RulePriority.CRITICAL: 0,
    RulePriority.HIGH: 1,
    RulePriority.MEDIUM: 2,
    RulePriority.LOW: 3,
}


class BusinessRule(BaseModel):
    """A priority-ranked textual policy surfaced to the decision engine."""

    id: str
    category: str
    priority: RulePriority
    rule: str
    examples: List[str] = Field(default_factory=list)
    exceptions: List[str] = Field(default_factory=list)
    source: str = "admin_config"
    last_updated: datetime = Field(default_factory=utc_now)


class RuleCategory(BaseModel):
    """Rules of one category together with the category's cache stamp."""

    name: str
    rules: List[BusinessRule] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utc_now)


class WorkflowStepTemplate(BaseModel):
    id: str
    name: str
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    required: bool = True
    depends_on: List[str] = Field(default_factory=list)


class WorkflowCondition(BaseModel):
    field: str
    operator: Literal["equals", "contains", "greater_than", "less_than", "exists"]
    value: Any = None
    action: Literal["skip", "required", "optional"] = "required"


class WorkflowPattern(BaseModel):
    """Named, ordered plan template used by the workflow planner."""

    name: str
    steps: List[WorkflowStepTemplate] = Field(default_factory=list)
    conditions: List[WorkflowCondition] = Field(default_factory=list)
    fallback_strategies: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# System snapshot


class DealSummary(BaseModel):
    id: str
    name: str
    value: float = 0.0
    currency: str = "USD"
    stage: str = "Unknown"
    organization: Optional[str] = None
    close_date: Optional[str] = None
    risk_level: Optional[Literal["low", "medium", "high"]] = None


class DealsState(BaseModel):
    total: int = 0
    by_stage: Dict[str, int] = Field(default_factory=dict)
    closing_this_month: List[DealSummary] = Field(default_factory=list)
    at_risk: List[DealSummary] = Field(default_factory=list)
    recent_activity: List[DealSummary] = Field(default_factory=list)


class OrganizationsState(BaseModel):
    total: int = 0
    enterprise: int = 0


class PeopleState(BaseModel):
    total: int = 0


class ActivitiesState(BaseModel):
    overdue: int = 0
    due_today: int = 0
    upcoming: int = 0


class PipelineHealth(BaseModel):
    status: Literal["strong", "moderate", "at_risk"] = "strong"
    weighted_value: float = 0.0
    close_rate_trend: float = 0.0
    key_insights: List[str] = Field(default_factory=list)


class UserContext(BaseModel):
    role: str = "user"
    permissions: List[str] = Field(default_factory=list)
    recent_focus_areas: List[str] = Field(default_factory=list)


class SystemSnapshot(BaseModel):
    """Point-in-time aggregate of business-entity state."""

    deals: DealsState = Field(default_factory=DealsState)
    organizations: OrganizationsState = Field(default_factory=OrganizationsState)
    people: PeopleState = Field(default_factory=PeopleState)
    activities: ActivitiesState = Field(default_factory=ActivitiesState)
    pipeline_health: PipelineHealth = Field(default_factory=PipelineHealth)
    intelligent_suggestions: List[str] = Field(default_factory=list)
    user_context: UserContext = Field(default_factory=UserContext)
    timestamp: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Tools


class ToolError(BaseModel):
    code: str
    message: str
    category: ErrorCategory = ErrorCategory.EXECUTION
    recoverable: bool = True
    retryable: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)
    suggested_fix: Optional[str] = None

    @classmethod
    def for_category(
        cls, code: str, message: str, category: ErrorCategory, **kwargs: Any
    ) -> "ToolError":
        recoverable, retryable = CATEGORY_POLICY[category]
        return cls(
            code=code,
            message=message,
            category=category,
            recoverable=recoverable,
            retryable=retryable,
            **kwargs,
        )

    @classmethod
    def from_exception(cls, exc: DealflowError) -> "ToolError":
        return cls(
            code=exc.code,
            message=exc.message,
            category=exc.category,
            recoverable=exc.recoverable,
            retryable=exc.retryable,
            details=exc.details,
        )


class ToolMetadata(BaseModel):
    execution_time_ms: float = 0.0
    data_sources_used: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None


class ToolResult(BaseModel):
    success: bool
    data: Any = None
    message: Optional[str] = None
    error: Optional[ToolError] = None
    metadata: ToolMetadata = Field(default_factory=ToolMetadata)

    @classmethod
    def failure(cls, error: ToolError, data: Any = None) -> "ToolResult":
        return cls(success=False, data=data, message=error.message, error=error)


class ToolSpec(BaseModel):
    """Serialisable view of a tool for the decision context."""

    name: str
    description: str
    category: str = "general"
    parameters: Dict[str, Any] = Field(default_factory=dict)
    required_permissions: List[str] = Field(default_factory=list)


class ToolCategory(BaseModel):
    name: str
    description: str = ""
    tools: List[str] = Field(default_factory=list)


class ConversationMessage(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    tool_calls: List["ToolCall"] = Field(default_factory=list)


class ToolCall(BaseModel):
    id: str
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""
    timestamp: datetime = Field(default_factory=utc_now)


class ToolExecutionContext(BaseModel):
    user_id: str
    session_id: str
    permissions: List[str] = Field(default_factory=list)
    auth_token: Optional[str] = Field(default=None, repr=False, exclude=True)
    request_id: str = ""
    tool_call_id: str = ""
    system_state: Optional[SystemSnapshot] = None
    conversation_history: List[ConversationMessage] = Field(default_factory=list)


class ThinkingStep(BaseModel):
    """Recorded scratchpad reasoning entry."""

    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    reasoning_type: Literal["planning", "analysis", "decision", "validation", "synthesis"]
    thought: str
    confidence: float = 0.8
    focus_areas: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Decisions


class DecisionAction(str, Enum):
    EXECUTE_TOOL = "execute_tool"
    ASK_CLARIFICATION = "ask_clarification"
    PROVIDE_INFO = "provide_info"
    SUGGEST_ALTERNATIVES = "suggest_alternatives"
    END_CONVERSATION = "end_conversation"


class DecisionAlternative(BaseModel):
    action: str = "unknown"
    reasoning: str = "No reasoning provided"
    confidence: float = 0.5
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)


class DecisionRisk(BaseModel):
    type: Literal[
        "data_loss",
        "permission_violation",
        "business_rule_violation",
        "performance",
        "user_experience",
    ] = "user_experience"
    description: str = "Unknown risk"
    likelihood: float = 0.5
    impact: float = 0.5
    mitigation: Optional[str] = None


class DecisionResult(BaseModel):
    action: DecisionAction
    tool_name: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str
    confidence: float = 0.5
    alternatives: List[DecisionAlternative] = Field(default_factory=list)
    risks: List[DecisionRisk] = Field(default_factory=list)


class Constraint(BaseModel):
    description: str
    severity: Literal["info", "warning", "blocking"] = "info"


class DecisionContext(BaseModel):
    """Ephemeral per-request input to prompt composition."""

    objective: str
    user_message: str = ""
    available_tools: List[ToolSpec] = Field(default_factory=list)
    system_state: Optional[SystemSnapshot] = None
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    business_rules: List[BusinessRule] = Field(default_factory=list)
    constraints: List[Constraint] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Workflows


class WorkflowStatus(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            WorkflowStatus.COMPLETED,
            WorkflowStatus.FAILED,
            WorkflowStatus.CANCELLED,
        )


class StepStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowExecutionStep(BaseModel):
    id: str
    step_number: int
    tool_name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)
    status: StepStatus = StepStatus.PENDING
    retry_count: int = 0
    result: Optional[ToolResult] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class WorkflowError(BaseModel):
    step_id: str
    error: str
    category: ErrorCategory = ErrorCategory.EXECUTION
    recovery_action: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    resolved: bool = False


class WorkflowExecution(BaseModel):
    id: str
    objective: str
    status: WorkflowStatus = WorkflowStatus.PLANNING
    steps: List[WorkflowExecutionStep] = Field(default_factory=list)
    current_step: int = 0
    results: Dict[str, ToolResult] = Field(default_factory=dict)
    errors: List[WorkflowError] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    execution_context: Optional[ToolExecutionContext] = None
    variables: Dict[str, Any] = Field(default_factory=dict)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def find_step(self, step_id: str) -> Optional[WorkflowExecutionStep]:
        return next((s for s in self.steps if s.id == step_id), None)


# ---------------------------------------------------------------------------
# Sessions, requests and responses


class ConversationContext(BaseModel):
    session_id: str
    user_id: str
    permissions: List[str] = Field(default_factory=list)
    message_history: List[ConversationMessage] = Field(default_factory=list)
    snapshot: Optional[CacheEntry[SystemSnapshot]] = None
    current_objective: Optional[str] = None
    workflow_state: Optional[Dict[str, Any]] = None

    def effective_permissions(self) -> List[str]:
        if self.permissions:
            return list(self.permissions)
        if self.snapshot is not None:
            return list(self.snapshot.value.user_context.permissions)
        return []


class AgentRequest(BaseModel):
    user_id: str
    session_id: str
    message: str
    auth_token: Optional[str] = Field(default=None, repr=False, exclude=True)
    context: Dict[str, Any] = Field(default_factory=dict)


class AgentError(BaseModel):
    code: str
    message: str
    category: ErrorCategory = ErrorCategory.SYSTEM
    recoverable: bool = True


class Suggestion(BaseModel):
    id: str
    type: Literal["question", "action"] = "action"
    title: str
    description: str = ""
    confidence: float = 0.5


class ReasoningEntry(BaseModel):
    step: int
    type: str = "decision"
    description: str
    confidence: float = 0.5


class RateLimitStatus(BaseModel):
    allowed: bool = True
    remaining: int = 0
    reset_at: Optional[datetime] = None


class CacheStatus(BaseModel):
    system_state_from_cache: bool = False


class ResponseMetadata(BaseModel):
    agent_version: str = ""
    processing_time_ms: float = 0.0
    tools_used: List[str] = Field(default_factory=list)
    confidence_score: float = 0.0
    system_state_timestamp: Optional[datetime] = None
    rate_limit_status: RateLimitStatus = Field(default_factory=RateLimitStatus)
    cache_status: CacheStatus = Field(default_factory=CacheStatus)
    objective: Optional[str] = None


class AgentResponse(BaseModel):
    success: bool
    message: str
    data: Any = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ToolResult] = Field(default_factory=list)
    reasoning: List[ReasoningEntry] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    error: Optional[AgentError] = None


ConversationMessage.model_rebuild()
