"""Per-request agent loop: context, decision, dispatch, response."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from ..cache import CacheEntry, is_stale, utc_now
from ..classify import Objective, classify_objective, suggest_recovery
from ..config import AgentSettings, DealflowConfig, load_config
from ..constants import AGENT_VERSION, DEFAULT_CONFIDENCE, THINK_TOOL_NAME, WORKFLOW_TOOL_NAME
from ..contracts import (
    AgentError,
    AgentRequest,
    AgentResponse,
    CacheStatus,
    Constraint,
    ConversationContext,
    ConversationMessage,
    DecisionAction,
    DecisionContext,
    DecisionResult,
    ReasoningEntry,
    ResponseMetadata,
    RuleCategory,
    Suggestion,
    SystemSnapshot,
    ToolCall,
    ToolError,
    ToolExecutionContext,
    ToolResult,
    WorkflowExecution,
    WorkflowPattern,
)
from ..decision import DecisionEngine, RateLimiter
from ..errors import ErrorCategory, ValidationFailed
from ..prompts import OperationType, PromptComposer
from ..providers import (
    CompletionOptions,
    CompletionProvider,
    PydanticAICompletionProvider,
    SnapshotProvider,
)
from ..rules import RuleStore
from ..stores import BaseStore, InMemoryStore, get_store
from ..tools import ToolDefinition, ToolDispatcher
from ..workflow import (
    WORKFLOW_TOOL_SPEC,
    WorkflowOrchestrator,
    build_steps,
    workflow_to_tool_result,
)

logger = logging.getLogger(__name__)

_CONTEXT_FIELDS = ("permissions", "current_objective", "workflow_state")
_INTERNAL_ERROR_MESSAGE = "I encountered an unexpected error. Please try again."


class AgentOrchestrator:
    """Top-level entry point turning an :class:`AgentRequest` into a response.

    Requests for the same session are queued behind a per-session lock, so
    conversation history is appended in arrival order. Different sessions
    run concurrently.
    """

    def __init__(
        self,
        completion_provider: CompletionProvider,
        rule_store: RuleStore,
        dispatcher: Optional[ToolDispatcher] = None,
        snapshot_provider: Optional[SnapshotProvider] = None,
        config: Optional[DealflowConfig] = None,
        sessions: Optional[BaseStore[ConversationContext]] = None,
        workflows: Optional[BaseStore[WorkflowExecution]] = None,
    ) -> None:
        self.config = config or DealflowConfig()
        self.rule_store = rule_store
        self.dispatcher = dispatcher or ToolDispatcher()
        self.snapshot_provider = snapshot_provider
        self.composer = PromptComposer()
        self.decision_engine = DecisionEngine(
            completion_provider,
            options=CompletionOptions.from_config(self.config.llm),
            timeout_seconds=self.config.llm.timeout_seconds,
            rate_limiter=RateLimiter(self.config.agent.requests_per_minute),
        )
        self.workflows = WorkflowOrchestrator(
            self.dispatcher, rule_store, store=workflows, settings=self.config.workflow
        )
        self._sessions: BaseStore[ConversationContext] = sessions or InMemoryStore()
        self._session_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._session_lock_users: Dict[str, int] = defaultdict(int)

    @classmethod
    async def create(
        cls,
        config: Optional[DealflowConfig] = None,
        completion_provider: Optional[CompletionProvider] = None,
        snapshot_provider: Optional[SnapshotProvider] = None,
        tools: Optional[Iterable[ToolDefinition]] = None,
    ) -> "AgentOrchestrator":
        """Build an orchestrator with stores on the configured backend."""
        config = config or load_config()
        rule_store = await RuleStore.with_defaults(
            get_store("rules", RuleCategory, config=config),
            get_store("workflow_patterns", WorkflowPattern, config=config),
            max_age_seconds=config.rules.max_age_seconds,
        )
        provider = completion_provider or PydanticAICompletionProvider(config.llm.model)
        return cls(
            provider,
            rule_store,
            dispatcher=ToolDispatcher(tools),
            snapshot_provider=snapshot_provider,
            config=config,
            sessions=get_store("sessions", ConversationContext, config=config),
            workflows=get_store("workflows", WorkflowExecution, config=config),
        )

    @property
    def settings(self) -> AgentSettings:
        return self.config.agent

    # ------------------------------------------------------------------
    # Request handling

    async def process_request(self, request: AgentRequest) -> AgentResponse:
        """Handle one user message. Never raises."""
        started = time.perf_counter()
        try:
            async with self._session_lock(request.session_id):
                return await self._process(request, started)
        except Exception:
            logger.exception(f"Request failed for session {request.session_id}")
            return self._error_response(
                "INTERNAL_ERROR", _INTERNAL_ERROR_MESSAGE, ErrorCategory.SYSTEM, True, started
            )

    async def _process(self, request: AgentRequest, started: float) -> AgentResponse:
        context = await self._session(request)
        from_cache = await self._refresh_snapshot(context)

        objective = classify_objective(request.message)
        context.current_objective = objective.value
        permissions = context.effective_permissions()
        snapshot = context.snapshot.value if context.snapshot else None
        history = context.message_history[-self.settings.history_limit:]

        tools = self.dispatcher.get_tool_specs(permissions)
        if not self.settings.thinking_enabled:
            tools = [t for t in tools if t.name != THINK_TOOL_NAME]
        if self.settings.workflow_orchestration:
            tools.append(WORKFLOW_TOOL_SPEC)

        constraints: List[Constraint] = []
        if not permissions:
            constraints.append(
                Constraint(
                    description="No permissions granted; only unrestricted tools are available",
                    severity="warning",
                )
            )

        decision_context = DecisionContext(
            objective=objective.value,
            user_message=request.message,
            available_tools=tools,
            system_state=snapshot,
            conversation_history=history,
            business_rules=await self.rule_store.get_relevant_rules(),
            constraints=constraints,
        )
        operation_type = OperationType.COMPLETE
        if self.settings.workflow_orchestration and objective == Objective.CREATE_DEAL:
            operation_type = OperationType.WORKFLOW
        prompt = self.composer.compose(decision_context, operation_type)
        decision = await self.decision_engine.decide(prompt, decision_context, request.user_id)

        response = await self._dispatch(decision, context, request)

        context.message_history.append(
            ConversationMessage(id=f"msg-{uuid.uuid4()}", role="user", content=request.message)
        )
        context.message_history.append(
            ConversationMessage(
                id=f"msg-{uuid.uuid4()}",
                role="assistant",
                content=response.message,
                tool_calls=response.tool_calls,
            )
        )
        context.message_history = context.message_history[-self.settings.history_limit:]
        await self._sessions.set(context.session_id, context)

        confidence = DEFAULT_CONFIDENCE
        if response.success:
            confidence += 0.3
        if response.tool_results:
            confidence += 0.2
        response.metadata = ResponseMetadata(
            agent_version=AGENT_VERSION,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            tools_used=[c.tool for c in response.tool_calls],
            confidence_score=min(confidence, 1.0),
            system_state_timestamp=context.snapshot.captured_at if context.snapshot else None,
            rate_limit_status=self.decision_engine.rate_limiter.status(request.user_id),
            cache_status=CacheStatus(system_state_from_cache=from_cache),
            objective=objective.value,
        )
        logger.info(
            f"Session {context.session_id}: {_action_name(decision)} -> success={response.success}"
        )
        return response

    async def _session(self, request: AgentRequest) -> ConversationContext:
        context = await self._sessions.get(request.session_id)
        if context is None:
            context = ConversationContext(
                session_id=request.session_id, user_id=request.user_id
            )
            logger.debug(f"Created session {request.session_id}")
        for field in _CONTEXT_FIELDS:
            if field in request.context:
                setattr(context, field, request.context[field])
        return context

    async def _refresh_snapshot(self, context: ConversationContext) -> bool:
        """Make sure ``context`` carries a usable snapshot; report a cache hit."""
        if not self.settings.real_time_context or self.snapshot_provider is None:
            return False
        now = utc_now()
        if not is_stale(context.snapshot, self.settings.snapshot_max_age_seconds, now):
            return True
        try:
            snapshot = await asyncio.wait_for(
                self.snapshot_provider.generate_snapshot(
                    context.user_id, context.permissions
                ),
                timeout=self.settings.snapshot_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Snapshot fetch timed out for session {context.session_id}")
            return False
        except Exception as e:
            logger.warning(f"Snapshot fetch failed for session {context.session_id}: {e}")
            return False
        context.snapshot = CacheEntry[SystemSnapshot](value=snapshot, captured_at=now)
        return False

    # ------------------------------------------------------------------
    # Dispatch

    async def _dispatch(
        self,
        decision: DecisionResult,
        context: ConversationContext,
        request: AgentRequest,
    ) -> AgentResponse:
        reasoning = [
            ReasoningEntry(
                step=1,
                type="decision",
                description=decision.reasoning,
                confidence=decision.confidence,
            )
        ]
        if decision.action == DecisionAction.EXECUTE_TOOL:
            return await self._execute_tool(decision, context, request, reasoning)
        if decision.action in (
            DecisionAction.ASK_CLARIFICATION,
            DecisionAction.PROVIDE_INFO,
            DecisionAction.SUGGEST_ALTERNATIVES,
            DecisionAction.END_CONVERSATION,
        ):
            return self._answer(decision, reasoning)

        logger.error(f"Unrecognised decision action {decision.action!r}")
        return AgentResponse(
            success=False,
            message="I could not determine how to handle that request.",
            reasoning=reasoning,
            error=AgentError(
                code="UNKNOWN_ACTION",
                message=f"Unknown action: {decision.action}",
                category=ErrorCategory.EXECUTION,
                recoverable=False,
            ),
        )

    def _answer(self, decision: DecisionResult, reasoning: List[ReasoningEntry]) -> AgentResponse:
        kind = "question" if decision.action == DecisionAction.ASK_CLARIFICATION else "action"
        suggestions = [
            Suggestion(
                id=f"alt-{index}",
                type=kind,
                title=alternative.action,
                description=alternative.reasoning,
                confidence=alternative.confidence,
            )
            for index, alternative in enumerate(decision.alternatives, start=1)
        ]
        message = decision.reasoning
        if decision.action == DecisionAction.SUGGEST_ALTERNATIVES and suggestions:
            message += "\n\nOptions:\n" + "\n".join(
                f"- {s.title}: {s.description}" for s in suggestions
            )
        return AgentResponse(
            success=True,
            message=message,
            reasoning=reasoning,
            suggestions=suggestions,
        )

    def _tool_context(
        self, context: ConversationContext, request: AgentRequest
    ) -> ToolExecutionContext:
        return ToolExecutionContext(
            user_id=context.user_id,
            session_id=context.session_id,
            permissions=context.effective_permissions(),
            auth_token=request.auth_token,
            request_id=f"req-{uuid.uuid4()}",
            tool_call_id=f"call-{uuid.uuid4()}",
            system_state=context.snapshot.value if context.snapshot else None,
            conversation_history=context.message_history[-self.settings.history_limit:],
        )

    async def _execute_tool(
        self,
        decision: DecisionResult,
        context: ConversationContext,
        request: AgentRequest,
        reasoning: List[ReasoningEntry],
    ) -> AgentResponse:
        tool_name = decision.tool_name or ""
        tool_context = self._tool_context(context, request)
        call = ToolCall(
            id=tool_context.tool_call_id,
            tool=tool_name,
            parameters=decision.parameters,
            reasoning=decision.reasoning,
        )

        data: Any = None
        if tool_name == WORKFLOW_TOOL_NAME and self.settings.workflow_orchestration:
            result, data = await self._run_workflow(decision.parameters, tool_context, request)
            context.workflow_state = {
                "workflow_id": data.get("workflow_id") if isinstance(data, dict) else None,
                "status": data.get("status") if isinstance(data, dict) else None,
            }
        else:
            result = await self.dispatcher.execute_tool(
                tool_name, decision.parameters, tool_context
            )
            data = result.data

        if tool_name == THINK_TOOL_NAME and result.success:
            message = _narrate_thinking(result)
            reasoning.append(
                ReasoningEntry(
                    step=2,
                    type="thinking",
                    description=result.message or "",
                    confidence=result.metadata.confidence or decision.confidence,
                )
            )
        else:
            message = _describe_result(tool_name, result)

        error = None
        if not result.success and result.error is not None:
            error = AgentError(
                code=result.error.code,
                message=result.error.message,
                category=result.error.category,
                recoverable=result.error.recoverable,
            )
        return AgentResponse(
            success=result.success,
            message=message,
            data=data,
            tool_calls=[call],
            tool_results=[result],
            reasoning=reasoning,
            error=error,
        )

    async def _run_workflow(
        self,
        parameters: Dict[str, Any],
        tool_context: ToolExecutionContext,
        request: AgentRequest,
    ) -> Tuple[ToolResult, Any]:
        objective = parameters.get("objective") or request.message
        variables = parameters.get("variables")
        try:
            steps = build_steps(parameters["steps"]) if parameters.get("steps") else None
        except ValidationFailed as e:
            return ToolResult.failure(ToolError.from_exception(e)), None
        workflow = await self.workflows.execute_workflow(
            str(objective),
            tool_context,
            steps=steps,
            variables=variables if isinstance(variables, dict) else None,
        )
        result = workflow_to_tool_result(workflow)
        return result, result.data

    # ------------------------------------------------------------------
    # Errors

    def _error_response(
        self,
        code: str,
        message: str,
        category: ErrorCategory,
        recoverable: bool,
        started: float,
    ) -> AgentResponse:
        return AgentResponse(
            success=False,
            message=message,
            error=AgentError(
                code=code, message=message, category=category, recoverable=recoverable
            ),
            metadata=ResponseMetadata(
                agent_version=AGENT_VERSION,
                processing_time_ms=(time.perf_counter() - started) * 1000,
            ),
        )

    # ------------------------------------------------------------------
    # Administration

    async def get_capabilities(self, permissions: Optional[List[str]] = None) -> Dict[str, Any]:
        tools = (
            self.dispatcher.get_available_tools(permissions)
            if permissions is not None
            else self.dispatcher.get_all_tools()
        )
        patterns = await self.rule_store.list_workflow_patterns()
        return {
            "version": AGENT_VERSION,
            "tools": [t.name for t in tools],
            "categories": [c.name for c in self.dispatcher.get_categories()],
            "workflow_patterns": [p.name for p in patterns],
            "features": {
                "real_time_context": self.settings.real_time_context,
                "workflow_orchestration": self.settings.workflow_orchestration,
                "thinking": self.settings.thinking_enabled,
            },
        }

    def get_config(self) -> Dict[str, Any]:
        return self.config.agent.model_dump()

    def update_config(self, updates: Dict[str, Any]) -> AgentSettings:
        """Patch agent settings; unknown keys raise ``ValueError``."""
        unknown = set(updates) - set(AgentSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown agent settings: {', '.join(sorted(unknown))}")
        self.config.agent = AgentSettings(**{**self.config.agent.model_dump(), **updates})
        self.decision_engine.rate_limiter.max_requests = self.config.agent.requests_per_minute
        logger.info(f"Updated agent settings: {sorted(updates)}")
        return self.config.agent

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialise work on one session. The lock goes once nobody holds or awaits it."""
        self._session_lock_users[session_id] += 1
        try:
            async with self._session_locks[session_id]:
                yield
        finally:
            self._session_lock_users[session_id] -= 1
            if not self._session_lock_users[session_id]:
                del self._session_lock_users[session_id]
                self._session_locks.pop(session_id, None)

    async def clear_session(self, session_id: str) -> bool:
        async with self._session_lock(session_id):
            removed = await self._sessions.delete(session_id)
        self.dispatcher.clear_session_history(session_id)
        return removed

    async def active_session_count(self) -> int:
        return len(await self._sessions.keys())

    async def cleanup(self) -> int:
        """Purge finished workflows past retention; return how many went."""
        try:
            return await self.workflows.cleanup_finished()
        except Exception:
            logger.exception("Workflow cleanup failed")
            return 0


def _narrate_thinking(result: ToolResult) -> str:
    data = result.data if isinstance(result.data, dict) else {}
    lines = [f"Thinking it through ({data.get('reasoning_type', 'analysis')}):"]
    lines.extend(f"- {insight}" for insight in data.get("insights", []))
    next_actions = data.get("next_actions", [])
    if next_actions:
        lines.append("Next steps:")
        lines.extend(f"- {action}" for action in next_actions)
    return "\n".join(lines)


def _describe_result(tool_name: str, result: ToolResult) -> str:
    if result.success:
        return result.message or f"Completed {tool_name} successfully."
    error = result.error
    message = result.message or (error.message if error else "Unknown error")
    if error is not None and not error.recoverable:
        return f"I can't complete {tool_name}: {message}"
    hint = (error.suggested_fix if error else None) or suggest_recovery(message)
    return f"{tool_name} failed: {message}. {hint}. Would you like me to try again?"


def _action_name(decision: DecisionResult) -> str:
    return getattr(decision.action, "value", str(decision.action))
