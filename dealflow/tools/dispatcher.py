"""Tool registry and permission-gated execution."""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict, deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel, Field

from ..cache import utc_now
from ..constants import DEFAULT_TOOL_HISTORY_LIMIT
from ..contracts import (
    ToolCategory,
    ToolError,
    ToolExecutionContext,
    ToolResult,
    ToolSpec,
)
from ..errors import DealflowError, ErrorCategory, PermissionDenied
from .base import ToolDefinition
from .think import ThinkTool

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_DESCRIPTIONS = {
    "reasoning": "Tools for structured thinking, analysis, and decision making",
    "organizations": "Tools for searching, creating, and managing organizations",
    "contacts": "Tools for searching, creating, and managing contacts",
    "deals": "Tools for searching, creating, and managing sales deals",
    "system": "Tools for accessing system data, dropdown options, and entity details",
}


class ExecutionRecord(BaseModel):
    tool: str
    success: bool
    execution_time_ms: float
    error_code: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ExecutionMetrics(BaseModel):
    total_executions: int = 0
    success_rate: float = 0.0
    average_execution_time_ms: float = 0.0
    tool_usage: Dict[str, int] = Field(default_factory=dict)
    error_stats: Dict[str, int] = Field(default_factory=dict)


def validate_against_schema(schema: Dict[str, Any], params: Dict[str, Any]) -> List[str]:
    """Validate ``params`` against a tool's JSON schema.

    Keys holding ``None`` count as absent. Each problem is reported as
    ``path: message``, with ``parameters`` standing for the top level.
    """
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as e:
        logger.warning(f"Tool schema is invalid: {e.message}")
        return [f"Invalid tool schema: {e.message}"]
    present = {key: value for key, value in params.items() if value is not None}
    errors = sorted(
        Draft202012Validator(schema).iter_errors(present),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    return [
        f"{'.'.join(str(p) for p in e.absolute_path) or 'parameters'}: {e.message}"
        for e in errors
    ]


class ToolDispatcher:
    """Registry of :class:`ToolDefinition` objects keyed by unique name."""

    def __init__(
        self,
        tools: Optional[Iterable[ToolDefinition]] = None,
        history_limit: int = DEFAULT_TOOL_HISTORY_LIMIT,
    ) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        self._category_descriptions: Dict[str, str] = dict(DEFAULT_CATEGORY_DESCRIPTIONS)
        self._lock = threading.Lock()
        self._history: Dict[str, Deque[ExecutionRecord]] = defaultdict(
            lambda: deque(maxlen=history_limit)
        )
        self.think_tool = ThinkTool()
        self.register_tool(self.think_tool)
        for tool in tools or []:
            self.register_tool(tool)

    # ------------------------------------------------------------------
    # Registry

    def register_tool(self, tool: ToolDefinition, category: Optional[str] = None) -> None:
        if category:
            tool.category = category
        with self._lock:
            if tool.name in self._tools:
                raise ValueError(f"Tool {tool.name} is already registered")
            self._tools[tool.name] = tool
            self._category_descriptions.setdefault(tool.category, "")
        logger.debug(f"Registered tool {tool.name} in category {tool.category}")

    def unregister_tool(self, name: str) -> bool:
        with self._lock:
            return self._tools.pop(name, None) is not None

    def register_category(self, name: str, description: str) -> None:
        with self._lock:
            self._category_descriptions[name] = description

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        with self._lock:
            return self._tools.get(name)

    def get_all_tools(self) -> List[ToolDefinition]:
        with self._lock:
            return list(self._tools.values())

    def get_tools_by_category(self, category: str) -> List[ToolDefinition]:
        return [t for t in self.get_all_tools() if t.category == category]

    def get_categories(self) -> List[ToolCategory]:
        tools = self.get_all_tools()
        with self._lock:
            descriptions = dict(self._category_descriptions)
        return [
            ToolCategory(
                name=name,
                description=description,
                tools=[t.name for t in tools if t.category == name],
            )
            for name, description in descriptions.items()
        ]

    def get_available_tools(self, permissions: Iterable[str]) -> List[ToolDefinition]:
        """Tools with no required permission or sharing one with ``permissions``."""
        granted = set(permissions)
        return [
            tool
            for tool in self.get_all_tools()
            if not tool.required_permissions or granted.intersection(tool.required_permissions)
        ]

    def get_tool_specs(self, permissions: Iterable[str]) -> List[ToolSpec]:
        return [tool.to_spec() for tool in self.get_available_tools(permissions)]

    def validate_parameters(self, name: str, params: Dict[str, Any]) -> List[str]:
        tool = self.get_tool(name)
        if tool is None:
            return [f"Unknown tool: {name}"]
        return validate_against_schema(tool.parameters, params)

    # ------------------------------------------------------------------
    # Execution

    async def execute_tool(
        self, name: str, params: Dict[str, Any], context: ToolExecutionContext
    ) -> ToolResult:
        start = time.perf_counter()
        params = params or {}
        result = await self._execute(name, params, context)
        elapsed_ms = (time.perf_counter() - start) * 1000
        result.metadata.execution_time_ms = elapsed_ms
        self._record(context.session_id, name, result)
        if result.success:
            logger.info(f"Tool {name} succeeded in {elapsed_ms:.1f}ms")
        else:
            logger.warning(
                f"Tool {name} failed with {result.error.code if result.error else 'unknown'}: {result.message}"
            )
        return result

    async def _execute(
        self, name: str, params: Dict[str, Any], context: ToolExecutionContext
    ) -> ToolResult:
        tool = self.get_tool(name)
        if tool is None:
            return ToolResult.failure(
                ToolError(
                    code="UNKNOWN_TOOL",
                    message=f"Unknown tool: {name}",
                    category=ErrorCategory.VALIDATION,
                    recoverable=False,
                    retryable=False,
                    details={"tool_name": name, "available_tools": sorted(t.name for t in self.get_all_tools())},
                    suggested_fix="Check tool name and available tools",
                )
            )

        if tool.required_permissions and not set(context.permissions).intersection(
            tool.required_permissions
        ):
            denied = PermissionDenied(
                f"Insufficient permissions for {name}. Required: {', '.join(tool.required_permissions)}",
                details={"tool_name": name, "required_permissions": tool.required_permissions},
            )
            error = ToolError.from_exception(denied)
            error.suggested_fix = "Contact administrator to grant required permissions"
            return ToolResult.failure(error)

        problems = validate_against_schema(tool.parameters, params)
        if problems:
            return ToolResult.failure(
                ToolError.for_category(
                    "INVALID_PARAMETERS",
                    "; ".join(problems),
                    ErrorCategory.VALIDATION,
                    details={"tool_name": name, "problems": problems},
                    suggested_fix="Correct the parameters to match the tool schema",
                )
            )

        try:
            return await tool.execute(params, context)
        except DealflowError as e:
            return ToolResult.failure(ToolError.from_exception(e))
        except Exception as e:
            logger.exception(f"Tool {name} raised an unexpected error")
            return ToolResult.failure(
                ToolError.for_category(
                    "TOOL_EXECUTION_FAILED",
                    f"Tool execution failed: {e}",
                    ErrorCategory.EXECUTION,
                    details={"tool_name": name},
                    suggested_fix="Retry the operation or check parameters",
                )
            )

    # ------------------------------------------------------------------
    # History

    def _record(self, session_id: str, name: str, result: ToolResult) -> None:
        record = ExecutionRecord(
            tool=name,
            success=result.success,
            execution_time_ms=result.metadata.execution_time_ms,
            error_code=result.error.code if result.error else None,
        )
        with self._lock:
            self._history[session_id].append(record)

    def get_execution_history(self, session_id: str) -> List[ExecutionRecord]:
        with self._lock:
            return list(self._history.get(session_id, ()))

    def clear_session_history(self, session_id: str) -> bool:
        with self._lock:
            return self._history.pop(session_id, None) is not None

    def get_execution_metrics(self, session_id: Optional[str] = None) -> ExecutionMetrics:
        with self._lock:
            if session_id is not None:
                records = list(self._history.get(session_id, ()))
            else:
                records = [r for history in self._history.values() for r in history]

        if not records:
            return ExecutionMetrics()

        tool_usage: Dict[str, int] = defaultdict(int)
        error_stats: Dict[str, int] = defaultdict(int)
        for record in records:
            tool_usage[record.tool] += 1
            if record.error_code:
                error_stats[record.error_code] += 1
        successes = sum(1 for r in records if r.success)
        return ExecutionMetrics(
            total_executions=len(records),
            success_rate=successes / len(records),
            average_execution_time_ms=sum(r.execution_time_ms for r in records) / len(records),
            tool_usage=dict(tool_usage),
            error_stats=dict(error_stats),
        )


__all__ = [
    "DEFAULT_CATEGORY_DESCRIPTIONS",
    "ExecutionMetrics",
    "ExecutionRecord",
    "ToolDispatcher",
    "validate_against_schema",
]
