"""Tool definition contract."""

from __future__ import annotations

import abc
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..contracts import ToolExecutionContext, ToolResult, ToolSpec

ToolFunc = Callable[[Dict[str, Any], ToolExecutionContext], Awaitable[ToolResult]]


class ToolDefinition(metaclass=abc.ABCMeta):
    """A named, permission-gated capability the dispatcher can invoke."""

    name: str = ""
    description: str = ""
    category: str = "general"
    parameters: Dict[str, Any] = {"type": "object", "properties": {}}
    required_permissions: List[str] = []

    @abc.abstractmethod
    async def execute(
        self, params: Dict[str, Any], context: ToolExecutionContext
    ) -> ToolResult:
        raise NotImplementedError

    def to_spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            category=self.category,
            parameters=self.parameters,
            required_permissions=list(self.required_permissions),
        )


class FunctionTool(ToolDefinition):
    """Adapt a plain async function to :class:`ToolDefinition`."""

    def __init__(
        self,
        func: ToolFunc,
        name: str,
        description: str = "",
        category: str = "general",
        parameters: Optional[Dict[str, Any]] = None,
        required_permissions: Optional[List[str]] = None,
    ) -> None:
        self.func = func
        self.name = name
        self.description = description or (func.__doc__ or "").strip()
        self.category = category
        self.parameters = parameters or {"type": "object", "properties": {}}
        self.required_permissions = list(required_permissions or [])

    async def execute(
        self, params: Dict[str, Any], context: ToolExecutionContext
    ) -> ToolResult:
        return await self.func(params, context)
