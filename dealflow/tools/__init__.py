from .base import FunctionTool, ToolDefinition
from .dispatcher import (
    ExecutionMetrics,
    ExecutionRecord,
    ToolDispatcher,
    validate_against_schema,
)
from .think import ThinkTool

__all__ = [
    "ExecutionMetrics",
    "ExecutionRecord",
    "FunctionTool",
    "ThinkTool",
    "ToolDefinition",
    "ToolDispatcher",
    "validate_against_schema",
]
