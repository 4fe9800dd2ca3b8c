"""dealflow: LLM-driven business agent orchestration."""

from .agent.orchestrator import AgentOrchestrator
from .config import DealflowConfig, load_config
from .contracts import AgentRequest, AgentResponse, ToolExecutionContext, ToolResult
from .decision import DecisionEngine
from .prompts import PromptComposer
from .rules import RuleStore
from .stores import get_store
from .tools import FunctionTool, ToolDefinition, ToolDispatcher
from .workflow import WorkflowOrchestrator

__version__ = "0.1.0"
__all__ = [
    "AgentOrchestrator",
    "AgentRequest",
    "AgentResponse",
    "DealflowConfig",
    "DecisionEngine",
    "FunctionTool",
    "PromptComposer",
    "RuleStore",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolExecutionContext",
    "ToolResult",
    "WorkflowOrchestrator",
    "get_store",
    "load_config",
]
