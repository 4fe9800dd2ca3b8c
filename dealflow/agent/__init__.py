from .orchestrator import AgentOrchestrator

__all__ = ["AgentOrchestrator"]
