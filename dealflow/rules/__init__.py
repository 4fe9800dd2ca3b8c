"""Business rules and workflow templates."""

from .defaults import DEFAULT_CATEGORIES, default_rules, default_workflow_patterns
from .store import RuleStore

__all__ = [
    "DEFAULT_CATEGORIES",
    "RuleStore",
    "default_rules",
    "default_workflow_patterns",
]
