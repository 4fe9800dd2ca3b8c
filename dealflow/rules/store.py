"""Cached business-rule and workflow-template store."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..cache import is_timestamp_stale, utc_now
from ..constants import DEFAULT_RULES_MAX_AGE_SECONDS
from ..contracts import BusinessRule, RuleCategory, RulePriority, WorkflowPattern
from ..stores import BaseStore, InMemoryStore
from .defaults import DEFAULT_CATEGORIES, default_rules, default_workflow_patterns

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, timezone.utc)


class RuleStore:
    """Holds business rules per category and named workflow templates.

    Reads go through a per-category cache stamp; a category older than
    ``max_age`` is passed to :meth:`refresh_rules` before being returned.
    Every mutation is serialised by a single ``asyncio.Lock``.
    """

    def __init__(
        self,
        rules: Optional[BaseStore[RuleCategory]] = None,
        patterns: Optional[BaseStore[WorkflowPattern]] = None,
        max_age_seconds: float = DEFAULT_RULES_MAX_AGE_SECONDS,
    ) -> None:
        self._rules: BaseStore[RuleCategory] = rules or InMemoryStore()
        self._patterns: BaseStore[WorkflowPattern] = patterns or InMemoryStore()
        self.max_age_seconds = max_age_seconds
        self._lock = asyncio.Lock()

    @classmethod
    async def with_defaults(
        cls,
        rules: Optional[BaseStore[RuleCategory]] = None,
        patterns: Optional[BaseStore[WorkflowPattern]] = None,
        max_age_seconds: float = DEFAULT_RULES_MAX_AGE_SECONDS,
    ) -> "RuleStore":
        """Create a store and seed the built-in rules and templates when empty."""
        store = cls(rules, patterns, max_age_seconds)
        await store.seed_defaults()
        return store

    async def seed_defaults(self) -> None:
        async with self._lock:
            if not await self._rules.keys():
                now = utc_now()
                for name, rules in default_rules().items():
                    await self._rules.set(
                        name, RuleCategory(name=name, rules=rules, last_updated=now)
                    )
            if not await self._patterns.keys():
                for pattern in default_workflow_patterns():
                    await self._patterns.set(pattern.name, pattern)
        logger.debug("Seeded default business rules and workflow patterns")

    # ------------------------------------------------------------------
    # Reads

    async def categories(self) -> List[str]:
        names = await self._rules.keys()
        known = [c for c in DEFAULT_CATEGORIES if c in names]
        return known + sorted(c for c in names if c not in DEFAULT_CATEGORIES)

    async def get_rules(
        self,
        category: str,
        max_age: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> List[BusinessRule]:
        max_age = self.max_age_seconds if max_age is None else max_age
        now = now or utc_now()
        entry = await self._rules.get(category)
        if entry is None:
            return []
        if is_timestamp_stale(entry.last_updated, max_age, now):
            async with self._lock:
                entry = await self.refresh_rules(category, now)
        return list(entry.rules)

    async def refresh_rules(self, category: str, now: datetime) -> RuleCategory:
        """Reload ``category`` from its source and re-stamp it.

        Rules live in the store itself, so the default refresh only renews
        the cache stamp. Subclasses pulling rules from elsewhere override it.
        """
        entry = await self._rules.get(category) or RuleCategory(name=category)
        entry = entry.model_copy(update={"last_updated": now})
        await self._rules.set(category, entry)
        logger.debug(f"Refreshed rule category {category}")
        return entry

    async def get_all_rules(
        self, max_age: Optional[float] = None, now: Optional[datetime] = None
    ) -> List[BusinessRule]:
        all_rules: List[BusinessRule] = []
        for category in await self.categories():
            all_rules.extend(await self.get_rules(category, max_age, now))
        return all_rules

    async def get_relevant_rules(self, context: Any = None) -> List[BusinessRule]:
        """Return every rule ordered by priority, critical first.

        Critical and high rules are always part of the result; ``context`` is
        accepted for future relevance filtering of the lower priorities.
        """
        rules = await self.get_all_rules()
        return sorted(rules, key=lambda rule: rule.priority.rank)

    async def get_rules_by_priority(self, priority: RulePriority) -> List[BusinessRule]:
        return [r for r in await self.get_all_rules() if r.priority == priority]

    async def get_rules_by_source(self, source: str) -> List[BusinessRule]:
        return [r for r in await self.get_all_rules() if r.source == source]

    async def rule_count(self) -> int:
        return sum(len(entry.rules) for entry in await self._rules.values())

    async def export_rules(self) -> Dict[str, List[BusinessRule]]:
        exported: Dict[str, List[BusinessRule]] = {}
        for name in await self.categories():
            entry = await self._rules.get(name)
            if entry is not None:
                exported[name] = list(entry.rules)
        return exported

    # ------------------------------------------------------------------
    # Rule mutations

    async def add_rule(self, rule: BusinessRule) -> None:
        """Insert ``rule`` or replace the rule with the same id in its category."""
        async with self._lock:
            now = utc_now()
            entry = await self._rules.get(rule.category) or RuleCategory(
                name=rule.category
            )
            rules = [r for r in entry.rules if r.id != rule.id]
            rules.append(rule)
            await self._rules.set(
                rule.category,
                RuleCategory(name=rule.category, rules=rules, last_updated=now),
            )
        logger.info(f"Stored rule {rule.id} in category {rule.category}")

    async def update_rule(
        self,
        rule_id: str,
        updates: Dict[str, Any],
        category: Optional[str] = None,
    ) -> bool:
        """Patch an existing rule; ``id`` and ``category`` cannot change."""
        updates = {k: v for k, v in updates.items() if k not in ("id", "category")}
        async with self._lock:
            names = [category] if category else await self.categories()
            for name in names:
                entry = await self._rules.get(name)
                if entry is None:
                    continue
                for index, rule in enumerate(entry.rules):
                    if rule.id != rule_id:
                        continue
                    now = utc_now()
                    patched = BusinessRule.model_validate(
                        {**rule.model_dump(), **updates, "last_updated": now}
                    )
                    rules = list(entry.rules)
                    rules[index] = patched
                    await self._rules.set(
                        name, RuleCategory(name=name, rules=rules, last_updated=now)
                    )
                    logger.info(f"Updated rule {rule_id} in category {name}")
                    return True
        return False

    async def remove_rule(self, category: str, rule_id: str) -> bool:
        async with self._lock:
            entry = await self._rules.get(category)
            if entry is None:
                return False
            rules = [r for r in entry.rules if r.id != rule_id]
            if len(rules) == len(entry.rules):
                return False
            await self._rules.set(
                category,
                RuleCategory(name=category, rules=rules, last_updated=utc_now()),
            )
        logger.info(f"Removed rule {rule_id} from category {category}")
        return True

    async def import_rules(self, rules: Dict[str, List[BusinessRule]]) -> None:
        """Replace whole categories with ``rules``."""
        async with self._lock:
            now = utc_now()
            for name, category_rules in rules.items():
                await self._rules.set(
                    name,
                    RuleCategory(name=name, rules=list(category_rules), last_updated=now),
                )
        logger.info(f"Imported {len(rules)} rule categories")

    async def clear_cache(self) -> None:
        """Mark every category stale so the next read refreshes it."""
        async with self._lock:
            for entry in await self._rules.values():
                await self._rules.set(
                    entry.name, entry.model_copy(update={"last_updated": _EPOCH})
                )

    # ------------------------------------------------------------------
    # Workflow patterns

    async def get_workflow_pattern(self, name: str) -> Optional[WorkflowPattern]:
        return await self._patterns.get(name)

    async def list_workflow_patterns(self) -> List[WorkflowPattern]:
        patterns = await self._patterns.values()
        return sorted(patterns, key=lambda p: p.name)

    async def add_workflow_pattern(self, pattern: WorkflowPattern) -> None:
        async with self._lock:
            await self._patterns.set(pattern.name, pattern)
        logger.info(f"Stored workflow pattern {pattern.name}")

    async def remove_workflow_pattern(self, name: str) -> bool:
        async with self._lock:
            return await self._patterns.delete(name)
