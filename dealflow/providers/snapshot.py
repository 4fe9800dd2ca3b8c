"""System-snapshot provider contract and pipeline-health helpers."""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from ..contracts import DealsState, PipelineHealth, SystemSnapshot, UserContext

logger = logging.getLogger(__name__)

_CLOSE_RATE_TREND = {"strong": 5.2, "moderate": -1.8, "at_risk": -8.5}


@runtime_checkable
class SnapshotProvider(Protocol):
    """Produces a point-in-time view of business-entity state.

    Implementations must be safe to call repeatedly; the agent caches the
    result per session.
    """

    async def generate_snapshot(
        self, user_id: str, permissions: Sequence[str]
    ) -> SystemSnapshot: ...


def compute_pipeline_health(deals: DealsState) -> PipelineHealth:
    """Classify pipeline health from at-risk share and deals closing this month."""
    at_risk = len(deals.at_risk)
    closing = len(deals.closing_this_month)
    at_risk_pct = (at_risk / deals.total) * 100 if deals.total > 0 else 0.0

    if at_risk_pct > 30:
        status = "at_risk"
    elif at_risk_pct > 15 or closing < 3:
        status = "moderate"
    else:
        status = "strong"

    insights: List[str] = []
    if at_risk_pct > 20:
        insights.append(f"{at_risk} deals ({at_risk_pct:.1f}%) need urgent attention")
    if closing < 5:
        insights.append("Low deal volume closing this month - consider pipeline acceleration")

    return PipelineHealth(
        status=status,
        weighted_value=sum(d.value for d in deals.closing_this_month),
        close_rate_trend=_CLOSE_RATE_TREND[status],
        key_insights=insights,
    )


def generate_suggestions(snapshot: SystemSnapshot, permissions: Sequence[str]) -> List[str]:
    suggestions: List[str] = []
    if snapshot.deals.at_risk:
        suggestions.append(
            f"{len(snapshot.deals.at_risk)} deals need urgent attention - consider priority follow-ups"
        )
    if len(snapshot.deals.closing_this_month) < 3:
        suggestions.append(
            "Low deal volume closing this month - review pipeline and consider acceleration tactics"
        )
    if snapshot.organizations.total > 100:
        suggestions.append(
            "Large organization database - ALWAYS search before creating new entities"
        )
    if snapshot.activities.overdue > 5:
        suggestions.append(
            "High overdue activity count - consider activity cleanup and rescheduling"
        )
    if snapshot.activities.due_today > 10:
        suggestions.append("Heavy activity load today - prioritize high-impact activities")
    if snapshot.pipeline_health.status == "at_risk":
        suggestions.append(
            "Pipeline health at risk - focus on deal progression and risk mitigation"
        )
    if "deal:create" in permissions:
        suggestions.append(
            "You can create new deals - ensure proper organization and contact setup first"
        )
    return suggestions


class StaticSnapshotProvider:
    """Serves a fixed snapshot, enriched with health and suggestions.

    Useful for tests, the CLI and hosts without a live entity store.
    """

    def __init__(self, snapshot: Optional[SystemSnapshot] = None, role: str = "user") -> None:
        self.snapshot = snapshot or SystemSnapshot()
        self.role = role
        self.calls = 0

    async def generate_snapshot(
        self, user_id: str, permissions: Sequence[str]
    ) -> SystemSnapshot:
        self.calls += 1
        snapshot = self.snapshot.model_copy(deep=True)
        snapshot.pipeline_health = compute_pipeline_health(snapshot.deals)
        snapshot.user_context = UserContext(
            role=self.snapshot.user_context.role or self.role,
            permissions=list(permissions),
            recent_focus_areas=list(self.snapshot.user_context.recent_focus_areas),
        )
        snapshot.intelligent_suggestions = generate_suggestions(snapshot, permissions)
        logger.debug(f"Generated static snapshot for user {user_id}")
        return snapshot
