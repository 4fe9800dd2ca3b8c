"""Decision engine: one provider call turned into a validated DecisionResult."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, Optional

from .cache import utc_now
from .constants import FALLBACK_CONFIDENCE, RATE_LIMIT_WINDOW_SECONDS
from .contracts import (
    DecisionAction,
    DecisionAlternative,
    DecisionContext,
    DecisionResult,
    DecisionRisk,
    RateLimitStatus,
)
from .errors import DecisionParseError
from .providers.completion import CompletionOptions, CompletionProvider

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")

_RISK_TYPES = {
    "data_loss",
    "permission_violation",
    "business_rule_violation",
    "performance",
    "user_experience",
}


def _clamp(value: Any, default: float = 0.5) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0.0, min(1.0, float(value)))


def _string_list(value: Any) -> list:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def extract_json(text: str) -> str:
    """Return the JSON object embedded in ``text``.

    A fenced ```json block wins over a bare ``{...}`` match.
    """
    fenced = _FENCED_JSON.search(text)
    if fenced:
        return fenced.group(1)
    bare = _BARE_OBJECT.search(text)
    if bare:
        return bare.group(0)
    raise DecisionParseError("No JSON found in response")


def _alternative(raw: Any) -> DecisionAlternative:
    raw = raw if isinstance(raw, dict) else {}
    return DecisionAlternative(
        action=str(raw.get("action") or "unknown"),
        reasoning=str(raw.get("reasoning") or "No reasoning provided"),
        confidence=_clamp(raw.get("confidence")),
        pros=_string_list(raw.get("pros")),
        cons=_string_list(raw.get("cons")),
    )


def _risk(raw: Any) -> DecisionRisk:
    raw = raw if isinstance(raw, dict) else {}
    risk_type = raw.get("type")
    mitigation = raw.get("mitigation")
    return DecisionRisk(
        type=risk_type if risk_type in _RISK_TYPES else "user_experience",
        description=str(raw.get("description") or "Unknown risk"),
        likelihood=_clamp(raw.get("likelihood")),
        impact=_clamp(raw.get("impact")),
        mitigation=str(mitigation) if mitigation else None,
    )


def parse_decision(text: str) -> DecisionResult:
    """Parse provider output into a :class:`DecisionResult`.

    Raises :class:`DecisionParseError` when no usable decision is present.
    """
    try:
        parsed = json.loads(extract_json(text))
    except json.JSONDecodeError as e:
        raise DecisionParseError(f"Invalid decision JSON: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise DecisionParseError("Decision must be a JSON object")

    action = parsed.get("action")
    reasoning = parsed.get("reasoning")
    if not action or not isinstance(reasoning, str) or not reasoning.strip():
        raise DecisionParseError("Missing required decision fields")

    try:
        action = DecisionAction(action)
    except ValueError:
        logger.info(f"Coercing unknown decision action {action!r} to ask_clarification")
        action = DecisionAction.ASK_CLARIFICATION

    tool_name = parsed.get("tool_name") or parsed.get("toolName")
    if action == DecisionAction.EXECUTE_TOOL and not tool_name:
        raise DecisionParseError("execute_tool decision without a tool name")

    parameters = parsed.get("parameters")
    alternatives = parsed.get("alternatives")
    risks = parsed.get("risks")
    return DecisionResult(
        action=action,
        tool_name=str(tool_name) if tool_name else None,
        parameters=parameters if isinstance(parameters, dict) else {},
        reasoning=reasoning,
        confidence=_clamp(parsed.get("confidence")),
        alternatives=[_alternative(a) for a in alternatives] if isinstance(alternatives, list) else [],
        risks=[_risk(r) for r in risks] if isinstance(risks, list) else [],
    )


def fallback_decision(error: Optional[BaseException] = None) -> DecisionResult:
    """Safe clarification decision used whenever the provider path fails."""
    detail = f" (Error: {error})" if error is not None and str(error) else ""
    return DecisionResult(
        action=DecisionAction.ASK_CLARIFICATION,
        reasoning=f"I need more information to help you with that.{detail}",
        confidence=FALLBACK_CONFIDENCE,
        alternatives=[
            DecisionAlternative(
                action="provide_general_help",
                reasoning="Offer general assistance",
                confidence=0.5,
                pros=["Safe fallback option"],
                cons=["May not address specific need"],
            )
        ],
        risks=[
            DecisionRisk(
                type="user_experience",
                description="User may not get the help they need",
                likelihood=0.7,
                impact=0.5,
                mitigation="Ask specific clarifying questions",
            )
        ],
    )


class RateLimiter:
    """Advisory per-user limiter over a rolling window.

    State lives in this instance only; users with no request inside the
    window are dropped from the table.
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
    ) -> None:
        self.max_requests = max_requests
        self.window = timedelta(seconds=window_seconds)
        self._requests: Dict[str, Deque[datetime]] = {}

    def _prune(self, user_id: str, now: datetime) -> Deque[datetime]:
        requests = self._requests.get(user_id, deque())
        while requests and now - requests[0] >= self.window:
            requests.popleft()
        if not requests:
            self._requests.pop(user_id, None)
        return requests

    def _sweep(self, now: datetime) -> None:
        idle = [u for u, r in self._requests.items() if now - r[-1] >= self.window]
        for user_id in idle:
            del self._requests[user_id]

    def check(self, user_id: str, now: Optional[datetime] = None) -> RateLimitStatus:
        """Record one request for ``user_id`` and report whether it was within limits."""
        now = now or utc_now()
        self._sweep(now)
        requests = self._prune(user_id, now)
        allowed = len(requests) < self.max_requests
        requests.append(now)
        self._requests[user_id] = requests
        return RateLimitStatus(
            allowed=allowed,
            remaining=max(0, self.max_requests - len(requests)),
            reset_at=requests[0] + self.window,
        )

    def status(self, user_id: str, now: Optional[datetime] = None) -> RateLimitStatus:
        now = now or utc_now()
        requests = self._prune(user_id, now)
        return RateLimitStatus(
            allowed=len(requests) < self.max_requests,
            remaining=max(0, self.max_requests - len(requests)),
            reset_at=requests[0] + self.window if requests else None,
        )

    def clear(self) -> None:
        self._requests.clear()


class DecisionEngine:
    """Obtain a decision from the completion provider. Never raises."""

    def __init__(
        self,
        provider: CompletionProvider,
        options: Optional[CompletionOptions] = None,
        timeout_seconds: float = 60.0,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.provider = provider
        self.options = options or CompletionOptions()
        self.timeout_seconds = timeout_seconds
        self.rate_limiter = rate_limiter or RateLimiter()

    async def decide(
        self,
        prompt: str,
        context: DecisionContext,
        user_id: Optional[str] = None,
    ) -> DecisionResult:
        if user_id is not None:
            status = self.rate_limiter.check(user_id)
            if not status.allowed:
                logger.warning(f"Rate limit exceeded for user {user_id}")

        try:
            text = await asyncio.wait_for(
                self.provider.complete(prompt, self.options),
                timeout=self.timeout_seconds,
            )
            decision = parse_decision(text)
        except asyncio.TimeoutError:
            logger.warning(f"Decision provider timed out after {self.timeout_seconds}s")
            return fallback_decision(TimeoutError("Decision provider timed out"))
        except DecisionParseError as e:
            logger.warning(f"Unusable decision for objective {context.objective!r}: {e.message}")
            return fallback_decision(e)
        except Exception as e:
            logger.exception("Decision provider call failed")
            return fallback_decision(e)

        logger.info(
            f"Decision {decision.action.value} (tool={decision.tool_name}, confidence={decision.confidence:.2f})"
        )
        return decision
