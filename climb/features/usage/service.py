"""
climb/features/usage/service.py

Per-feature AI usage quotas.

Handles:
- Static free/pro quota table per AI feature
- Plan-aware fixed-window consumption keyed by feature:plan:user
- Opportunistic sweep of expired counters
- Rate limit response headers
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from climb.core.logging import log_event
from climb.core.ratelimit import BucketStore, FixedWindowLimiter, now_ms
from climb.features.billing.service import PlanStore, PlanTier, lookup_plan

HOUR_MS = 60 * 60 * 1000
DEFAULT_SWEEP_THRESHOLD = 2000


@dataclass(frozen=True)
class QuotaTier:
    free: int
    pro: int
    window_ms: int = HOUR_MS

    def limit_for(self, plan: PlanTier) -> int:
        return self.pro if plan == "pro" else self.free


FEATURE_QUOTAS: Dict[str, QuotaTier] = {
    "parse-role": QuotaTier(free=40, pro=300),
    "match-gap": QuotaTier(free=25, pro=180),
    "generate-pack": QuotaTier(free=8, pro=80),
    "improve-bullet": QuotaTier(free=80, pro=500),
    "copilot-chat": QuotaTier(free=60, pro=400),
    "resume-summary": QuotaTier(free=40, pro=280),
    "interview-feedback": QuotaTier(free=50, pro=320),
    "interview-curriculum": QuotaTier(free=28, pro=220),
    "resume-portfolio-plan": QuotaTier(free=30, pro=260),
    "workflow-blueprint": QuotaTier(free=24, pro=180),
    "ai-readiness": QuotaTier(free=80, pro=600),
    "horizon-expansion-plan": QuotaTier(free=18, pro=140),
    "horizon-risk-audit": QuotaTier(free=24, pro=180),
    "ai-transformation-plan": QuotaTier(free=18, pro=140),
}


@dataclass(frozen=True)
class UsageDecision:
    allowed: bool
    plan: PlanTier
    limit: int
    remaining: int
    retry_after_seconds: int
    reset_at: int


class AIUsageMeter:
    """Plan-aware quota meter shared by all AI routes of one process."""

    def __init__(
        self,
        plan_store: PlanStore,
        *,
        store: Optional[BucketStore] = None,
        quotas: Optional[Dict[str, QuotaTier]] = None,
        time_fn: Callable[[], int] = now_ms,
        sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
        billing_timeout: float = 2.0,
    ):
        self.plan_store = plan_store
        self.limiter = FixedWindowLimiter(store if store is not None else BucketStore(), time_fn=time_fn)
        self.quotas = quotas if quotas is not None else FEATURE_QUOTAS
        self.time_fn = time_fn
        self.sweep_threshold = sweep_threshold
        self.billing_timeout = billing_timeout

    @property
    def store(self) -> BucketStore:
        return self.limiter.store

    async def resolve_plan(self, user_id: str) -> PlanTier:
        result = await lookup_plan(self.plan_store, user_id, timeout=self.billing_timeout)
        if result.ok:
            return result.plan
        # Billing outages and missing rows both admit at the lowest tier.
        log_event(
            "info",
            "usage.plan_default",
            user_id=user_id,
            event_type="plan_lookup",
            extra={"reason": result.error},
        )
        return "free"

    async def consume(self, user_id: str, feature: str) -> UsageDecision:
        quota = self.quotas.get(feature)
        if quota is None:
            raise ValueError(f"Unknown AI feature '{feature}'")

        if len(self.limiter.store) >= self.sweep_threshold:
            self.limiter.sweep_expired()

        plan = await self.resolve_plan(user_id)
        limit = quota.limit_for(plan)

        decision = self.limiter.check(f"{feature}:{plan}:{user_id}", limit, quota.window_ms)
        now = self.time_fn()
        retry_after = max(1, math.ceil((decision.reset_at - now) / 1000))

        if not decision.allowed:
            log_event(
                "warning",
                "usage.quota_exhausted",
                user_id=user_id,
                feature=feature,
                event_type="ai_quota",
                plan=plan,
                extra={"limit": limit, "retry_after_seconds": retry_after},
            )

        return UsageDecision(
            allowed=decision.allowed,
            plan=plan,
            limit=limit,
            remaining=decision.remaining,
            retry_after_seconds=retry_after,
            reset_at=decision.reset_at,
        )


async def consume_ai_usage_quota(meter: AIUsageMeter, user_id: str, feature: str) -> UsageDecision:
    return await meter.consume(user_id, feature)


def build_rate_limit_headers(decision: UsageDecision) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at // 1000),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers
