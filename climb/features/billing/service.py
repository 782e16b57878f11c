"""
climb/features/billing/service.py

Plan tier lookup for admission decisions.

Lookups never raise: they return a PlanLookup that either carries the plan
or the reason it could not be determined. Callers pick the default.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Literal, Optional

from sqlalchemy import select

from climb.core.config import settings
from climb.core.database import billing, get_db_session

PlanTier = Literal["free", "pro"]


@dataclass(frozen=True)
class PlanLookup:
    plan: Optional[PlanTier] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.plan is not None

    @classmethod
    def success(cls, plan: PlanTier) -> "PlanLookup":
        return cls(plan=plan)

    @classmethod
    def failure(cls, reason: str) -> "PlanLookup":
        return cls(error=reason)


def normalize_plan(value: Optional[str]) -> PlanTier:
    return "pro" if (value or "").strip().lower() == "pro" else "free"


class PlanStore:
    """Keyed lookup user_id -> raw plan name (None when the user has no row)."""

    def get_plan(self, user_id: str) -> Optional[str]:
        raise NotImplementedError


class InMemoryPlanStore(PlanStore):
    def __init__(self, plans: Optional[Dict[str, str]] = None):
        self.plans: Dict[str, str] = dict(plans or {})

    def set_plan(self, user_id: str, plan: str) -> None:
        self.plans[user_id] = plan

    def get_plan(self, user_id: str) -> Optional[str]:
        return self.plans.get(user_id)


class DatabasePlanStore(PlanStore):
    def get_plan(self, user_id: str) -> Optional[str]:
        with get_db_session() as session:
            row = session.execute(
                select(billing.c.plan).where(billing.c.user_id == user_id)
            ).first()
        return row.plan if row else None

    def set_plan(self, user_id: str, plan: str) -> None:
        with get_db_session() as session:
            updated = session.execute(
                billing.update().where(billing.c.user_id == user_id).values(plan=plan)
            )
            if updated.rowcount == 0:
                session.execute(billing.insert().values(user_id=user_id, plan=plan))


_lookup_executor: Optional[ThreadPoolExecutor] = None


def get_lookup_executor() -> ThreadPoolExecutor:
    """Shared pool for blocking store calls, created on first use."""
    global _lookup_executor
    if _lookup_executor is None:
        _lookup_executor = ThreadPoolExecutor(
            max_workers=settings.BILLING_LOOKUP_WORKERS,
            thread_name_prefix="billing-lookup",
        )
    return _lookup_executor


def shutdown_lookup_executor() -> None:
    global _lookup_executor
    if _lookup_executor is not None:
        _lookup_executor.shutdown(wait=False)
        _lookup_executor = None


async def lookup_plan(store: PlanStore, user_id: str, *, timeout: float = 2.0) -> PlanLookup:
    """Resolve a user's plan tier without letting billing outages block.

    The store is queried on the billing-lookup pool and abandoned after
    `timeout` seconds. An abandoned call still holds its worker until the
    store returns; the pool size caps how many can pile up.
    """
    loop = asyncio.get_running_loop()
    try:
        raw = await asyncio.wait_for(
            loop.run_in_executor(get_lookup_executor(), store.get_plan, user_id),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        return PlanLookup.failure(f"billing lookup timed out after {timeout}s")
    except Exception as exc:
        return PlanLookup.failure(f"billing lookup failed: {exc.__class__.__name__}: {exc}")

    if raw is None:
        return PlanLookup.failure("no billing row")
    return PlanLookup.success(normalize_plan(raw))
