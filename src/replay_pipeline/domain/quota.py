"""Plan limits and billing-period arithmetic.

Every function here is pure: the result depends only on the arguments.
Durations and allowances are expressed in seconds.
"""

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

HOUR = 60 * 60

TRIAL = "trial"
STARTER = "starter"
GROWTH = "growth"
SCALE = "scale"
ENTERPRISE = "enterprise"

PLAN_ORDER = (TRIAL, STARTER, GROWTH, SCALE, ENTERPRISE)
LOWEST_PLAN = PLAN_ORDER[0]

WORKER_LIMITS: dict[str, int] = {
    TRIAL: 2,
    STARTER: 5,
    GROWTH: 10,
    SCALE: 20,
    ENTERPRISE: 100,
}

MONTHLY_ALLOWANCES: dict[str, int] = {
    TRIAL: 1 * HOUR,
    STARTER: 20 * HOUR,
    GROWTH: 100 * HOUR,
    SCALE: 300 * HOUR,
    ENTERPRISE: 999999 * HOUR,
}


@dataclass(frozen=True)
class BillingPeriod:
    """Half-open usage window for a project."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class Quota:
    """Derived quota snapshot for a project."""

    plan: str
    worker_limit: int
    billing_period: BillingPeriod
    usage_seconds: float
    remaining_allowance: float
    active_workers: int
    remaining_workers: int


def resolve_plan(plan: str | None) -> str:
    """Return a known plan name, falling back to the lowest tier."""
    if plan in WORKER_LIMITS:
        return plan
    return LOWEST_PLAN


def worker_limit(plan: str | None) -> int:
    """Return the number of concurrent render workers for a plan."""
    return WORKER_LIMITS[resolve_plan(plan)]


def monthly_allowance(plan: str | None) -> int:
    """Return the billing-period allowance for a plan."""
    return MONTHLY_ALLOWANCES[resolve_plan(plan)]


def billing_period(
    plan: str | None,
    subscribed_at: datetime | None,
    created_at: datetime,
    now: datetime,
) -> BillingPeriod:
    """Return the current billing window.

    The lowest tier accumulates from account creation. Paid tiers roll monthly,
    anchored on the subscription (or creation) day of month.
    """
    if resolve_plan(plan) == LOWEST_PLAN:
        return BillingPeriod(start=created_at, end=now)

    anchor_day = (subscribed_at or created_at).day
    start = _anchor(now.year, now.month, anchor_day)
    if now < start:
        end = start
        start = _anchor(*_shift_month(now.year, now.month, -1), anchor_day)
    else:
        end = _anchor(*_shift_month(now.year, now.month, 1), anchor_day)
    return BillingPeriod(start=start, end=end)


def remaining_worker_capacity(plan: str | None, active_count: int) -> int:
    """Return how many more workers may start for a plan."""
    return max(0, worker_limit(plan) - active_count)


def total_usage(durations: Iterable[float | None]) -> float:
    """Sum session durations, treating missing values as zero."""
    return sum(duration or 0 for duration in durations)


def remaining_allowance(plan: str | None, usage_seconds: float) -> float:
    """Return the unused allowance for the current period."""
    return max(0, monthly_allowance(plan) - usage_seconds)


def has_remaining_allowance(
    plan: str | None, usage_seconds: float, prospective_seconds: float = 0
) -> bool:
    """Return true when adding the prospective duration stays within allowance."""
    return usage_seconds + prospective_seconds <= monthly_allowance(plan)


def format_seconds_to_hours(seconds: float) -> str:
    """Format a duration like ``2h 15m``."""
    hours = int(seconds // HOUR)
    minutes = int((seconds % HOUR) // 60)
    if hours == 0:
        return f"{minutes}m"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _anchor(year: int, month: int, day: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day, last_day), tzinfo=UTC)
