"""Tests for plan limits and billing periods."""

from datetime import UTC, datetime

import pytest

from replay_pipeline.domain import quota


def test_worker_limits_positive_and_non_decreasing() -> None:
    limits = [quota.worker_limit(plan) for plan in quota.PLAN_ORDER]

    assert all(limit > 0 for limit in limits)
    assert limits == sorted(limits)


@pytest.mark.parametrize("plan", [None, "", "platinum"])
def test_unknown_plan_falls_back_to_lowest_tier(plan) -> None:
    assert quota.worker_limit(plan) == quota.WORKER_LIMITS[quota.LOWEST_PLAN]
    assert quota.monthly_allowance(plan) == quota.MONTHLY_ALLOWANCES["trial"]


@pytest.mark.parametrize("plan", [*quota.PLAN_ORDER, None])
@pytest.mark.parametrize("active", [0, 1, 5, 50, 1000])
def test_remaining_worker_capacity_never_negative(plan, active) -> None:
    remaining = quota.remaining_worker_capacity(plan, active)

    assert remaining >= 0
    assert remaining == max(0, quota.worker_limit(plan) - active)


def test_trial_billing_period_is_cumulative() -> None:
    created = datetime(2023, 6, 1, tzinfo=UTC)
    now = datetime(2024, 2, 10, tzinfo=UTC)

    period = quota.billing_period("trial", None, created, now)

    assert period.start == created
    assert period.end == now


def test_paid_period_falls_back_to_previous_anchor() -> None:
    subscribed = datetime(2024, 1, 15, 9, 30, tzinfo=UTC)
    now = datetime(2024, 2, 10, tzinfo=UTC)

    period = quota.billing_period("growth", subscribed, subscribed, now)

    assert period.start == datetime(2024, 1, 15, tzinfo=UTC)
    assert period.end == datetime(2024, 2, 15, tzinfo=UTC)
    assert period.start < now < period.end


def test_paid_period_after_anchor_uses_current_month() -> None:
    subscribed = datetime(2023, 11, 15, tzinfo=UTC)
    now = datetime(2024, 2, 20, tzinfo=UTC)

    period = quota.billing_period("scale", subscribed, subscribed, now)

    assert period.start == datetime(2024, 2, 15, tzinfo=UTC)
    assert period.end == datetime(2024, 3, 15, tzinfo=UTC)


def test_paid_period_uses_created_at_without_subscription() -> None:
    created = datetime(2023, 5, 3, tzinfo=UTC)
    now = datetime(2024, 1, 2, tzinfo=UTC)

    period = quota.billing_period("starter", None, created, now)

    assert period.start == datetime(2023, 12, 3, tzinfo=UTC)
    assert period.end == datetime(2024, 1, 3, tzinfo=UTC)


def test_anchor_day_clamps_to_short_month() -> None:
    subscribed = datetime(2024, 1, 31, tzinfo=UTC)
    now = datetime(2024, 3, 10, tzinfo=UTC)

    period = quota.billing_period("growth", subscribed, subscribed, now)

    assert period.start == datetime(2024, 2, 29, tzinfo=UTC)
    assert period.end == datetime(2024, 3, 31, tzinfo=UTC)


def test_billing_period_is_deterministic() -> None:
    subscribed = datetime(2024, 1, 15, tzinfo=UTC)
    created = datetime(2023, 1, 1, tzinfo=UTC)
    now = datetime(2024, 2, 10, tzinfo=UTC)

    first = quota.billing_period("growth", subscribed, created, now)
    quota.billing_period("trial", None, created, now)
    second = quota.billing_period("growth", subscribed, created, now)

    assert first == second


def test_allowance_checks_include_prospective_duration() -> None:
    limit = quota.monthly_allowance("trial")

    assert quota.has_remaining_allowance("trial", limit - 60, 60)
    assert not quota.has_remaining_allowance("trial", limit - 60, 61)
    assert quota.remaining_allowance("trial", limit + 500) == 0
    assert quota.remaining_allowance("trial", 600) == limit - 600


def test_total_usage_ignores_missing_durations() -> None:
    assert quota.total_usage([30, None, 12.5]) == 42.5


def test_format_seconds_to_hours() -> None:
    assert quota.format_seconds_to_hours(59 * 60) == "59m"
    assert quota.format_seconds_to_hours(2 * quota.HOUR) == "2h"
    assert quota.format_seconds_to_hours(quota.HOUR + 30 * 60) == "1h 30m"
