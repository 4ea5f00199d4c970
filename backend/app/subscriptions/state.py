"""Transitions of a company's current subscription."""
from __future__ import annotations

from datetime import datetime

from .catalog import compute_subscription_dates, get_plan
from .models import CompanySubscription, PlanId


def transition(plan_id: object, now: datetime) -> CompanySubscription:
    """Return the subscription produced by applying ``plan_id`` at ``now``.

    The result replaces whatever the company held before. There is no
    upgrade/downgrade comparison, so a shorter or cheaper plan applied later
    still wins.
    """

    # TODO: revisit once product decides whether a cheaper plan may shrink an open paid window.
    plan = get_plan(plan_id)
    dates = compute_subscription_dates(now, plan.id)
    return CompanySubscription(
        plan=plan.id,
        started_at=dates.started_at,
        ends_at=dates.ends_at,
        job_limit=plan.job_limit,
    )


def free_subscription(now: datetime) -> CompanySubscription:
    return transition(PlanId.FREE, now)


__all__ = ["free_subscription", "transition"]
