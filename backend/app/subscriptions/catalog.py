"""Static catalog definitions for company subscription plans."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .exceptions import NotFoundError
from .models import PlanId


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a purchasable plan and the job quota it grants."""

    id: PlanId
    label: str
    price_minor_units: int
    duration_days: Optional[int]
    job_limit: int

    @property
    def is_free(self) -> bool:
        return self.id == PlanId.FREE


@dataclass(frozen=True)
class SubscriptionDates:
    started_at: datetime
    ends_at: Optional[datetime]


PLAN_CATALOG: Mapping[PlanId, PlanDefinition] = MappingProxyType(
    {
        PlanId.FREE: PlanDefinition(
            id=PlanId.FREE,
            label="Free",
            price_minor_units=0,
            duration_days=None,
            job_limit=3,
        ),
        PlanId.PAID_3_MONTH: PlanDefinition(
            id=PlanId.PAID_3_MONTH,
            label="3 Months",
            price_minor_units=299900,
            duration_days=90,
            job_limit=15,
        ),
        PlanId.PAID_6_MONTH: PlanDefinition(
            id=PlanId.PAID_6_MONTH,
            label="6 Months",
            price_minor_units=499900,
            duration_days=180,
            job_limit=20,
        ),
        PlanId.PAID_12_MONTH: PlanDefinition(
            id=PlanId.PAID_12_MONTH,
            label="12 Months",
            price_minor_units=899900,
            duration_days=365,
            job_limit=30,
        ),
    }
)

# Compact ids written into gateway order notes by older deployments.
LEGACY_PLAN_ALIASES: Mapping[str, PlanId] = MappingProxyType(
    {
        "paid3m": PlanId.PAID_3_MONTH,
        "paid6m": PlanId.PAID_6_MONTH,
        "paid12m": PlanId.PAID_12_MONTH,
    }
)


def resolve_plan_id(raw: object) -> PlanId:
    """Map a raw plan identifier onto :class:`PlanId`, raising if unknown."""

    if isinstance(raw, PlanId):
        return raw
    candidate = str(raw or "").strip().lower()
    if candidate in LEGACY_PLAN_ALIASES:
        return LEGACY_PLAN_ALIASES[candidate]
    try:
        return PlanId(candidate)
    except ValueError as exc:
        raise NotFoundError(message=f"Unknown plan: {raw}") from exc


def get_plan(plan_id: object) -> PlanDefinition:
    """Return a plan definition, raising :class:`NotFoundError` if unsupported."""

    return PLAN_CATALOG[resolve_plan_id(plan_id)]


def list_plans() -> Tuple[PlanDefinition, ...]:
    return tuple(PLAN_CATALOG.values())


def compute_subscription_dates(now: datetime, plan_id: object) -> SubscriptionDates:
    """Derive the subscription window for a plan activated at ``now``.

    Paid plans end ``duration_days`` after activation; the free plan has no end.
    """

    plan = get_plan(plan_id)
    started_at = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    if plan.duration_days is None:
        return SubscriptionDates(started_at=started_at, ends_at=None)
    return SubscriptionDates(
        started_at=started_at,
        ends_at=started_at + timedelta(days=plan.duration_days),
    )


__all__ = [
    "LEGACY_PLAN_ALIASES",
    "PLAN_CATALOG",
    "PlanDefinition",
    "SubscriptionDates",
    "compute_subscription_dates",
    "get_plan",
    "list_plans",
    "resolve_plan_id",
]
