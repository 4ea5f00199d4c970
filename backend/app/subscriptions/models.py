"""Domain models for company subscriptions and payment activations."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PlanId(str, Enum):
    """Closed set of plans a company can be subscribed to."""

    FREE = "free"
    PAID_3_MONTH = "paid-3-month"
    PAID_6_MONTH = "paid-6-month"
    PAID_12_MONTH = "paid-12-month"


class HistoryStatus(str, Enum):
    ACTIVE = "active"


class ActivationSource(str, Enum):
    """Entry path that produced an activation event."""

    WEBHOOK = "webhook"
    CLIENT_CALLBACK = "client_callback"


class CompanySubscription(BaseModel):
    """Current subscription fields stored on a company record."""

    plan: PlanId = PlanId.FREE
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ends_at: Optional[datetime] = None
    job_limit: int = Field(default=3, ge=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="after")
    def _ends_at_matches_plan(self) -> "CompanySubscription":
        if self.plan == PlanId.FREE and self.ends_at is not None:
            raise ValueError("free subscriptions do not have an end date")
        if self.plan != PlanId.FREE and self.ends_at is None:
            raise ValueError("paid subscriptions require an end date")
        return self

    @property
    def is_paid(self) -> bool:
        return self.plan != PlanId.FREE


class Company(BaseModel):
    """Subset of the company record owned by the subscription lifecycle."""

    company_id: str
    email: str
    company_name: Optional[str] = None
    billing_address: Optional[str] = None
    subscription: CompanySubscription = Field(default_factory=CompanySubscription)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SubscriptionHistoryEntry(BaseModel):
    """Append-only record of an applied activation."""

    plan: PlanId
    status: HistoryStatus = HistoryStatus.ACTIVE
    start_at: datetime
    end_at: Optional[datetime] = None
    amount: int = Field(ge=0, description="Amount charged in minor currency units")
    currency: str = Field(min_length=3, max_length=3)
    invoice_id: str
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_provider: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("payment_id", "order_id")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class ActivationEvent(BaseModel):
    """Signature-verified claim that a payment bought a plan for a company."""

    email: Optional[str] = None
    plan: Optional[str] = None
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    provider: str
    source: ActivationSource
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class LedgerAppendResult(BaseModel):
    applied: bool
    entry: SubscriptionHistoryEntry

    model_config = ConfigDict(frozen=True)


class ActivationReceipt(BaseModel):
    """Facts handed to the notifier once an activation has been committed."""

    company_email: str
    company_name: Optional[str] = None
    billing_address: Optional[str] = None
    plan: PlanId
    plan_label: str
    job_limit: int
    start_at: datetime
    end_at: Optional[datetime] = None
    amount: int
    currency: str
    invoice_id: str
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_provider: str
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ActivationOutcome(BaseModel):
    """Result of feeding one activation event through the lifecycle engine."""

    applied: bool
    duplicate: bool = False
    reason: Optional[str] = None
    subscription: Optional[CompanySubscription] = None
    receipt: Optional[ActivationReceipt] = None

    model_config = ConfigDict(frozen=True)


class GatewayOrder(BaseModel):
    """Order object as returned by the payment gateway."""

    order_id: str
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: Optional[str] = None
    notes: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class OrderResult(BaseModel):
    """Outcome of an order request: a gateway order or an immediate free activation."""

    plan: PlanId
    email: str
    order: Optional[GatewayOrder] = None
    subscription: Optional[CompanySubscription] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_free_activation(self) -> bool:
        return self.order is None


class InvoiceDocument(BaseModel):
    filename: str
    content_type: str
    content: bytes

    model_config = ConfigDict(frozen=True)


class SubscriptionSnapshot(BaseModel):
    """Read model describing a company's plan and its activation history."""

    email: str
    subscription: CompanySubscription
    days_remaining: Optional[int] = None
    history: list[SubscriptionHistoryEntry] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)
