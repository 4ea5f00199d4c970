"""API schemas for payment and subscription endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

from ..subscriptions import (
    OrderResult,
    PlanDefinition,
    SubscriptionHistoryEntry,
    SubscriptionSnapshot,
)


class PaymentConfigResponse(BaseModel):
    key_id: Optional[str] = Field(alias="keyId", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PlanResponse(BaseModel):
    id: str
    label: str
    amount: int
    currency: str
    duration_days: Optional[int] = Field(alias="durationDays", default=None)
    job_limit: int = Field(alias="jobLimit")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_plan(cls, plan: PlanDefinition, *, currency: str) -> "PlanResponse":
        return cls(
            id=plan.id.value,
            label=plan.label,
            amount=plan.price_minor_units,
            currency=currency,
            duration_days=plan.duration_days,
            job_limit=plan.job_limit,
        )


class PlanListResponse(BaseModel):
    plans: List[PlanResponse]


class OrderRequest(BaseModel):
    # Presence is checked by the service so a missing field reports the same
    # "email and plan required" message the checkout page expects.
    email: Optional[EmailStr] = None
    plan: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class OrderResponse(BaseModel):
    """Either a gateway order to complete, or a confirmation of a free plan."""

    plan: str
    email: Optional[str] = None
    order_id: Optional[str] = Field(alias="orderId", default=None)
    amount: Optional[int] = None
    currency: Optional[str] = None
    key_id: Optional[str] = Field(alias="keyId", default=None)
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: OrderResult, *, key_id: Optional[str]) -> "OrderResponse":
        if result.order is None:
            return cls(plan=result.plan.value, message="Free plan activated")
        return cls(
            plan=result.plan.value,
            email=result.email,
            order_id=result.order.order_id,
            amount=result.order.amount,
            currency=result.order.currency,
            key_id=key_id,
        )


class VerifyPaymentRequest(BaseModel):
    order_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("orderId", "razorpay_order_id", "order_id")
    )
    payment_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("paymentId", "razorpay_payment_id", "payment_id")
    )
    signature: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("signature", "razorpay_signature")
    )
    email: Optional[str] = None
    plan: Optional[str] = None

    @field_validator("order_id", "payment_id", "signature", "email", "plan")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class VerifyPaymentResponse(BaseModel):
    success: bool = True


class WebhookAck(BaseModel):
    status: str = "ok"


class SubscriptionHistoryItem(BaseModel):
    plan: str
    status: str
    start_at: datetime = Field(alias="startAt")
    end_at: Optional[datetime] = Field(alias="endAt", default=None)
    amount: int
    currency: str
    invoice_id: str = Field(alias="invoiceId")
    payment_id: Optional[str] = Field(alias="paymentId", default=None)
    order_id: Optional[str] = Field(alias="orderId", default=None)
    payment_provider: str = Field(alias="paymentProvider")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_entry(cls, entry: SubscriptionHistoryEntry) -> "SubscriptionHistoryItem":
        return cls(
            plan=entry.plan.value,
            status=entry.status.value,
            start_at=entry.start_at,
            end_at=entry.end_at,
            amount=entry.amount,
            currency=entry.currency,
            invoice_id=entry.invoice_id,
            payment_id=entry.payment_id,
            order_id=entry.order_id,
            payment_provider=entry.payment_provider,
            created_at=entry.created_at,
        )


class SubscriptionResponse(BaseModel):
    email: str
    plan: str
    started_at: datetime = Field(alias="startedAt")
    ends_at: Optional[datetime] = Field(alias="endsAt", default=None)
    job_limit: int = Field(alias="jobLimit")
    days_remaining: Optional[int] = Field(alias="daysRemaining", default=None)
    paid: bool
    history: List[SubscriptionHistoryItem] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: SubscriptionSnapshot) -> "SubscriptionResponse":
        subscription = snapshot.subscription
        return cls(
            email=snapshot.email,
            plan=subscription.plan.value,
            started_at=subscription.started_at,
            ends_at=subscription.ends_at,
            job_limit=subscription.job_limit,
            days_remaining=snapshot.days_remaining,
            paid=subscription.is_paid,
            history=[SubscriptionHistoryItem.from_entry(entry) for entry in snapshot.history],
        )


__all__ = [
    "OrderRequest",
    "OrderResponse",
    "PaymentConfigResponse",
    "PlanListResponse",
    "PlanResponse",
    "SubscriptionHistoryItem",
    "SubscriptionResponse",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "WebhookAck",
]
