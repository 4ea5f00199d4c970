"""Lifecycle engine turning verified payment confirmations into plan changes."""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

from .catalog import get_plan
from .exceptions import NotFoundError, PaymentError, ValidationError
from .gateway import PaymentGateway, new_receipt_id
from .ledger import HistoryStore, SubscriptionLedger, new_invoice_id
from .models import (
    ActivationEvent,
    ActivationOutcome,
    ActivationReceipt,
    ActivationSource,
    Company,
    CompanySubscription,
    OrderResult,
    SubscriptionHistoryEntry,
    SubscriptionSnapshot,
)
from .signatures import SignatureVerifier
from .state import free_subscription, transition

logger = logging.getLogger(__name__)

HANDLED_WEBHOOK_EVENTS = frozenset({"payment.captured", "order.paid"})

Dispatch = Callable[..., Any]


class CompanyRepository(HistoryStore, Protocol):
    """Persistence operations required by the lifecycle engine."""

    def get_company_by_email(self, email: str) -> Optional[Company]:
        ...

    def save_subscription(self, company_id: str, subscription: CompanySubscription) -> CompanySubscription:
        ...


class SubscriptionNotifier(Protocol):
    """Delivers the activation confirmation and invoice to the company."""

    def notify_activation(self, receipt: ActivationReceipt) -> bool:
        """Return whether the notice reached the company."""
        ...


@dataclass
class SubscriptionLifecycleService:
    """Coordinates order creation, payment verification and plan activation."""

    repository: CompanyRepository
    gateway: PaymentGateway
    verifier: SignatureVerifier
    notifier: SubscriptionNotifier
    currency: str = "INR"
    ledger: SubscriptionLedger = field(init=False)

    def __post_init__(self) -> None:
        self.ledger = SubscriptionLedger(self.repository)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    # -- order path -------------------------------------------------------

    def create_order(self, *, email: Optional[str], plan: Optional[str]) -> OrderResult:
        email = (email or "").strip()
        if not email or not plan:
            raise ValidationError(message="email and plan required")
        try:
            definition = get_plan(plan)
        except NotFoundError as exc:
            raise ValidationError(message="Invalid plan") from exc

        company = self.repository.get_company_by_email(email)
        if company is None:
            raise NotFoundError(message="Company not found")

        if definition.is_free:
            subscription = self.repository.save_subscription(
                company.company_id, free_subscription(self._now())
            )
            logger.info(
                "Free plan activated",
                extra={"company_id": company.company_id, "payment_plan": definition.id.value},
            )
            return OrderResult(plan=definition.id, email=email, subscription=subscription)

        order = self.gateway.create_order(
            amount=definition.price_minor_units,
            currency=self.currency,
            receipt=new_receipt_id(),
            notes={"email": email, "plan": definition.id.value},
        )
        logger.info(
            "Payment order created",
            extra={
                "company_id": company.company_id,
                "payment_order_id": order.order_id,
                "payment_plan": definition.id.value,
                "payment_amount": order.amount,
            },
        )
        return OrderResult(plan=definition.id, email=email, order=order)

    # -- activation paths -------------------------------------------------

    def verify_client_payment(
        self,
        *,
        order_id: str,
        payment_id: str,
        signature: str,
        email: Optional[str] = None,
        plan: Optional[str] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> ActivationOutcome:
        """Verify a checkout callback and apply the activation it proves.

        The order's own notes are the source of truth for who bought which
        plan; the caller's ``email``/``plan`` must agree with them.
        """

        self.verifier.verify_payment(order_id, payment_id, signature)

        if not email or not plan:
            return ActivationOutcome(applied=False, reason="no_claim")

        try:
            order = self.gateway.fetch_order(order_id)
        except PaymentError as exc:
            logger.warning(
                "Order lookup failed during payment verification",
                extra={"payment_order_id": order_id, "error": exc.message},
            )
            return ActivationOutcome(applied=False, reason="order_lookup_failed")

        noted_email = order.notes.get("email")
        noted_plan = order.notes.get("plan")
        if not noted_email or not noted_plan:
            logger.warning("Order carries no subscription notes", extra={"payment_order_id": order_id})
            return ActivationOutcome(applied=False, reason="order_not_tagged")
        if not _same_claim(email, plan, noted_email, noted_plan):
            logger.warning(
                "Client payment claim does not match order notes",
                extra={"payment_order_id": order_id, "payment_id": payment_id},
            )
            return ActivationOutcome(applied=False, reason="claim_mismatch")

        event = ActivationEvent(
            email=noted_email,
            plan=noted_plan,
            payment_id=payment_id,
            order_id=order_id,
            provider=self.gateway.name,
            source=ActivationSource.CLIENT_CALLBACK,
            occurred_at=self._now(),
        )
        return self.apply_activation(event, dispatch=dispatch)

    def handle_webhook(
        self,
        raw_body: bytes,
        signature: Optional[str],
        *,
        dispatch: Optional[Dispatch] = None,
    ) -> ActivationOutcome:
        self.verifier.verify_webhook(raw_body, signature)

        try:
            payload = json.loads(bytes(raw_body).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError(message="Malformed webhook payload") from exc
        if not isinstance(payload, dict):
            logger.info("Ignoring webhook payload without an event object")
            return ActivationOutcome(applied=False, reason="ignored_event")

        event_type = payload.get("event")
        if not isinstance(event_type, str) or event_type not in HANDLED_WEBHOOK_EVENTS:
            logger.info("Ignoring unhandled webhook event", extra={"payment_event": repr(event_type)})
            return ActivationOutcome(applied=False, reason="ignored_event")

        event = activation_event_from_webhook(payload, provider=self.gateway.name, now=self._now())
        return self.apply_activation(event, dispatch=dispatch)

    def apply_activation(
        self,
        event: ActivationEvent,
        *,
        dispatch: Optional[Dispatch] = None,
    ) -> ActivationOutcome:
        """Apply a verified activation once; invalid events are logged and dropped."""

        log_context = {
            "payment_source": event.source.value,
            "payment_id": event.payment_id,
            "payment_order_id": event.order_id,
        }
        if not event.email:
            logger.warning("Activation without company email ignored", extra=log_context)
            return ActivationOutcome(applied=False, reason="missing_email")
        try:
            plan = get_plan(event.plan)
        except NotFoundError:
            logger.warning("Activation for unknown plan ignored", extra={**log_context, "payment_plan": event.plan})
            return ActivationOutcome(applied=False, reason="unknown_plan")
        if plan.is_free:
            logger.warning("Paid activation naming the free plan ignored", extra=log_context)
            return ActivationOutcome(applied=False, reason="unknown_plan")
        if not (event.payment_id or "").strip() and not (event.order_id or "").strip():
            logger.warning("Activation without payment identifiers ignored", extra=log_context)
            return ActivationOutcome(applied=False, reason="missing_identifiers")

        company = self.repository.get_company_by_email(event.email.strip())
        if company is None:
            logger.warning("Activation for unknown company ignored", extra=log_context)
            return ActivationOutcome(applied=False, reason="unknown_company")

        subscription = transition(plan.id, event.occurred_at)
        entry = SubscriptionHistoryEntry(
            plan=plan.id,
            start_at=subscription.started_at,
            end_at=subscription.ends_at,
            amount=plan.price_minor_units,
            currency=self.currency,
            invoice_id=new_invoice_id(),
            payment_id=event.payment_id,
            order_id=event.order_id,
            payment_provider=event.provider,
        )
        result = self.ledger.append(company, entry, subscription)
        if not result.applied:
            return ActivationOutcome(applied=False, duplicate=True, reason="duplicate")

        logger.info(
            "Subscription activated",
            extra={**log_context, "company_id": company.company_id, "payment_plan": plan.id.value},
        )
        entry = result.entry
        receipt = ActivationReceipt(
            company_email=company.email,
            company_name=company.company_name,
            billing_address=company.billing_address,
            plan=plan.id,
            plan_label=plan.label,
            job_limit=subscription.job_limit,
            start_at=entry.start_at,
            end_at=entry.end_at,
            amount=entry.amount,
            currency=entry.currency,
            invoice_id=entry.invoice_id,
            payment_id=entry.payment_id,
            order_id=entry.order_id,
            payment_provider=entry.payment_provider,
            issued_at=self._now(),
        )
        self._dispatch(dispatch, self.deliver_activation_notice, receipt)
        return ActivationOutcome(applied=True, subscription=subscription, receipt=receipt)

    # -- side effects -----------------------------------------------------

    def deliver_activation_notice(self, receipt: ActivationReceipt) -> None:
        """Send the invoice email; failures are logged and never re-raised."""

        extra = {
            "email_recipient": receipt.company_email,
            "payment_invoice_id": receipt.invoice_id,
        }
        try:
            delivered = self.notifier.notify_activation(receipt)
        except Exception:
            logger.exception("Failed to deliver activation notice", extra=extra)
            return
        if not delivered:
            logger.warning("Activation notice not delivered", extra=extra)

    def _dispatch(self, dispatch: Optional[Dispatch], func: Callable[..., None], *args: Any) -> None:
        if dispatch is None:
            func(*args)
            return
        try:
            dispatch(func, *args)
        except Exception:
            logger.exception("Failed to schedule activation side effect")

    # -- read model -------------------------------------------------------

    def get_subscription_snapshot(self, email: Optional[str], *, limit: int = 50) -> SubscriptionSnapshot:
        email = (email or "").strip()
        if not email:
            raise ValidationError(message="email required")
        company = self.repository.get_company_by_email(email)
        if company is None:
            raise NotFoundError(message="Company not found")

        subscription = company.subscription
        days_remaining: Optional[int] = None
        if subscription.ends_at is not None:
            seconds = (subscription.ends_at - self._now()).total_seconds()
            days_remaining = max(0, math.ceil(seconds / 86400))

        history = self.ledger.history(company, limit=limit)
        return SubscriptionSnapshot(
            email=company.email,
            subscription=subscription,
            days_remaining=days_remaining,
            history=list(history),
        )


def _entity(payload: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    container = payload.get("payload")
    if not isinstance(container, dict):
        return {}
    wrapper = container.get(name)
    if not isinstance(wrapper, dict):
        return {}
    entity = wrapper.get("entity")
    return entity if isinstance(entity, dict) else {}


def activation_event_from_webhook(payload: Mapping[str, Any], *, provider: str, now: datetime) -> ActivationEvent:
    """Normalize a ``payment.captured``/``order.paid`` body into an activation event."""

    payment = _entity(payload, "payment")
    order = _entity(payload, "order")
    notes = payment.get("notes") if isinstance(payment.get("notes"), dict) else None
    if not notes:
        notes = order.get("notes") if isinstance(order.get("notes"), dict) else {}

    order_id = order.get("id") or payment.get("order_id")
    payment_id = payment.get("id")
    return ActivationEvent(
        email=_optional_str(notes.get("email")),
        plan=_optional_str(notes.get("plan")),
        payment_id=_optional_str(payment_id),
        order_id=_optional_str(order_id),
        provider=provider,
        source=ActivationSource.WEBHOOK,
        occurred_at=now,
    )


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _same_claim(email: str, plan: str, noted_email: str, noted_plan: str) -> bool:
    if email.strip().lower() != noted_email.strip().lower():
        return False
    try:
        return get_plan(plan).id == get_plan(noted_plan).id
    except NotFoundError:
        return False


__all__ = [
    "CompanyRepository",
    "HANDLED_WEBHOOK_EVENTS",
    "SubscriptionLifecycleService",
    "SubscriptionNotifier",
    "activation_event_from_webhook",
]
