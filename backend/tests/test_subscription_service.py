"""Lifecycle engine behaviour for orders, webhooks and client callbacks."""
from __future__ import annotations

import pathlib
import sys
from datetime import timedelta

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.subscriptions import (  # noqa: E402
    ActivationEvent,
    ActivationSource,
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    PlanId,
    SignatureVerifier,
    SubscriptionLifecycleService,
    ValidationError,
)
from backend.app.subscriptions import ledger as ledger_module  # noqa: E402
from backend.app.subscriptions import service as service_module  # noqa: E402
from backend.app.subscriptions.gateway import LocalSandboxGateway  # noqa: E402
from backend.tests.fakes import (  # noqa: E402
    KEY_SECRET,
    WEBHOOK_SECRET,
    InMemoryCompanyRepository,
    RecordingDispatch,
    RecordingNotifier,
    sign_payment,
    sign_webhook,
    webhook_body,
)


@pytest.fixture
def lifecycle_components():
    repository = InMemoryCompanyRepository()
    repository.add_company("c@x.com", company_name="Acme Hiring", billing_address="1 Main St")
    gateway = LocalSandboxGateway()
    notifier = RecordingNotifier()
    service = SubscriptionLifecycleService(
        repository=repository,
        gateway=gateway,
        verifier=SignatureVerifier(webhook_secret=WEBHOOK_SECRET, key_secret=KEY_SECRET),
        notifier=notifier,
    )
    return repository, gateway, notifier, service


def _deliver(service, *, order_id, payment_id, email="c@x.com", plan="paid-3-month", event="payment.captured"):
    body = webhook_body(order_id=order_id, payment_id=payment_id, email=email, plan=plan, event=event)
    return service.handle_webhook(body, sign_webhook(body))


def test_order_then_webhook_then_redelivery(lifecycle_components):
    repository, gateway, notifier, service = lifecycle_components

    result = service.create_order(email="c@x.com", plan="paid-3-month")
    assert result.order is not None
    order_id = result.order.order_id
    assert result.order.amount == 299900
    assert result.order.currency == "INR"
    assert gateway.fetch_order(order_id).notes == {"email": "c@x.com", "plan": "paid-3-month"}

    first = _deliver(service, order_id=order_id, payment_id="p1")
    assert first.applied is True

    company = repository.company("c@x.com")
    history = repository.history[company.company_id]
    assert len(history) == 1
    assert history[0].order_id == order_id
    assert history[0].payment_id == "p1"
    assert history[0].plan == PlanId.PAID_3_MONTH
    assert company.subscription.plan == PlanId.PAID_3_MONTH
    assert company.subscription.job_limit == 15
    assert company.subscription.ends_at - company.subscription.started_at == timedelta(days=90)

    second = _deliver(service, order_id=order_id, payment_id="p1")
    assert second.applied is False
    assert second.duplicate is True
    assert len(repository.history[company.company_id]) == 1
    assert repository.company("c@x.com").subscription == company.subscription
    assert len(notifier.receipts) == 1


def test_webhook_and_client_callback_apply_once(lifecycle_components):
    repository, _, notifier, service = lifecycle_components
    order = service.create_order(email="c@x.com", plan="paid-6-month").order

    webhook_outcome = _deliver(service, order_id=order.order_id, payment_id="pay_9", plan="paid-6-month")
    client_outcome = service.verify_client_payment(
        order_id=order.order_id,
        payment_id="pay_9",
        signature=sign_payment(order.order_id, "pay_9"),
        email="c@x.com",
        plan="paid-6-month",
    )

    assert webhook_outcome.applied is True
    assert client_outcome.applied is False
    assert client_outcome.duplicate is True
    company = repository.company("c@x.com")
    assert len(repository.history[company.company_id]) == 1
    assert len(notifier.receipts) == 1


def test_client_callback_activates_when_claim_matches_order(lifecycle_components):
    repository, _, notifier, service = lifecycle_components
    order = service.create_order(email="c@x.com", plan="paid-12-month").order

    outcome = service.verify_client_payment(
        order_id=order.order_id,
        payment_id="pay_1",
        signature=sign_payment(order.order_id, "pay_1"),
        email="C@X.com",
        plan="paid-12-month",
    )

    assert outcome.applied is True
    company = repository.company("c@x.com")
    assert company.subscription.plan == PlanId.PAID_12_MONTH
    assert company.subscription.job_limit == 30
    assert company.subscription.ends_at - company.subscription.started_at == timedelta(days=365)
    entry = repository.history[company.company_id][0]
    assert entry.payment_provider == "sandbox"
    assert notifier.receipts[0].company_name == "Acme Hiring"
    assert notifier.receipts[0].amount == 899900


def test_client_callback_rejects_claim_not_matching_order(lifecycle_components):
    repository, _, _, service = lifecycle_components
    order = service.create_order(email="c@x.com", plan="paid-3-month").order

    outcome = service.verify_client_payment(
        order_id=order.order_id,
        payment_id="pay_1",
        signature=sign_payment(order.order_id, "pay_1"),
        email="c@x.com",
        plan="paid-12-month",
    )

    assert outcome.applied is False
    assert outcome.reason == "claim_mismatch"
    assert repository.history[repository.company("c@x.com").company_id] == []


def test_client_callback_without_claim_only_verifies(lifecycle_components):
    repository, _, _, service = lifecycle_components

    outcome = service.verify_client_payment(
        order_id="order_x",
        payment_id="pay_x",
        signature=sign_payment("order_x", "pay_x"),
    )

    assert outcome.applied is False
    assert outcome.reason == "no_claim"
    assert repository.company("c@x.com").subscription.plan == PlanId.FREE


def test_client_callback_for_unknown_order_is_not_applied(lifecycle_components):
    _, _, _, service = lifecycle_components

    outcome = service.verify_client_payment(
        order_id="order_missing",
        payment_id="pay_x",
        signature=sign_payment("order_missing", "pay_x"),
        email="c@x.com",
        plan="paid-3-month",
    )

    assert outcome.applied is False
    assert outcome.reason == "order_lookup_failed"


def test_tampered_signatures_never_mutate_state(lifecycle_components):
    repository, _, notifier, service = lifecycle_components
    order = service.create_order(email="c@x.com", plan="paid-3-month").order
    body = webhook_body(order_id=order.order_id, payment_id="p1", email="c@x.com", plan="paid-3-month")

    with pytest.raises(AuthenticationError):
        service.handle_webhook(body, sign_webhook(body, secret="not-the-secret"))
    with pytest.raises(AuthenticationError):
        service.handle_webhook(body.replace(b"paid-3-month", b"paid-12-month"), sign_webhook(body))
    with pytest.raises(AuthenticationError):
        service.verify_client_payment(
            order_id=order.order_id,
            payment_id="p1",
            signature=sign_payment(order.order_id, "p2"),
            email="c@x.com",
            plan="paid-3-month",
        )

    company = repository.company("c@x.com")
    assert company.subscription.plan == PlanId.FREE
    assert repository.history[company.company_id] == []
    assert notifier.receipts == []


def test_webhook_without_configured_secret_fails_closed(lifecycle_components):
    repository, gateway, notifier, _ = lifecycle_components
    service = SubscriptionLifecycleService(
        repository=repository,
        gateway=gateway,
        verifier=SignatureVerifier(webhook_secret=None, key_secret=KEY_SECRET),
        notifier=notifier,
    )
    body = webhook_body(order_id="o1", payment_id="p1", email="c@x.com", plan="paid-3-month")

    with pytest.raises(ConfigurationError):
        service.handle_webhook(body, sign_webhook(body))
    assert repository.company("c@x.com").subscription.plan == PlanId.FREE


def test_free_plan_bypasses_payment(lifecycle_components):
    repository, gateway, _, service = lifecycle_components

    result = service.create_order(email="c@x.com", plan="free")

    assert result.is_free_activation
    assert result.subscription.plan == PlanId.FREE
    assert result.subscription.ends_at is None
    assert result.subscription.job_limit == 3
    company = repository.company("c@x.com")
    assert company.subscription.ends_at is None
    assert repository.history[company.company_id] == []
    assert gateway._orders == {}


def test_create_order_validation(lifecycle_components):
    _, _, _, service = lifecycle_components

    with pytest.raises(ValidationError) as missing:
        service.create_order(email="", plan="paid-3-month")
    assert missing.value.message == "email and plan required"

    with pytest.raises(ValidationError) as invalid:
        service.create_order(email="c@x.com", plan="gold")
    assert invalid.value.message == "Invalid plan"

    with pytest.raises(NotFoundError):
        service.create_order(email="nobody@x.com", plan="paid-3-month")


def test_unhandled_webhook_event_is_acknowledged(lifecycle_components):
    repository, _, _, service = lifecycle_components

    outcome = _deliver(service, order_id="o1", payment_id="p1", event="refund.created")

    assert outcome.applied is False
    assert outcome.reason == "ignored_event"
    assert repository.history[repository.company("c@x.com").company_id] == []


def test_malformed_webhook_payload_is_rejected(lifecycle_components):
    _, _, _, service = lifecycle_components
    body = b"not json"

    with pytest.raises(ValidationError):
        service.handle_webhook(body, sign_webhook(body))


@pytest.mark.parametrize(
    "body",
    [
        b'{"event": ["payment.captured"], "payload": {}}',
        b'{"event": {"name": "payment.captured"}}',
        b'["payment.captured"]',
        b"42",
        b"null",
    ],
)
def test_signed_payloads_without_event_name_are_ignored(lifecycle_components, body):
    repository, _, notifier, service = lifecycle_components

    outcome = service.handle_webhook(body, sign_webhook(body))

    assert outcome.applied is False
    assert outcome.reason == "ignored_event"
    assert repository.history[repository.company("c@x.com").company_id] == []
    assert notifier.receipts == []


@pytest.mark.parametrize(
    ("email", "plan", "reason"),
    [
        (None, "paid-3-month", "missing_email"),
        ("c@x.com", "platinum", "unknown_plan"),
        ("c@x.com", "free", "unknown_plan"),
        ("ghost@x.com", "paid-3-month", "unknown_company"),
    ],
)
def test_unusable_webhook_payloads_are_dropped(lifecycle_components, email, plan, reason):
    repository, _, notifier, service = lifecycle_components

    outcome = _deliver(service, order_id="o1", payment_id="p1", email=email, plan=plan)

    assert outcome.applied is False
    assert outcome.reason == reason
    assert repository.company("c@x.com").subscription.plan == PlanId.FREE
    assert notifier.receipts == []


def test_activation_without_identifiers_is_dropped(lifecycle_components):
    _, _, _, service = lifecycle_components
    event = ActivationEvent(
        email="c@x.com",
        plan="paid-3-month",
        provider="sandbox",
        source=ActivationSource.WEBHOOK,
    )

    outcome = service.apply_activation(event)

    assert outcome.applied is False
    assert outcome.reason == "missing_identifiers"


def test_order_notes_fallback_and_legacy_plan_alias(lifecycle_components):
    repository, _, _, service = lifecycle_components
    body = (
        b'{"event": "order.paid", "payload": {'
        b'"payment": {"entity": {"id": "pay_legacy"}},'
        b'"order": {"entity": {"id": "order_legacy", "notes": {"email": "c@x.com", "plan": "paid6m"}}}}}'
    )

    outcome = service.handle_webhook(body, sign_webhook(body))

    assert outcome.applied is True
    company = repository.company("c@x.com")
    assert company.subscription.plan == PlanId.PAID_6_MONTH
    entry = repository.history[company.company_id][0]
    assert entry.order_id == "order_legacy"
    assert entry.payment_id == "pay_legacy"


def test_latest_activation_wins_even_when_shorter(lifecycle_components):
    repository, _, _, service = lifecycle_components

    _deliver(service, order_id="o_long", payment_id="p_long", plan="paid-12-month")
    _deliver(service, order_id="o_short", payment_id="p_short", plan="paid-3-month")

    company = repository.company("c@x.com")
    assert company.subscription.plan == PlanId.PAID_3_MONTH
    assert company.subscription.job_limit == 15
    assert len(repository.history[company.company_id]) == 2


def test_notifier_failure_does_not_fail_activation(lifecycle_components):
    repository, gateway, _, _ = lifecycle_components
    notifier = RecordingNotifier(fail=True)
    service = SubscriptionLifecycleService(
        repository=repository,
        gateway=gateway,
        verifier=SignatureVerifier(webhook_secret=WEBHOOK_SECRET, key_secret=KEY_SECRET),
        notifier=notifier,
    )

    outcome = _deliver(service, order_id="o1", payment_id="p1")

    assert outcome.applied is True
    assert len(notifier.receipts) == 1
    assert repository.company("c@x.com").subscription.plan == PlanId.PAID_3_MONTH


def test_undelivered_notice_does_not_fail_activation(lifecycle_components):
    repository, gateway, _, _ = lifecycle_components
    notifier = RecordingNotifier(delivered=False)
    service = SubscriptionLifecycleService(
        repository=repository,
        gateway=gateway,
        verifier=SignatureVerifier(webhook_secret=WEBHOOK_SECRET, key_secret=KEY_SECRET),
        notifier=notifier,
    )

    outcome = _deliver(service, order_id="o1", payment_id="p1")

    assert outcome.applied is True
    assert notifier.receipts[0].invoice_id == outcome.receipt.invoice_id


def test_receipt_carries_the_stored_invoice_id(lifecycle_components, monkeypatch):
    repository, _, notifier, service = lifecycle_components
    issued = iter(["INV-1-AAAAAA", "INV-1-AAAAAA", "INV-2-BBBBBB"])
    monkeypatch.setattr(service_module, "new_invoice_id", lambda: next(issued))
    monkeypatch.setattr(ledger_module, "new_invoice_id", lambda: next(issued))

    _deliver(service, order_id="o1", payment_id="p1")
    outcome = _deliver(service, order_id="o2", payment_id="p2")

    assert outcome.applied is True
    assert outcome.receipt.invoice_id == "INV-2-BBBBBB"
    history = repository.history[repository.company("c@x.com").company_id]
    assert [entry.invoice_id for entry in history] == ["INV-1-AAAAAA", "INV-2-BBBBBB"]
    assert notifier.receipts[-1].invoice_id == "INV-2-BBBBBB"


def test_notice_is_handed_to_dispatcher(lifecycle_components):
    _, _, notifier, service = lifecycle_components
    dispatch = RecordingDispatch()
    body = webhook_body(order_id="o1", payment_id="p1", email="c@x.com", plan="paid-3-month")

    outcome = service.handle_webhook(body, sign_webhook(body), dispatch=dispatch)

    assert outcome.applied is True
    assert notifier.receipts == []
    assert len(dispatch.calls) == 1
    dispatch.run_all()
    assert notifier.receipts[0].invoice_id == outcome.receipt.invoice_id


def test_subscription_snapshot(lifecycle_components):
    _, _, _, service = lifecycle_components

    free_snapshot = service.get_subscription_snapshot("c@x.com")
    assert free_snapshot.subscription.plan == PlanId.FREE
    assert free_snapshot.days_remaining is None
    assert free_snapshot.history == []

    _deliver(service, order_id="o1", payment_id="p1", plan="paid-3-month")
    _deliver(service, order_id="o2", payment_id="p2", plan="paid-6-month")

    snapshot = service.get_subscription_snapshot("C@X.COM")
    assert snapshot.subscription.plan == PlanId.PAID_6_MONTH
    assert snapshot.days_remaining == 180
    assert [entry.order_id for entry in snapshot.history] == ["o2", "o1"]

    with pytest.raises(NotFoundError):
        service.get_subscription_snapshot("nobody@x.com")
    with pytest.raises(ValidationError):
        service.get_subscription_snapshot("")
