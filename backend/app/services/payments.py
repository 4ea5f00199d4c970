"""Application wiring for the payment and subscription lifecycle."""
from __future__ import annotations

import logging
from functools import lru_cache

from ...mail import create_email_provider, load_email_config
from ..subscriptions import SignatureVerifier, SubscriptionLifecycleService
from ..subscriptions.config import PaymentConfig, load_payment_config
from ..subscriptions.gateway import create_payment_gateway
from ..subscriptions.notifications import EmailSubscriptionNotifier, HtmlInvoiceRenderer
from ..subscriptions.repository import PostgresCompanyRepository

logger = logging.getLogger("payments")


@lru_cache(maxsize=1)
def get_payment_config() -> PaymentConfig:
    return load_payment_config()


def build_payment_service(config: PaymentConfig) -> SubscriptionLifecycleService:
    email_config = load_email_config()
    notifier = EmailSubscriptionNotifier(
        provider=create_email_provider(email_config),
        renderer=HtmlInvoiceRenderer(settings=email_config.invoice),
        settings=email_config.invoice,
        delivery=email_config.delivery,
    )
    gateway = create_payment_gateway(config)
    service = SubscriptionLifecycleService(
        repository=PostgresCompanyRepository(),
        gateway=gateway,
        verifier=SignatureVerifier(
            webhook_secret=config.webhook_secret,
            key_secret=config.key_secret,
        ),
        notifier=notifier,
        currency=config.currency,
    )
    logger.info(
        "Payment service configured gateway=%s currency=%s email_provider=%s",
        gateway.name,
        config.currency,
        email_config.provider_name,
    )
    return service


@lru_cache(maxsize=1)
def get_payment_service() -> SubscriptionLifecycleService:
    return build_payment_service(get_payment_config())


__all__ = ["build_payment_service", "get_payment_config", "get_payment_service"]
