"""Invoice rendering and activation emails for subscription purchases."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

from ...mail import (
    DeliveryPolicy,
    EmailAttachment,
    EmailProvider,
    InvoiceMailSettings,
    format_amount,
    render_invoice_document,
    render_subscription_invoice,
)
from .models import ActivationReceipt, InvoiceDocument

logger = logging.getLogger(__name__)


class InvoiceRenderer(Protocol):
    """Produces the document attached to an activation email."""

    def render(self, receipt: ActivationReceipt) -> InvoiceDocument:
        ...


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "No expiry"
    return value.strftime("%d %b %Y")


DEFAULT_INVOICE_SETTINGS = InvoiceMailSettings(
    brand_name="Job Portal",
    support_email="noreply@example.com",
    subscription_url="",
)
DEFAULT_DELIVERY = DeliveryPolicy(max_attempts=3, backoff_seconds=2.0)


def build_invoice_context(
    receipt: ActivationReceipt, settings: InvoiceMailSettings = DEFAULT_INVOICE_SETTINGS
) -> Dict[str, Any]:
    """Flatten ``receipt`` into the placeholders used by the invoice templates."""

    return {
        "brand_name": settings.brand_name,
        "support_email": settings.support_email,
        "subscription_url": settings.subscription_url,
        "company_name": receipt.company_name or receipt.company_email,
        "company_email": receipt.company_email,
        "billing_address": receipt.billing_address or "",
        "plan_label": receipt.plan_label,
        "job_limit": receipt.job_limit,
        "invoice_id": receipt.invoice_id,
        "amount_display": format_amount(receipt.amount, receipt.currency),
        "start_date": _format_date(receipt.start_at),
        "end_date": _format_date(receipt.end_at),
        "issued_date": _format_date(receipt.issued_at),
        "payment_reference": receipt.payment_id or receipt.order_id or "",
        "payment_provider": receipt.payment_provider,
    }


@dataclass
class HtmlInvoiceRenderer:
    """Render invoices as standalone HTML documents."""

    settings: InvoiceMailSettings = DEFAULT_INVOICE_SETTINGS

    def render(self, receipt: ActivationReceipt) -> InvoiceDocument:
        context = build_invoice_context(receipt, self.settings)
        body = render_invoice_document(context)
        return InvoiceDocument(
            filename=f"{receipt.invoice_id}.html",
            content_type="text/html",
            content=body.encode("utf-8"),
        )


@dataclass
class EmailSubscriptionNotifier:
    """Send the invoice email for a committed activation.

    Delivery is retried ``delivery.max_attempts`` times with a linear backoff.
    Failures are logged and never raised; ``notify_activation`` reports whether
    the provider accepted the message.
    """

    provider: EmailProvider
    renderer: InvoiceRenderer
    settings: InvoiceMailSettings = DEFAULT_INVOICE_SETTINGS
    delivery: DeliveryPolicy = DEFAULT_DELIVERY
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def notify_activation(self, receipt: ActivationReceipt) -> bool:
        context = build_invoice_context(receipt, self.settings)
        subject, text_body, html_body = render_subscription_invoice(context)

        attachments = []
        try:
            document = self.renderer.render(receipt)
        except Exception:
            logger.exception(
                "Failed to render subscription invoice",
                extra={"payment_invoice_id": receipt.invoice_id},
            )
        else:
            attachments.append(
                EmailAttachment(
                    filename=document.filename,
                    content=document.content,
                    content_type=document.content_type,
                )
            )

        attempts = max(1, self.delivery.max_attempts)
        backoff = max(0.0, self.delivery.backoff_seconds)
        recipient = receipt.company_email

        for attempt in range(1, attempts + 1):
            try:
                self.provider.send_email(recipient, subject, html_body, text_body, attachments)
            except Exception:
                logger.exception(
                    "Failed to send subscription invoice email",
                    extra={
                        "payment_invoice_id": receipt.invoice_id,
                        "email_recipient": recipient,
                        "email_attempt": attempt,
                        "email_attempts": attempts,
                    },
                )
                if attempt >= attempts:
                    break
                if backoff > 0:
                    self.sleep(backoff * attempt)
                continue

            logger.info(
                "Subscription invoice email dispatched",
                extra={
                    "payment_invoice_id": receipt.invoice_id,
                    "email_recipient": recipient,
                    "email_provider": self.provider.describe(),
                },
            )
            return True
        return False


__all__ = [
    "EmailSubscriptionNotifier",
    "HtmlInvoiceRenderer",
    "InvoiceRenderer",
    "build_invoice_context",
]
