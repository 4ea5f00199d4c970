"""Outbound email configuration, providers and templates."""

from .config import (
    DeliveryPolicy,
    EmailConfig,
    InvoiceMailSettings,
    SMTPSettings,
    load_email_config,
)
from .providers import (
    DevPrintProvider,
    EmailAttachment,
    EmailProvider,
    SMTPProvider,
    create_email_provider,
)
from .renderer import format_amount, render_invoice_document, render_subscription_invoice

__all__ = [
    "DeliveryPolicy",
    "DevPrintProvider",
    "EmailAttachment",
    "EmailConfig",
    "EmailProvider",
    "InvoiceMailSettings",
    "SMTPProvider",
    "SMTPSettings",
    "create_email_provider",
    "format_amount",
    "load_email_config",
    "render_invoice_document",
    "render_subscription_invoice",
]
