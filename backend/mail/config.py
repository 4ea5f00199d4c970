"""Email configuration for invoice and subscription mail."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar
import os

SUPPORTED_PROVIDERS = frozenset({"dev", "smtp"})

_T = TypeVar("_T")


@dataclass(frozen=True)
class SMTPSettings:
    host: str
    port: int
    username: Optional[str]
    password: Optional[str]
    use_tls: bool


@dataclass(frozen=True)
class DeliveryPolicy:
    """Retry behaviour for a single outbound message."""

    max_attempts: int
    backoff_seconds: float


@dataclass(frozen=True)
class InvoiceMailSettings:
    """Branding and links rendered into invoice emails and documents."""

    brand_name: str
    support_email: str
    subscription_url: str


@dataclass(frozen=True)
class EmailConfig:
    provider_name: str
    from_email: str
    smtp: SMTPSettings
    delivery: DeliveryPolicy
    invoice: InvoiceMailSettings


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _parse(value: Optional[str], cast: Callable[[str], _T], *, default: _T, name: str) -> _T:
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}, got {value!r}") from exc


def _text(env: Mapping[str, str], name: str, default: str) -> str:
    return (env.get(name) or "").strip() or default


def load_email_config(env: Optional[Mapping[str, str]] = None) -> EmailConfig:
    """Load :class:`EmailConfig` from environment variables.

    ``EMAIL_PROVIDER`` must name a supported provider; the default ``dev``
    provider only logs messages.
    """

    env_mapping = os.environ if env is None else env

    provider_name = _text(env_mapping, "EMAIL_PROVIDER", "dev").lower()
    if provider_name not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported EMAIL_PROVIDER {provider_name!r}")
    from_email = _text(env_mapping, "FROM_EMAIL", "noreply@example.com")

    smtp = SMTPSettings(
        host=_text(env_mapping, "SMTP_HOST", "localhost"),
        port=_parse(env_mapping.get("SMTP_PORT"), int, default=587, name="SMTP_PORT"),
        username=env_mapping.get("SMTP_USER") or None,
        password=env_mapping.get("SMTP_PASS") or None,
        use_tls=_to_bool(env_mapping.get("SMTP_USE_TLS"), default=True),
    )

    delivery = DeliveryPolicy(
        max_attempts=max(
            1, _parse(env_mapping.get("EMAIL_MAX_ATTEMPTS"), int, default=3, name="EMAIL_MAX_ATTEMPTS")
        ),
        backoff_seconds=max(
            0.0,
            _parse(env_mapping.get("EMAIL_RETRY_BACKOFF"), float, default=2.0, name="EMAIL_RETRY_BACKOFF"),
        ),
    )

    app_base_url = _text(env_mapping, "APP_BASE_URL", "http://localhost:5173").rstrip("/")
    invoice = InvoiceMailSettings(
        brand_name=_text(env_mapping, "BRAND_NAME", "Job Portal"),
        support_email=_text(env_mapping, "SUPPORT_EMAIL", from_email),
        subscription_url=_text(env_mapping, "SUBSCRIPTION_URL", f"{app_base_url}/company/subscription"),
    )

    return EmailConfig(
        provider_name=provider_name,
        from_email=from_email,
        smtp=smtp,
        delivery=delivery,
        invoice=invoice,
    )


__all__ = [
    "DeliveryPolicy",
    "EmailConfig",
    "InvoiceMailSettings",
    "SMTPSettings",
    "load_email_config",
]
