"""Payment gateway configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os


@dataclass(frozen=True)
class PaymentConfig:
    """Configuration for the payment gateway and webhook verification."""

    gateway_name: str
    key_id: Optional[str]
    key_secret: Optional[str]
    webhook_secret: Optional[str]
    currency: str
    api_base_url: str
    timeout_seconds: float


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_payment_config(env: Optional[Mapping[str, str]] = None) -> PaymentConfig:
    """Load :class:`PaymentConfig` from environment variables.

    Secrets are not required here; requests that need a missing secret fail
    individually instead of preventing startup.
    """

    env_mapping = os.environ if env is None else env

    gateway_name = (env_mapping.get("PAYMENT_GATEWAY") or "razorpay").strip().lower() or "razorpay"
    currency = (env_mapping.get("PAYMENT_CURRENCY") or "INR").strip().upper() or "INR"
    api_base_url = env_mapping.get("RAZORPAY_API_BASE") or "https://api.razorpay.com/v1"
    timeout_seconds = max(1.0, _to_float(env_mapping.get("PAYMENT_GATEWAY_TIMEOUT"), default=10.0))

    return PaymentConfig(
        gateway_name=gateway_name,
        key_id=_optional(env_mapping.get("RAZORPAY_KEY_ID")),
        key_secret=_optional(env_mapping.get("RAZORPAY_KEY_SECRET")),
        webhook_secret=_optional(env_mapping.get("RAZORPAY_WEBHOOK_SECRET")),
        currency=currency,
        api_base_url=api_base_url.rstrip("/"),
        timeout_seconds=timeout_seconds,
    )


__all__ = ["PaymentConfig", "load_payment_config"]
