"""HMAC verification for gateway payment confirmations."""
from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional, Union

from .exceptions import AuthenticationError, ConfigurationError, ValidationError


def compute_signature(secret: str, message: Union[bytes, str]) -> str:
    """Return the hex HMAC-SHA256 digest the gateway would produce."""

    payload = message.encode("utf-8") if isinstance(message, str) else message
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def _matches(expected: str, provided: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), provided.strip().lower().encode("utf-8"))


@dataclass(frozen=True)
class SignatureVerifier:
    """Validates webhook bodies and client-side payment callbacks.

    Both modes fail closed: an unset secret rejects the request instead of
    letting an unsigned confirmation through.
    """

    webhook_secret: Optional[str]
    key_secret: Optional[str]

    def verify_webhook(self, raw_body: bytes, signature: Optional[str]) -> None:
        if not self.webhook_secret:
            raise ConfigurationError(message="Webhook secret not set")
        if not isinstance(raw_body, (bytes, bytearray)):
            raise ValidationError(message="Webhook body must be the raw request bytes")
        if not signature:
            raise AuthenticationError(message="Invalid webhook signature")

        expected = compute_signature(self.webhook_secret, bytes(raw_body))
        if not _matches(expected, signature):
            raise AuthenticationError(message="Invalid webhook signature")

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> None:
        if not order_id or not payment_id or not signature:
            raise ValidationError(message="Missing payment verification fields")
        if not self.key_secret:
            raise ConfigurationError(message="Payment key secret not set")

        expected = compute_signature(self.key_secret, f"{order_id}|{payment_id}")
        if not _matches(expected, signature):
            raise AuthenticationError(message="Invalid signature")


__all__ = ["SignatureVerifier", "compute_signature"]
