"""Error taxonomy for the payment and subscription lifecycle."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class PaymentError(Exception):
    """Base class for failures surfaced by the payment flows."""

    message: str
    code: str = "payment_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


@dataclass
class ConfigurationError(PaymentError):
    """A required key or secret is not configured."""

    code: str = "configuration_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


@dataclass
class AuthenticationError(PaymentError):
    """A payment confirmation failed signature verification."""

    code: str = "invalid_signature"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class ValidationError(PaymentError):
    code: str = "invalid_request"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class NotFoundError(PaymentError):
    code: str = "not_found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class ServiceError(PaymentError):
    """The payment gateway could not be reached or rejected the call."""

    code: str = "gateway_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "NotFoundError",
    "PaymentError",
    "ServiceError",
    "ValidationError",
]
