"""Payment gateway adapters used to create and look up orders."""
from __future__ import annotations

import base64
import json
import logging
import time
from threading import Lock
from typing import Dict, Mapping, Optional, Protocol
from urllib import error as urllib_error
from urllib import request as urllib_request
from uuid import uuid4

from .config import PaymentConfig
from .exceptions import ConfigurationError, NotFoundError, ServiceError
from .models import GatewayOrder

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    """External payment processor integration."""

    name: str

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Mapping[str, str],
    ) -> GatewayOrder:
        """Create an order the buyer completes through the checkout widget."""

    def fetch_order(self, order_id: str) -> GatewayOrder:
        """Return an existing order including the notes attached at creation."""


def new_receipt_id() -> str:
    return f"rcpt_{int(time.time() * 1000)}"


def _order_from_payload(payload: Mapping[str, object]) -> GatewayOrder:
    notes = payload.get("notes")
    return GatewayOrder(
        order_id=str(payload["id"]),
        amount=int(payload.get("amount") or 0),
        currency=str(payload.get("currency") or ""),
        receipt=payload.get("receipt") and str(payload.get("receipt")),
        status=payload.get("status") and str(payload.get("status")),
        notes={str(k): str(v) for k, v in notes.items()} if isinstance(notes, dict) else {},
    )


class RazorpayGateway:
    """Orders API client authenticating with the key id and secret."""

    name = "razorpay"

    def __init__(
        self,
        *,
        key_id: Optional[str],
        key_secret: Optional[str],
        api_base_url: str = "https://api.razorpay.com/v1",
        timeout_seconds: float = 10.0,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _authorization(self) -> str:
        if not self.key_id or not self.key_secret:
            raise ConfigurationError(
                message="Payment gateway keys are missing. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET"
            )
        token = base64.b64encode(f"{self.key_id}:{self.key_secret}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"

    def _request(self, method: str, path: str, body: Optional[Dict[str, object]] = None) -> Dict[str, object]:
        headers = {"Authorization": self._authorization(), "Accept": "application/json"}
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        url = f"{self.api_base_url}{path}"
        req = urllib_request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib_request.urlopen(req, timeout=self.timeout_seconds) as response:
                raw = response.read()
            payload = json.loads(raw.decode("utf-8"))
        except urllib_error.HTTPError as exc:
            logger.warning(
                "Payment gateway rejected request",
                extra={"payment_gateway": self.name, "payment_path": path, "http_status": exc.code},
            )
            if exc.code == 404:
                raise NotFoundError(message="Gateway order not found") from exc
            raise ServiceError(message="Payment gateway rejected the request") from exc
        except (urllib_error.URLError, TimeoutError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(
                "Payment gateway unreachable",
                extra={"payment_gateway": self.name, "payment_path": path, "error": str(exc)},
            )
            raise ServiceError(message="Payment gateway unreachable") from exc

        if not isinstance(payload, dict) or "id" not in payload:
            raise ServiceError(message="Unexpected payment gateway response")
        return payload

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Mapping[str, str],
    ) -> GatewayOrder:
        payload = self._request(
            "POST",
            "/orders",
            {"amount": amount, "currency": currency, "receipt": receipt, "notes": dict(notes)},
        )
        return _order_from_payload(payload)

    def fetch_order(self, order_id: str) -> GatewayOrder:
        return _order_from_payload(self._request("GET", f"/orders/{order_id}"))


class LocalSandboxGateway:
    """In-process order book for local development and tests."""

    name = "sandbox"

    def __init__(self) -> None:
        self._orders: Dict[str, GatewayOrder] = {}
        self._lock = Lock()

    def create_order(
        self,
        *,
        amount: int,
        currency: str,
        receipt: str,
        notes: Mapping[str, str],
    ) -> GatewayOrder:
        order = GatewayOrder(
            order_id=f"order_{uuid4().hex[:14]}",
            amount=amount,
            currency=currency,
            receipt=receipt,
            status="created",
            notes=dict(notes),
        )
        with self._lock:
            self._orders[order.order_id] = order
        return order

    def fetch_order(self, order_id: str) -> GatewayOrder:
        with self._lock:
            order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError(message="Gateway order not found")
        return order


def create_payment_gateway(config: PaymentConfig) -> PaymentGateway:
    if config.gateway_name == "sandbox":
        return LocalSandboxGateway()
    return RazorpayGateway(
        key_id=config.key_id,
        key_secret=config.key_secret,
        api_base_url=config.api_base_url,
        timeout_seconds=config.timeout_seconds,
    )


__all__ = [
    "LocalSandboxGateway",
    "PaymentGateway",
    "RazorpayGateway",
    "create_payment_gateway",
    "new_receipt_id",
]
