"""Append-only subscription history with payment/order de-duplication."""
from __future__ import annotations

import logging
import secrets
import string
import time
from typing import Optional, Protocol, Sequence

from .models import (
    Company,
    CompanySubscription,
    LedgerAppendResult,
    SubscriptionHistoryEntry,
)

logger = logging.getLogger(__name__)

_INVOICE_ALPHABET = string.ascii_uppercase + string.digits
INVOICE_ID_ATTEMPTS = 3


class InvoiceIdConflict(Exception):
    """Raised by a store when an entry's invoice id is already taken."""


class HistoryStore(Protocol):
    """Storage operations backing the ledger.

    ``append_activation`` must insert ``entry`` and overwrite the company's
    subscription fields in one atomic step, and do neither when another entry
    of the same company already carries the entry's payment id or order id.
    Implementations enforce this with a uniqueness constraint in storage.
    A clash on ``invoice_id`` alone is reported as :class:`InvoiceIdConflict`.
    """

    def append_activation(
        self,
        company_id: str,
        entry: SubscriptionHistoryEntry,
        subscription: CompanySubscription,
    ) -> bool:
        ...

    def list_history(self, company_id: str, *, limit: int = 50) -> Sequence[SubscriptionHistoryEntry]:
        ...


def new_invoice_id(now_ms: Optional[int] = None) -> str:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_INVOICE_ALPHABET) for _ in range(6))
    return f"INV-{stamp}-{suffix}"


class SubscriptionLedger:
    """Gatekeeper for applying activations at most once per payment or order."""

    def __init__(self, store: HistoryStore) -> None:
        self._store = store

    def append(
        self,
        company: Company,
        entry: SubscriptionHistoryEntry,
        subscription: CompanySubscription,
    ) -> LedgerAppendResult:
        if entry.payment_id is None and entry.order_id is None:
            # Nothing to de-duplicate on; never accept anonymous activations.
            raise ValueError("history entries require a payment id or an order id")

        for attempt in range(1, INVOICE_ID_ATTEMPTS + 1):
            try:
                applied = self._store.append_activation(company.company_id, entry, subscription)
            except InvoiceIdConflict:
                if attempt == INVOICE_ID_ATTEMPTS:
                    raise
                logger.warning(
                    "Invoice id already taken, retrying",
                    extra={"company_id": company.company_id, "payment_invoice_id": entry.invoice_id},
                )
                entry = entry.model_copy(update={"invoice_id": new_invoice_id()})
            else:
                break

        log_context = {
            "company_id": company.company_id,
            "payment_id": entry.payment_id,
            "payment_order_id": entry.order_id,
            "payment_plan": entry.plan.value,
        }
        if applied:
            logger.info(
                "Subscription history entry appended",
                extra={**log_context, "payment_invoice_id": entry.invoice_id},
            )
        else:
            logger.info("Duplicate activation ignored", extra=log_context)
        return LedgerAppendResult(applied=applied, entry=entry)

    def history(self, company: Company, *, limit: int = 50) -> Sequence[SubscriptionHistoryEntry]:
        return self._store.list_history(company.company_id, limit=limit)


__all__ = [
    "INVOICE_ID_ATTEMPTS",
    "HistoryStore",
    "InvoiceIdConflict",
    "SubscriptionLedger",
    "new_invoice_id",
]
