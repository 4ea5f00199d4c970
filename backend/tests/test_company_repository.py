"""SQL-level behaviour of the Postgres company repository."""
from __future__ import annotations

import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.subscriptions import PlanId, SubscriptionHistoryEntry  # noqa: E402
from backend.app.subscriptions.ledger import InvoiceIdConflict  # noqa: E402
from backend.app.subscriptions.repository import PostgresCompanyRepository  # noqa: E402
from backend.app.subscriptions.state import transition  # noqa: E402

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class _ScriptedCursor:
    def __init__(self, rows, rowcount=1):
        self._rows = list(rows)
        self.rowcount = rowcount
        self.statements = []
        self.closed = False

    def execute(self, sql, params=None):
        self.statements.append((" ".join(sql.split()), params))

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self):
        self.closed = True


class _Connection:
    def __init__(self, cursor):
        self._cursor = cursor

    def cursor(self, cursor_factory=None):
        return self._cursor


def _entry(**overrides):
    values = dict(
        plan=PlanId.PAID_3_MONTH,
        start_at=NOW,
        end_at=NOW + timedelta(days=90),
        amount=299900,
        currency="INR",
        invoice_id="INV-1-AAAAAA",
        payment_id="pay_1",
        order_id="order_1",
        payment_provider="razorpay",
        created_at=NOW,
    )
    values.update(overrides)
    return SubscriptionHistoryEntry(**values)


def test_append_activation_inserts_then_updates_company():
    cursor = _ScriptedCursor([{"id": 10}])
    repository = PostgresCompanyRepository(conn=_Connection(cursor))

    applied = repository.append_activation("7", _entry(), transition(PlanId.PAID_3_MONTH, NOW))

    assert applied is True
    insert_sql, insert_params = cursor.statements[0]
    assert "ON CONFLICT DO NOTHING" in insert_sql
    assert insert_params["payment_id"] == "pay_1"
    update_sql, update_params = cursor.statements[1]
    assert update_sql.startswith("UPDATE companies")
    assert update_params["plan"] == "paid-3-month"
    assert update_params["job_limit"] == 15
    assert cursor.closed


def test_conflicting_append_leaves_company_untouched():
    cursor = _ScriptedCursor([None, {"?column?": 1}])
    repository = PostgresCompanyRepository(conn=_Connection(cursor))

    applied = repository.append_activation("7", _entry(), transition(PlanId.PAID_3_MONTH, NOW))

    assert applied is False
    assert len(cursor.statements) == 2
    lookup_sql, lookup_params = cursor.statements[1]
    assert lookup_sql.startswith("SELECT 1 FROM company_subscription_history")
    assert lookup_params == {"company_id": "7", "payment_id": "pay_1", "order_id": "order_1"}


def test_invoice_id_collision_is_not_mistaken_for_duplicate():
    cursor = _ScriptedCursor([])
    repository = PostgresCompanyRepository(conn=_Connection(cursor))

    with pytest.raises(InvoiceIdConflict):
        repository.append_activation("7", _entry(), transition(PlanId.PAID_3_MONTH, NOW))

    assert not any(sql.startswith("UPDATE companies") for sql, _ in cursor.statements)
    assert cursor.closed


def test_company_row_maps_to_model():
    cursor = _ScriptedCursor(
        [
            {
                "id": 7,
                "email": "c@x.com",
                "company_name": "Acme Hiring",
                "address": "Pune",
                "address_line1": "1 Main St",
                "address_line2": None,
                "subscription_plan": "paid6m",
                "subscription_started_at": NOW,
                "subscription_ends_at": NOW + timedelta(days=180),
                "subscription_job_limit": 20,
            }
        ]
    )
    repository = PostgresCompanyRepository(conn=_Connection(cursor))

    company = repository.get_company_by_email("C@X.com")

    assert company.company_id == "7"
    assert company.billing_address == "1 Main St, Pune"
    assert company.subscription.plan == PlanId.PAID_6_MONTH
    assert "LOWER(email) = LOWER(%s)" in cursor.statements[0][0]


def test_history_is_read_newest_first():
    row = {
        "plan": "paid-3-month",
        "status": "active",
        "start_at": NOW,
        "end_at": NOW + timedelta(days=90),
        "amount": 299900,
        "currency": "INR",
        "invoice_id": "INV-1-AAAAAA",
        "payment_id": "pay_1",
        "order_id": None,
        "payment_provider": "razorpay",
        "created_at": NOW,
    }
    cursor = _ScriptedCursor([row])
    repository = PostgresCompanyRepository(conn=_Connection(cursor))

    history = repository.list_history("7", limit=5)

    assert history[0].invoice_id == "INV-1-AAAAAA"
    sql, params = cursor.statements[0]
    assert "ORDER BY id DESC" in sql
    assert params == ("7", 5)
