"""Persistence layer for company subscriptions and their history."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .catalog import resolve_plan_id
from .ledger import InvoiceIdConflict
from .models import (
    Company,
    CompanySubscription,
    HistoryStatus,
    SubscriptionHistoryEntry,
)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _billing_address(row: dict) -> Optional[str]:
    parts = [row.get("address_line1"), row.get("address_line2"), row.get("address")]
    joined = ", ".join(part.strip() for part in parts if part and part.strip())
    return joined or None


def _row_to_company(row: dict) -> Company:
    return Company(
        company_id=str(row["id"]),
        email=row["email"],
        company_name=row.get("company_name"),
        billing_address=_billing_address(row),
        subscription=CompanySubscription(
            plan=resolve_plan_id(row["subscription_plan"]),
            started_at=row["subscription_started_at"],
            ends_at=row.get("subscription_ends_at"),
            job_limit=int(row["subscription_job_limit"]),
        ),
    )


def _row_to_subscription(row: dict) -> CompanySubscription:
    return CompanySubscription(
        plan=resolve_plan_id(row["subscription_plan"]),
        started_at=row["subscription_started_at"],
        ends_at=row.get("subscription_ends_at"),
        job_limit=int(row["subscription_job_limit"]),
    )


def _row_to_history_entry(row: dict) -> SubscriptionHistoryEntry:
    return SubscriptionHistoryEntry(
        plan=resolve_plan_id(row["plan"]),
        status=HistoryStatus(row["status"]),
        start_at=row["start_at"],
        end_at=row.get("end_at"),
        amount=int(row["amount"]),
        currency=row["currency"],
        invoice_id=row["invoice_id"],
        payment_id=row.get("payment_id"),
        order_id=row.get("order_id"),
        payment_provider=row["payment_provider"],
        created_at=row["created_at"],
    )


class PostgresCompanyRepository:
    """Concrete repository persisting subscription state in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cursor:
            cursor.execute(SCHEMA_PATH.read_text(encoding="utf-8"))

    def get_company_by_email(self, email: str) -> Optional[Company]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM companies
                WHERE LOWER(email) = LOWER(%s)
                LIMIT 1
                """,
                (email,),
            )
            row = cursor.fetchone()
            return _row_to_company(row) if row else None

    def save_subscription(self, company_id: str, subscription: CompanySubscription) -> CompanySubscription:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE companies
                SET subscription_plan = %(plan)s,
                    subscription_started_at = %(started_at)s,
                    subscription_ends_at = %(ends_at)s,
                    subscription_job_limit = %(job_limit)s,
                    subscription_updated_at = NOW()
                WHERE id = %(company_id)s
                RETURNING subscription_plan, subscription_started_at,
                          subscription_ends_at, subscription_job_limit
                """,
                {
                    "company_id": company_id,
                    "plan": subscription.plan.value,
                    "started_at": subscription.started_at,
                    "ends_at": subscription.ends_at,
                    "job_limit": subscription.job_limit,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise LookupError("Company not found")
            return _row_to_subscription(row)

    def append_activation(
        self,
        company_id: str,
        entry: SubscriptionHistoryEntry,
        subscription: CompanySubscription,
    ) -> bool:
        """Insert ``entry`` and apply ``subscription`` in one transaction.

        The partial unique indexes on ``(company_id, payment_id)`` and
        ``(company_id, order_id)`` arbitrate concurrent deliveries of the same
        payment: the losing insert becomes a no-op and the company row is left
        untouched. A skipped insert with no matching payment or order row means
        the invoice id collided, which raises :class:`InvoiceIdConflict`.
        """

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO company_subscription_history (
                    company_id,
                    plan,
                    status,
                    start_at,
                    end_at,
                    amount,
                    currency,
                    invoice_id,
                    payment_id,
                    order_id,
                    payment_provider,
                    created_at
                )
                VALUES (%(company_id)s, %(plan)s, %(status)s, %(start_at)s, %(end_at)s,
                        %(amount)s, %(currency)s, %(invoice_id)s, %(payment_id)s,
                        %(order_id)s, %(payment_provider)s, %(created_at)s)
                ON CONFLICT DO NOTHING
                RETURNING id
                """,
                {
                    "company_id": company_id,
                    "plan": entry.plan.value,
                    "status": entry.status.value,
                    "start_at": entry.start_at,
                    "end_at": entry.end_at,
                    "amount": entry.amount,
                    "currency": entry.currency,
                    "invoice_id": entry.invoice_id,
                    "payment_id": entry.payment_id,
                    "order_id": entry.order_id,
                    "payment_provider": entry.payment_provider,
                    "created_at": entry.created_at,
                },
            )
            if cursor.fetchone() is None:
                cursor.execute(
                    """
                    SELECT 1
                    FROM company_subscription_history
                    WHERE company_id = %(company_id)s
                      AND (payment_id = %(payment_id)s OR order_id = %(order_id)s)
                    LIMIT 1
                    """,
                    {
                        "company_id": company_id,
                        "payment_id": entry.payment_id,
                        "order_id": entry.order_id,
                    },
                )
                if cursor.fetchone() is None:
                    raise InvoiceIdConflict(entry.invoice_id)
                return False

            cursor.execute(
                """
                UPDATE companies
                SET subscription_plan = %(plan)s,
                    subscription_started_at = %(started_at)s,
                    subscription_ends_at = %(ends_at)s,
                    subscription_job_limit = %(job_limit)s,
                    subscription_updated_at = NOW()
                WHERE id = %(company_id)s
                """,
                {
                    "company_id": company_id,
                    "plan": subscription.plan.value,
                    "started_at": subscription.started_at,
                    "ends_at": subscription.ends_at,
                    "job_limit": subscription.job_limit,
                },
            )
            if cursor.rowcount == 0:
                raise LookupError("Company not found")
            return True

    def list_history(self, company_id: str, *, limit: int = 50) -> list[SubscriptionHistoryEntry]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM company_subscription_history
                WHERE company_id = %s
                ORDER BY id DESC
                LIMIT %s
                """,
                (company_id, limit),
            )
            rows = cursor.fetchall() or []
            return [_row_to_history_entry(row) for row in rows]


__all__ = ["PostgresCompanyRepository", "managed_connection"]
