"""SQLite marketplace storage.

Implements ``OrderStorage`` and ``PaymentStorage``. Status changes are
conditional updates (``UPDATE ... WHERE id = ? AND status = ?``) so a writer
that read stale state loses instead of overwriting.
"""

import contextlib
import logging
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional, Union

from tasklynk.orders.models import Artifact, Order, OrderStateTransition
from tasklynk.payments.models import Payment
from tasklynk.payments.storage import ConfirmResult
from tasklynk.storage.schema import init_db

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = (
    "display_id",
    "client_id",
    "title",
    "instructions",
    "catalog_key",
    "work_type",
    "pages",
    "slides",
    "units",
    "amount",
    "custom_amount",
    "deadline",
    "freelancer_deadline",
    "requires_reports",
    "status",
    "assigned_freelancer_id",
    "admin_approved",
    "client_approved",
    "payment_confirmed",
    "created_at",
    "updated_at",
    "approved_at",
    "assigned_at",
    "submitted_at",
    "delivered_at",
    "completed_at",
    "cancelled_at",
)

_PAYMENT_COLUMNS = (
    "order_id",
    "payer_id",
    "payee_id",
    "amount",
    "method",
    "payer_reference",
    "provider_reference",
    "checkout_url",
    "receipt_id",
    "status",
    "failure_reason",
    "failure_detail",
    "provider_confirmed",
    "confirmed_by_admin",
    "created_at",
    "updated_at",
    "confirmed_at",
    "failed_at",
)

_BOOL_FIELDS = {
    "custom_amount",
    "requires_reports",
    "admin_approved",
    "client_approved",
    "payment_confirmed",
    "provider_confirmed",
    "confirmed_by_admin",
}


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return int(value)
    return value


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _from_row(row: sqlite3.Row, columns: tuple) -> dict:
    data = {"id": row["id"]}
    for column in columns:
        value = row[column]
        if column in _BOOL_FIELDS:
            value = bool(value)
        elif column == "amount":
            value = Decimal(value)
        elif column.endswith("_at") or column.endswith("deadline"):
            value = _parse_datetime(value)
        data[column] = value
    return data


class SQLiteMarketplaceStorage:
    """SQLite-backed order and payment storage."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            init_db(conn)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that commits, rolls back on error, and always closes."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def _utc_now(self) -> datetime:
        return datetime.now(timezone.utc)

    # === Orders ===

    def save_order(self, order: Order) -> int:
        """Insert a new order."""
        placeholders = ", ".join("?" for _ in _ORDER_COLUMNS)
        values = [_to_db(getattr(order, c)) for c in _ORDER_COLUMNS]
        with self._connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO orders ({', '.join(_ORDER_COLUMNS)}) VALUES ({placeholders})",
                values,
            )
            return cursor.lastrowid

    def get_order(self, order_id: int) -> Optional[Order]:
        """Get an order by ID."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        return Order(**_from_row(row, _ORDER_COLUMNS)) if row else None

    def list_orders(
        self,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        freelancer_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Order]:
        """List orders with optional filters."""
        query = "SELECT * FROM orders WHERE 1=1"
        params: List[Any] = []
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        if client_id is not None:
            query += " AND client_id = ?"
            params.append(client_id)
        if freelancer_id is not None:
            query += " AND assigned_freelancer_id = ?"
            params.append(freelancer_id)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [Order(**_from_row(row, _ORDER_COLUMNS)) for row in rows]

    def update_order(self, order: Order, expected_status: str) -> bool:
        """Conditional update keyed on the expected prior status.

        payment_confirmed is left alone; only commit_confirmation sets it.
        """
        columns = [c for c in _ORDER_COLUMNS if c != "payment_confirmed"]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        values = [_to_db(getattr(order, c)) for c in columns]
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE orders SET {assignments} WHERE id = ? AND status = ?",
                values + [order.id, expected_status],
            )
            updated = cursor.rowcount == 1
        if not updated:
            logger.warning(
                f"Order update rejected (stale status) | id={order.id} | expected={expected_status}"
            )
        return updated

    def max_display_sequence(self, year_prefix: str) -> int:
        """Highest numeric display ID suffix for the year prefix."""
        prefix = f"#{year_prefix}"
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MAX(CAST(SUBSTR(display_id, ?) AS INTEGER)) AS seq "
                "FROM orders WHERE display_id LIKE ?",
                (len(prefix) + 1, f"{prefix}%"),
            ).fetchone()
        return int(row["seq"] or 0)

    # === Artifacts ===

    def save_artifact(self, artifact: Artifact) -> int:
        """Insert artifact metadata."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO order_artifacts
                    (order_id, uploaded_by, artifact_type, file_name, file_url, version, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    artifact.order_id,
                    artifact.uploaded_by,
                    artifact.artifact_type,
                    artifact.file_name,
                    artifact.file_url,
                    artifact.version,
                    _to_db(artifact.created_at),
                ),
            )
            return cursor.lastrowid

    def list_artifacts(self, order_id: int) -> List[Artifact]:
        """All artifacts for an order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM order_artifacts WHERE order_id = ? ORDER BY id", (order_id,)
            ).fetchall()
        return [
            Artifact(
                id=row["id"],
                order_id=row["order_id"],
                uploaded_by=row["uploaded_by"],
                artifact_type=row["artifact_type"],
                file_name=row["file_name"],
                file_url=row["file_url"],
                version=row["version"],
                created_at=_parse_datetime(row["created_at"]),
            )
            for row in rows
        ]

    # === Transitions ===

    def save_transition(self, transition: OrderStateTransition) -> int:
        """Save a state transition record."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO order_transitions
                    (order_id, from_status, to_status, event, actor_id, note, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    transition.order_id,
                    transition.from_status,
                    transition.to_status,
                    transition.event,
                    transition.actor_id,
                    transition.note,
                    _to_db(transition.created_at),
                ),
            )
            return cursor.lastrowid

    def get_transitions(self, order_id: int) -> List[OrderStateTransition]:
        """Get all state transitions for an order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM order_transitions WHERE order_id = ? ORDER BY created_at, id",
                (order_id,),
            ).fetchall()
        return [
            OrderStateTransition(
                id=row["id"],
                order_id=row["order_id"],
                from_status=row["from_status"],
                to_status=row["to_status"],
                event=row["event"],
                actor_id=row["actor_id"],
                note=row["note"],
                created_at=_parse_datetime(row["created_at"]),
            )
            for row in rows
        ]

    # === Payments ===

    def save_payment(self, payment: Payment) -> int:
        """Insert a new payment."""
        placeholders = ", ".join("?" for _ in _PAYMENT_COLUMNS)
        values = [_to_db(getattr(payment, c)) for c in _PAYMENT_COLUMNS]
        with self._connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO payments ({', '.join(_PAYMENT_COLUMNS)}) VALUES ({placeholders})",
                values,
            )
            return cursor.lastrowid

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get a payment by ID."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM payments WHERE id = ?", (payment_id,)).fetchone()
        return Payment(**_from_row(row, _PAYMENT_COLUMNS)) if row else None

    def get_payment_by_provider_reference(self, provider_reference: str) -> Optional[Payment]:
        """Find a payment by gateway reference."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM payments WHERE provider_reference = ? ORDER BY id DESC LIMIT 1",
                (provider_reference,),
            ).fetchone()
        return Payment(**_from_row(row, _PAYMENT_COLUMNS)) if row else None

    def list_payments(
        self,
        order_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Payment]:
        """List payments with optional filters."""
        query = "SELECT * FROM payments WHERE 1=1"
        params: List[Any] = []
        if order_id is not None:
            query += " AND order_id = ?"
            params.append(order_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY id LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [Payment(**_from_row(row, _PAYMENT_COLUMNS)) for row in rows]

    def _write_payment(self, conn: sqlite3.Connection, payment: Payment, expected_status: str):
        assignments = ", ".join(f"{c} = ?" for c in _PAYMENT_COLUMNS)
        values = [_to_db(getattr(payment, c)) for c in _PAYMENT_COLUMNS]
        return conn.execute(
            f"UPDATE payments SET {assignments} WHERE id = ? AND status = ?",
            values + [payment.id, expected_status],
        )

    def update_payment(self, payment: Payment, expected_status: str) -> bool:
        """Conditional update keyed on the expected prior status."""
        with self._connect() as conn:
            cursor = self._write_payment(conn, payment, expected_status)
            return cursor.rowcount == 1

    def commit_confirmation(self, payment: Payment, expected_status: str) -> ConfirmResult:
        """Confirm the payment and flag its order as paid in one transaction."""
        with self._connect() as conn:
            cursor = self._write_payment(conn, payment, expected_status)
            if cursor.rowcount != 1:
                return ConfirmResult.STALE

            confirmed_at = _to_db(payment.confirmed_at or self._utc_now())
            cursor = conn.execute(
                "UPDATE orders SET payment_confirmed = 1, updated_at = ? "
                "WHERE id = ? AND payment_confirmed = 0",
                (confirmed_at, payment.order_id),
            )
            if cursor.rowcount != 1:
                conn.rollback()
                return ConfirmResult.ORDER_ALREADY_PAID
            return ConfirmResult.CONFIRMED
