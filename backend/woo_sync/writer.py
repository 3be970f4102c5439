"""
Target store reads and writes for the import pipeline.

Each write commits on its own: records are independent and a failed record
only rolls back itself. Unique-constraint violations are reported as
DUPLICATE, never as errors; connection failures are re-raised.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from .database import db_placeholder, is_connection_error, is_duplicate_error, safe_rollback
from .models import (
    ExistingCustomer,
    SourceCustomer,
    SourceLineItem,
    SourceOrder,
    WriteOutcome,
    WriteResult,
)

DEFAULT_CUSTOMER_ROLE = 'customer'


class TargetWriter:
    """Insert/update/lookup operations against customers, products and legacy_* tables."""

    def __init__(self, conn):
        self.conn = conn
        self.ph = db_placeholder(conn)

    # -------------------------------------------------------------------------
    # Low-level helpers
    # -------------------------------------------------------------------------

    def _fetchone(self, sql: str, params: Sequence[Any]):
        cursor = self.conn.cursor()
        try:
            cursor.execute(sql, tuple(params))
            return cursor.fetchone()
        except Exception:
            # Postgres leaves the transaction aborted after any error
            safe_rollback(self.conn)
            raise
        finally:
            cursor.close()

    def _write(self, sql: str, params: Sequence[Any], require_rows: bool = False) -> WriteResult:
        """Execute one write and commit it, classifying the failure if any."""
        cursor = self.conn.cursor()
        try:
            cursor.execute(sql, tuple(params))
            self.conn.commit()
            if require_rows and cursor.rowcount == 0:
                return WriteResult(WriteOutcome.UNCHANGED)
            return WriteResult(WriteOutcome.APPLIED)
        except Exception as e:
            safe_rollback(self.conn)
            if is_connection_error(e):
                raise
            if is_duplicate_error(e):
                return WriteResult(WriteOutcome.DUPLICATE, error=str(e))
            return WriteResult(WriteOutcome.FAILED, error=str(e))
        finally:
            cursor.close()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_customer_by_email(self, email: str) -> Optional[ExistingCustomer]:
        """Customer with this (already normalized) email, if any."""
        row = self._fetchone(
            f'SELECT id, woo_customer_id FROM customers WHERE email = {self.ph}',
            (email,)
        )
        if not row:
            return None
        return ExistingCustomer(id=row[0], legacy_customer_id=row[1])

    def find_customer_id(self, legacy_customer_id: int) -> Optional[Any]:
        """Target customer id linked to a WooCommerce customer id."""
        row = self._fetchone(
            f'SELECT id FROM customers WHERE woo_customer_id = {self.ph} LIMIT 1',
            (legacy_customer_id,)
        )
        return row[0] if row else None

    def find_order_id(self, legacy_order_id: int) -> Optional[Any]:
        """Target legacy_orders.id for a WooCommerce order id."""
        row = self._fetchone(
            f'SELECT id FROM legacy_orders WHERE woo_order_id = {self.ph}',
            (legacy_order_id,)
        )
        return row[0] if row else None

    def find_product_id(self, legacy_product_id: int) -> Optional[Any]:
        """Target products.id for a WooCommerce product id."""
        row = self._fetchone(
            f'SELECT id FROM products WHERE woo_id = {self.ph} LIMIT 1',
            (legacy_product_id,)
        )
        return row[0] if row else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert_customer(self, customer: SourceCustomer, email: str) -> WriteResult:
        """Create a customer carrying the WooCommerce cross-reference."""
        ph = self.ph
        created_at = customer.registered_at or datetime.now(timezone.utc)
        return self._write(
            f'''INSERT INTO customers
               (email, first_name, last_name, woo_customer_id, created_at, role)
               VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph})''',
            (email, customer.first_name or None, customer.last_name or None,
             customer.legacy_customer_id, created_at, DEFAULT_CUSTOMER_ROLE)
        )

    def link_customer(self, customer_id: Any, legacy_customer_id: int) -> WriteResult:
        """Backfill woo_customer_id on an existing customer that has none."""
        ph = self.ph
        return self._write(
            f'''UPDATE customers SET woo_customer_id = {ph}
               WHERE id = {ph} AND woo_customer_id IS NULL''',
            (legacy_customer_id, customer_id),
            require_rows=True,
        )

    def insert_order(self, order: SourceOrder, customer_id: Optional[Any], status: str,
                     subtotal: Decimal, tax: Decimal, shipping: Decimal, total: Decimal) -> WriteResult:
        """Create a legacy_orders row."""
        ph = self.ph
        return self._write(
            f'''INSERT INTO legacy_orders
               (woo_order_id, customer_id, woo_customer_id, order_date, status,
                subtotal, tax, shipping, total)
               VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})''',
            (order.legacy_order_id, customer_id, order.legacy_customer_id,
             order.created_at, status, subtotal, tax, shipping, total)
        )

    def insert_line_item(self, item: SourceLineItem, order_id: Any, product_id: Optional[Any],
                         quantity: int, line_total: Decimal) -> WriteResult:
        """Create a legacy_order_items row under an existing legacy order."""
        ph = self.ph
        return self._write(
            f'''INSERT INTO legacy_order_items
               (legacy_order_id, woo_order_id, woo_product_id, product_id,
                product_name, quantity, line_total)
               VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})''',
            (order_id, item.legacy_order_id, item.legacy_product_id, product_id,
             item.product_name, quantity, line_total)
        )
