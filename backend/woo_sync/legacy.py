"""
Read-only access to the legacy WooCommerce MySQL database.

Every query returns the complete result set for its scope; the legacy store is
bounded and is never written to.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pymysql
import pymysql.cursors

from .config import ImportConfig, validate_table_prefix
from .errors import SourceReadError
from .models import (
    COMPLETED_STATUSES,
    SourceCustomer,
    SourceLineItem,
    SourceOrder,
    woo_status_value,
)


def connect_legacy(config: ImportConfig):
    """
    Open the legacy MySQL connection with dict rows.

    Raises:
        SourceReadError: If the server is unreachable or rejects credentials
    """
    try:
        return pymysql.connect(
            charset='utf8mb4',
            connect_timeout=10,
            read_timeout=300,
            cursorclass=pymysql.cursors.DictCursor,
            **config.legacy_connect_kwargs(),
        )
    except pymysql.MySQLError as e:
        raise SourceReadError(f"Could not connect to WooCommerce database: {e}") from e


class LegacyReader:
    """Queries against the WooCommerce schema (customers, order stats, order items)."""

    def __init__(self, conn, table_prefix: str):
        self.conn = conn
        self.prefix = validate_table_prefix(table_prefix)

    def table(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _completed_filter(self, column: str) -> Tuple[str, List[str]]:
        """SQL fragment + params restricting column to the completed status class."""
        statuses = [woo_status_value(s) for s in COMPLETED_STATUSES]
        placeholders = ", ".join(["%s"] * len(statuses))
        return f"{column} IN ({placeholders})", statuses

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        try:
            with self.conn.cursor() as cursor:
                cursor.execute(sql, tuple(params))
                return list(cursor.fetchall())
        except pymysql.MySQLError as e:
            raise SourceReadError(f"WooCommerce query failed: {e}") from e

    def _count(self, sql: str, params: Sequence[Any] = ()) -> int:
        rows = self._query(sql, params)
        return int(rows[0]['count']) if rows else 0

    # -------------------------------------------------------------------------
    # Phase reads
    # -------------------------------------------------------------------------

    def read_customers(self, since: Optional[datetime] = None) -> List[SourceCustomer]:
        """All customers, or those registered/active after `since`."""
        sql = f"""
            SELECT
                customer_id AS woo_customer_id,
                email,
                first_name,
                last_name,
                date_registered
            FROM {self.table('wc_customer_lookup')}
        """
        params: List[Any] = []
        if since:
            sql += " WHERE date_last_active > %s OR date_registered > %s"
            params.extend([since, since])

        rows = self._query(sql, params)
        return _map_rows(rows, SourceCustomer.from_row)

    def read_completed_orders(self, since: Optional[datetime] = None) -> List[SourceOrder]:
        """Completed orders in ascending order id, optionally created after `since`."""
        status_sql, params = self._completed_filter('o.status')
        sql = f"""
            SELECT
                o.order_id AS woo_order_id,
                o.customer_id AS woo_customer_id,
                o.date_created AS order_date,
                o.status,
                o.total_sales AS total,
                o.tax_total AS tax,
                o.shipping_total AS shipping,
                o.net_total AS subtotal
            FROM {self.table('wc_order_stats')} o
            WHERE {status_sql}
        """
        if since:
            sql += " AND o.date_created > %s"
            params.append(since)
        sql += " ORDER BY o.order_id"

        rows = self._query(sql, params)
        return _map_rows(rows, SourceOrder.from_row)

    def read_line_items(self) -> List[SourceLineItem]:
        """One row per order item of a completed order, with qty/total/product pivoted out of itemmeta."""
        status_sql, params = self._completed_filter('os.status')
        sql = f"""
            SELECT
                oi.order_id AS woo_order_id,
                oi.order_item_name AS product_name,
                CAST(MAX(CASE WHEN oim.meta_key = '_qty' THEN oim.meta_value END) AS UNSIGNED) AS quantity,
                ROUND(MAX(CASE WHEN oim.meta_key = '_line_total' THEN oim.meta_value END), 2) AS line_total,
                CAST(MAX(CASE WHEN oim.meta_key = '_product_id' THEN oim.meta_value END) AS UNSIGNED) AS woo_product_id
            FROM {self.table('woocommerce_order_items')} oi
            JOIN {self.table('woocommerce_order_itemmeta')} oim ON oi.order_item_id = oim.order_item_id
            JOIN {self.table('wc_order_stats')} os ON oi.order_id = os.order_id
            WHERE oi.order_item_type = 'line_item'
              AND {status_sql}
            GROUP BY oi.order_item_id, oi.order_id, oi.order_item_name
            ORDER BY oi.order_id
        """
        rows = self._query(sql, params)
        return _map_rows(rows, SourceLineItem.from_row)

    # -------------------------------------------------------------------------
    # Counts (stats command)
    # -------------------------------------------------------------------------

    def count_customers(self) -> int:
        return self._count(f"SELECT COUNT(*) AS count FROM {self.table('wc_customer_lookup')}")

    def count_completed_orders(self) -> int:
        status_sql, params = self._completed_filter('status')
        return self._count(
            f"SELECT COUNT(*) AS count FROM {self.table('wc_order_stats')} WHERE {status_sql}",
            params,
        )

    def count_line_items(self) -> int:
        status_sql, params = self._completed_filter('os.status')
        return self._count(
            f"""SELECT COUNT(DISTINCT oi.order_item_id) AS count
               FROM {self.table('woocommerce_order_items')} oi
               JOIN {self.table('wc_order_stats')} os ON oi.order_id = os.order_id
               WHERE oi.order_item_type = 'line_item' AND {status_sql}""",
            params,
        )


def _map_rows(rows, factory) -> list:
    try:
        return [factory(row) for row in rows]
    except (KeyError, TypeError, ValueError) as e:
        raise SourceReadError(f"Unexpected WooCommerce row shape: {e}") from e
