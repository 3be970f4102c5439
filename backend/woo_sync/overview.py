"""
Source vs target counts for the `stats` command.
"""

from dataclasses import dataclass
from typing import Dict

import pandas as pd

from .database import is_connection_error, is_missing_table_error, safe_rollback
from .errors import TargetConnectionError, TargetReadError
from .legacy import LegacyReader


TARGET_COUNT_QUERIES = {
    'customers': 'SELECT COUNT(*) FROM customers',
    'customers_with_woo_id': 'SELECT COUNT(*) FROM customers WHERE woo_customer_id IS NOT NULL',
    'legacy_orders': 'SELECT COUNT(*) FROM legacy_orders',
    'legacy_order_items': 'SELECT COUNT(*) FROM legacy_order_items',
}


@dataclass
class ImportOverview:
    source_customers: int
    source_orders: int
    source_line_items: int
    target_customers: int
    target_linked_customers: int
    target_orders: int
    target_line_items: int

    @property
    def pending_customers(self) -> int:
        return max(self.source_customers - self.target_linked_customers, 0)

    @property
    def pending_orders(self) -> int:
        return max(self.source_orders - self.target_orders, 0)

    @property
    def pending_line_items(self) -> int:
        return max(self.source_line_items - self.target_line_items, 0)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                'WooCommerce': [self.source_customers, self.source_orders, self.source_line_items],
                'Supabase': [self.target_linked_customers, self.target_orders, self.target_line_items],
                'Pending': [self.pending_customers, self.pending_orders, self.pending_line_items],
            },
            index=['Customers', 'Completed orders', 'Line items'],
        )

    def print_report(self):
        print("\n" + "=" * 70)
        print("WOOCOMMERCE IMPORT OVERVIEW")
        print("=" * 70)
        print()
        print(self.to_frame().to_string())
        print(f"\nSupabase customers (all): {self.target_customers}")
        print("=" * 70)


def count_target_table(conn, sql: str) -> int:
    """Run a COUNT(*) query; a table that does not exist yet counts as 0."""
    cursor = conn.cursor()
    try:
        cursor.execute(sql)
        row = cursor.fetchone()
        return int(row[0]) if row else 0
    except Exception as e:
        safe_rollback(conn)
        if is_missing_table_error(e):
            return 0
        if is_connection_error(e):
            raise TargetConnectionError(f"Target count query failed: {e}") from e
        raise TargetReadError(f"Target count query failed: {e}") from e
    finally:
        cursor.close()


def count_target(conn) -> Dict[str, int]:
    return {name: count_target_table(conn, sql) for name, sql in TARGET_COUNT_QUERIES.items()}


def collect_overview(reader: LegacyReader, conn) -> ImportOverview:
    """
    Gather source and target counts.

    Raises:
        SourceReadError: If the WooCommerce database cannot be queried
        TargetConnectionError: If the target connection is lost
        TargetReadError: If a target count query fails for another reason
    """
    source_customers = reader.count_customers()
    source_orders = reader.count_completed_orders()
    source_line_items = reader.count_line_items()

    target = count_target(conn)
    return ImportOverview(
        source_customers=source_customers,
        source_orders=source_orders,
        source_line_items=source_line_items,
        target_customers=target['customers'],
        target_linked_customers=target['customers_with_woo_id'],
        target_orders=target['legacy_orders'],
        target_line_items=target['legacy_order_items'],
    )
