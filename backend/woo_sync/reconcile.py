"""
Reconciliation of WooCommerce records against the Supabase store.

For each source record the Reconciler decides insert / update / skip, resolves
legacy ids to target ids, and hands the write to the TargetWriter. One
Reconciler serves one invocation: its id caches are never reused across runs.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional

from .database import is_connection_error
from .errors import PhaseError, WooSyncError
from .legacy import LegacyReader
from .models import (
    Action,
    SourceCustomer,
    SourceLineItem,
    SourceOrder,
    WriteIntent,
    WriteOutcome,
    WriteResult,
    normalize_email,
    parse_legacy_status,
    to_money,
)
from .stats import PhaseStats
from .writer import TargetWriter


# Progress is printed every N records
CUSTOMER_PROGRESS_INTERVAL = 100
ORDER_PROGRESS_INTERVAL = 100
LINE_ITEM_PROGRESS_INTERVAL = 500


class Reconciler:
    """Runs the customer, order and line-item phases for one invocation."""

    def __init__(self, reader: LegacyReader, writer: TargetWriter):
        self.reader = reader
        self.writer = writer
        # legacy id -> target id (None = looked up, not found); valid for this run only
        self._order_cache: Dict[int, Optional[Any]] = {}
        self._product_cache: Dict[int, Optional[Any]] = {}

    # -------------------------------------------------------------------------
    # Shared phase loop
    # -------------------------------------------------------------------------

    def _run_phase(self, stats: PhaseStats, fetch: Callable[[], Iterable],
                   handle: Callable[[Any, PhaseStats], None],
                   record_key: Callable[[Any], tuple], progress_every: int) -> PhaseStats:
        """
        Fetch source records and reconcile them one at a time.

        Per-record failures are recorded and the loop moves on; a failed
        fetch or a lost connection aborts the phase with PhaseError.
        """
        try:
            records = fetch()
        except WooSyncError as e:
            stats.record_fatal(str(e))
            raise PhaseError(stats.phase, e, stats) from e

        stats.found = len(records)
        print(f"   Found {stats.found} {stats.phase.replace('_', ' ')} to process", flush=True)

        for record in records:
            try:
                handle(record, stats)
            except Exception as e:
                if is_connection_error(e):
                    stats.record_fatal(str(e))
                    raise PhaseError(stats.phase, e, stats) from e
                key_name, key_value = record_key(record)
                stats.record_error(key_name, key_value, str(e))

            if stats.processed % progress_every == 0:
                print(stats.progress_line(), flush=True)

        return stats

    @staticmethod
    def _count_write(result: WriteResult, stats: PhaseStats, on_applied: Callable[[], None],
                     key_name: str, key_value: Any):
        """
        Apply the write-outcome policy: duplicates and updates that matched
        no rows are skips, other failures are errors.
        """
        if result.outcome == WriteOutcome.APPLIED:
            on_applied()
        elif result.outcome in (WriteOutcome.DUPLICATE, WriteOutcome.UNCHANGED):
            stats.record_skipped()
        else:
            stats.record_error(key_name, key_value, result.error or 'write failed')

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    def plan_customer(self, customer: SourceCustomer) -> WriteIntent:
        """Decide what to do with one legacy customer."""
        email = normalize_email(customer.email)
        if not email:
            return WriteIntent(Action.SKIP, "no email")

        existing = self.writer.find_customer_by_email(email)
        if existing is None:
            return WriteIntent(Action.INSERT)
        if not existing.legacy_customer_id:
            return WriteIntent(Action.UPDATE, existing=existing)
        return WriteIntent(Action.SKIP, "already linked")

    def _import_customer(self, customer: SourceCustomer, stats: PhaseStats):
        email = normalize_email(customer.email)
        intent = self.plan_customer(customer)

        if intent.action == Action.SKIP:
            stats.record_skipped()
        elif intent.action == Action.INSERT:
            result = self.writer.insert_customer(customer, email)
            self._count_write(result, stats, stats.record_imported, 'email', email)
        else:
            result = self.writer.link_customer(intent.existing.id, customer.legacy_customer_id)
            self._count_write(result, stats, stats.record_updated, 'email', email)

    def import_customers(self, since: Optional[datetime] = None) -> PhaseStats:
        """Import or link WooCommerce customers, matched by normalized email."""
        print("\n📥 Starting customer import...", flush=True)
        stats = PhaseStats('customers')
        return self._run_phase(
            stats,
            lambda: self.reader.read_customers(since),
            self._import_customer,
            lambda c: ('email', c.email),
            CUSTOMER_PROGRESS_INTERVAL,
        )

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def resolve_customer(self, legacy_customer_id: Optional[int]) -> Optional[Any]:
        """Target customer id for a legacy customer; None when absent or unlinked."""
        if not legacy_customer_id:
            return None
        return self.writer.find_customer_id(legacy_customer_id)

    def plan_order(self, order: SourceOrder) -> WriteIntent:
        if self.writer.find_order_id(order.legacy_order_id) is not None:
            return WriteIntent(Action.SKIP, "already imported")
        return WriteIntent(Action.INSERT)

    def _import_order(self, order: SourceOrder, stats: PhaseStats):
        if self.plan_order(order).action == Action.SKIP:
            stats.record_skipped()
            return

        status = parse_legacy_status(order.status)
        customer_id = self.resolve_customer(order.legacy_customer_id)
        result = self.writer.insert_order(
            order,
            customer_id=customer_id,
            status=status.value,
            subtotal=to_money(order.subtotal),
            tax=to_money(order.tax),
            shipping=to_money(order.shipping),
            total=to_money(order.total),
        )
        self._count_write(result, stats, stats.record_imported, 'order_id', order.legacy_order_id)

    def import_orders(self, since: Optional[datetime] = None) -> PhaseStats:
        """Import completed WooCommerce orders into legacy_orders."""
        print("\n📥 Starting order import...", flush=True)
        stats = PhaseStats('orders')
        return self._run_phase(
            stats,
            lambda: self.reader.read_completed_orders(since),
            self._import_order,
            lambda o: ('order_id', o.legacy_order_id),
            ORDER_PROGRESS_INTERVAL,
        )

    # -------------------------------------------------------------------------
    # Line items
    # -------------------------------------------------------------------------

    def resolve_order(self, legacy_order_id: int) -> Optional[Any]:
        """Target order id for a legacy order id (memoized for this run)."""
        if legacy_order_id not in self._order_cache:
            self._order_cache[legacy_order_id] = self.writer.find_order_id(legacy_order_id)
        return self._order_cache[legacy_order_id]

    def resolve_product(self, legacy_product_id: Optional[int]) -> Optional[Any]:
        """Target product id for a legacy product id (memoized for this run)."""
        if not legacy_product_id:
            return None
        if legacy_product_id not in self._product_cache:
            self._product_cache[legacy_product_id] = self.writer.find_product_id(legacy_product_id)
        return self._product_cache[legacy_product_id]

    def _import_line_item(self, item: SourceLineItem, stats: PhaseStats):
        order_id = self.resolve_order(item.legacy_order_id)
        if order_id is None:
            stats.record_no_order()
            return

        product_id = self.resolve_product(item.legacy_product_id)
        result = self.writer.insert_line_item(
            item,
            order_id=order_id,
            product_id=product_id,
            quantity=item.quantity or 1,
            line_total=to_money(item.line_total),
        )
        self._count_write(result, stats, stats.record_imported, 'woo_order_id', item.legacy_order_id)

    def import_line_items(self) -> PhaseStats:
        """Import line items of every completed order that already has a legacy_orders row."""
        print("\n📥 Starting line items import...", flush=True)
        stats = PhaseStats('line_items')
        return self._run_phase(
            stats,
            self.reader.read_line_items,
            self._import_line_item,
            lambda i: ('woo_order_id', i.legacy_order_id),
            LINE_ITEM_PROGRESS_INTERVAL,
        )
