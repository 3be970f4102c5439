"""
Tests for TargetWriter lookups, writes and failure classification.
"""
import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

from conftest import create_test_customer, create_test_product, make_customer, make_line_item, make_order


class TestLookups:
    """Test target lookups by natural key and cross-reference."""

    def test_find_customer_by_email(self, sqlite_conn):
        from woo_sync.writer import TargetWriter

        customer_id = create_test_customer(sqlite_conn, 'a@example.com', woo_customer_id=9)
        writer = TargetWriter(sqlite_conn)

        existing = writer.find_customer_by_email('a@example.com')

        assert existing.id == customer_id
        assert existing.legacy_customer_id == 9

    def test_find_customer_by_email_missing(self, sqlite_conn):
        from woo_sync.writer import TargetWriter

        assert TargetWriter(sqlite_conn).find_customer_by_email('nobody@example.com') is None

    def test_find_customer_id_by_legacy_id(self, sqlite_conn):
        from woo_sync.writer import TargetWriter

        customer_id = create_test_customer(sqlite_conn, 'b@example.com', woo_customer_id=12)

        assert TargetWriter(sqlite_conn).find_customer_id(12) == customer_id
        assert TargetWriter(sqlite_conn).find_customer_id(13) is None

    def test_find_product_id(self, sqlite_conn):
        from woo_sync.writer import TargetWriter

        product_id = create_test_product(sqlite_conn, woo_id=101)

        assert TargetWriter(sqlite_conn).find_product_id(101) == product_id
        assert TargetWriter(sqlite_conn).find_product_id(999) is None


class TestWrites:
    """Test insert/update statements."""

    def test_insert_customer_sets_cross_reference(self, sqlite_conn):
        from woo_sync.models import WriteOutcome
        from woo_sync.writer import TargetWriter

        writer = TargetWriter(sqlite_conn)
        result = writer.insert_customer(make_customer(5, 'New@Example.com'), 'new@example.com')

        assert result.outcome == WriteOutcome.APPLIED
        row = sqlite_conn.execute(
            'SELECT email, woo_customer_id, role, created_at FROM customers'
        ).fetchone()
        assert row['email'] == 'new@example.com'
        assert row['woo_customer_id'] == 5
        assert row['role'] == 'customer'
        assert row['created_at'].startswith('2023-05-01')

    def test_insert_customer_without_registration_date_uses_now(self, sqlite_conn):
        from woo_sync.writer import TargetWriter

        customer = make_customer(6, 'late@example.com')
        customer.registered_at = None
        TargetWriter(sqlite_conn).insert_customer(customer, 'late@example.com')

        created_at = sqlite_conn.execute('SELECT created_at FROM customers').fetchone()[0]
        assert created_at.startswith(str(datetime.now().year))

    def test_link_customer_only_when_unlinked(self, sqlite_conn):
        """The backfill never overwrites an existing cross-reference."""
        from woo_sync.models import WriteOutcome
        from woo_sync.writer import TargetWriter

        customer_id = create_test_customer(sqlite_conn, 'c@example.com', woo_customer_id=1)
        result = TargetWriter(sqlite_conn).link_customer(customer_id, 2)

        assert result.outcome == WriteOutcome.UNCHANGED
        linked = sqlite_conn.execute('SELECT woo_customer_id FROM customers').fetchone()[0]
        assert linked == 1

    def test_link_customer_applied(self, sqlite_conn):
        from woo_sync.models import WriteOutcome
        from woo_sync.writer import TargetWriter

        customer_id = create_test_customer(sqlite_conn, 'd@example.com')

        result = TargetWriter(sqlite_conn).link_customer(customer_id, 3)

        assert result.outcome == WriteOutcome.APPLIED

    def test_insert_order_and_line_item(self, sqlite_conn):
        from woo_sync.writer import TargetWriter

        writer = TargetWriter(sqlite_conn)
        writer.insert_order(
            make_order(700), customer_id=None, status='completed',
            subtotal=Decimal('22.00'), tax=Decimal('1.50'),
            shipping=Decimal('2.00'), total=Decimal('25.50'),
        )
        order_id = writer.find_order_id(700)
        result = writer.insert_line_item(
            make_line_item(700), order_id=order_id, product_id=None,
            quantity=2, line_total=Decimal('12.00'),
        )

        assert result.applied
        item = sqlite_conn.execute(
            'SELECT legacy_order_id, woo_order_id, woo_product_id, quantity FROM legacy_order_items'
        ).fetchone()
        assert item['legacy_order_id'] == order_id
        assert item['woo_order_id'] == 700
        assert item['woo_product_id'] == 101
        assert item['quantity'] == 2


class TestFailureClassification:
    """Test how write failures are reported."""

    def test_unique_violation_is_duplicate(self, sqlite_conn):
        from woo_sync.models import WriteOutcome
        from woo_sync.writer import TargetWriter

        create_test_customer(sqlite_conn, 'dup@example.com')
        result = TargetWriter(sqlite_conn).insert_customer(make_customer(7, 'dup@example.com'), 'dup@example.com')

        assert result.outcome == WriteOutcome.DUPLICATE

    def test_other_failure_is_failed_with_message(self, sqlite_conn):
        """A NOT NULL violation is a plain failure, not a duplicate."""
        from woo_sync.models import SourceOrder, WriteOutcome
        from woo_sync.writer import TargetWriter

        undated = SourceOrder(legacy_order_id=800, legacy_customer_id=None, created_at=None, status='wc-completed')
        result = TargetWriter(sqlite_conn).insert_order(
            undated,
            customer_id=None, status='completed', subtotal=Decimal('0'), tax=Decimal('0'),
            shipping=Decimal('0'), total=Decimal('0'),
        )

        assert result.outcome == WriteOutcome.FAILED
        assert 'NOT NULL' in result.error

    def test_failed_write_leaves_connection_usable(self, sqlite_conn):
        from woo_sync.writer import TargetWriter

        writer = TargetWriter(sqlite_conn)
        create_test_customer(sqlite_conn, 'dup@example.com')
        writer.insert_customer(make_customer(7, 'dup@example.com'), 'dup@example.com')

        result = writer.insert_customer(make_customer(8, 'fresh@example.com'), 'fresh@example.com')

        assert result.applied
        assert writer.find_customer_by_email('fresh@example.com') is not None

    def test_connection_error_is_raised(self):
        """A dead connection aborts instead of being counted per record."""
        from woo_sync.writer import TargetWriter

        conn = MagicMock()
        conn.cursor.return_value.execute.side_effect = Exception("server closed the connection unexpectedly")
        writer = TargetWriter(conn)

        with pytest.raises(Exception, match="server closed the connection"):
            writer.insert_customer(make_customer(1, 'x@example.com'), 'x@example.com')
        conn.rollback.assert_called_once()

    def test_postgres_unique_violation_pgcode(self):
        """psycopg2 unique violations are recognized by SQLSTATE."""
        from woo_sync.database import is_duplicate_error

        error = Exception("ERROR: could not insert")
        error.pgcode = '23505'

        assert is_duplicate_error(error) is True

    def test_duplicate_message_recognized(self):
        from woo_sync.database import is_duplicate_error

        assert is_duplicate_error(Exception('duplicate key value violates unique constraint "customers_email_key"'))
        assert not is_duplicate_error(Exception('null value in column "email"'))
