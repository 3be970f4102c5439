"""
Pytest fixtures and test infrastructure for the WooCommerce import tests.
"""
import pytest
import sqlite3
import os
import sys
from datetime import datetime
from decimal import Decimal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from woo_sync.errors import SourceReadError  # noqa: E402
from woo_sync.models import SourceCustomer, SourceLineItem, SourceOrder  # noqa: E402

# psycopg2 adapts these natively; sqlite needs to be told
sqlite3.register_adapter(Decimal, str)
sqlite3.register_adapter(datetime, lambda value: value.isoformat(" "))


@pytest.fixture
def sqlite_conn():
    """In-memory SQLite database standing in for Supabase."""
    conn = sqlite3.connect(':memory:')
    conn.row_factory = sqlite3.Row
    setup_test_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def postgres_conn():
    """Test PostgreSQL connection (requires TEST_DATABASE_URL env var)."""
    import psycopg2
    url = os.environ.get('TEST_DATABASE_URL')
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    conn = psycopg2.connect(url)
    yield conn
    conn.rollback()  # Don't persist test data
    conn.close()


@pytest.fixture
def legacy_reader():
    """Empty FakeLegacyReader; tests fill its lists."""
    return FakeLegacyReader()


def setup_test_schema(conn):
    """Create the target tables the import writes to."""
    cursor = conn.cursor()
    cursor.executescript('''
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            first_name TEXT,
            last_name TEXT,
            woo_customer_id INTEGER,
            role TEXT,
            created_at TEXT
        );

        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY,
            name TEXT,
            woo_id INTEGER
        );

        CREATE TABLE IF NOT EXISTS legacy_orders (
            id INTEGER PRIMARY KEY,
            woo_order_id INTEGER NOT NULL UNIQUE,
            customer_id INTEGER REFERENCES customers(id),
            woo_customer_id INTEGER,
            order_date TEXT NOT NULL,
            status TEXT,
            subtotal NUMERIC,
            tax NUMERIC,
            shipping NUMERIC,
            total NUMERIC,
            payment_method TEXT,
            billing_email TEXT,
            billing_first_name TEXT,
            billing_last_name TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS legacy_order_items (
            id INTEGER PRIMARY KEY,
            legacy_order_id INTEGER NOT NULL REFERENCES legacy_orders(id),
            woo_order_id INTEGER NOT NULL,
            woo_product_id INTEGER,
            product_id INTEGER,
            product_name TEXT NOT NULL,
            quantity INTEGER NOT NULL DEFAULT 1,
            line_total NUMERIC,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(legacy_order_id, woo_product_id, product_name)
        );

        CREATE TABLE IF NOT EXISTS woo_import_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            import_type TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT,
            status TEXT DEFAULT 'running',
            customers_imported INTEGER DEFAULT 0,
            customers_updated INTEGER DEFAULT 0,
            orders_imported INTEGER DEFAULT 0,
            orders_skipped INTEGER DEFAULT 0,
            line_items_imported INTEGER DEFAULT 0,
            errors TEXT,
            imported_by TEXT,
            notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    ''')
    conn.commit()


class FakeLegacyReader:
    """
    In-memory stand-in for LegacyReader.

    Returns the records it was given (already restricted to completed orders,
    as the SQL does) and records every call. Set fail_on to a method name to
    make that read raise SourceReadError.
    """

    def __init__(self, customers=None, orders=None, line_items=None):
        self.customers = list(customers or [])
        self.orders = list(orders or [])
        self.line_items = list(line_items or [])
        self.calls = []
        self.fail_on = None

    def _check(self, name):
        self.calls.append(name)
        if self.fail_on == name:
            raise SourceReadError(f"{name}: Lost connection to MySQL server during query")

    def read_customers(self, since=None):
        self._check('read_customers')
        if since is None:
            return list(self.customers)
        return [c for c in self.customers if c.registered_at and c.registered_at > since]

    def read_completed_orders(self, since=None):
        self._check('read_completed_orders')
        orders = sorted(self.orders, key=lambda o: o.legacy_order_id)
        if since is None:
            return orders
        return [o for o in orders if o.created_at and o.created_at > since]

    def read_line_items(self):
        self._check('read_line_items')
        return sorted(self.line_items, key=lambda i: i.legacy_order_id)

    def count_customers(self):
        self._check('count_customers')
        return len(self.customers)

    def count_completed_orders(self):
        self._check('count_completed_orders')
        return len(self.orders)

    def count_line_items(self):
        self._check('count_line_items')
        return len(self.line_items)


# Helper functions for tests
def make_customer(legacy_id, email, first_name='Test', last_name='Customer', registered_at=None):
    return SourceCustomer(
        legacy_customer_id=legacy_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        registered_at=registered_at or datetime(2023, 5, 1, 12, 0, 0),
    )


def make_order(legacy_id, customer_id=None, status='wc-completed', total='25.50', created_at=None):
    return SourceOrder(
        legacy_order_id=legacy_id,
        legacy_customer_id=customer_id,
        created_at=created_at or datetime(2023, 6, 1, 9, 30, 0),
        status=status,
        subtotal='22.00',
        tax='1.50',
        shipping='2.00',
        total=total,
    )


def make_line_item(order_id, product_name='Sunflower Microgreens', quantity=2,
                   line_total='12.00', product_id=101):
    return SourceLineItem(
        legacy_order_id=order_id,
        product_name=product_name,
        quantity=quantity,
        line_total=line_total,
        legacy_product_id=product_id,
    )


def create_test_customer(conn, email, woo_customer_id=None):
    """Helper to insert a target customer directly."""
    cursor = conn.cursor()
    cursor.execute(
        'INSERT INTO customers (email, woo_customer_id, role) VALUES (?, ?, ?)',
        (email, woo_customer_id, 'customer')
    )
    customer_id = cursor.lastrowid
    conn.commit()
    return customer_id


def create_test_product(conn, woo_id, name='Pea Shoots'):
    """Helper to insert a target product carrying a WooCommerce id."""
    cursor = conn.cursor()
    cursor.execute('INSERT INTO products (name, woo_id) VALUES (?, ?)', (name, woo_id))
    product_id = cursor.lastrowid
    conn.commit()
    return product_id


def count_rows(conn, table):
    return conn.execute(f'SELECT COUNT(*) FROM {table}').fetchone()[0]
