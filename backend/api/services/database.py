"""
Database service for the Supabase Postgres connection.

Loads SUPABASE_DB_URL from backend/.env and hands out cursors to the API
routes. The import job itself opens its own connection per run.
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

import psycopg2
import psycopg2.extras
from dotenv import load_dotenv

from woo_sync.database import is_missing_table_error


# Load .env from backend directory
_backend_dir = Path(__file__).parent.parent.parent
_env_path = _backend_dir / ".env"
load_dotenv(_env_path)


def get_database_url() -> Optional[str]:
    """Get the Supabase Postgres URL from environment variables."""
    return os.getenv("SUPABASE_DB_URL")


class DatabasePool:
    """
    Single reusable Postgres connection shared by the API routes.

    Reconnects transparently when the connection has dropped.
    """

    def __init__(self):
        self._conn: Optional[psycopg2.extensions.connection] = None
        self._db_url: Optional[str] = None

    def initialize(self) -> None:
        """Initialize the database connection."""
        self._db_url = get_database_url()
        if not self._db_url:
            raise ValueError(
                "SUPABASE_DB_URL not found in environment. "
                "Please set it in backend/.env"
            )
        self._connect()

    def _connect(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except Exception:
                pass

        self._conn = psycopg2.connect(self._db_url)
        self._conn.autocommit = False

    def _ensure_connection(self) -> None:
        """Ensure the connection is alive, reconnect if needed."""
        if self._conn is None:
            self._connect()
            return

        try:
            with self._conn.cursor() as cursor:
                cursor.execute("SELECT 1")
        except (psycopg2.OperationalError, psycopg2.InterfaceError):
            self._connect()

    @contextmanager
    def get_connection(self) -> Generator[psycopg2.extensions.connection, None, None]:
        """Yield the shared connection; commit on success, roll back on error."""
        self._ensure_connection()
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    @contextmanager
    def get_cursor(
        self,
        cursor_factory=psycopg2.extras.RealDictCursor
    ) -> Generator[psycopg2.extensions.cursor, None, None]:
        """
        Get a cursor with automatic connection management.

        Rows come back as dicts by default:
            with db_pool.get_cursor() as cursor:
                cursor.execute("SELECT id, status FROM woo_import_log")
                rows = cursor.fetchall()  # [{'id': '...', 'status': 'completed'}, ...]
        """
        with self.get_connection() as conn:
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    def count_rows(self, query: str, params=()) -> int:
        """
        Run a `SELECT COUNT(*) AS count ...` query.

        A table that has not been created yet counts as 0.
        """
        try:
            with self.get_cursor() as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
                return int(row["count"]) if row else 0
        except Exception as e:
            if is_missing_table_error(e):
                return 0
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            try:
                self._conn.close()
            except Exception:
                pass
            self._conn = None


# Global database pool instance
db_pool = DatabasePool()
