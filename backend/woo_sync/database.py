"""
Target (Supabase Postgres) connection helpers.

The pipeline talks to the target store through a plain DB-API connection that
is created once per invocation and passed in explicitly. Tests pass an
in-memory sqlite3 connection instead, so SQL is written with db_placeholder().
"""

import sqlite3

import psycopg2
from psycopg2 import errorcodes

from .errors import TargetConnectionError


CONNECTION_ERROR_MARKERS = [
    'connection already closed',
    'connection is closed',
    'server closed the connection',
    'could not receive data',
    'could not connect to server',
    'ssl syscall error',
    'operation timed out',
    'connection refused',
    'connection reset',
    'broken pipe',
    'network is unreachable',
    'password authentication failed',
]


def connect_target(db_url: str):
    """
    Open the target Postgres connection.

    Raises:
        TargetConnectionError: If the server is unreachable or rejects credentials
    """
    try:
        conn = psycopg2.connect(db_url)
    except psycopg2.OperationalError as e:
        raise TargetConnectionError(f"Could not connect to target database: {e}") from e
    conn.autocommit = False
    return conn


def is_postgres(conn) -> bool:
    """Check if connection is PostgreSQL (anything but sqlite3)."""
    return not isinstance(conn, sqlite3.Connection)


def db_placeholder(conn) -> str:
    """Return the correct placeholder for the database type."""
    return '%s' if is_postgres(conn) else '?'


def is_connection_error(error: Exception) -> bool:
    """Check if exception means the connection itself is gone or refused."""
    if isinstance(error, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return True
    error_str = str(error).lower()
    return any(marker in error_str for marker in CONNECTION_ERROR_MARKERS)


def is_duplicate_error(error: Exception) -> bool:
    """Check if exception is a unique-constraint violation."""
    if getattr(error, 'pgcode', None) == errorcodes.UNIQUE_VIOLATION:
        return True
    error_str = str(error).lower()
    if isinstance(error, sqlite3.IntegrityError) and 'unique constraint failed' in error_str:
        return True
    return 'duplicate' in error_str


def is_missing_table_error(error: Exception) -> bool:
    """Check if exception is 'relation/table does not exist'."""
    if getattr(error, 'pgcode', None) == errorcodes.UNDEFINED_TABLE:
        return True
    error_str = str(error).lower()
    return 'no such table' in error_str or ('relation' in error_str and 'does not exist' in error_str)


def safe_rollback(conn) -> None:
    """Roll back the current transaction, ignoring a dead connection."""
    try:
        conn.rollback()
    except (psycopg2.Error, sqlite3.Error):
        pass


def close_quietly(conn) -> None:
    """Close a connection if it is still open."""
    if conn is None:
        return
    try:
        conn.close()
    except Exception:
        pass
