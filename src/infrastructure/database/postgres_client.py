"""PostgreSQL access for `USE_LOCAL_DB=1`.

Statements issued inside `transaction()` (or `transaction_scope()`) share one
connection and commit together; anything else commits per statement.
"""
from __future__ import annotations

import os
from contextlib import contextmanager, nullcontext
from contextvars import ContextVar
from typing import Any, ContextManager, Generator

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

# Connection of the transaction currently open in this context, if any
_ACTIVE_CONNECTION: ContextVar[Any] = ContextVar("active_pg_connection", default=None)


class PostgresClient:
    """PostgreSQL database client with connection pooling."""

    def __init__(self) -> None:
        """Initialize PostgreSQL connection pool."""
        self.enabled = os.getenv("USE_LOCAL_DB", "0") == "1"
        self._pool: Any = None

        if self.enabled:
            try:
                self._pool = pool.SimpleConnectionPool(
                    minconn=1,
                    maxconn=10,
                    host=os.getenv("POSTGRES_HOST", "localhost"),
                    port=int(os.getenv("POSTGRES_PORT", "5432")),
                    database=os.getenv("POSTGRES_DB", "stackseam"),
                    user=os.getenv("POSTGRES_USER", "stackseam"),
                    password=os.getenv("POSTGRES_PASSWORD", "stackseam_dev_password"),
                )
            except psycopg2.Error as exc:  # pragma: no cover
                raise RuntimeError(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc

    @contextmanager
    def get_connection(self) -> Generator[Any, None, None]:
        """Get a database connection from the pool.

        Inside an open `transaction()` the transaction's connection is reused and
        left uncommitted; the transaction commits or rolls back as a whole.

        Yields:
            Database connection with automatic return to pool on exit.

        Raises:
            RuntimeError: If local database is not enabled or connection fails.
        """
        active = _ACTIVE_CONNECTION.get()
        if active is not None:
            yield active
            return

        if not self.enabled or self._pool is None:
            raise RuntimeError("Local PostgreSQL database is not enabled")

        conn = None
        try:
            conn = self._pool.getconn()
            yield conn
            conn.commit()
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Generator[Any, None, None]:
        """Run every statement issued in this block on a single connection.

        Nested calls join the outer transaction.
        """
        if _ACTIVE_CONNECTION.get() is not None:
            yield _ACTIVE_CONNECTION.get()
            return
        with self.get_connection() as conn:
            token = _ACTIVE_CONNECTION.set(conn)
            try:
                yield conn
            finally:
                _ACTIVE_CONNECTION.reset(token)

    @contextmanager
    def get_cursor(self, dict_cursor: bool = True) -> Generator[Any, None, None]:
        """Get a database cursor.

        Args:
            dict_cursor: If True, returns results as dictionaries (default: True).

        Yields:
            Database cursor.
        """
        with self.get_connection() as conn:
            cursor_factory = RealDictCursor if dict_cursor else None
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    def execute_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a query and return a single result.

        Args:
            query: SQL query string.
            params: Query parameters.

        Returns:
            Single row as dictionary or None if no results.
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_many(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a query and return all results."""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            results = cursor.fetchall()
            return [dict(row) for row in results]

    def execute_insert(self, query: str, params: tuple = ()) -> dict[str, Any]:
        """Execute an INSERT query and return the inserted row.

        Args:
            query: SQL INSERT query with RETURNING clause.
            params: Query parameters.

        Returns:
            Inserted row as dictionary.
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            result = cursor.fetchone()
            if not result:
                raise RuntimeError("Insert query did not return a row")
            return dict(result)

    def execute_update(self, query: str, params: tuple = ()) -> int:
        """Execute an UPDATE or DELETE query and return the number of rows affected."""
        with self.get_cursor(dict_cursor=False) as cursor:
            cursor.execute(query, params)
            return cursor.rowcount


# Singleton instance
_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    """Get PostgreSQL client singleton.

    Returns:
        PostgresClient instance if enabled, None otherwise.
    """
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT


def transaction_scope() -> ContextManager[Any]:
    """A database transaction in local PostgreSQL mode, a no-op otherwise."""
    client = get_postgres_client()
    if client is None:
        return nullcontext()
    return client.transaction()
