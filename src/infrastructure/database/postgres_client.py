"""Local PostgreSQL backend for the ``equipment_images`` table.

Used instead of Supabase when ``USE_LOCAL_DB=1``; see ``db/schema.sql`` for the
table and the partial unique index that keeps one primary image per equipment.
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Generator

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor


class PostgresClient:
    """Pooled connections; every ``transaction`` block commits or rolls back as a unit."""

    def __init__(self) -> None:
        try:
            self._pool = pool.SimpleConnectionPool(
                minconn=1,
                maxconn=int(os.getenv("POSTGRES_POOL_SIZE", "10")),
                host=os.getenv("POSTGRES_HOST", "localhost"),
                port=int(os.getenv("POSTGRES_PORT", "5432")),
                database=os.getenv("POSTGRES_DB", "equipment_images"),
                user=os.getenv("POSTGRES_USER", "equipment"),
                password=os.getenv("POSTGRES_PASSWORD", "equipment_dev_password"),
            )
        except psycopg2.Error as exc:  # pragma: no cover
            raise RuntimeError(f"Failed to initialize PostgreSQL connection pool: {exc}") from exc

    @contextmanager
    def transaction(self) -> Generator[Any, None, None]:
        """Yield a dict cursor on a pooled connection.

        The connection is committed when the block exits normally and rolled back
        when it raises; it always goes back to the pool.
        """
        conn = self._pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        with self.transaction() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return dict(row) if row else None

    def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self.transaction() as cursor:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def execute(self, query: str, params: tuple = ()) -> int:
        """Run an UPDATE/DELETE and return the affected row count."""
        with self.transaction() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount


_POSTGRES_CLIENT: PostgresClient | None = None


def get_postgres_client() -> PostgresClient | None:
    global _POSTGRES_CLIENT
    if os.getenv("USE_LOCAL_DB", "0") != "1":
        return None
    if _POSTGRES_CLIENT is None:
        _POSTGRES_CLIENT = PostgresClient()
    return _POSTGRES_CLIENT
