from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.pool import SimpleConnectionPool

from enrollment_api.config import settings

logger = logging.getLogger(__name__)

_pool: SimpleConnectionPool | None = None


def init_pool() -> None:
    global _pool
    if _pool is not None:
        return
    if not settings.db_enabled:
        return
    _pool = SimpleConnectionPool(1, 10, dsn=settings.db_dsn)
    logger.info("database pool ready", extra={"operation": "DB_POOL"})


@contextmanager
def get_conn() -> Iterator[psycopg2.extensions.connection]:
    """Yield a pooled connection inside one transaction, or None when no DB is configured."""
    if _pool is None:
        init_pool()
    if _pool is None:
        yield None  # type: ignore[misc]
        return
    conn: psycopg2.extensions.connection | None = None
    try:
        # Stale connections are dropped and replaced once
        for attempt in range(2):
            conn = _pool.getconn()
            try:
                if settings.db_schema:
                    with conn.cursor() as cur:
                        cur.execute("SET search_path TO %s", (settings.db_schema,))
                break
            except (psycopg2.OperationalError, psycopg2.InterfaceError):
                _pool.putconn(conn, close=True)
                conn = None
                if attempt == 1:
                    raise
        yield conn  # type: ignore[misc]
        conn.commit()  # type: ignore[union-attr]
    except Exception:
        if conn is not None and not conn.closed:
            conn.rollback()
        raise
    finally:
        if conn is not None:
            _pool.putconn(conn)
