"""
psycopg2 pool behind db_compat.CompatClient.

Linkboard only opens direct connections when DATABASE_URL is set; the
import path uses them to replace all four tables in one transaction.
"""

import os
import threading
from contextlib import contextmanager
from psycopg2 import pool as pg_pool

_pool = None
_pool_lock = threading.Lock()


def database_configured() -> bool:
    return bool(os.getenv('DATABASE_URL'))


def get_pool(min_conn=1, max_conn=10):
    global _pool
    with _pool_lock:
        if _pool is None:
            url = os.getenv('DATABASE_URL')
            if not url:
                raise RuntimeError("DATABASE_URL is not configured")
            _pool = pg_pool.ThreadedConnectionPool(min_conn, max_conn, url)
        return _pool


def close_pool():
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.closeall()
            _pool = None


@contextmanager
def _checkout(autocommit):
    p = get_pool()
    conn = p.getconn()
    conn.autocommit = autocommit
    try:
        yield conn
    finally:
        conn.autocommit = True
        p.putconn(conn)


@contextmanager
def get_conn():
    """Pooled autocommit connection; each statement stands alone."""
    with _checkout(True) as conn:
        yield conn


@contextmanager
def get_conn_transaction():
    """Pooled connection in one transaction: commit on exit, rollback on error."""
    with _checkout(False) as conn:
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        conn.commit()
