# tests/test_db.py
"""Connection pool checkout with a stand-in for psycopg2's pool."""

import pytest

import db


class FakeConn:
    def __init__(self):
        self.autocommit = True
        self.committed = False
        self.rolled_back = False

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True


class FakePool:
    def __init__(self, min_conn, max_conn, url):
        self.url = url
        self.conn = FakeConn()
        self.returned = 0
        self.closed = False

    def getconn(self):
        return self.conn

    def putconn(self, conn):
        self.returned += 1

    def closeall(self):
        self.closed = True


@pytest.fixture
def pool(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/linkboard")
    monkeypatch.setattr(db, "_pool", None)
    monkeypatch.setattr(db.pg_pool, "ThreadedConnectionPool", FakePool)
    return db.get_pool()


def test_pool_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(db, "_pool", None)
    assert not db.database_configured()
    with pytest.raises(RuntimeError):
        db.get_pool()


def test_pool_is_shared_until_closed(pool):
    assert db.get_pool() is pool
    assert pool.url == "postgresql://localhost/linkboard"

    db.close_pool()
    assert pool.closed
    assert db._pool is None


def test_autocommit_connection_returned(pool):
    with db.get_conn() as conn:
        assert conn.autocommit is True
    assert pool.returned == 1
    assert not conn.committed


def test_transaction_commits(pool):
    with db.get_conn_transaction() as conn:
        assert conn.autocommit is False

    assert conn.committed and not conn.rolled_back
    assert conn.autocommit is True
    assert pool.returned == 1


def test_transaction_rolls_back_on_error(pool):
    with pytest.raises(ValueError):
        with db.get_conn_transaction() as conn:
            raise ValueError("bad row")

    assert conn.rolled_back and not conn.committed
    assert conn.autocommit is True
    assert pool.returned == 1
