# tests/test_db_compat.py
"""SQL generated by the direct-postgres client, checked without a database."""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from uuid import UUID

import pytest

import db_compat
import queries
from db_compat import CompatClient, RpcCall, TableQuery


class RecordingExecutor:
    def __init__(self, rows=None):
        self.calls = []
        self._rows = rows or []

    def fetch(self, sql, params=None):
        self.calls.append((sql, params))
        return list(self._rows)


def test_select_with_filters_order_and_limit():
    ex = RecordingExecutor([{"id": "1"}])
    resp = (
        TableQuery("folders", ex)
        .select("id,name")
        .eq("section_id", "s1")
        .is_("parent_id", "null")
        .order("parent_id", nullsfirst=True)
        .order("order_index")
        .limit(5)
        .execute()
    )

    sql, params = ex.calls[0]
    assert resp.data == [{"id": "1"}]
    assert sql == (
        'SELECT "id", "name" FROM "folders" WHERE "section_id" = %s AND "parent_id" IS NULL'
        ' ORDER BY "parent_id" ASC NULLS FIRST, "order_index" ASC NULLS LAST LIMIT 5'
    )
    assert params == ["s1"]


def test_empty_in_matches_nothing():
    ex = RecordingExecutor()
    TableQuery("cards", ex).select().in_("id", []).execute()
    assert ex.calls[0][0] == 'SELECT * FROM "cards" WHERE FALSE'


def test_or_filter_with_tag_containment():
    ex = RecordingExecutor()
    TableQuery("cards", ex).select().or_("title.ilike.%py%,tags.cs.{py}").execute()

    sql, params = ex.calls[0]
    assert sql == 'SELECT * FROM "cards" WHERE ("title" ILIKE %s OR "tags" @> %s)'
    assert params == ["%py%", ["py"]]


def test_upsert_updates_non_key_columns():
    ex = RecordingExecutor()
    TableQuery("cards", ex).upsert([
        {"id": "a", "order_index": 0},
        {"id": "b", "order_index": 1},
    ]).execute()

    assert len(ex.calls) == 2
    sql, params = ex.calls[1]
    assert sql == (
        'INSERT INTO "cards" ("id", "order_index") VALUES (%s, %s)'
        ' ON CONFLICT ("id") DO UPDATE SET "order_index" = EXCLUDED."order_index" RETURNING *'
    )
    assert params == ["b", 1]


def test_insert_binds_keys_from_every_row():
    ex = RecordingExecutor()
    TableQuery("cards", ex).insert([
        {"id": "a", "title": "A"},
        {"id": "b", "title": "B", "description": "kept"},
    ]).execute()

    assert [sql for sql, _ in ex.calls] == [
        'INSERT INTO "cards" ("id", "title", "description") VALUES (%s, %s, %s) RETURNING *'
    ] * 2
    assert [params for _, params in ex.calls] == [["a", "A", None], ["b", "B", "kept"]]


def test_delete_with_neq():
    ex = RecordingExecutor()
    TableQuery("sections", ex).delete().neq("id", "0").execute()
    assert ex.calls[0] == ('DELETE FROM "sections" WHERE "id" != %s RETURNING *', ["0"])


def test_rpc_uses_named_arguments():
    ex = RecordingExecutor()
    RpcCall("cards_in_tree", {"root": "f1"}, ex).execute()
    assert ex.calls[0] == ('SELECT * FROM "cards_in_tree"(root => %s)', ["f1"])


def test_serialized_values_match_rest_output():
    row = db_compat._serialize_row({
        "created_at": datetime(2024, 1, 2, 3, 4, 5),
        "id": UUID("12345678-1234-5678-1234-567812345678"),
        "score": Decimal("1.5"),
    })
    assert row == {
        "created_at": "2024-01-02T03:04:05+00:00",
        "id": "12345678-1234-5678-1234-567812345678",
        "score": 1.5,
    }


# ============================================================
# Transactions
# ============================================================

class FakeCursor:
    description = None

    def __init__(self, conn):
        self._conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        if self._conn.fail_on and self._conn.fail_on in sql:
            raise RuntimeError(f"boom: {self._conn.fail_on}")
        self._conn.statements.append(sql)

    def fetchall(self):
        return []


class FakeConn:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.statements = []
        self.committed = False
        self.rolled_back = False

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)


@pytest.fixture
def conn(monkeypatch):
    """One fake connection handed out by get_conn_transaction."""
    fake = FakeConn()

    @contextmanager
    def fake_transaction():
        try:
            yield fake
            fake.committed = True
        except Exception:
            fake.rolled_back = True
            raise

    @contextmanager
    def no_pooled_conn():
        raise AssertionError("statement ran outside the transaction")
        yield

    monkeypatch.setattr(db_compat, "get_conn_transaction", fake_transaction)
    monkeypatch.setattr(db_compat, "get_conn", no_pooled_conn)
    return fake


IMPORT_DOC = {
    "sections": [{"id": "s1", "name": "Work"}],
    "folders": [
        {"id": "f2", "section_id": "s1", "name": "Child", "parent_id": "f1"},
        {"id": "f1", "section_id": "s1", "name": "Parent", "parent_id": None},
    ],
    "cards": [{"id": "c1", "section_id": "s1", "title": "Docs", "url": "https://example.com"}],
    "card_folders": [{"card_id": "c1", "folder_id": "f2"}],
}


def test_transaction_binds_one_connection(conn):
    client = CompatClient()
    with client.transaction() as tx:
        tx.table("cards").delete().neq("id", "0").execute()
        tx.table("sections").select("id").execute()

    assert conn.statements == [
        'DELETE FROM "cards" WHERE "id" != %s RETURNING *',
        'SELECT "id" FROM "sections"',
    ]
    assert conn.committed


def test_import_runs_in_single_transaction(conn):
    counts = queries.import_data(CompatClient(), IMPORT_DOC)

    assert counts == {"sections": 1, "folders": 2, "cards": 1, "card_folders": 1}
    assert [s.split(" WHERE")[0] for s in conn.statements[:4]] == [
        'DELETE FROM "card_folders"',
        'DELETE FROM "cards"',
        'DELETE FROM "folders"',
        'DELETE FROM "sections"',
    ]
    inserts = [s.split(" (")[0] for s in conn.statements[4:]]
    assert inserts == [
        'INSERT INTO "sections"',
        'INSERT INTO "folders"',
        'INSERT INTO "folders"',
        'INSERT INTO "cards"',
        'INSERT INTO "card_folders"',
    ]
    assert conn.committed and not conn.rolled_back


def test_failed_import_rolls_back(conn):
    conn.fail_on = 'INSERT INTO "cards"'

    with pytest.raises(queries.DataImportError, match="no changes were made"):
        queries.import_data(CompatClient(), IMPORT_DOC)

    assert conn.rolled_back
    assert not conn.committed
    assert not any(s.startswith('INSERT INTO "cards"') for s in conn.statements)
