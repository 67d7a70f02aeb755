# tests/conftest.py
"""Shared fixtures: an in-memory stand-in for the Supabase client."""

import copy
import io
import itertools
import re
import uuid
from types import SimpleNamespace

import pytest
from PIL import Image

from local_store import MemoryStore


# =============================================================================
# Fake Supabase
# =============================================================================

_DEFAULTS = {
    "sections": {"icon": None, "color": None, "image_url": None, "order_index": 0},
    "folders": {"parent_id": None, "image_url": None, "order_index": 0},
    "cards": {"description": None, "image_url": None, "type": "link", "tags": [],
              "is_favorite": False, "order_index": 0},
    "card_folders": {},
}

_REQUIRED = {
    "sections": ("name",),
    "folders": ("name", "section_id"),
    "cards": ("title", "url", "section_id"),
    "card_folders": ("card_id", "folder_id"),
}


def _like(pattern: str, value) -> bool:
    if value is None:
        return False
    regex = "".join(".*" if c == "%" else "." if c == "_" else re.escape(c) for c in pattern)
    return re.fullmatch(regex, str(value), re.IGNORECASE | re.DOTALL) is not None


def _or_matches(row: dict, filter_str: str) -> bool:
    for seg in re.split(r",(?=[a-zA-Z_]+\.)", filter_str):
        col, op, val = seg.split(".", 2)
        if op == "ilike" and _like(val, row.get(col)):
            return True
        if op == "eq" and str(row.get(col)) == val:
            return True
        if op == "cs":
            wanted = [v.strip().strip('"') for v in val.strip("{}").split(",") if v.strip()]
            if all(w in (row.get(col) or []) for w in wanted):
                return True
    return False


def _sort(rows: list, col: str, desc: bool, nullsfirst: bool) -> list:
    present = sorted((r for r in rows if r.get(col) is not None), key=lambda r: r[col], reverse=desc)
    missing = [r for r in rows if r.get(col) is None]
    return missing + present if nullsfirst else present + missing


class FakeQuery:
    def __init__(self, db, table):
        self._db = db
        self._table = table
        self._op = None
        self._columns = "*"
        self._payload = None
        self._filters = []
        self._order = []
        self._limit = None

    def select(self, columns="*"):
        self._op, self._columns = "select", columns
        return self

    def insert(self, data):
        self._op, self._payload = "insert", data
        return self

    def upsert(self, data, on_conflict=None):
        self._op, self._payload = "upsert", data
        return self

    def update(self, data):
        self._op, self._payload = "update", data
        return self

    def delete(self):
        self._op = "delete"
        return self

    def eq(self, col, val):
        self._filters.append(lambda r: r.get(col) == val)
        return self

    def neq(self, col, val):
        self._filters.append(lambda r: r.get(col) != val)
        return self

    def is_(self, col, val):
        self._filters.append(lambda r: r.get(col) is None if val in (None, "null") else r.get(col) == val)
        return self

    def ilike(self, col, pattern):
        self._filters.append(lambda r: _like(pattern, r.get(col)))
        return self

    def in_(self, col, values):
        values = list(values)
        self._filters.append(lambda r: r.get(col) in values)
        return self

    def or_(self, filter_str):
        self._filters.append(lambda r: _or_matches(r, filter_str))
        return self

    def order(self, col, desc=False, nullsfirst=False):
        self._order.append((col, desc, nullsfirst))
        return self

    def limit(self, n):
        self._limit = n
        return self

    def _matching(self):
        return [r for r in self._db.rows(self._table) if all(f(r) for f in self._filters)]

    def execute(self):
        self._db.maybe_fail(self._table, self._op)
        if self._op == "select":
            rows = self._matching()
            for col, desc, nullsfirst in reversed(self._order):
                rows = _sort(rows, col, desc, nullsfirst)
            if self._limit is not None:
                rows = rows[: self._limit]
            if self._columns.strip() != "*":
                cols = [c.strip() for c in self._columns.split(",")]
                rows = [{c: r.get(c) for c in cols} for r in rows]
            data = copy.deepcopy(rows)
        elif self._op in ("insert", "upsert"):
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            data = [self._db.write(self._table, row, upsert=self._op == "upsert") for row in payload]
        elif self._op == "update":
            data = []
            for row in self._matching():
                row.update(copy.deepcopy(self._payload))
                data.append(copy.deepcopy(row))
        elif self._op == "delete":
            data = [copy.deepcopy(r) for r in self._matching()]
            for row in data:
                self._db.remove(self._table, row)
        else:
            raise ValueError("No operation set")
        return SimpleNamespace(data=data)


class FakeRpc:
    def __init__(self, db, fn, params):
        self._db = db
        self._fn = fn
        self._params = params

    def execute(self):
        assert self._fn == "cards_in_tree"
        root = self._params["root"]
        folders = self._db.tables["folders"]
        ids = {root}
        changed = True
        while changed:
            changed = False
            for f in folders:
                if f.get("parent_id") in ids and f["id"] not in ids:
                    ids.add(f["id"])
                    changed = True
        card_ids = {l["card_id"] for l in self._db.tables["card_folders"] if l["folder_id"] in ids}
        cards = [c for c in self._db.tables["cards"] if c["id"] in card_ids]
        return SimpleNamespace(data=copy.deepcopy(_sort(cards, "order_index", False, False)))


class FakeBucket:
    def __init__(self, storage, name):
        self._storage = storage
        self._name = name

    def upload(self, path, data, file_options=None):
        self._storage.objects[(self._name, path)] = (data, file_options)
        return {"Key": f"{self._name}/{path}"}

    def get_public_url(self, path):
        return f"https://fake.supabase.co/storage/v1/object/public/{self._name}/{path}"

    def remove(self, paths):
        for path in paths:
            self._storage.objects.pop((self._name, path), None)
        return []

    def list(self):
        return [{"name": p} for (b, p) in self._storage.objects if b == self._name]


class FakeStorage:
    def __init__(self):
        self.objects = {}

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    """Enough of supabase.Client for the dashboard: tables, the
    cards_without_folder view, the cards_in_tree RPC and one storage API.

    Deletes cascade the way the foreign keys do. ``fail_on[(table, op)] = n``
    makes the next n such calls raise.
    """

    def __init__(self):
        self.tables = {name: [] for name in _DEFAULTS}
        self.storage = FakeStorage()
        self.fail_on = {}
        self._clock = itertools.count()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, fn, params=None):
        return FakeRpc(self, fn, params or {})

    # --- internals used by FakeQuery ---

    def rows(self, table):
        if table == "cards_without_folder":
            linked = {l["card_id"] for l in self.tables["card_folders"]}
            return [c for c in self.tables["cards"] if c["id"] not in linked]
        return self.tables[table]

    def maybe_fail(self, table, op):
        remaining = self.fail_on.get((table, op), 0)
        if remaining:
            self.fail_on[(table, op)] = remaining - 1
            raise RuntimeError(f"simulated {op} failure on {table}")

    def write(self, table, row, upsert=False):
        rows = self.tables[table]
        if upsert and row.get("id"):
            for existing in rows:
                if existing["id"] == row["id"]:
                    existing.update(copy.deepcopy(row))
                    return copy.deepcopy(existing)
        for col in _REQUIRED[table]:
            if row.get(col) is None:
                raise RuntimeError(f'null value in column "{col}" violates not-null constraint')
        if table == "folders" and row.get("parent_id"):
            if not any(f["id"] == row["parent_id"] for f in rows):
                raise RuntimeError("insert on folders violates foreign key constraint folders_parent_id_fkey")
        new = {**copy.deepcopy(_DEFAULTS[table]), **copy.deepcopy(row)}
        if table != "card_folders":
            new.setdefault("id", str(uuid.uuid4()))
            new.setdefault("created_at", f"2024-01-01T00:00:{next(self._clock):06d}+00:00")
        rows.append(new)
        return copy.deepcopy(new)

    def remove(self, table, row):
        if table == "card_folders":
            self.tables[table] = [
                l for l in self.tables[table]
                if not (l["card_id"] == row["card_id"] and l["folder_id"] == row["folder_id"])
            ]
            return
        self.tables[table] = [r for r in self.tables[table] if r["id"] != row["id"]]
        if table == "sections":
            for f in [f for f in self.tables["folders"] if f["section_id"] == row["id"]]:
                self.remove("folders", f)
            for c in [c for c in self.tables["cards"] if c["section_id"] == row["id"]]:
                self.remove("cards", c)
        elif table == "folders":
            self.tables["card_folders"] = [l for l in self.tables["card_folders"] if l["folder_id"] != row["id"]]
            for f in [f for f in self.tables["folders"] if f.get("parent_id") == row["id"]]:
                self.remove("folders", f)
        elif table == "cards":
            self.tables["card_folders"] = [l for l in self.tables["card_folders"] if l["card_id"] != row["id"]]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sb():
    return FakeSupabase()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def populated(sb):
    """Two sections; Work has Projects > Active and Archive; three cards."""
    import queries

    work = queries.create_section(sb, {"name": "Work", "icon": "W", "order_index": 0})
    home = queries.create_section(sb, {"name": "Home", "order_index": 1})
    projects = queries.create_folder(sb, {"name": "Projects", "section_id": work["id"]})
    active = queries.create_folder(sb, {"name": "Active", "section_id": work["id"], "parent_id": projects["id"]})
    archive = queries.create_folder(sb, {"name": "Archive", "section_id": work["id"], "order_index": 1})
    docs = queries.create_card(sb, {"title": "Python docs", "url": "https://docs.python.org",
                                    "section_id": work["id"], "tags": ["python", "reference"]})
    tracker = queries.create_card(sb, {"title": "Issue tracker", "url": "https://example.com/issues",
                                       "description": "Team bugs", "section_id": work["id"], "order_index": 1})
    recipes = queries.create_card(sb, {"title": "Recipes", "url": "https://food.example.org",
                                       "section_id": home["id"]})
    queries.link_card_to_folder(sb, tracker["id"], active["id"])
    return SimpleNamespace(
        sb=sb, work=work, home=home, projects=projects, active=active, archive=archive,
        docs=docs, tracker=tracker, recipes=recipes,
    )


def make_image(width, height, fmt="PNG", mode="RGB"):
    img = Image.new(mode, (width, height), color=0)
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def png():
    """A small 1200x300 PNG."""
    return make_image(1200, 300)


@pytest.fixture
def image_factory():
    return make_image
