"""
Supabase-py compatible wrapper over direct psycopg2 connections.

Provides a drop-in replacement for the parts of the supabase-py Client
that Linkboard uses:
    client = CompatClient()
    result = client.table('cards').select('*').eq('section_id', sid).execute()
    result.data   # [{'id': ..., ...}]
    client.rpc('cards_in_tree', {'root': folder_id}).execute()

    with client.transaction() as tx:
        tx.table('cards').delete().neq('id', NIL_UUID).execute()
        ...

Supports: select, insert, update, delete, upsert, rpc
Filters: eq, neq, in_, or_, ilike, is_
Modifiers: order (with nullsfirst), limit
"""

import re
from contextlib import contextmanager
from datetime import datetime, date, time, timedelta
from decimal import Decimal
from uuid import UUID
from psycopg2.extras import RealDictCursor, Json
from db import get_conn, get_conn_transaction

_OR_OPERATORS = {
    'eq': '=', 'neq': '!=', 'gt': '>', 'gte': '>=',
    'lt': '<', 'lte': '<=', 'like': 'LIKE', 'ilike': 'ILIKE',
    'is': 'IS', 'cs': '@>',
}


def _serialize_value(val):
    """Convert psycopg2 native types to JSON-serializable types matching supabase-py output."""
    if val is None:
        return None
    if isinstance(val, datetime):
        s = val.isoformat()
        if val.tzinfo is None:
            s += "+00:00"
        return s
    if isinstance(val, (date, time)):
        return val.isoformat()
    if isinstance(val, timedelta):
        return val.total_seconds()
    if isinstance(val, Decimal):
        return float(val)
    if isinstance(val, UUID):
        return str(val)
    return val


def _serialize_row(row: dict) -> dict:
    return {k: _serialize_value(v) for k, v in row.items()}


def _prep_value(val):
    """Prepare a Python value for psycopg2 parameter binding."""
    if isinstance(val, dict):
        return Json(val)
    # Lists bind as Postgres arrays (cards.tags is text[])
    return val


class CompatResponse:
    """Mimics the supabase-py APIResponse."""
    __slots__ = ('data', 'count')

    def __init__(self, data=None, count=None):
        self.data = data or []
        self.count = count


class _Executor:
    """Runs SQL on the bound transaction connection, or a pooled one."""

    def __init__(self, conn=None):
        self._conn = conn

    @contextmanager
    def cursor(self):
        if self._conn is not None:
            with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            return
        with get_conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur

    def fetch(self, sql, params=None):
        with self.cursor() as cur:
            cur.execute(sql, params if params else None)
            if cur.description:
                return [_serialize_row(dict(r)) for r in cur.fetchall()]
            return []


class TableQuery:
    """Fluent query builder that mimics supabase-py's table().select().eq().execute() chain."""

    def __init__(self, table_name, executor):
        self._table = table_name
        self._exec = executor
        self._operation = None  # 'select', 'insert', 'update', 'delete', 'upsert'
        self._columns = '*'
        self._filters = []      # [(column, op, value), ...]
        self._or_filters = []   # raw PostgREST-style OR strings
        self._order_by = []     # [(column, desc, nullsfirst), ...]
        self._limit_val = None
        self._payload = None
        self._on_conflict = None

    # --- Operations ---

    def select(self, columns='*'):
        self._operation = 'select'
        self._columns = columns
        return self

    def insert(self, data):
        self._operation = 'insert'
        self._payload = data
        return self

    def update(self, data):
        self._operation = 'update'
        self._payload = data
        return self

    def delete(self):
        self._operation = 'delete'
        return self

    def upsert(self, data, on_conflict=None):
        self._operation = 'upsert'
        self._payload = data
        self._on_conflict = on_conflict
        return self

    # --- Filters ---

    def eq(self, column, value):
        self._filters.append((column, '=', value))
        return self

    def neq(self, column, value):
        self._filters.append((column, '!=', value))
        return self

    def ilike(self, column, pattern):
        self._filters.append((column, 'ILIKE', pattern))
        return self

    def is_(self, column, value):
        self._filters.append((column, 'IS', value))
        return self

    def in_(self, column, values):
        self._filters.append((column, 'IN', tuple(values)))
        return self

    def or_(self, filter_str):
        """PostgREST-style OR filter, e.g. 'title.ilike.%q%,tags.cs.{q}'."""
        self._or_filters.append(filter_str)
        return self

    # --- Modifiers ---

    def order(self, column, desc=False, nullsfirst=False):
        self._order_by.append((column, desc, nullsfirst))
        return self

    def limit(self, n):
        self._limit_val = n
        return self

    # --- Execution ---

    def execute(self):
        if self._operation == 'select':
            return self._exec_select()
        elif self._operation in ('insert', 'upsert'):
            return self._exec_insert()
        elif self._operation == 'update':
            return self._exec_update()
        elif self._operation == 'delete':
            return self._exec_delete()
        raise ValueError("No operation set. Call select/insert/update/delete first.")

    def _build_where(self, params):
        conditions = []
        for col, op, val in self._filters:
            if op == 'IN':
                if not val:
                    conditions.append('FALSE')
                    continue
                conditions.append(f'"{col}" IN %s')
                params.append(val)
            elif op == 'IS':
                if val is None or str(val).lower() == 'null':
                    conditions.append(f'"{col}" IS NULL')
                else:
                    conditions.append(f'"{col}" IS {"TRUE" if val in (True, "true") else "FALSE"}')
            else:
                conditions.append(f'"{col}" {op} %s')
                params.append(val)

        for or_str in self._or_filters:
            or_parts = self._parse_or_filter(or_str, params)
            if or_parts:
                conditions.append(f'({" OR ".join(or_parts)})')

        if conditions:
            return ' WHERE ' + ' AND '.join(conditions)
        return ''

    def _parse_or_filter(self, filter_str, params):
        parts = []
        segments = re.split(r',(?=[a-zA-Z_]+\.)', filter_str)
        for seg in segments:
            match = re.match(r'^(\w+)\.(\w+)\.(.+)$', seg.strip())
            if not match or match.group(2) not in _OR_OPERATORS:
                continue
            col, op, val = match.groups()
            sql_op = _OR_OPERATORS[op]
            if sql_op == 'IS':
                parts.append(f'"{col}" IS NULL')
            elif sql_op == '@>':
                items = [v.strip().strip('"') for v in val.strip('{}').split(',') if v.strip()]
                parts.append(f'"{col}" @> %s')
                params.append(items)
            else:
                parts.append(f'"{col}" {sql_op} %s')
                params.append(val)
        return parts

    def _build_order(self):
        if not self._order_by:
            return ''
        parts = []
        for col, desc, nullsfirst in self._order_by:
            direction = "DESC" if desc else "ASC"
            nulls = "NULLS FIRST" if nullsfirst else "NULLS LAST"
            parts.append(f'"{col}" {direction} {nulls}')
        return ' ORDER BY ' + ', '.join(parts)

    def _select_columns(self):
        cols = [c.strip() for c in self._columns.split(',') if c.strip()]
        if not cols or cols == ['*']:
            return '*'
        return ', '.join(f'"{c}"' for c in cols)

    def _exec_select(self):
        params = []
        sql = f'SELECT {self._select_columns()} FROM "{self._table}"'
        sql += self._build_where(params)
        sql += self._build_order()
        if self._limit_val is not None:
            sql += f' LIMIT {int(self._limit_val)}'
        return CompatResponse(data=self._exec.fetch(sql, params))

    def _exec_insert(self):
        data = self._payload
        if not data:
            return CompatResponse()
        if not isinstance(data, list):
            data = [data]
        # Rows may carry different keys; missing ones bind as NULL
        keys = []
        for row_data in data:
            for k in row_data:
                if k not in keys:
                    keys.append(k)

        cols = ', '.join(f'"{k}"' for k in keys)
        placeholders = ', '.join(['%s'] * len(keys))
        sql = f'INSERT INTO "{self._table}" ({cols}) VALUES ({placeholders})'

        if self._operation == 'upsert':
            conflict_cols = [c.strip() for c in (self._on_conflict or 'id').split(',')]
            conflict_parts = ', '.join(f'"{c}"' for c in conflict_cols)
            update_parts = [f'"{k}" = EXCLUDED."{k}"' for k in keys if k not in conflict_cols]
            action = f'UPDATE SET {", ".join(update_parts)}' if update_parts else 'NOTHING'
            sql += f' ON CONFLICT ({conflict_parts}) DO {action}'
        sql += ' RETURNING *'

        all_rows = []
        for row_data in data:
            values = [_prep_value(row_data.get(k)) for k in keys]
            all_rows.extend(self._exec.fetch(sql, values))
        return CompatResponse(data=all_rows)

    def _exec_update(self):
        data = self._payload
        if not data:
            return CompatResponse()
        params = [_prep_value(v) for v in data.values()]
        set_parts = ', '.join(f'"{k}" = %s' for k in data.keys())
        sql = f'UPDATE "{self._table}" SET {set_parts}'
        sql += self._build_where(params)
        sql += ' RETURNING *'
        return CompatResponse(data=self._exec.fetch(sql, params))

    def _exec_delete(self):
        params = []
        sql = f'DELETE FROM "{self._table}"'
        sql += self._build_where(params)
        sql += ' RETURNING *'
        return CompatResponse(data=self._exec.fetch(sql, params))


class RpcCall:
    """Mimics supabase-py's rpc(fn, params).execute()."""

    def __init__(self, fn, params, executor):
        self._fn = fn
        self._params = params or {}
        self._exec = executor

    def execute(self):
        args = ', '.join(f'{name} => %s' for name in self._params)
        sql = f'SELECT * FROM "{self._fn}"({args})'
        return CompatResponse(data=self._exec.fetch(sql, list(self._params.values())))


class CompatClient:
    """Drop-in replacement for supabase.Client table()/rpc() access."""

    supports_transactions = True

    def __init__(self, conn=None):
        self._executor = _Executor(conn)

    def table(self, name):
        return TableQuery(name, self._executor)

    def rpc(self, fn, params=None):
        return RpcCall(fn, params, self._executor)

    @contextmanager
    def transaction(self):
        """Yield a client whose statements share one transaction."""
        with get_conn_transaction() as conn:
            yield CompatClient(conn=conn)
