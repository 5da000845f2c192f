from __future__ import annotations

import re
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

from postgrest import APIError


def api_error(code: str, message: str) -> APIError:
    return APIError({"code": code, "message": message, "hint": None, "details": None})


CREATE_TABLE_RE = re.compile(r"CREATE TABLE IF NOT EXISTS\s+(\w+)", re.IGNORECASE)


class FakeSupabase:
    """
    Test-only in-memory stand-in for the async Supabase client.
    Supports the PostgREST calls the dashboard makes: select/eq/in_/limit/upsert and rpc.
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {k: list(v) for k, v in (tables or {}).items()}
        self.rpcs: dict[str, Callable[[dict[str, Any]], Any]] = {
            "create_table_if_not_exists": self._missing_function("create_table_if_not_exists"),
            "execute_sql": self._execute_sql,
            "get_invoices_by_amount": self._missing_function("get_invoices_by_amount"),
        }
        self.reject_upserts: set[str] = set()
        self.calls: list[tuple[str, ...]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, fn: str, params: dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, fn, params)

    @staticmethod
    def _missing_function(fn: str) -> Callable[[dict[str, Any]], Any]:
        def handler(_params: dict[str, Any]) -> Any:
            raise api_error("PGRST202", f"Could not find the function public.{fn} in the schema cache")

        return handler

    def _execute_sql(self, params: dict[str, Any]) -> Any:
        m = CREATE_TABLE_RE.search(params["sql"])
        if not m:
            raise api_error("42601", "syntax error at or near \"CREATE\"")
        self.tables.setdefault(m.group(1), [])
        return None


class FakeRpc:
    def __init__(self, db: FakeSupabase, fn: str, params: dict[str, Any]) -> None:
        self.db = db
        self.fn = fn
        self.params = params

    async def execute(self) -> SimpleNamespace:
        self.db.calls.append(("rpc", self.fn))
        return SimpleNamespace(data=self.db.rpcs[self.fn](self.params))


class FakeQuery:
    def __init__(self, db: FakeSupabase, name: str) -> None:
        self.db = db
        self.name = name
        self.columns: list[str] | None = None
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.max_rows: int | None = None
        self.upsert_rows: list[dict[str, Any]] | None = None
        self.on_conflict: str | None = None

    def select(self, columns: str) -> FakeQuery:
        self.columns = [c.strip() for c in columns.split(",")]
        return self

    def eq(self, column: str, value: Any) -> FakeQuery:
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def in_(self, column: str, values: list[Any]) -> FakeQuery:
        allowed = set(values)
        self.filters.append(lambda r: r.get(column) in allowed)
        return self

    def limit(self, n: int) -> FakeQuery:
        self.max_rows = n
        return self

    def upsert(self, rows: dict[str, Any] | list[dict[str, Any]], on_conflict: str = "") -> FakeQuery:
        self.upsert_rows = [rows] if isinstance(rows, dict) else list(rows)
        self.on_conflict = on_conflict
        return self

    async def execute(self) -> SimpleNamespace:
        op = "upsert" if self.upsert_rows is not None else "select"
        self.db.calls.append((op, self.name))
        if self.name not in self.db.tables:
            raise api_error("42P01", f'relation "public.{self.name}" does not exist')
        table = self.db.tables[self.name]

        if self.upsert_rows is not None:
            if self.name in self.db.reject_upserts:
                raise api_error("23503", f'insert or update on table "{self.name}" violates foreign key constraint')
            key = self.on_conflict or "id"
            for row in self.upsert_rows:
                existing = next((r for r in table if r.get(key) == row.get(key)), None)
                if existing is None:
                    table.append(dict(row))
                else:
                    existing.update(row)
            return SimpleNamespace(data=self.upsert_rows)

        rows = [r for r in table if all(f(r) for f in self.filters)]
        if self.max_rows is not None:
            rows = rows[: self.max_rows]
        if self.columns and self.columns != ["*"]:
            rows = [{c: r.get(c) for c in self.columns} for r in rows]
        return SimpleNamespace(data=rows)


class FakeResult:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self.rows = rows

    def mappings(self) -> FakeResult:
        return self

    def all(self) -> list[dict[str, Any]]:
        return self.rows


class FakeConnection:
    def __init__(self, engine: FakeEngine) -> None:
        self.engine = engine

    async def __aenter__(self) -> FakeConnection:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def execute(self, statement: Any) -> FakeResult:
        self.engine.statements.append(statement)
        if self.engine.error is not None:
            raise self.engine.error
        return FakeResult(self.engine.rows)


class FakeEngine:
    """Stand-in for an AsyncEngine: `connect()` yields a connection returning canned rows."""

    def __init__(self, rows: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.statements: list[Any] = []
        self.disposed = False

    def connect(self) -> FakeConnection:
        return FakeConnection(self)

    async def dispose(self) -> None:
        self.disposed = True
