"""In-memory stand-in for the Supabase client used by service tests."""

from __future__ import annotations

import copy
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from postgrest import APIError

UNIQUE_COLUMNS = {
    "transactions": ("id", "idempotency_key"),
    "balances": ("user_id",),
}
GENERATED_IDS = {"transactions"}


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


@dataclass
class FakeResponse:
    data: list[dict[str, Any]]
    count: int | None = None


class FakeQuery:
    """Chainable query mirroring the subset of postgrest-py the services use."""

    def __init__(
        self,
        db: FakeSupabaseClient,
        table: str,
        operation: str,
        payload: Any = None,
        columns: str = "*",
    ) -> None:
        self.db = db
        self.table = table
        self.operation = operation
        self.payload = payload
        self.columns = columns
        self.predicates: list[Callable[[dict[str, Any]], bool]] = []
        self.ordering: list[tuple[str, bool]] = []
        self._limit: int | None = None
        self._offset = 0

    def _where(self, column: str, test: Callable[[Any], bool]) -> FakeQuery:
        self.predicates.append(lambda row: test(row.get(column)))
        return self

    def eq(self, column: str, value: Any) -> FakeQuery:
        return self._where(column, lambda current: current == value)

    def neq(self, column: str, value: Any) -> FakeQuery:
        return self._where(column, lambda current: current != value)

    def gt(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(value)
        return self._where(column, lambda c: c is not None and _comparable(c) > bound)

    def gte(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(value)
        return self._where(column, lambda c: c is not None and _comparable(c) >= bound)

    def lt(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(value)
        return self._where(column, lambda c: c is not None and _comparable(c) < bound)

    def lte(self, column: str, value: Any) -> FakeQuery:
        bound = _comparable(value)
        return self._where(column, lambda c: c is not None and _comparable(c) <= bound)

    def in_(self, column: str, values: list[Any]) -> FakeQuery:
        allowed = list(values)
        return self._where(column, lambda current: current in allowed)

    def order(self, column: str, desc: bool = False) -> FakeQuery:
        self.ordering.append((column, desc))
        return self

    def limit(self, size: int) -> FakeQuery:
        self._limit = size
        return self

    def offset(self, size: int) -> FakeQuery:
        self._offset = size
        return self

    def execute(self) -> FakeResponse:
        if self.operation == "insert":
            return FakeResponse(self.db._insert(self.table, self.payload))
        if self.operation == "update":
            return FakeResponse(self.db._update(self.table, self.predicates, self.payload))
        return FakeResponse(self._select())

    def _select(self) -> list[dict[str, Any]]:
        rows = [row for row in self.db.rows(self.table) if self._matches(row)]
        for column, desc in reversed(self.ordering):
            present = [row for row in rows if row.get(column) is not None]
            missing = [row for row in rows if row.get(column) is None]
            present.sort(key=lambda row: _comparable(row[column]), reverse=desc)
            rows = missing + present if desc else present + missing
        rows = rows[self._offset :]
        if self._limit is not None:
            rows = rows[: self._limit]
        return [self._project(row) for row in rows]

    def _matches(self, row: dict[str, Any]) -> bool:
        return all(predicate(row) for predicate in self.predicates)

    def _project(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        wanted = [column.strip() for column in self.columns.split(",")]
        return {column: copy.deepcopy(row.get(column)) for column in wanted}


class FakeTable:
    def __init__(self, db: FakeSupabaseClient, name: str) -> None:
        self.db = db
        self.name = name

    def select(self, columns: str = "*", **_: Any) -> FakeQuery:
        return FakeQuery(self.db, self.name, "select", columns=columns)

    def insert(self, payload: dict[str, Any] | list[dict[str, Any]]) -> FakeQuery:
        return FakeQuery(self.db, self.name, "insert", payload=payload)

    def update(self, payload: dict[str, Any]) -> FakeQuery:
        return FakeQuery(self.db, self.name, "update", payload=payload)


class FakeSupabaseClient:
    """Holds tables as lists of dict rows and enforces unique columns.

    ``before_update`` runs ahead of every UPDATE with the table name, which
    lets a test slip in a concurrent write between a read and its
    compare-and-swap.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.before_update: Callable[[str], None] | None = None

    def table(self, name: str) -> FakeTable:
        return FakeTable(self, name)

    def rows(self, name: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def _insert(self, table: str, payload: Any) -> list[dict[str, Any]]:
        items = payload if isinstance(payload, list) else [payload]
        created = []
        for item in items:
            row = copy.deepcopy(item)
            if table in GENERATED_IDS and not row.get("id"):
                row["id"] = str(uuid.uuid4())
            self._check_unique(table, row)
            self.rows(table).append(row)
            created.append(copy.deepcopy(row))
        return created

    def _update(
        self,
        table: str,
        predicates: list[Callable[[dict[str, Any]], bool]],
        payload: dict[str, Any],
    ) -> list[dict[str, Any]]:
        if self.before_update is not None:
            self.before_update(table)
        updated = []
        for row in self.rows(table):
            if all(predicate(row) for predicate in predicates):
                row.update(copy.deepcopy(payload))
                updated.append(copy.deepcopy(row))
        return updated

    def _check_unique(self, table: str, row: dict[str, Any]) -> None:
        for column in UNIQUE_COLUMNS.get(table, ()):
            value = row.get(column)
            if value is None:
                continue
            if any(existing.get(column) == value for existing in self.rows(table)):
                raise APIError(
                    {
                        "code": "23505",
                        "message": (
                            f'duplicate key value violates unique constraint "{table}_{column}_key"'
                        ),
                        "details": f"Key ({column})=({value}) already exists.",
                        "hint": None,
                    }
                )
