"""Shared fixtures: an in-memory stand-in for the supabase-py query builder."""

import copy
import re
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _split_top_level(text: str) -> List[str]:
    parts, depth, current = [], 0, ""
    for char in text:
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        current += char
    if current:
        parts.append(current)
    return [p.strip() for p in parts if p.strip()]


def _compare(left, right) -> Optional[int]:
    if left is None or right is None:
        return None
    if isinstance(left, (int, float)) and not isinstance(left, bool):
        try:
            right = float(right)
        except (TypeError, ValueError):
            left = str(left)
    else:
        left, right = str(left), str(right)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def _matches(row: Dict[str, Any], column: str, op: str, value) -> bool:
    current = row.get(column)
    if op == "eq":
        return current is not None and str(current) == str(value)
    if op == "neq":
        return current is None or str(current) != str(value)
    if op == "in":
        return current is not None and str(current) in {str(v) for v in value}
    if op == "is":
        if str(value).lower() == "null":
            return current is None
        return str(current).lower() == str(value).lower()
    if op == "ilike":
        if current is None:
            return False
        pattern = "".join(".*" if c == "%" else re.escape(c) for c in str(value))
        return re.fullmatch(pattern, str(current), re.IGNORECASE | re.DOTALL) is not None
    result = _compare(current, value)
    if result is None:
        return False
    return {
        "gt": result > 0,
        "gte": result >= 0,
        "lt": result < 0,
        "lte": result <= 0,
    }[op]


def _or_matches(row: Dict[str, Any], expression: str) -> bool:
    for clause in _split_top_level(expression):
        if clause.startswith("and(") and clause.endswith(")"):
            conditions = _split_top_level(clause[4:-1])
            if all(_condition_matches(row, c) for c in conditions):
                return True
        elif _condition_matches(row, clause):
            return True
    return False


def _condition_matches(row: Dict[str, Any], condition: str) -> bool:
    column, op, value = condition.split(".", 2)
    return _matches(row, column, op, value)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict = ""
        self.filters: List[Any] = []
        self.ordering: List[Any] = []
        self.limit_value: Optional[int] = None
        self.range_value = None
        self.count_mode = None

    # operations
    def select(self, columns="*", count=None):
        if self.op == "select":
            self.count_mode = count
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def upsert(self, payload, on_conflict=""):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    def _filter(self, column, op, value):
        self.filters.append(lambda row: _matches(row, column, op, value))
        return self

    def eq(self, column, value):
        return self._filter(column, "eq", value)

    def neq(self, column, value):
        return self._filter(column, "neq", value)

    def gt(self, column, value):
        return self._filter(column, "gt", value)

    def gte(self, column, value):
        return self._filter(column, "gte", value)

    def lt(self, column, value):
        return self._filter(column, "lt", value)

    def lte(self, column, value):
        return self._filter(column, "lte", value)

    def in_(self, column, values):
        return self._filter(column, "in", list(values))

    def is_(self, column, value):
        return self._filter(column, "is", value)

    def ilike(self, column, pattern):
        return self._filter(column, "ilike", pattern)

    def or_(self, expression):
        self.filters.append(lambda row: _or_matches(row, expression))
        return self

    # modifiers
    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, count):
        self.limit_value = count
        return self

    def range(self, start, end):
        self.range_value = (start, end)
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.tables[self.table_name] if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.op, self.table_name))
        failure = self.db.failures.get((self.op, self.table_name))
        if failure is not None:
            raise failure

        handler = getattr(self, f"_execute_{self.op}")
        return handler()

    def _execute_select(self):
        rows = self._matching()
        for column, desc in reversed(self.ordering):
            rows.sort(
                key=lambda r: (r.get(column) is None, str(r.get(column)) if r.get(column) is not None else ""),
                reverse=desc,
            )
        count = len(rows) if self.count_mode else None
        if self.range_value is not None:
            start, end = self.range_value
            rows = rows[start : end + 1]
        if self.limit_value is not None:
            rows = rows[: self.limit_value]
        return FakeResponse(copy.deepcopy(rows), count)

    def _rows_payload(self) -> List[Dict[str, Any]]:
        if isinstance(self.payload, list):
            return [dict(r) for r in self.payload]
        return [dict(self.payload)]

    def _execute_insert(self):
        inserted = []
        for row in self._rows_payload():
            row.setdefault("id", str(uuid.uuid4()))
            self.db.tables[self.table_name].append(row)
            inserted.append(copy.deepcopy(row))
        return FakeResponse(inserted)

    def _execute_update(self):
        updated = []
        for row in self._matching():
            row.update(copy.deepcopy(self.payload))
            updated.append(copy.deepcopy(row))
        return FakeResponse(updated)

    def _execute_upsert(self):
        keys = [k.strip() for k in self.on_conflict.split(",") if k.strip()] or ["id"]
        written = []
        for row in self._rows_payload():
            existing = next(
                (
                    r
                    for r in self.db.tables[self.table_name]
                    if all(r.get(k) == row.get(k) for k in keys)
                ),
                None,
            )
            if existing is None:
                row.setdefault("id", str(uuid.uuid4()))
                self.db.tables[self.table_name].append(row)
                written.append(copy.deepcopy(row))
            else:
                existing.update(row)
                written.append(copy.deepcopy(existing))
        return FakeResponse(written)

    def _execute_delete(self):
        doomed = self._matching()
        self.db.tables[self.table_name] = [r for r in self.db.tables[self.table_name] if r not in doomed]
        return FakeResponse(copy.deepcopy(doomed))


class FakeSupabase:
    """Minimal PostgREST-style client backed by dict rows."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.failures: Dict[Any, Exception] = {}
        self.calls: List[Any] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def seed(self, name: str, rows: List[Dict[str, Any]]) -> None:
        for row in rows:
            row = dict(row)
            row.setdefault("id", str(uuid.uuid4()))
            self.tables[name].append(row)

    def fail(self, op: str, table: str, error: Optional[Exception] = None) -> None:
        self.failures[(op, table)] = error or RuntimeError(f"{op} on {table} failed")

    def writes(self):
        return [call for call in self.calls if call[0] != "select"]


@pytest.fixture
def fake_supabase():
    return FakeSupabase()
