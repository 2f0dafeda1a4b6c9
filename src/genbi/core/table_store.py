"""
GenBI Core - Table stores.

Row-level storage behind the repositories. A TableStore works on plain
dict rows keyed by an integer id; repositories turn rows into models.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import RLock
from typing import Any


class TableStore(ABC):
    """Storage interface used by BaseRepository."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def update(self, table: str, id: int, data: dict[str, Any]) -> dict[str, Any] | None:
        """Update a row; returns None when the row does not exist."""
        ...

    @abstractmethod
    def delete(self, table: str, filters: dict[str, Any]) -> int:
        """Delete matching rows and return how many were removed."""
        ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryTableStore(TableStore):
    """Process-local store. Rows are copied in and out so callers never alias them."""

    def __init__(self):
        self._lock = RLock()
        self._tables: dict[str, dict[int, dict[str, Any]]] = {}
        self._sequences: dict[str, int] = {}

    def _rows(self, table: str) -> dict[int, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        return all(row.get(key) == value for key, value in (filters or {}).items())

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._rows(table).values() if self._matches(r, filters)]
        if order_by:
            # id breaks ties between rows written within the same clock tick
            rows.sort(key=lambda r: (r.get(order_by) is not None, r.get(order_by), r["id"]), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table, row):
        with self._lock:
            requested = row.get("id")
            next_id = int(requested) if requested is not None else self._sequences.get(table, 0) + 1
            self._sequences[table] = max(self._sequences.get(table, 0), next_id)
            now = _now()
            stored = {**copy.deepcopy(row), "id": next_id, "created_at": now, "updated_at": now}
            self._rows(table)[next_id] = stored
            return copy.deepcopy(stored)

    def update(self, table, id, data):
        with self._lock:
            row = self._rows(table).get(id)
            if row is None:
                return None
            row.update(copy.deepcopy(data))
            row["updated_at"] = _now()
            return copy.deepcopy(row)

    def delete(self, table, filters):
        with self._lock:
            rows = self._rows(table)
            doomed = [row_id for row_id, row in rows.items() if self._matches(row, filters)]
            for row_id in doomed:
                del rows[row_id]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._tables.clear()
            self._sequences.clear()
