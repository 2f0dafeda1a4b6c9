"""
GenBI Core - Base Repository.

Abstract base class for all repositories following the repository pattern.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from genbi.core.table_store import TableStore
from genbi.exceptions import NotFoundException

T = TypeVar("T", bound=BaseModel)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository for database operations.

    Rows are validated into the repository's model on the way out and
    serialized to JSON-compatible values on the way in, so nested details
    can be passed as models or dicts.
    """

    model: type[T]

    def __init__(self, store: TableStore):
        self._store = store

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Return the table name for this repository."""
        ...

    def _to_model(self, row: dict[str, Any]) -> T:
        return self.model.model_validate(row)

    @staticmethod
    def _serialize(data: dict[str, Any]) -> dict[str, Any]:
        return to_jsonable_python(data)

    async def find_one_by(self, filters: dict[str, Any]) -> T | None:
        """
        Get the first record matching all filters.

        Args:
            filters: Column equality filters

        Returns:
            The record if found, None otherwise
        """
        rows = self._store.select(self.table_name, self._serialize(filters), order_by="id", limit=1)
        return self._to_model(rows[0]) if rows else None

    async def find_one_by_or_raise(self, filters: dict[str, Any], resource_id: Any = None) -> T:
        result = await self.find_one_by(filters)
        if result is None:
            raise NotFoundException(self.table_name, resource_id if resource_id is not None else filters)
        return result

    async def find_all_by(
        self,
        filters: dict[str, Any],
        order_by: str | None = "id",
        descending: bool = False,
        limit: int | None = None,
    ) -> list[T]:
        """List records matching all filters."""
        rows = self._store.select(
            self.table_name,
            self._serialize(filters),
            order_by=order_by,
            descending=descending,
            limit=limit,
        )
        return [self._to_model(r) for r in rows]

    async def find_all(self) -> list[T]:
        return await self.find_all_by({})

    async def create_one(self, data: dict[str, Any]) -> T:
        """
        Create a new record.

        Args:
            data: The record data (models are serialized)

        Returns:
            The created record
        """
        row = self._store.insert(self.table_name, self._serialize(data))
        return self._to_model(row)

    async def update_one(self, id: int, data: dict[str, Any]) -> T:
        """
        Update an existing record.

        Raises:
            NotFoundException: If record not found
        """
        row = self._store.update(self.table_name, id, self._serialize(data))
        if row is None:
            raise NotFoundException(self.table_name, id)
        return self._to_model(row)

    async def delete_one(self, id: int) -> bool:
        """Delete a record by ID. Returns True if a row was removed."""
        return self._store.delete(self.table_name, {"id": id}) > 0

    async def delete_all_by(self, filters: dict[str, Any]) -> int:
        """Delete all records matching filters."""
        return self._store.delete(self.table_name, self._serialize(filters))
