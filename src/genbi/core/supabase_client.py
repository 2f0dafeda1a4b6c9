"""
GenBI Core - Supabase Client.

Provides configured Supabase client and a TableStore backed by it.
"""

from typing import Any

from supabase import Client, create_client

from genbi.config import SupabaseSettings
from genbi.core.table_store import TableStore


def create_supabase_client(settings: SupabaseSettings) -> Client:
    """
    Create a configured Supabase client.

    Uses service role key for server-side operations.
    """
    return create_client(
        supabase_url=settings.url,
        supabase_key=settings.service_role_key,
    )


class SupabaseTableStore(TableStore):
    """TableStore over Supabase tables (ids, created_at and updated_at are DB defaults)."""

    def __init__(self, client: Client):
        self._client = client

    def _table(self, name: str):
        return self._client.table(name)

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        query = self._table(table).select("*")
        for key, value in (filters or {}).items():
            query = query.is_(key, "null") if value is None else query.eq(key, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        return response.data or []

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        response = self._table(table).insert(row).execute()
        return response.data[0]

    def update(self, table: str, id: int, data: dict[str, Any]) -> dict[str, Any] | None:
        response = self._table(table).update(data).eq("id", id).execute()
        if not response.data:
            return None
        return response.data[0]

    def delete(self, table: str, filters: dict[str, Any]) -> int:
        query = self._table(table).delete()
        for key, value in filters.items():
            query = query.eq(key, value)
        response = query.execute()
        return len(response.data or [])
