"""Supabase-backed record store."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from supabase import AsyncClient

from .store import ANCHOR_COLUMNS, Collection, Filters, Record, RecordStoreError

logger = logging.getLogger(__name__)

# PostgREST caps result sets; read in pages of this size.
PAGE_SIZE = 1000
# Keeps `in.(...)` filters and request bodies at a reasonable size.
WRITE_CHUNK_SIZE = 500
FILTER_CHUNK_SIZE = 200


def _chunks(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    return [items[start : start + size] for start in range(0, len(items), size)]


def _apply_filters(query: Any, filters: Filters) -> Any:
    for field_name, expected in filters.items():
        if isinstance(expected, (list, tuple, set, frozenset)):
            query = query.in_(field_name, list(expected))
        elif expected is None:
            query = query.is_(field_name, "null")
        else:
            query = query.eq(field_name, expected)
    return query


class SupabaseRecordStore:
    """Maps the record store operations onto Supabase tables.

    PostgREST offers no multi-statement transaction through the client, so
    ``bulk_write`` runs its deletes, inserts and updates in order and stops at
    the first failure.
    """

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def _select_all(self, collection: Collection, filters: Filters) -> list[Record]:
        rows: list[Record] = []
        start = 0
        while True:
            query = _apply_filters(self.client.table(collection.value).select("*"), filters)
            response = await query.range(start, start + PAGE_SIZE - 1).execute()
            page = response.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE

    async def find_all(self, collection: Collection) -> list[Record]:
        try:
            return await self._select_all(collection, {})
        except Exception as exc:
            raise RecordStoreError(f"Failed to read {collection.value}: {exc}") from exc

    async def find_matching(self, collection: Collection, filters: Filters) -> list[Record]:
        try:
            return await self._select_all(collection, filters)
        except Exception as exc:
            raise RecordStoreError(f"Failed to query {collection.value}: {exc}") from exc

    async def delete_all(self, collection: Collection) -> bool:
        anchor = ANCHOR_COLUMNS[collection]
        try:
            await self.client.table(collection.value).delete().not_.is_(anchor, "null").execute()
            return True
        except Exception as exc:
            logger.error(f"Failed to delete all rows of {collection.value}: {exc}")
            return False

    async def delete_by_ids(self, collection: Collection, ids: Sequence[str]) -> bool:
        try:
            for chunk in _chunks(list(ids), FILTER_CHUNK_SIZE):
                await self.client.table(collection.value).delete().in_("id", list(chunk)).execute()
            return True
        except Exception as exc:
            logger.error(f"Failed to delete {len(ids)} rows of {collection.value}: {exc}")
            return False

    async def delete_matching(self, collection: Collection, filters: Filters) -> bool:
        if not filters:
            raise ValueError("delete_matching requires at least one filter; use delete_all instead.")
        # Split the first membership filter so each request stays small.
        split_field = next(
            (name for name, value in filters.items() if isinstance(value, (list, tuple, set, frozenset))),
            None,
        )
        try:
            if split_field is None:
                await _apply_filters(self.client.table(collection.value).delete(), filters).execute()
                return True
            for chunk in _chunks(list(filters[split_field]), FILTER_CHUNK_SIZE):
                chunk_filters = {**filters, split_field: list(chunk)}
                await _apply_filters(self.client.table(collection.value).delete(), chunk_filters).execute()
            return True
        except Exception as exc:
            logger.error(f"Failed to delete matching rows of {collection.value}: {exc}")
            return False

    async def insert_many(self, collection: Collection, records: Sequence[Record]) -> bool:
        try:
            for chunk in _chunks(list(records), WRITE_CHUNK_SIZE):
                await self.client.table(collection.value).insert(list(chunk)).execute()
            return True
        except Exception as exc:
            logger.error(f"Failed to insert {len(records)} rows into {collection.value}: {exc}")
            return False

    async def update_many(self, collection: Collection, records: Sequence[Record]) -> bool:
        try:
            for record in records:
                values = {key: value for key, value in record.items() if key != "id"}
                response = await self.client.table(collection.value).update(values).eq("id", record["id"]).execute()
                if not response.data:
                    logger.error(f"No {collection.value} row with id {record['id']} to update")
                    return False
            return True
        except Exception as exc:
            logger.error(f"Failed to update {len(records)} rows of {collection.value}: {exc}")
            return False

    async def bulk_write(
        self,
        collection: Collection,
        *,
        delete_ids: Sequence[str] = (),
        inserts: Sequence[Record] = (),
        updates: Sequence[Record] = (),
    ) -> bool:
        if delete_ids and not await self.delete_by_ids(collection, delete_ids):
            return False
        if inserts and not await self.insert_many(collection, inserts):
            return False
        if updates and not await self.update_many(collection, updates):
            return False
        return True
