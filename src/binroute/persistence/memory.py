"""Process-local record store used when Supabase is not configured."""

from __future__ import annotations

import copy
import logging
from typing import Sequence

from .store import Collection, Filters, Record, matches

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Keeps every collection as a list of row dictionaries.

    Rows are copied on the way in and out so callers never share state with
    the store.
    """

    def __init__(self, initial: dict[Collection, Sequence[Record]] | None = None) -> None:
        self._rows: dict[Collection, list[Record]] = {collection: [] for collection in Collection}
        for collection, records in (initial or {}).items():
            self._rows[collection] = [copy.deepcopy(dict(record)) for record in records]

    def rows(self, collection: Collection) -> list[Record]:
        return copy.deepcopy(self._rows[collection])

    async def find_all(self, collection: Collection) -> list[Record]:
        return self.rows(collection)

    async def find_matching(self, collection: Collection, filters: Filters) -> list[Record]:
        return [copy.deepcopy(row) for row in self._rows[collection] if matches(row, filters)]

    async def delete_all(self, collection: Collection) -> bool:
        self._rows[collection] = []
        return True

    async def delete_by_ids(self, collection: Collection, ids: Sequence[str]) -> bool:
        id_set = set(ids)
        self._rows[collection] = [row for row in self._rows[collection] if row.get("id") not in id_set]
        return True

    async def delete_matching(self, collection: Collection, filters: Filters) -> bool:
        self._rows[collection] = [row for row in self._rows[collection] if not matches(row, filters)]
        return True

    async def insert_many(self, collection: Collection, records: Sequence[Record]) -> bool:
        existing = {row.get("id") for row in self._rows[collection] if row.get("id") is not None}
        for record in records:
            record_id = record.get("id")
            if record_id is not None and record_id in existing:
                logger.warning("Duplicate id %s rejected for %s", record_id, collection.value)
                return False
        self._rows[collection].extend(copy.deepcopy(dict(record)) for record in records)
        return True

    async def update_many(self, collection: Collection, records: Sequence[Record]) -> bool:
        by_id = {row.get("id"): row for row in self._rows[collection]}
        missing = [record.get("id") for record in records if record.get("id") not in by_id]
        if missing:
            logger.warning("Cannot update missing %s records: %s", collection.value, missing)
            return False
        for record in records:
            by_id[record["id"]].update(copy.deepcopy(dict(record)))
        return True

    async def bulk_write(
        self,
        collection: Collection,
        *,
        delete_ids: Sequence[str] = (),
        inserts: Sequence[Record] = (),
        updates: Sequence[Record] = (),
    ) -> bool:
        snapshot = copy.deepcopy(self._rows[collection])
        ok = (
            await self.delete_by_ids(collection, delete_ids)
            and await self.insert_many(collection, inserts)
            and await self.update_many(collection, updates)
        )
        if not ok:
            self._rows[collection] = snapshot
        return ok
