"""Record store contract shared by the Supabase and in-memory backends."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Protocol, Sequence


class Collection(str, Enum):
    DEPOTS = "depots"
    SMART_BINS = "smart_bins"
    DUMB_BINS = "dumb_bins"
    FLEET_VEHICLES = "fleet_vehicles"
    BIN_DISTANCES = "bin_distances"
    SCHEDULES = "bin_collection_schedules"
    SMART_BIN_FILL_LEVELS = "smart_bin_fill_levels"


# Column that is never null for every row of the collection; used to address "all rows".
ANCHOR_COLUMNS: dict[Collection, str] = {
    Collection.DEPOTS: "id",
    Collection.SMART_BINS: "id",
    Collection.DUMB_BINS: "id",
    Collection.FLEET_VEHICLES: "id",
    Collection.BIN_DISTANCES: "origin_id",
    Collection.SCHEDULES: "id",
    Collection.SMART_BIN_FILL_LEVELS: "serial_number",
}

Record = dict[str, Any]
# Field name -> value (equality) or list/tuple/set of values (membership).
Filters = Mapping[str, Any]


class RecordStoreError(RuntimeError):
    """Raised when a read against the record store fails."""


class RecordStore(Protocol):
    """Typed-collection store used by the routing core.

    Reads raise ``RecordStoreError`` on failure. Writes return ``True`` only
    when the whole operation succeeded.
    """

    async def find_all(self, collection: Collection) -> list[Record]:
        ...

    async def find_matching(self, collection: Collection, filters: Filters) -> list[Record]:
        ...

    async def delete_all(self, collection: Collection) -> bool:
        ...

    async def delete_by_ids(self, collection: Collection, ids: Sequence[str]) -> bool:
        ...

    async def delete_matching(self, collection: Collection, filters: Filters) -> bool:
        ...

    async def insert_many(self, collection: Collection, records: Sequence[Record]) -> bool:
        ...

    async def update_many(self, collection: Collection, records: Sequence[Record]) -> bool:
        ...

    async def bulk_write(
        self,
        collection: Collection,
        *,
        delete_ids: Sequence[str] = (),
        inserts: Sequence[Record] = (),
        updates: Sequence[Record] = (),
    ) -> bool:
        ...


def matches(record: Mapping[str, Any], filters: Filters) -> bool:
    """Evaluate ``filters`` against a single record."""
    for field_name, expected in filters.items():
        value = record.get(field_name)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True
