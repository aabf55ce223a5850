import asyncio
from datetime import datetime, timezone

from binroute.data.repository import (
    load_distances_between,
    load_routable_depot,
    load_smart_bins,
    schedule_from_row,
    schedule_to_row,
)
from binroute.models.domain import NodeKind, Position, Schedule, ScheduledRoute
from binroute.persistence import database
from binroute.persistence.database import SupabaseRecordStore
from binroute.persistence.memory import InMemoryRecordStore
from binroute.persistence.store import Collection


def _vehicle_row(vehicle_id: str) -> dict:
    return {"id": vehicle_id, "rego": f"REGO{vehicle_id}", "capacity": 1000, "available": True, "icon": 0}


def test_memory_store_copies_rows():
    store = InMemoryRecordStore({Collection.FLEET_VEHICLES: [_vehicle_row("V1")]})

    rows = asyncio.run(store.find_all(Collection.FLEET_VEHICLES))
    rows[0]["rego"] = "CHANGED"

    assert store.rows(Collection.FLEET_VEHICLES)[0]["rego"] == "REGOV1"


def test_memory_store_bulk_write_is_all_or_nothing():
    store = InMemoryRecordStore({Collection.FLEET_VEHICLES: [_vehicle_row("V1"), _vehicle_row("V2")]})

    ok = asyncio.run(
        store.bulk_write(
            Collection.FLEET_VEHICLES,
            delete_ids=["V1"],
            inserts=[_vehicle_row("V3")],
            updates=[{"id": "MISSING", "rego": "X"}],
        )
    )

    assert ok is False
    assert [row["id"] for row in store.rows(Collection.FLEET_VEHICLES)] == ["V1", "V2"]


def test_memory_store_bulk_write_applies_every_change():
    store = InMemoryRecordStore({Collection.FLEET_VEHICLES: [_vehicle_row("V1"), _vehicle_row("V2")]})

    ok = asyncio.run(
        store.bulk_write(
            Collection.FLEET_VEHICLES,
            delete_ids=["V1"],
            inserts=[_vehicle_row("V3")],
            updates=[{"id": "V2", "available": False}],
        )
    )

    assert ok is True
    rows = {row["id"]: row for row in store.rows(Collection.FLEET_VEHICLES)}
    assert set(rows) == {"V2", "V3"}
    assert rows["V2"]["available"] is False
    assert rows["V2"]["rego"] == "REGOV2"


def test_memory_store_rejects_duplicate_ids():
    store = InMemoryRecordStore({Collection.FLEET_VEHICLES: [_vehicle_row("V1")]})

    assert asyncio.run(store.insert_many(Collection.FLEET_VEHICLES, [_vehicle_row("V1")])) is False
    assert len(store.rows(Collection.FLEET_VEHICLES)) == 1


def test_memory_store_delete_matching_uses_membership():
    rows = [
        {"origin_kind": "DumbBin", "origin_id": "A", "destination_kind": "Depot", "destination_id": "D"},
        {"origin_kind": "SmartBin", "origin_id": "A", "destination_kind": "Depot", "destination_id": "D"},
        {"origin_kind": "DumbBin", "origin_id": "B", "destination_kind": "Depot", "destination_id": "D"},
        {"origin_kind": "DumbBin", "origin_id": "C", "destination_kind": "Depot", "destination_id": "D"},
    ]
    store = InMemoryRecordStore({Collection.BIN_DISTANCES: rows})

    asyncio.run(store.delete_matching(Collection.BIN_DISTANCES, {"origin_kind": "DumbBin", "origin_id": ["A", "B"]}))

    remaining = store.rows(Collection.BIN_DISTANCES)
    assert [(row["origin_kind"], row["origin_id"]) for row in remaining] == [("SmartBin", "A"), ("DumbBin", "C")]


def test_repository_skips_invalid_rows():
    store = InMemoryRecordStore(
        {
            Collection.SMART_BINS: [
                {
                    "id": "S1",
                    "serial_number": 7,
                    "longitude": 145.0,
                    "latitude": -37.0,
                    "address": "Somewhere",
                    "capacity": 120,
                    "threshold": 80,
                    "current_fullness": 20,
                    "last_updated": "2024-05-01T10:00:00Z",
                },
                {"id": "BROKEN", "longitude": "east"},
            ]
        }
    )

    smart_bins = asyncio.run(load_smart_bins(store))

    assert [item.id for item in smart_bins] == ["S1"]
    assert smart_bins[0].last_updated == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert smart_bins[0].fullness_ratio == 0.25


def test_routable_depot_is_the_first_one():
    store = InMemoryRecordStore(
        {
            Collection.DEPOTS: [
                {"id": "D1", "longitude": 145.0, "latitude": -37.0, "address": "First"},
                {"id": "D2", "longitude": 146.0, "latitude": -38.0, "address": "Second"},
            ]
        }
    )

    assert asyncio.run(load_routable_depot(store)).id == "D1"
    assert asyncio.run(load_routable_depot(InMemoryRecordStore())) is None


def test_distances_between_reads_only_the_requested_nodes():
    rows = [
        {
            "origin_kind": "SmartBin",
            "origin_id": origin,
            "destination_kind": "SmartBin",
            "destination_id": destination,
            "distance": -1 if destination == "S3" else 100,
            "duration": None if destination == "S3" else 10,
        }
        for origin in ("S1", "S2", "S3")
        for destination in ("S1", "S2", "S3")
    ]
    store = InMemoryRecordStore({Collection.BIN_DISTANCES: rows})

    entries = asyncio.run(load_distances_between(store, ["S1", "S3"]))

    assert sorted((entry.origin_id, entry.destination_id) for entry in entries) == [
        ("S1", "S1"),
        ("S1", "S3"),
        ("S3", "S1"),
        ("S3", "S3"),
    ]
    unknown = [entry for entry in entries if entry.destination_id == "S3"]
    assert all(entry.distance is None and entry.duration is None for entry in unknown)
    assert entries[0].origin_kind is NodeKind.SMART_BIN


def test_schedule_rows_keep_route_order():
    schedule = Schedule(
        id="sched-1",
        timestamp=datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc),
        strategies=["AUTOMATIC", "TABU_SEARCH"],
        routes=[ScheduledRoute(vehicle_id="V1", visiting_order=[Position(145.0, -37.0), Position(145.1, -37.1)])],
    )

    row = schedule_to_row(schedule)

    assert row["routes"][0]["visiting_order"][1] == {"longitude": 145.1, "latitude": -37.1}
    assert schedule_from_row(row) == schedule


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Minimal stand-in for the PostgREST query builder."""

    def __init__(self, table: "FakeTable", action: str, payload=None) -> None:
        self.table = table
        self.action = action
        self.payload = payload
        self.filters: list[tuple] = []
        self.window: tuple[int, int] | None = None
        self._negate = False

    @property
    def not_(self):
        self._negate = True
        return self

    def in_(self, column, values):
        self.filters.append(("in", column, list(values)))
        return self

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def is_(self, column, value):
        self.filters.append(("not_is" if self._negate else "is", column, value))
        self._negate = False
        return self

    def range(self, start, end):
        self.window = (start, end)
        return self

    def _matches(self, row) -> bool:
        for op, column, value in self.filters:
            if op == "in" and row.get(column) not in value:
                return False
            if op == "eq" and row.get(column) != value:
                return False
            if op == "is" and row.get(column) is not None:
                return False
            if op == "not_is" and row.get(column) is None:
                return False
        return True

    async def execute(self):
        self.table.requests.append(self)
        if self.table.fail:
            raise RuntimeError("connection reset")
        if self.action == "select":
            rows = [row for row in self.table.rows if self._matches(row)]
            if self.window:
                rows = rows[self.window[0] : self.window[1] + 1]
            return FakeResponse(rows)
        if self.action == "insert":
            self.table.rows.extend(self.payload)
            return FakeResponse(self.payload)
        if self.action == "update":
            touched = [row for row in self.table.rows if self._matches(row)]
            for row in touched:
                row.update(self.payload)
            return FakeResponse(touched)
        removed = [row for row in self.table.rows if self._matches(row)]
        self.table.rows = [row for row in self.table.rows if not self._matches(row)]
        return FakeResponse(removed)


class FakeTable:
    def __init__(self, rows=None) -> None:
        self.rows = list(rows or [])
        self.requests: list[FakeQuery] = []
        self.fail = False

    def select(self, columns="*"):
        return FakeQuery(self, "select")

    def insert(self, rows):
        return FakeQuery(self, "insert", rows)

    def update(self, values):
        return FakeQuery(self, "update", values)

    def delete(self):
        return FakeQuery(self, "delete")


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: dict[str, FakeTable] = {}

    def table(self, name: str) -> FakeTable:
        return self.tables.setdefault(name, FakeTable())


def test_supabase_store_reads_every_page(monkeypatch):
    monkeypatch.setattr(database, "PAGE_SIZE", 2)
    client = FakeSupabase()
    client.table("fleet_vehicles").rows = [_vehicle_row(f"V{i}") for i in range(5)]
    store = SupabaseRecordStore(client)

    rows = asyncio.run(store.find_all(Collection.FLEET_VEHICLES))

    assert [row["id"] for row in rows] == ["V0", "V1", "V2", "V3", "V4"]
    assert [query.window for query in client.table("fleet_vehicles").requests] == [(0, 1), (2, 3), (4, 5)]


def test_supabase_store_chunks_membership_deletes(monkeypatch):
    monkeypatch.setattr(database, "FILTER_CHUNK_SIZE", 2)
    client = FakeSupabase()
    table = client.table("bin_distances")
    table.rows = [
        {"origin_kind": "DumbBin", "origin_id": bin_id, "destination_kind": "Depot", "destination_id": "D"}
        for bin_id in ("A", "B", "C", "D")
    ]
    store = SupabaseRecordStore(client)

    ok = asyncio.run(
        store.delete_matching(Collection.BIN_DISTANCES, {"origin_kind": "DumbBin", "origin_id": ["A", "B", "C"]})
    )

    assert ok is True
    assert [row["origin_id"] for row in table.rows] == ["D"]
    assert len(table.requests) == 2


def test_supabase_store_delete_all_clears_distances():
    client = FakeSupabase()
    table = client.table("bin_distances")
    table.rows = [{"origin_kind": "Depot", "origin_id": "D", "destination_kind": "Depot", "destination_id": "D"}]

    assert asyncio.run(SupabaseRecordStore(client).delete_all(Collection.BIN_DISTANCES)) is True
    assert table.rows == []
    assert table.requests[0].filters == [("not_is", "origin_id", "null")]


def test_supabase_store_reports_write_failures():
    client = FakeSupabase()
    client.table("fleet_vehicles").fail = True
    store = SupabaseRecordStore(client)

    assert asyncio.run(store.insert_many(Collection.FLEET_VEHICLES, [_vehicle_row("V1")])) is False
    assert asyncio.run(store.bulk_write(Collection.FLEET_VEHICLES, delete_ids=["V1"])) is False


def test_supabase_store_update_of_missing_row_fails():
    client = FakeSupabase()
    client.table("fleet_vehicles").rows = [_vehicle_row("V1")]
    store = SupabaseRecordStore(client)

    assert asyncio.run(store.update_many(Collection.FLEET_VEHICLES, [{"id": "V1", "available": False}])) is True
    assert client.table("fleet_vehicles").rows[0]["available"] is False
    assert asyncio.run(store.update_many(Collection.FLEET_VEHICLES, [{"id": "V9", "available": False}])) is False
