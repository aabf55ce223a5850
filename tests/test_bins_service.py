import asyncio

import pytest

from binroute.models.domain import DumbBin, NodeKind, SmartBin
from binroute.persistence.memory import InMemoryRecordStore
from binroute.persistence.store import Collection
from binroute.schemas.bins import DumbBinChanges
from binroute.services.bins.service import (
    BinUpdateError,
    apply_dumb_bin_changes,
    assign_nearest_smart_bins,
)
from binroute.services.geospatial import haversine_km, nearest_smart_bin


class DummyCoordinator:
    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.calls: list[tuple] = []

    async def on_bins_changed(self, kind, deleted_ids=(), created=(), updated=()):
        self.calls.append((kind, list(deleted_ids), list(created), list(updated)))
        return self.succeed


def _smart_row(bin_id: str, longitude: float, latitude: float) -> dict:
    return {
        "id": bin_id,
        "serial_number": 1,
        "longitude": longitude,
        "latitude": latitude,
        "address": f"{bin_id} Street",
        "capacity": 120,
        "threshold": 100,
        "current_fullness": 60,
    }


def _smart_bin(bin_id: str, longitude: float, latitude: float) -> SmartBin:
    return SmartBin(
        id=bin_id,
        serial_number=1,
        longitude=longitude,
        latitude=latitude,
        address="",
        capacity=120,
        threshold=100,
    )


def test_haversine_distance():
    # One degree of latitude is roughly 111 km.
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, rel=1e-3)
    assert haversine_km(-37.9, 145.1, -37.9, 145.1) == 0.0


def test_nearest_smart_bin_respects_search_radius():
    near = _smart_bin("NEAR", 145.1005, -37.9)  # ~44 m away
    further = _smart_bin("FURTHER", 145.103, -37.9)  # ~263 m away
    far = _smart_bin("FAR", 145.2, -37.9)

    assert nearest_smart_bin(-37.9, 145.1, [far, further, near], 1000).id == "NEAR"
    assert nearest_smart_bin(-37.9, 145.1, [far, further], 1000).id == "FURTHER"
    assert nearest_smart_bin(-37.9, 145.1, [far], 1000) is None
    assert nearest_smart_bin(-37.9, 145.1, [], 1000) is None


def test_assign_nearest_smart_bins_writes_links():
    store = InMemoryRecordStore(
        {
            Collection.SMART_BINS: [_smart_row("S1", 145.1005, -37.9)],
            Collection.DUMB_BINS: [
                {"id": "B1", "longitude": 145.1, "latitude": -37.9, "address": "a", "capacity": 100},
                {"id": "B2", "longitude": 146.0, "latitude": -37.9, "address": "b", "capacity": 100},
            ],
        }
    )
    dumb_bins = [
        DumbBin(id="B1", longitude=145.1, latitude=-37.9, address="a", capacity=100),
        DumbBin(id="B2", longitude=146.0, latitude=-37.9, address="b", capacity=100, nearest_smart_bin="S1"),
    ]

    assert asyncio.run(assign_nearest_smart_bins(store, dumb_bins, 1000)) is True

    rows = {row["id"]: row for row in store.rows(Collection.DUMB_BINS)}
    assert rows["B1"]["nearest_smart_bin"] == "S1"
    assert rows["B2"]["nearest_smart_bin"] is None
    assert dumb_bins[0].nearest_smart_bin == "S1"


def test_apply_changes_writes_bins_and_notifies():
    store = InMemoryRecordStore(
        {
            Collection.SMART_BINS: [_smart_row("S1", 145.1005, -37.9)],
            Collection.DUMB_BINS: [
                {"id": "OLD", "longitude": 145.5, "latitude": -37.5, "address": "old", "capacity": 100},
                {
                    "id": "MOVED",
                    "longitude": 145.5,
                    "latitude": -37.5,
                    "address": "moved",
                    "capacity": 100,
                    "nearest_smart_bin": "GONE",
                },
            ],
        }
    )
    coordinator = DummyCoordinator()
    changes = DumbBinChanges(
        delete=["OLD"],
        create=[{"longitude": 145.1, "latitude": -37.9, "address": "1 New St", "capacity": 240}],
        update=[{"id": "MOVED", "longitude": 146.0, "latitude": -37.9, "address": "2 Far Rd", "capacity": 120}],
    )

    inserted_ids = asyncio.run(apply_dumb_bin_changes(store, changes, coordinator))

    rows = {row["id"]: row for row in store.rows(Collection.DUMB_BINS)}
    assert len(inserted_ids) == 1
    assert set(rows) == {inserted_ids[0], "MOVED"}
    assert rows[inserted_ids[0]]["nearest_smart_bin"] == "S1"
    assert rows["MOVED"]["nearest_smart_bin"] is None
    assert rows["MOVED"]["address"] == "2 Far Rd"

    kind, deleted, created, updated = coordinator.calls[0]
    assert kind is NodeKind.DUMB_BIN
    assert deleted == ["OLD"]
    assert [item.id for item in created] == inserted_ids
    assert [item.id for item in updated] == ["MOVED"]


def test_apply_changes_fails_when_write_is_rejected():
    store = InMemoryRecordStore()
    coordinator = DummyCoordinator()
    changes = DumbBinChanges(
        update=[{"id": "MISSING", "longitude": 145.0, "latitude": -37.0, "address": "x", "capacity": 10}]
    )

    with pytest.raises(BinUpdateError):
        asyncio.run(apply_dumb_bin_changes(store, changes, coordinator))
    assert coordinator.calls == []


def test_apply_changes_reports_refresh_failure():
    store = InMemoryRecordStore()
    changes = DumbBinChanges(create=[{"longitude": 145.0, "latitude": -37.0, "address": "x", "capacity": 10}])

    with pytest.raises(BinUpdateError):
        asyncio.run(apply_dumb_bin_changes(store, changes, DummyCoordinator(succeed=False)))
    assert len(store.rows(Collection.DUMB_BINS)) == 1
