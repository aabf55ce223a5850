"""Conversion between record-store rows and domain objects."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Sequence

from ..models.domain import (
    BinDistance,
    Depot,
    DumbBin,
    FleetVehicle,
    NodeKind,
    Position,
    Schedule,
    ScheduledRoute,
    SmartBin,
)
from ..persistence.store import Collection, RecordStore

logger = logging.getLogger(__name__)

# Keeps the `in.(...)` lists of a single distance query short.
DISTANCE_QUERY_CHUNK = 100


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _optional_int(value: Any) -> int | None:
    # Negative values (the -1 wire sentinel) read back as unknown.
    if value is None or int(value) < 0:
        return None
    return int(value)


def depot_from_row(row: dict) -> Depot:
    return Depot(
        id=str(row["id"]),
        longitude=float(row["longitude"]),
        latitude=float(row["latitude"]),
        address=row.get("address") or "",
    )


def smart_bin_from_row(row: dict) -> SmartBin:
    return SmartBin(
        id=str(row["id"]),
        serial_number=int(row["serial_number"]),
        longitude=float(row["longitude"]),
        latitude=float(row["latitude"]),
        address=row.get("address") or "",
        capacity=float(row["capacity"]),
        threshold=float(row["threshold"]),
        current_fullness=float(row.get("current_fullness") or 0.0),
        last_updated=_parse_datetime(row.get("last_updated")),
    )


def smart_bin_to_row(smart_bin: SmartBin) -> dict:
    return {
        "id": smart_bin.id,
        "serial_number": smart_bin.serial_number,
        "longitude": smart_bin.longitude,
        "latitude": smart_bin.latitude,
        "address": smart_bin.address,
        "capacity": smart_bin.capacity,
        "threshold": smart_bin.threshold,
        "current_fullness": smart_bin.current_fullness,
        "last_updated": smart_bin.last_updated.isoformat() if smart_bin.last_updated else None,
    }


def dumb_bin_from_row(row: dict) -> DumbBin:
    nearest = row.get("nearest_smart_bin")
    return DumbBin(
        id=str(row["id"]),
        longitude=float(row["longitude"]),
        latitude=float(row["latitude"]),
        address=row.get("address") or "",
        capacity=float(row["capacity"]),
        nearest_smart_bin=str(nearest) if nearest else None,
    )


def dumb_bin_to_row(dumb_bin: DumbBin) -> dict:
    return {
        "id": dumb_bin.id,
        "longitude": dumb_bin.longitude,
        "latitude": dumb_bin.latitude,
        "address": dumb_bin.address,
        "capacity": dumb_bin.capacity,
        "nearest_smart_bin": dumb_bin.nearest_smart_bin,
    }


def vehicle_from_row(row: dict) -> FleetVehicle:
    home_depot = row.get("home_depot")
    return FleetVehicle(
        id=str(row["id"]),
        rego=str(row["rego"]),
        capacity=float(row["capacity"]),
        available=bool(row.get("available", True)),
        icon=int(row.get("icon") or 0),
        home_depot=str(home_depot) if home_depot else None,
    )


def vehicle_to_row(vehicle: FleetVehicle) -> dict:
    return {
        "id": vehicle.id,
        "rego": vehicle.rego,
        "capacity": vehicle.capacity,
        "available": vehicle.available,
        "icon": vehicle.icon,
        "home_depot": vehicle.home_depot,
    }


def distance_from_row(row: dict) -> BinDistance:
    return BinDistance(
        origin_kind=NodeKind(row["origin_kind"]),
        origin_id=str(row["origin_id"]),
        destination_kind=NodeKind(row["destination_kind"]),
        destination_id=str(row["destination_id"]),
        distance=_optional_int(row.get("distance")),
        duration=_optional_int(row.get("duration")),
    )


def distance_to_row(entry: BinDistance) -> dict:
    return {
        "origin_kind": entry.origin_kind.value,
        "origin_id": entry.origin_id,
        "destination_kind": entry.destination_kind.value,
        "destination_id": entry.destination_id,
        "distance": entry.distance,
        "duration": entry.duration,
    }


def schedule_from_row(row: dict) -> Schedule:
    routes = [
        ScheduledRoute(
            vehicle_id=str(route["vehicle"]),
            visiting_order=[
                Position(longitude=float(stop["longitude"]), latitude=float(stop["latitude"]))
                for stop in route.get("visiting_order", [])
            ],
        )
        for route in row.get("routes") or []
    ]
    return Schedule(
        id=str(row["id"]) if row.get("id") else None,
        routes=routes,
        timestamp=_parse_datetime(row["timestamp"]) or datetime.min,
        strategies=list(row.get("strategies") or []),
        sequence=int(row.get("sequence") or 0),
    )


def schedule_to_row(schedule: Schedule) -> dict:
    return {
        "id": schedule.id,
        "timestamp": schedule.timestamp.isoformat(),
        "strategies": list(schedule.strategies),
        "sequence": schedule.sequence,
        "routes": [
            {
                "vehicle": route.vehicle_id,
                "visiting_order": [
                    {"longitude": stop.longitude, "latitude": stop.latitude} for stop in route.visiting_order
                ],
            }
            for route in schedule.routes
        ],
    }


def _convert(rows: Iterable[dict], converter, label: str) -> list:
    converted = []
    for row in rows:
        try:
            converted.append(converter(row))
        except (KeyError, ValueError, TypeError) as e:
            # Skip invalid rows but continue processing
            logger.warning(f"Skipping invalid {label} row: {e}")
    return converted


async def load_routable_depot(store: RecordStore) -> Depot | None:
    """Return the depot used for routing; the solver supports a single depot."""
    depots = _convert(await store.find_all(Collection.DEPOTS), depot_from_row, "depot")
    if len(depots) > 1:
        logger.info(f"{len(depots)} depots stored, routing from {depots[0].id} only")
    return depots[0] if depots else None


async def load_depots(store: RecordStore) -> list[Depot]:
    return _convert(await store.find_all(Collection.DEPOTS), depot_from_row, "depot")


async def load_smart_bins(store: RecordStore) -> list[SmartBin]:
    return _convert(await store.find_all(Collection.SMART_BINS), smart_bin_from_row, "smart bin")


async def load_dumb_bins(store: RecordStore) -> list[DumbBin]:
    return _convert(await store.find_all(Collection.DUMB_BINS), dumb_bin_from_row, "dumb bin")


async def load_bins(store: RecordStore, kind: NodeKind) -> list[SmartBin] | list[DumbBin]:
    if kind is NodeKind.SMART_BIN:
        return await load_smart_bins(store)
    if kind is NodeKind.DUMB_BIN:
        return await load_dumb_bins(store)
    raise ValueError(f"{kind.value} is not a bin kind.")


async def load_vehicles(store: RecordStore) -> list[FleetVehicle]:
    return _convert(await store.find_all(Collection.FLEET_VEHICLES), vehicle_from_row, "fleet vehicle")


async def load_schedules(store: RecordStore) -> list[Schedule]:
    schedules = _convert(await store.find_all(Collection.SCHEDULES), schedule_from_row, "schedule")
    # Schedules of one build share a timestamp; the sequence keeps their order stable.
    return sorted(schedules, key=lambda schedule: (schedule.timestamp, schedule.sequence))


async def load_distances_between(store: RecordStore, node_ids: Sequence[str]) -> list[BinDistance]:
    """Load the cached entries whose origin and destination both belong to ``node_ids``.

    Kinds are not filtered here; callers match on (kind, id).
    """
    ids = list(dict.fromkeys(node_ids))
    entries: list[BinDistance] = []
    for origin_start in range(0, len(ids), DISTANCE_QUERY_CHUNK):
        origin_chunk = ids[origin_start : origin_start + DISTANCE_QUERY_CHUNK]
        for destination_start in range(0, len(ids), DISTANCE_QUERY_CHUNK):
            destination_chunk = ids[destination_start : destination_start + DISTANCE_QUERY_CHUNK]
            rows = await store.find_matching(
                Collection.BIN_DISTANCES,
                {"origin_id": origin_chunk, "destination_id": destination_chunk},
            )
            entries.extend(_convert(rows, distance_from_row, "bin distance"))
    return entries
