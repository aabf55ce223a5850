"""Fleet vehicle mutations."""

from __future__ import annotations

import logging
import uuid

from ...data.repository import load_vehicles, vehicle_to_row
from ...models.domain import FleetVehicle
from ...persistence.store import Collection, RecordStore
from ...schemas.vehicles import VehicleChanges
from ..refresh import RefreshCoordinator

logger = logging.getLogger(__name__)


class VehicleUpdateError(RuntimeError):
    """Raised when a fleet mutation could not be fully applied."""


async def list_vehicles(store: RecordStore) -> list[FleetVehicle]:
    return await load_vehicles(store)


async def apply_vehicle_changes(
    store: RecordStore,
    changes: VehicleChanges,
    coordinator: RefreshCoordinator,
) -> list[str]:
    """Write the fleet changes and rebuild the schedules; returns the created ids."""
    created = [FleetVehicle(id=str(uuid.uuid4()), **item.model_dump()) for item in changes.create]
    updated = [FleetVehicle(**item.model_dump()) for item in changes.update]

    written = await store.bulk_write(
        Collection.FLEET_VEHICLES,
        delete_ids=list(changes.delete),
        inserts=[vehicle_to_row(vehicle) for vehicle in created],
        updates=[vehicle_to_row(vehicle) for vehicle in updated],
    )
    if not written:
        raise VehicleUpdateError("Failed to write fleet vehicle changes")
    logger.info(
        f"Fleet changed: {len(changes.delete)} deleted, {len(created)} created, {len(updated)} updated"
    )

    if not await coordinator.on_vehicles_changed():
        raise VehicleUpdateError("Vehicles were saved but schedules could not be rebuilt")
    return [vehicle.id for vehicle in created]
