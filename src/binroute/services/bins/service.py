"""Dumb bin mutations and nearest smart bin assignment."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Optional, Sequence

from ...config import settings
from ...data.repository import dumb_bin_to_row, load_dumb_bins, load_smart_bins
from ...models.domain import DumbBin, NodeKind, SmartBin
from ...persistence.store import Collection, RecordStore, RecordStoreError
from ...schemas.bins import DumbBinChanges
from ..geospatial import nearest_smart_bin

if TYPE_CHECKING:
    from ..refresh import RefreshCoordinator

logger = logging.getLogger(__name__)


class BinUpdateError(RuntimeError):
    """Raised when a bin mutation could not be fully applied."""


async def list_bins(store: RecordStore) -> tuple[list[SmartBin], list[DumbBin]]:
    return await load_smart_bins(store), await load_dumb_bins(store)


async def assign_nearest_smart_bins(
    store: RecordStore,
    dumb_bins: Sequence[DumbBin],
    max_distance_m: Optional[float] = None,
) -> bool:
    """Link each dumb bin to the closest smart bin in range, or to none.

    The links are written back to the store and set on ``dumb_bins``.
    """
    if not dumb_bins:
        return True
    radius = max_distance_m if max_distance_m is not None else settings.bin_search_distance_m
    try:
        smart_bins = await load_smart_bins(store)
    except RecordStoreError as exc:
        logger.error(f"Cannot assign nearest smart bins: {exc}")
        return False

    updates = []
    for dumb_bin in dumb_bins:
        nearest = nearest_smart_bin(dumb_bin.latitude, dumb_bin.longitude, smart_bins, radius)
        dumb_bin.nearest_smart_bin = nearest.id if nearest else None
        updates.append({"id": dumb_bin.id, "nearest_smart_bin": dumb_bin.nearest_smart_bin})

    linked = sum(1 for row in updates if row["nearest_smart_bin"])
    logger.info(f"{linked}/{len(updates)} dumb bins have a smart bin within {radius:.0f} m")
    return await store.update_many(Collection.DUMB_BINS, updates)


async def apply_dumb_bin_changes(
    store: RecordStore,
    changes: DumbBinChanges,
    coordinator: RefreshCoordinator,
) -> list[str]:
    """Apply deletes, creates and updates, then refresh distances and schedules.

    Returns the ids given to the created bins.
    """
    created = [
        DumbBin(
            id=str(uuid.uuid4()),
            longitude=item.longitude,
            latitude=item.latitude,
            address=item.address,
            capacity=item.capacity,
        )
        for item in changes.create
    ]
    # A moved bin may have a different nearest smart bin; cleared until recomputed.
    updated = [
        DumbBin(
            id=item.id,
            longitude=item.longitude,
            latitude=item.latitude,
            address=item.address,
            capacity=item.capacity,
            nearest_smart_bin=None,
        )
        for item in changes.update
    ]

    written = await store.bulk_write(
        Collection.DUMB_BINS,
        delete_ids=list(changes.delete),
        inserts=[dumb_bin_to_row(item) for item in created],
        updates=[dumb_bin_to_row(item) for item in updated],
    )
    if not written:
        raise BinUpdateError("Failed to write dumb bin changes")

    if not await assign_nearest_smart_bins(store, [*created, *updated]):
        raise BinUpdateError("Failed to assign nearest smart bins")

    if not await coordinator.on_bins_changed(NodeKind.DUMB_BIN, changes.delete, created, updated):
        raise BinUpdateError("Dumb bins were saved but distances or schedules could not be refreshed")
    return [item.id for item in created]
