"""Keeps the stored smart bins and their fill levels in line with the sensor platform."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from ...data.repository import load_dumb_bins, load_smart_bins, smart_bin_to_row
from ...models.domain import SmartBin
from ...persistence.store import Collection, RecordStore, RecordStoreError
from ..bins.service import assign_nearest_smart_bins
from .feed import FillLevelReading, RemoteSmartBin

logger = logging.getLogger(__name__)


class SmartBinFeed(Protocol):
    async def fetch_smart_bins(self) -> list[RemoteSmartBin] | None:
        ...

    async def fetch_fill_levels(self) -> list[FillLevelReading] | None:
        ...


@dataclass(slots=True)
class SmartBinChanges:
    deleted_ids: list[str] = field(default_factory=list)
    created: list[SmartBin] = field(default_factory=list)
    updated: list[SmartBin] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.deleted_ids or self.created or self.updated)


def diff_smart_bins(local: Sequence[SmartBin], remote: Sequence[RemoteSmartBin]) -> SmartBinChanges:
    """Match bins on serial number.

    Local bins missing remotely are deleted, remote bins missing locally are
    created with fresh ids, and bins whose ``last_updated`` differs are
    updated in place, keeping their id and current fullness.
    """
    local_by_serial = {smart_bin.serial_number: smart_bin for smart_bin in local}
    remote_by_serial = {remote_bin.serial_number: remote_bin for remote_bin in remote}
    changes = SmartBinChanges()

    for serial_number, smart_bin in local_by_serial.items():
        if serial_number not in remote_by_serial:
            changes.deleted_ids.append(smart_bin.id)

    for serial_number, remote_bin in remote_by_serial.items():
        existing = local_by_serial.get(serial_number)
        if existing is None:
            changes.created.append(_to_smart_bin(str(uuid.uuid4()), remote_bin, 0.0))
        elif existing.last_updated != remote_bin.last_updated:
            changes.updated.append(_to_smart_bin(existing.id, remote_bin, existing.current_fullness))
    return changes


def _to_smart_bin(bin_id: str, remote_bin: RemoteSmartBin, current_fullness: float) -> SmartBin:
    return SmartBin(
        id=bin_id,
        serial_number=remote_bin.serial_number,
        longitude=remote_bin.longitude,
        latitude=remote_bin.latitude,
        address=remote_bin.address,
        capacity=remote_bin.capacity,
        threshold=remote_bin.threshold,
        current_fullness=current_fullness,
        last_updated=remote_bin.last_updated,
    )


class SmartBinSynchronizer:
    def __init__(self, store: RecordStore, feed: SmartBinFeed) -> None:
        self.store = store
        self.feed = feed

    async def sync_bins(self) -> SmartBinChanges | None:
        """Write the smart bin deletes, creates and updates reported by the feed.

        Returns the applied changes, or None when the feed or the store failed.
        """
        try:
            local = await load_smart_bins(self.store)
        except RecordStoreError as exc:
            logger.error(f"Smart bin sync aborted while loading local bins: {exc}")
            return None
        remote = await self.feed.fetch_smart_bins()
        if remote is None:
            logger.error("Smart bin sync aborted: feed unavailable")
            return None

        changes = diff_smart_bins(local, remote)
        if changes.is_empty:
            logger.info(f"Smart bins already in sync ({len(local)} bins)")
            return changes
        written = await self.store.bulk_write(
            Collection.SMART_BINS,
            delete_ids=changes.deleted_ids,
            inserts=[smart_bin_to_row(item) for item in changes.created],
            updates=[smart_bin_to_row(item) for item in changes.updated],
        )
        if not written:
            logger.error("Failed to write smart bin changes")
            return None
        logger.info(
            f"Smart bins synced: {len(changes.deleted_ids)} deleted, "
            f"{len(changes.created)} created, {len(changes.updated)} updated"
        )
        return changes

    async def relink_dumb_bins(self) -> bool:
        """Recompute the nearest smart bin of every dumb bin."""
        try:
            dumb_bins = await load_dumb_bins(self.store)
        except RecordStoreError as exc:
            logger.error(f"Cannot relink dumb bins: {exc}")
            return False
        return await assign_nearest_smart_bins(self.store, dumb_bins)

    async def sync_fill_levels(self) -> bool:
        """Copy the latest fill levels onto the smart bins and archive the readings.

        A batch whose timestamp is already archived is skipped.
        """
        readings = await self.feed.fetch_fill_levels()
        if readings is None:
            logger.error("Fill level sync aborted: feed unavailable")
            return False
        if not readings:
            return True

        try:
            archived = await self.store.find_matching(
                Collection.SMART_BIN_FILL_LEVELS, {"timestamp": readings[0].timestamp.isoformat()}
            )
            smart_bins = await load_smart_bins(self.store)
        except RecordStoreError as exc:
            logger.error(f"Fill level sync aborted: {exc}")
            return False
        if archived:
            logger.info(f"Fill levels from {readings[0].timestamp.isoformat()} already applied")
            return True

        ids_by_serial = {smart_bin.serial_number: smart_bin.id for smart_bin in smart_bins}
        updates = []
        for reading in readings:
            bin_id = ids_by_serial.get(reading.serial_number)
            if bin_id is None:
                logger.warning(f"Fill level for unknown smart bin {reading.serial_number} ignored")
                continue
            updates.append({"id": bin_id, "current_fullness": reading.fullness})

        if updates and not await self.store.update_many(Collection.SMART_BINS, updates):
            logger.error("Failed to update smart bin fill levels")
            return False
        archive = [
            {
                "serial_number": reading.serial_number,
                "fullness": reading.fullness,
                "timestamp": reading.timestamp.isoformat(),
            }
            for reading in readings
        ]
        if not await self.store.insert_many(Collection.SMART_BIN_FILL_LEVELS, archive):
            logger.error("Failed to archive smart bin fill levels")
            return False
        logger.info(f"Updated fill levels of {len(updates)} smart bins")
        return True
