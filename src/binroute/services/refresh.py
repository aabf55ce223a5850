"""Serialized distance cache maintenance and schedule rebuilds."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from ..models.domain import NodeKind
from .distances.service import Bin, DistanceCacheMaintainer
from .schedules.service import ScheduleBuilder
from .smart_bins.service import SmartBinSynchronizer

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """Runs one maintenance job at a time.

    HTTP mutations and the periodic trigger both go through here; the solver
    adapter owns a single process slot and the cache updates assume no
    concurrent writer.
    """

    def __init__(
        self,
        builder: ScheduleBuilder,
        distances: Optional[DistanceCacheMaintainer] = None,
        smart_bins: Optional[SmartBinSynchronizer] = None,
    ) -> None:
        self.builder = builder
        self.distances = distances
        self.smart_bins = smart_bins
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def refresh(self, rebuild_cache: bool = False) -> bool:
        """Rebuild the schedules, optionally recomputing the whole distance cache first."""
        async with self._lock:
            if rebuild_cache and not await self._rebuild_cache():
                return False
            return await self.builder.update_schedules()

    async def sync_and_refresh(self, rebuild_cache: bool = False) -> bool:
        """Pull smart bins and fill levels from the sensor feeds, maintain the cache, then rebuild the schedules.

        Without a smart bin feed this is a plain ``refresh``.
        """
        async with self._lock:
            changes = None
            if self.smart_bins is not None:
                changes = await self.smart_bins.sync_bins()
                if changes is None:
                    return False
            bins_changed = changes is not None and not changes.is_empty

            if rebuild_cache:
                if not await self._rebuild_cache():
                    return False
            elif bins_changed:
                if self.distances is None:
                    logger.warning("Mapping service not configured; distance cache not updated for smart bin changes")
                elif not await self.distances.update_bins(
                    NodeKind.SMART_BIN, changes.deleted_ids, changes.created, changes.updated
                ):
                    return False

            if self.smart_bins is not None:
                if bins_changed and not await self.smart_bins.relink_dumb_bins():
                    return False
                if not await self.smart_bins.sync_fill_levels():
                    return False
            return await self.builder.update_schedules()

    async def _rebuild_cache(self) -> bool:
        if self.distances is None:
            logger.warning("Distance cache rebuild requested but no mapping service is configured")
            return False
        return await self.distances.rebuild_all()

    async def on_bins_changed(
        self,
        kind: NodeKind,
        deleted_ids: Sequence[str] = (),
        created: Sequence[Bin] = (),
        updated: Sequence[Bin] = (),
    ) -> bool:
        async with self._lock:
            if self.distances is None:
                logger.warning(f"Mapping service not configured; distance cache not updated for {kind.value} changes")
            elif not await self.distances.update_bins(kind, deleted_ids, created, updated):
                return False
            return await self.builder.update_schedules()

    async def on_vehicles_changed(self) -> bool:
        async with self._lock:
            return await self.builder.update_schedules()

    async def run_periodically(self, interval_seconds: float, rebuild_cache: bool = False) -> None:
        """Sync and refresh every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            logger.info("Starting scheduled refresh")
            try:
                ok = await self.sync_and_refresh(rebuild_cache=rebuild_cache)
            except Exception:
                logger.exception("Scheduled refresh crashed")
                continue
            if not ok:
                logger.warning("Scheduled refresh did not complete")
