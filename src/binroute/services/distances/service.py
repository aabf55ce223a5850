"""Maintenance of the pairwise travel cache between collection points."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, Union

from ...data.repository import (
    distance_to_row,
    load_bins,
    load_dumb_bins,
    load_routable_depot,
    load_smart_bins,
)
from ...models.domain import (
    BinDistance,
    Depot,
    DumbBin,
    Node,
    NodeKind,
    Position,
    SmartBin,
    TravelEstimate,
)
from ...persistence.store import Collection, RecordStore, RecordStoreError

logger = logging.getLogger(__name__)

Bin = Union[SmartBin, DumbBin]


class DistanceMatrixSource(Protocol):
    async def distance_matrix(
        self,
        origins: Sequence[Position],
        destinations: Sequence[Position],
    ) -> list[list[TravelEstimate]]:
        ...


def depot_node(depot: Depot) -> Node:
    return Node(kind=NodeKind.DEPOT, id=depot.id, longitude=depot.longitude, latitude=depot.latitude)


def bin_node(kind: NodeKind, item: Bin) -> Node:
    return Node(kind=kind, id=item.id, longitude=item.longitude, latitude=item.latitude)


def other_bin_kind(kind: NodeKind) -> NodeKind:
    if kind is NodeKind.SMART_BIN:
        return NodeKind.DUMB_BIN
    if kind is NodeKind.DUMB_BIN:
        return NodeKind.SMART_BIN
    raise ValueError(f"{kind.value} is not a bin kind.")


def matrix_to_entries(
    origins: Sequence[Node],
    destinations: Sequence[Node],
    matrix: Sequence[Sequence[TravelEstimate]],
) -> list[BinDistance]:
    """Flatten an origins x destinations matrix into directed cache entries."""
    entries: list[BinDistance] = []
    for origin, row in zip(origins, matrix):
        for destination, estimate in zip(destinations, row):
            entries.append(
                BinDistance(
                    origin_kind=origin.kind,
                    origin_id=origin.id,
                    destination_kind=destination.kind,
                    destination_id=destination.id,
                    distance=estimate.distance,
                    duration=estimate.duration,
                )
            )
    return entries


class DistanceCacheMaintainer:
    """Keeps ``bin_distances`` consistent with the stored collection points.

    Both directions of every pair are requested; travel on a road network is
    not symmetric.
    """

    def __init__(self, store: RecordStore, maps_client: DistanceMatrixSource) -> None:
        self.store = store
        self.maps_client = maps_client

    async def _legs(self, origins: Sequence[Node], destinations: Sequence[Node]) -> list[BinDistance]:
        if not origins or not destinations:
            return []
        matrix = await self.maps_client.distance_matrix(
            [node.position for node in origins],
            [node.position for node in destinations],
        )
        return matrix_to_entries(origins, destinations, matrix)

    async def rebuild_all(self) -> bool:
        """Recompute the whole cache from the depot and every stored bin."""
        try:
            depot = await load_routable_depot(self.store)
            smart_bins = await load_smart_bins(self.store)
            dumb_bins = await load_dumb_bins(self.store)
        except RecordStoreError as exc:
            logger.error(f"Distance cache rebuild aborted while loading nodes: {exc}")
            return False

        nodes: list[Node] = [depot_node(depot)] if depot is not None else []
        nodes.extend(bin_node(NodeKind.SMART_BIN, item) for item in smart_bins)
        nodes.extend(bin_node(NodeKind.DUMB_BIN, item) for item in dumb_bins)
        logger.info(f"Rebuilding distance cache for {len(nodes)} nodes")

        entries = await self._legs(nodes, nodes)

        if not await self.store.delete_all(Collection.BIN_DISTANCES):
            logger.error("Distance cache rebuild aborted: failed to clear existing entries")
            return False
        if entries and not await self.store.insert_many(
            Collection.BIN_DISTANCES, [distance_to_row(entry) for entry in entries]
        ):
            logger.error(f"Distance cache rebuild failed to insert {len(entries)} entries")
            return False
        logger.info(f"Distance cache rebuilt with {len(entries)} entries")
        return True

    async def update_bins(
        self,
        kind: NodeKind,
        deleted_ids: Sequence[str] = (),
        created: Sequence[Bin] = (),
        updated: Sequence[Bin] = (),
    ) -> bool:
        """Bring the cache in line with a batch of bin mutations of one kind.

        Must run after the mutations were written to the store: unchanged bins,
        the other bin kind and the depot are read fresh from it. Only legs
        touching a created or updated bin are requested.
        """
        other_kind = other_bin_kind(kind)

        stale_ids = list(dict.fromkeys([*deleted_ids, *(item.id for item in updated)]))
        if stale_ids:
            origin_deleted = await self.store.delete_matching(
                Collection.BIN_DISTANCES, {"origin_kind": kind.value, "origin_id": stale_ids}
            )
            destination_deleted = origin_deleted and await self.store.delete_matching(
                Collection.BIN_DISTANCES, {"destination_kind": kind.value, "destination_id": stale_ids}
            )
            if not destination_deleted:
                logger.error(f"Failed to remove stale distance entries for {len(stale_ids)} {kind.value} bins")
                return False

        changed = [bin_node(kind, item) for item in [*created, *updated]]
        if not changed:
            return True

        changed_ids = {node.id for node in changed}
        try:
            same_kind = [
                bin_node(kind, item) for item in await load_bins(self.store, kind) if item.id not in changed_ids
            ]
            other = [bin_node(other_kind, item) for item in await load_bins(self.store, other_kind)]
            depot = await load_routable_depot(self.store)
        except RecordStoreError as exc:
            logger.error(f"Distance cache update aborted while loading nodes: {exc}")
            return False
        depots = [depot_node(depot)] if depot is not None else []

        entries: list[BinDistance] = []
        entries += await self._legs(changed, changed)
        entries += await self._legs(changed, same_kind)
        entries += await self._legs(same_kind, changed)
        entries += await self._legs(changed, other)
        entries += await self._legs(other, changed)
        entries += await self._legs(changed, depots)
        entries += await self._legs(depots, changed)

        if entries and not await self.store.insert_many(
            Collection.BIN_DISTANCES, [distance_to_row(entry) for entry in entries]
        ):
            logger.error(f"Failed to insert {len(entries)} distance entries for {kind.value} bins")
            return False
        logger.info(f"Distance cache updated for {len(changed)} {kind.value} bins ({len(entries)} entries)")
        return True
