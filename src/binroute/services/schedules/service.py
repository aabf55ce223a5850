"""Build collection schedules from the cached distances and the solver."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from ...config import settings
from ...data.repository import (
    load_distances_between,
    load_dumb_bins,
    load_routable_depot,
    load_smart_bins,
    load_vehicles,
    schedule_to_row,
)
from ...models.domain import (
    BinDistance,
    Depot,
    DumbBin,
    FleetVehicle,
    Node,
    NodeKind,
    Schedule,
    ScheduledRoute,
    SmartBin,
)
from ...persistence.store import Collection, RecordStore, RecordStoreError
from ..solver.adapter import RouteSet, RoutingSolverAdapter, SolverLaunchError
from .graph import GraphIndex, round_half_up

UNKNOWN_DISTANCE = -1

logger = logging.getLogger(__name__)


def select_collection_nodes(
    depot: Depot,
    smart_bins: Sequence[SmartBin],
    dumb_bins: Sequence[DumbBin],
    ratio_threshold: float,
) -> GraphIndex:
    """Pick the bins worth collecting and lay them out as a routing graph.

    Index 0 is the depot, then the eligible smart bins, then the dumb bins,
    each group in store order. A smart bin is eligible once its fullness ratio
    reaches ``ratio_threshold``; a dumb bin follows its nearest smart bin and
    is collected at full capacity when it has none.
    """
    nodes = [Node(kind=NodeKind.DEPOT, id=depot.id, longitude=depot.longitude, latitude=depot.latitude)]

    known_smart_bins = {item.id for item in smart_bins}
    eligible_ratios: dict[str, float] = {}
    for item in smart_bins:
        ratio = item.fullness_ratio
        if ratio < ratio_threshold:
            continue
        eligible_ratios[item.id] = ratio
        nodes.append(
            Node(
                kind=NodeKind.SMART_BIN,
                id=item.id,
                longitude=item.longitude,
                latitude=item.latitude,
                volume=item.capacity * ratio if ratio != float("inf") else item.capacity,
            )
        )

    for item in dumb_bins:
        nearest = item.nearest_smart_bin
        if nearest in eligible_ratios:
            ratio = eligible_ratios[nearest]
            volume = item.capacity * ratio if ratio != float("inf") else item.capacity
        elif nearest is None or nearest not in known_smart_bins:
            volume = item.capacity
        else:
            continue
        nodes.append(
            Node(
                kind=NodeKind.DUMB_BIN,
                id=item.id,
                longitude=item.longitude,
                latitude=item.latitude,
                volume=volume,
            )
        )
    return GraphIndex(nodes)


def build_distance_matrix(graph: GraphIndex, entries: Sequence[BinDistance]) -> list[list[int]]:
    """Square matrix over ``graph``; pairs missing from the cache stay -1."""
    size = len(graph)
    matrix = [[UNKNOWN_DISTANCE] * size for _ in range(size)]
    for entry in entries:
        row = graph.index_of(entry.origin_kind, entry.origin_id)
        col = graph.index_of(entry.destination_kind, entry.destination_id)
        if row is None or col is None or entry.distance is None:
            continue
        matrix[row][col] = entry.distance
    return matrix


def routable_vehicles(vehicles: Sequence[FleetVehicle], depot: Depot) -> list[FleetVehicle]:
    return [
        vehicle
        for vehicle in vehicles
        if vehicle.available and (vehicle.home_depot is None or vehicle.home_depot == depot.id)
    ]


def route_set_to_routes(
    route_set: RouteSet,
    graph: GraphIndex,
    vehicles: Sequence[FleetVehicle],
) -> list[ScheduledRoute]:
    """Pair route ``i`` with vehicle ``i``, dropping routes that collect nothing."""
    routes: list[ScheduledRoute] = []
    for slot, route in enumerate(route_set):
        if slot >= len(vehicles):
            logger.warning(f"Solver returned route {slot} but only {len(vehicles)} vehicles were offered")
            break
        # Covers the infeasible marker [-1] and the unused-vehicle loop [0, 0].
        if len(route) < 2 or all(index == 0 for index in route):
            continue
        if any(index < 0 or index >= len(graph) for index in route):
            logger.warning(f"Skipping route {slot} with out-of-range node indices: {route}")
            continue
        routes.append(
            ScheduledRoute(
                vehicle_id=vehicles[slot].id,
                visiting_order=[graph.node_at(index).position for index in route],
            )
        )
    return routes


class ScheduleBuilder:
    """Turns the current bin state into persisted collection schedules."""

    def __init__(
        self,
        store: RecordStore,
        solver: RoutingSolverAdapter,
        ratio_threshold: Optional[float] = None,
    ) -> None:
        self.store = store
        self.solver = solver
        self.ratio_threshold = (
            ratio_threshold if ratio_threshold is not None else settings.fullness_ratio_threshold
        )

    async def build_schedules(self) -> list[Schedule] | None:
        """Solve the current collection problem with every strategy.

        Returns one schedule per distinct solver result, an empty list when
        there is nothing to route, or None when loading or launching failed.
        """
        try:
            depot = await load_routable_depot(self.store)
            smart_bins = await load_smart_bins(self.store)
            dumb_bins = await load_dumb_bins(self.store)
            vehicles = await load_vehicles(self.store)
        except RecordStoreError as exc:
            logger.error(f"Schedule build aborted while loading records: {exc}")
            return None

        if depot is None:
            logger.info("No depot stored; nothing to schedule")
            return []
        vehicles = routable_vehicles(vehicles, depot)
        if not vehicles:
            logger.info(f"No available vehicles for depot {depot.id}; nothing to schedule")
            return []
        graph = select_collection_nodes(depot, smart_bins, dumb_bins, self.ratio_threshold)
        if len(graph) < 2:
            logger.info("No bins currently need collecting; nothing to schedule")
            return []

        try:
            entries = await load_distances_between(self.store, [node.id for node in graph])
        except RecordStoreError as exc:
            logger.error(f"Schedule build aborted while loading cached distances: {exc}")
            return None
        matrix = build_distance_matrix(graph, entries)
        weights = graph.weights()
        capacities = [round_half_up(vehicle.capacity) for vehicle in vehicles]
        logger.info(f"Solving collection of {len(graph) - 1} bins with {len(vehicles)} vehicles")

        try:
            outcomes = await self.solver.collect_strategy_outcomes(matrix, weights, capacities)
        except SolverLaunchError as exc:
            logger.error(f"Schedule build failed: {exc}")
            return None

        timestamp = datetime.now(timezone.utc)
        schedules: list[Schedule] = []
        for outcome in outcomes:
            names = [strategy.name for strategy in outcome.strategies]
            if not outcome.route_set:
                logger.warning(f"No routes from strategies {names}; skipped")
                continue
            routes = route_set_to_routes(outcome.route_set, graph, vehicles)
            if not routes:
                logger.warning(f"Strategies {names} left every vehicle idle or found no feasible assignment; skipped")
                continue
            schedules.append(
                Schedule(
                    id=str(uuid.uuid4()),
                    routes=routes,
                    timestamp=timestamp,
                    strategies=names,
                    sequence=len(schedules),
                )
            )
        logger.info(f"Built {len(schedules)} distinct schedules")
        return schedules

    async def replace_schedules(self, schedules: Sequence[Schedule]) -> bool:
        """Replace every stored schedule with ``schedules``."""
        if not await self.store.delete_all(Collection.SCHEDULES):
            logger.error("Failed to clear stored schedules")
            return False
        if schedules and not await self.store.insert_many(
            Collection.SCHEDULES, [schedule_to_row(schedule) for schedule in schedules]
        ):
            logger.error(f"Failed to insert {len(schedules)} schedules")
            return False
        return True

    async def update_schedules(self) -> bool:
        schedules = await self.build_schedules()
        if schedules is None:
            return False
        return await self.replace_schedules(schedules)
