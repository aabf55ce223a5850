"""Domain models for collection points, vehicles, cached distances and schedules."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional


class NodeKind(str, Enum):
    DEPOT = "Depot"
    SMART_BIN = "SmartBin"
    DUMB_BIN = "DumbBin"


class RoutingStrategy(IntEnum):
    """Heuristic modes understood by the route-optimization executable."""

    AUTOMATIC = -1
    GREEDY_DESCENT = 0
    GUIDED_LOCAL_SEARCH = 1
    SIMULATED_ANNEALING = 2
    TABU_SEARCH = 3


@dataclass(slots=True, frozen=True)
class Position:
    longitude: float
    latitude: float

    def is_valid(self) -> bool:
        return -180.0 <= self.longitude <= 180.0 and -90.0 <= self.latitude <= 90.0


@dataclass(slots=True)
class Depot:
    id: str
    longitude: float
    latitude: float
    address: str = ""


@dataclass(slots=True)
class SmartBin:
    """A sensor-equipped bin reporting its own fill level."""

    id: str
    serial_number: int
    longitude: float
    latitude: float
    address: str
    capacity: float
    threshold: float
    current_fullness: float = 0.0
    last_updated: Optional[datetime] = None

    @property
    def fullness_ratio(self) -> float:
        if self.threshold <= 0:
            return float("inf") if self.current_fullness > 0 else 0.0
        return self.current_fullness / self.threshold


@dataclass(slots=True)
class DumbBin:
    """A bin without sensors; its fill level is estimated from the nearest smart bin."""

    id: str
    longitude: float
    latitude: float
    address: str
    capacity: float
    nearest_smart_bin: Optional[str] = None


@dataclass(slots=True)
class FleetVehicle:
    id: str
    rego: str
    capacity: float
    available: bool = True
    icon: int = 0
    home_depot: Optional[str] = None


@dataclass(slots=True)
class Node:
    """A routable collection point with the volume waiting to be collected."""

    kind: NodeKind
    id: str
    longitude: float
    latitude: float
    volume: float = 0.0

    @property
    def key(self) -> tuple[NodeKind, str]:
        return (self.kind, self.id)

    @property
    def position(self) -> Position:
        return Position(longitude=self.longitude, latitude=self.latitude)


@dataclass(slots=True, frozen=True)
class TravelEstimate:
    """Distance in metres and duration in seconds; None when unknown or unreachable."""

    distance: Optional[int] = None
    duration: Optional[int] = None

    @property
    def is_known(self) -> bool:
        return self.distance is not None and self.duration is not None


@dataclass(slots=True)
class BinDistance:
    origin_kind: NodeKind
    origin_id: str
    destination_kind: NodeKind
    destination_id: str
    distance: Optional[int] = None
    duration: Optional[int] = None

    @property
    def key(self) -> tuple[NodeKind, str, NodeKind, str]:
        return (self.origin_kind, self.origin_id, self.destination_kind, self.destination_id)


@dataclass(slots=True)
class ScheduledRoute:
    vehicle_id: str
    visiting_order: list[Position]


@dataclass(slots=True)
class Schedule:
    routes: list[ScheduledRoute]
    timestamp: datetime
    id: Optional[str] = None
    strategies: list[str] = field(default_factory=list)
    # Position among the schedules of one build.
    sequence: int = 0
