"""Schedule request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PositionModel(BaseModel):
    longitude: float
    latitude: float


class DepotModel(BaseModel):
    id: str
    longitude: float
    latitude: float
    address: str


class RouteModel(BaseModel):
    vehicle_id: str
    visiting_order: List[PositionModel]


class ScheduleModel(BaseModel):
    id: Optional[str] = None
    timestamp: datetime
    strategies: List[str]
    sequence: int = 0
    routes: List[RouteModel]


class SchedulesResponse(BaseModel):
    depots: List[DepotModel]
    schedules: List[ScheduleModel]


class ScheduleTimestampResponse(BaseModel):
    timestamp: Optional[datetime] = Field(default=None, description="Build time of the stored schedules, if any")


class RefreshRequest(BaseModel):
    rebuild_cache: bool = Field(
        default=False,
        description="Recompute every cached distance before building schedules.",
    )


class RefreshResponse(BaseModel):
    success: bool
    schedules: int


class DirectionsResponse(BaseModel):
    vehicle_id: str
    stops: int
    windows: List[Dict[str, Any]]
