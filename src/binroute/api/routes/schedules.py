"""Schedule endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...context import AppContext, get_context
from ...data.repository import load_depots, load_schedules
from ...models.domain import Schedule
from ...persistence.store import RecordStoreError
from ...schemas.schedules import (
    DepotModel,
    DirectionsResponse,
    PositionModel,
    RefreshRequest,
    RefreshResponse,
    RouteModel,
    ScheduleModel,
    SchedulesResponse,
    ScheduleTimestampResponse,
)

router = APIRouter(prefix="/schedules", tags=["schedules"])
logger = logging.getLogger(__name__)


def _schedule_model(schedule: Schedule) -> ScheduleModel:
    return ScheduleModel(
        id=schedule.id,
        timestamp=schedule.timestamp,
        strategies=schedule.strategies,
        sequence=schedule.sequence,
        routes=[
            RouteModel(
                vehicle_id=route.vehicle_id,
                visiting_order=[
                    PositionModel(longitude=stop.longitude, latitude=stop.latitude) for stop in route.visiting_order
                ],
            )
            for route in schedule.routes
        ],
    )


@router.get("", response_model=SchedulesResponse, status_code=status.HTTP_200_OK)
async def get_schedules(context: AppContext = Depends(get_context)) -> SchedulesResponse:
    """Return the depots with every stored schedule, oldest first."""
    try:
        depots = await load_depots(context.store)
        schedules = await load_schedules(context.store)
    except RecordStoreError as exc:
        logger.error(f"Error loading schedules: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return SchedulesResponse(
        depots=[
            DepotModel(id=depot.id, longitude=depot.longitude, latitude=depot.latitude, address=depot.address)
            for depot in depots
        ],
        schedules=[_schedule_model(schedule) for schedule in schedules],
    )


@router.get("/timestamp", response_model=ScheduleTimestampResponse, status_code=status.HTTP_200_OK)
async def get_schedules_timestamp(context: AppContext = Depends(get_context)) -> ScheduleTimestampResponse:
    try:
        schedules = await load_schedules(context.store)
    except RecordStoreError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    if not schedules:
        return ScheduleTimestampResponse(timestamp=None)
    return ScheduleTimestampResponse(timestamp=max(schedule.timestamp for schedule in schedules))


@router.post("/refresh", response_model=RefreshResponse, status_code=status.HTTP_200_OK)
async def refresh_schedules(
    payload: RefreshRequest | None = None,
    context: AppContext = Depends(get_context),
) -> RefreshResponse:
    """Sync smart bins and rebuild the schedules now, optionally recomputing the distance cache first."""
    request = payload or RefreshRequest()
    if request.rebuild_cache and context.coordinator.distances is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Maps API key is not configured; the distance cache cannot be rebuilt.",
        )
    success = await context.coordinator.sync_and_refresh(rebuild_cache=request.rebuild_cache)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to refresh schedules; check the server log.",
        )
    try:
        schedules = await load_schedules(context.store)
    except RecordStoreError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return RefreshResponse(success=True, schedules=len(schedules))


@router.get(
    "/{schedule_index}/routes/{route_index}/directions",
    response_model=DirectionsResponse,
    status_code=status.HTTP_200_OK,
)
async def get_route_directions(
    schedule_index: int,
    route_index: int,
    context: AppContext = Depends(get_context),
) -> DirectionsResponse:
    """Driving directions along one stored route, as returned by the Directions service per window."""
    if context.maps_client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Maps API key is not configured.",
        )
    try:
        schedules = await load_schedules(context.store)
    except RecordStoreError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    if not 0 <= schedule_index < len(schedules):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Schedule {schedule_index} not found")
    routes = schedules[schedule_index].routes
    if not 0 <= route_index < len(routes):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Route {route_index} not found in schedule {schedule_index}",
        )
    route = routes[route_index]
    stops = route.visiting_order
    if len(stops) < 2:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Route has no stops to travel between")
    windows = await context.maps_client.directions(stops[0], stops[-1], stops[1:-1])
    return DirectionsResponse(vehicle_id=route.vehicle_id, stops=len(stops), windows=windows)
