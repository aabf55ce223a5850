"""Fleet vehicle endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...context import AppContext, get_context
from ...persistence.store import RecordStoreError
from ...schemas.bins import InsertedIdsResponse
from ...schemas.vehicles import VehicleChanges, VehicleModel
from ...services.vehicles.service import VehicleUpdateError, apply_vehicle_changes, list_vehicles

router = APIRouter(prefix="/vehicles", tags=["vehicles"])
logger = logging.getLogger(__name__)


@router.get("", response_model=List[VehicleModel], status_code=status.HTTP_200_OK)
async def get_vehicles(context: AppContext = Depends(get_context)) -> List[VehicleModel]:
    try:
        vehicles = await list_vehicles(context.store)
    except RecordStoreError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return [
        VehicleModel(
            id=vehicle.id,
            rego=vehicle.rego,
            capacity=vehicle.capacity,
            available=vehicle.available,
            icon=vehicle.icon,
            home_depot=vehicle.home_depot,
        )
        for vehicle in vehicles
    ]


@router.put("", response_model=InsertedIdsResponse, status_code=status.HTTP_201_CREATED)
async def modify_vehicles(payload: VehicleChanges, context: AppContext = Depends(get_context)) -> InsertedIdsResponse:
    try:
        inserted_ids = await apply_vehicle_changes(context.store, payload, context.coordinator)
    except VehicleUpdateError as exc:
        logger.error(f"Error modifying vehicles: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return InsertedIdsResponse(inserted_ids=inserted_ids)
