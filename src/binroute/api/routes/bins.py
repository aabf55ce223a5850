"""Bin endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...context import AppContext, get_context
from ...persistence.store import RecordStoreError
from ...schemas.bins import (
    BinsResponse,
    DumbBinChanges,
    DumbBinModel,
    InsertedIdsResponse,
    SmartBinModel,
)
from ...services.bins.service import BinUpdateError, apply_dumb_bin_changes, list_bins

router = APIRouter(prefix="/bins", tags=["bins"])
logger = logging.getLogger(__name__)


@router.get("", response_model=BinsResponse, status_code=status.HTTP_200_OK)
async def get_bins(context: AppContext = Depends(get_context)) -> BinsResponse:
    try:
        smart_bins, dumb_bins = await list_bins(context.store)
    except RecordStoreError as exc:
        logger.error(f"Error loading bins: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return BinsResponse(
        smart_bins=[
            SmartBinModel(
                id=item.id,
                serial_number=item.serial_number,
                longitude=item.longitude,
                latitude=item.latitude,
                address=item.address,
                capacity=item.capacity,
                threshold=item.threshold,
                current_fullness=item.current_fullness,
                last_updated=item.last_updated,
            )
            for item in smart_bins
        ],
        dumb_bins=[
            DumbBinModel(
                id=item.id,
                longitude=item.longitude,
                latitude=item.latitude,
                address=item.address,
                capacity=item.capacity,
                nearest_smart_bin=item.nearest_smart_bin,
            )
            for item in dumb_bins
        ],
    )


@router.put("", response_model=InsertedIdsResponse, status_code=status.HTTP_201_CREATED)
async def modify_bins(payload: DumbBinChanges, context: AppContext = Depends(get_context)) -> InsertedIdsResponse:
    """Delete, create and update dumb bins, then refresh distances and schedules."""
    try:
        inserted_ids = await apply_dumb_bin_changes(context.store, payload, context.coordinator)
    except BinUpdateError as exc:
        logger.error(f"Error modifying bins: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return InsertedIdsResponse(inserted_ids=inserted_ids)
