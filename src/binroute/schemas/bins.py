"""Bin API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class DumbBinCreate(BaseModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)
    address: str = Field(..., min_length=1)
    capacity: float = Field(..., ge=1, le=1000, description="Volume in litres")


class DumbBinUpdate(DumbBinCreate):
    id: str = Field(..., min_length=1)


class DumbBinChanges(BaseModel):
    delete: List[str] = Field(default_factory=list, description="IDs of dumb bins to remove")
    create: List[DumbBinCreate] = Field(default_factory=list)
    update: List[DumbBinUpdate] = Field(default_factory=list)


class SmartBinModel(BaseModel):
    id: str
    serial_number: int
    longitude: float
    latitude: float
    address: str
    capacity: float
    threshold: float
    current_fullness: float
    last_updated: datetime | None = None


class DumbBinModel(BaseModel):
    id: str
    longitude: float
    latitude: float
    address: str
    capacity: float
    nearest_smart_bin: str | None = None


class BinsResponse(BaseModel):
    smart_bins: List[SmartBinModel]
    dumb_bins: List[DumbBinModel]


class InsertedIdsResponse(BaseModel):
    inserted_ids: List[str]
