"""Fleet vehicle API schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class VehicleCreate(BaseModel):
    rego: str = Field(..., min_length=1, description="Registration plate")
    capacity: float = Field(..., ge=1, le=50000, description="Volume in litres")
    available: bool = True
    icon: int = Field(default=0, ge=0, le=11)
    home_depot: Optional[str] = Field(default=None, description="Depot the vehicle starts from; any depot when unset")


class VehicleUpdate(VehicleCreate):
    id: str = Field(..., min_length=1)


class VehicleChanges(BaseModel):
    delete: List[str] = Field(default_factory=list)
    create: List[VehicleCreate] = Field(default_factory=list)
    update: List[VehicleUpdate] = Field(default_factory=list)


class VehicleModel(BaseModel):
    id: str
    rego: str
    capacity: float
    available: bool
    icon: int
    home_depot: Optional[str] = None
