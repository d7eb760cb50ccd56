"""Storage location schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StorageLocationBase(BaseModel):
    """Base storage location schema."""

    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)


class StorageLocationCreate(StorageLocationBase):
    pass


class StorageLocationUpdate(BaseModel):
    """Storage location update schema. ``active: false`` deactivates."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    active: Optional[bool] = None


class StorageLocationResponse(StorageLocationBase):
    id: int
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LocationStockLine(BaseModel):
    """A product's bulk quantity at one location (``storage_location_id`` null: unassigned)."""

    storage_location_id: Optional[int] = None
    name: str
    quantity: int
    is_default: bool


class LocationContentLine(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    low_stock_threshold: int


class StockTransferRequest(BaseModel):
    """Move bulk units between storage locations."""

    quantity: int
    from_location_id: Optional[int] = None
    to_location_id: int
    note: Optional[str] = Field(None, max_length=500)
