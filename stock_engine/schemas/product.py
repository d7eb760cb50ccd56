"""Product schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ProductBase(BaseModel):
    """Base product schema."""

    name: str = Field(..., min_length=1, max_length=255)
    track_inventory: bool = True
    low_stock_threshold: int = Field(default=0, ge=0)


class ProductCreate(ProductBase):
    """Product creation schema. Opening stock is recorded in the ledger."""

    default_category_prefix: Optional[str] = Field(None, min_length=1, max_length=20)
    initial_bulk_quantity: int = 0
    default_storage_location_id: Optional[int] = None


class ProductUpdate(BaseModel):
    """Product update schema."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    track_inventory: Optional[bool] = None
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    default_category_prefix: Optional[str] = Field(None, min_length=1, max_length=20)
    # Explicit null clears the default
    default_storage_location_id: Optional[int] = None
    version: Optional[int] = None


class ProductResponse(ProductBase):
    """Product response schema."""

    id: int
    default_category_prefix: str
    default_storage_location_id: Optional[int] = None
    active: bool
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
