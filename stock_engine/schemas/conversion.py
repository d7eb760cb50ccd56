"""Conversion schemas."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ConversionOperation(str, Enum):
    CONVERT = "convert"
    ADD_TRACKED = "add_tracked"
    ADD_BULK = "add_bulk"
    REMOVE_BULK = "remove_bulk"
    REMOVE_TRACKED = "remove_tracked"


class ConversionRequest(BaseModel):
    """Move stock between the bulk pool and tracked units, or add/remove stock."""

    product_id: int
    operation: ConversionOperation
    quantity: Optional[int] = None
    unit_ids: Optional[List[int]] = None
    category_prefix: Optional[str] = Field(None, min_length=1, max_length=20)
    attributes: Optional[Dict[str, Any]] = None
    note: Optional[str] = Field(None, max_length=500)
    # Bulk side of convert, add_bulk and remove_bulk; defaults to the product's location
    storage_location_id: Optional[int] = None

    @model_validator(mode="after")
    def check_operation_fields(self):
        if self.operation == ConversionOperation.REMOVE_TRACKED:
            if self.unit_ids is None:
                raise ValueError("unit_ids is required for remove_tracked")
        elif self.quantity is None:
            raise ValueError(f"quantity is required for {self.operation.value}")
        return self
