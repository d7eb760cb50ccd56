"""Availability schemas."""

from __future__ import annotations

from datetime import date
from typing import List

from pydantic import BaseModel

from stock_engine.schemas.unit import UnitSummary


class AvailabilityResponse(BaseModel):
    """Free capacity of a product over a date window."""

    product_id: int
    start_date: date
    end_date: date
    bulk_free: int
    tracked_free: List[UnitSummary]
    total_free: int

    model_config = {"from_attributes": True}


class DailyAvailability(BaseModel):
    day: date
    bulk_free: int
    tracked_free: int
    total_free: int
    status: str  # available | partial | unavailable


class DailyAvailabilityResponse(BaseModel):
    product_id: int
    requested: int
    days: List[DailyAvailability]
