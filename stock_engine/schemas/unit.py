"""Tracked unit schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from stock_engine.models.unit import UnitStatus


class UnitSummary(BaseModel):
    """Unit as listed in availability results."""

    id: int
    code: str
    attributes: Dict[str, Any] = {}

    model_config = {"from_attributes": True}


class UnitResponse(UnitSummary):
    """Unit response schema."""

    product_id: int
    category_prefix: str
    status: UnitStatus
    created_at: datetime
    updated_at: datetime


class UnitStatusUpdate(BaseModel):
    """Manual status change; "reserved" is set by reservations only."""

    status: UnitStatus


class StatusSyncRequest(BaseModel):
    product_id: Optional[int] = None
    as_of: Optional[date] = None


class StatusSyncResponse(BaseModel):
    changed: Dict[int, int]
