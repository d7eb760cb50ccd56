"""Reservation schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from stock_engine.models.reservations import ReservationMode, ReservationStatus


class ReservationCreate(BaseModel):
    """Create a bulk or specific-unit reservation for a job."""

    product_id: Optional[int] = None
    mode: ReservationMode
    quantity: Optional[int] = None
    unit_ids: Optional[List[int]] = None
    start_date: date
    end_date: Optional[date] = None  # None = open-ended
    job_id: str = Field(..., min_length=1, max_length=128)
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_mode_fields(self):
        if self.mode == ReservationMode.BULK:
            if self.product_id is None:
                raise ValueError("product_id is required for bulk reservations")
            if self.quantity is None:
                raise ValueError("quantity is required for bulk reservations")
        elif self.unit_ids is None:
            raise ValueError("unit_ids is required for specific reservations")
        return self


class ReservationCreated(BaseModel):
    reservation_id: int


class ReservationReleased(BaseModel):
    released: bool = True


class RescheduleRequest(BaseModel):
    """New window for an active reservation."""

    start_date: date
    end_date: Optional[date] = None


class ReservationResponse(BaseModel):
    """Reservation response schema."""

    id: int
    product_id: int
    mode: ReservationMode
    quantity: int
    unit_ids: List[int] = []
    start_date: date
    end_date: Optional[date] = None
    job_id: str
    status: ReservationStatus
    notes: Optional[str] = None
    actor: str
    created_by: Optional[int] = None
    created_at: datetime
    released_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
