"""Availability routes - free stock of a product for a date window."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, Request

from stock_engine.core.rate_limit import limiter
from stock_engine.core.rbac import RequireStaff
from stock_engine.db.session import DbSession
from stock_engine.schemas.availability import (
    AvailabilityResponse,
    DailyAvailability,
    DailyAvailabilityResponse,
)
from stock_engine.schemas.unit import UnitSummary
from stock_engine.services.availability_service import AvailabilityService

router = APIRouter()


@router.get("/{product_id}", response_model=AvailabilityResponse)
@limiter.limit("120/minute")
def get_availability(
    request: Request,
    product_id: int,
    db: DbSession,
    current_user: RequireStaff,
    start_date: date = Query(...),
    end_date: Optional[date] = None,
):
    """Free bulk quantity and free tracked units between two dates (inclusive)."""
    result = AvailabilityService(db).available(product_id, start_date, end_date)
    return AvailabilityResponse(
        product_id=result.product_id,
        start_date=result.start_date,
        end_date=result.end_date,
        bulk_free=result.bulk_free,
        tracked_free=[UnitSummary.model_validate(unit) for unit in result.tracked_free],
        total_free=result.total_free,
    )


@router.get("/{product_id}/daily", response_model=DailyAvailabilityResponse)
@limiter.limit("60/minute")
def get_daily_availability(
    request: Request,
    product_id: int,
    db: DbSession,
    current_user: RequireStaff,
    start_date: date = Query(...),
    end_date: Optional[date] = None,
    quantity: int = Query(1),
):
    """Per-day calendar marking each day available, partial or unavailable for ``quantity``."""
    days = AvailabilityService(db).daily(product_id, start_date, end_date, requested=quantity)
    return DailyAvailabilityResponse(
        product_id=product_id,
        requested=quantity,
        days=[DailyAvailability(**day) for day in days],
    )
