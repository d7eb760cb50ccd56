"""Reservation routes - exclusive holds on stock for a job."""

import logging
from typing import List

from fastapi import APIRouter, Query, Request, status

from stock_engine.core.rate_limit import limiter
from stock_engine.core.rbac import RequireStaff
from stock_engine.db.session import DbSession
from stock_engine.models.reservations import Reservation, ReservationMode
from stock_engine.schemas.reservations import (
    RescheduleRequest,
    ReservationCreate,
    ReservationCreated,
    ReservationReleased,
    ReservationResponse,
)
from stock_engine.services.allocation_service import AllocationService

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(reservation: Reservation) -> ReservationResponse:
    return ReservationResponse.model_validate(reservation)


@router.post("/", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_reservation(
    request: Request,
    data: ReservationCreate,
    db: DbSession,
    current_user: RequireStaff,
):
    """Reserve bulk quantity or specific units for a job over a window."""
    service = AllocationService(db)
    if data.mode == ReservationMode.BULK:
        reservation_id = service.reserve_bulk(
            data.product_id,
            data.quantity,
            data.start_date,
            data.end_date,
            job_id=data.job_id,
            actor=current_user.actor,
            notes=data.notes,
            created_by=current_user.user_id,
        )
    else:
        reservation_id = service.reserve_specific(
            data.unit_ids,
            data.start_date,
            data.end_date,
            job_id=data.job_id,
            actor=current_user.actor,
            product_id=data.product_id,
            notes=data.notes,
            created_by=current_user.user_id,
        )
    return ReservationCreated(reservation_id=reservation_id)


@router.get("/", response_model=List[ReservationResponse])
@limiter.limit("60/minute")
def list_reservations(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    product_id: int = Query(...),
    active_only: bool = True,
):
    """Reservations of a product ordered by start date."""
    reservations = AllocationService(db).list_for_product(product_id, active_only=active_only)
    return [_to_response(reservation) for reservation in reservations]


@router.get("/{reservation_id}", response_model=ReservationResponse)
@limiter.limit("60/minute")
def get_reservation(request: Request, reservation_id: int, db: DbSession, current_user: RequireStaff):
    """Get a reservation by ID."""
    return _to_response(AllocationService(db).get(reservation_id))


@router.delete("/{reservation_id}", response_model=ReservationReleased)
@limiter.limit("60/minute")
def release_reservation(request: Request, reservation_id: int, db: DbSession, current_user: RequireStaff):
    """Release a reservation. Releasing an unknown or ended reservation also succeeds."""
    AllocationService(db).release(reservation_id, actor=current_user.actor)
    return ReservationReleased(released=True)


@router.post("/{reservation_id}/reschedule", response_model=ReservationResponse)
@limiter.limit("30/minute")
def reschedule_reservation(
    request: Request,
    reservation_id: int,
    data: RescheduleRequest,
    db: DbSession,
    current_user: RequireStaff,
):
    """Move or shorten an active reservation."""
    reservation = AllocationService(db).reschedule(
        reservation_id, data.start_date, data.end_date, actor=current_user.actor
    )
    return _to_response(reservation)


@router.post("/{reservation_id}/complete", response_model=ReservationResponse)
@limiter.limit("30/minute")
def complete_reservation(request: Request, reservation_id: int, db: DbSession, current_user: RequireStaff):
    """Mark a reservation's job as done, returning its stock."""
    reservation = AllocationService(db).complete(reservation_id, actor=current_user.actor)
    return _to_response(reservation)
