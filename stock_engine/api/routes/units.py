"""Tracked unit routes."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from stock_engine.core.rate_limit import limiter
from stock_engine.core.rbac import RequireManager, RequireStaff
from stock_engine.db.session import DbSession
from stock_engine.schemas.unit import (
    StatusSyncRequest,
    StatusSyncResponse,
    UnitResponse,
    UnitStatusUpdate,
)
from stock_engine.services.unit_registry_service import UnitRegistryService

router = APIRouter()


@router.get("/", response_model=List[UnitResponse])
@limiter.limit("60/minute")
def list_units(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    product_id: int = Query(...),
    status: Optional[str] = None,
):
    """List a product's tracked units, optionally filtered by status."""
    return UnitRegistryService(db).list_by_product(product_id, status=status)


@router.get("/{unit_id}", response_model=UnitResponse)
@limiter.limit("60/minute")
def get_unit(request: Request, unit_id: int, db: DbSession, current_user: RequireStaff):
    """Get a tracked unit by ID."""
    unit = UnitRegistryService(db).get(unit_id)
    if not unit:
        raise HTTPException(status_code=404, detail="Unit not found")
    return unit


@router.patch("/{unit_id}/status", response_model=UnitResponse)
@limiter.limit("30/minute")
def update_unit_status(
    request: Request,
    unit_id: int,
    data: UnitStatusUpdate,
    db: DbSession,
    current_user: RequireStaff,
):
    """Put a unit into maintenance, retire it, or return it to service."""
    return UnitRegistryService(db).set_status(unit_id, data.status.value, actor=current_user.actor)


@router.post("/sync-statuses", response_model=StatusSyncResponse)
@limiter.limit("10/minute")
def sync_unit_statuses(
    request: Request,
    data: StatusSyncRequest,
    db: DbSession,
    current_user: RequireManager,
):
    """Re-derive reserved/available from the reservations covering a day."""
    changed = UnitRegistryService(db).sync_statuses(product_id=data.product_id, as_of=data.as_of)
    return StatusSyncResponse(changed=changed)
