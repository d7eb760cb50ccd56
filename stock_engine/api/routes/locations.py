"""Storage location routes - admin and what each location holds."""

from typing import List

from fastapi import APIRouter, Request, status

from stock_engine.core.rate_limit import limiter
from stock_engine.core.rbac import RequireManager, RequireStaff
from stock_engine.db.session import DbSession
from stock_engine.schemas.location import (
    LocationContentLine,
    StorageLocationCreate,
    StorageLocationResponse,
    StorageLocationUpdate,
)
from stock_engine.services.storage_location_service import StorageLocationService

router = APIRouter()


@router.post("/", response_model=StorageLocationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_location(
    request: Request,
    location_in: StorageLocationCreate,
    db: DbSession,
    current_user: RequireManager,
):
    """Create a storage location."""
    return StorageLocationService(db).create(
        name=location_in.name,
        code=location_in.code,
        description=location_in.description,
    )


@router.get("/", response_model=List[StorageLocationResponse])
@limiter.limit("60/minute")
def list_locations(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    active_only: bool = True,
):
    """List storage locations."""
    return StorageLocationService(db).list_locations(active_only=active_only)


@router.get("/{location_id}", response_model=StorageLocationResponse)
@limiter.limit("60/minute")
def get_location(request: Request, location_id: int, db: DbSession, current_user: RequireStaff):
    return StorageLocationService(db).get(location_id)


@router.patch("/{location_id}", response_model=StorageLocationResponse)
@limiter.limit("30/minute")
def update_location(
    request: Request,
    location_id: int,
    location_in: StorageLocationUpdate,
    db: DbSession,
    current_user: RequireManager,
):
    """Rename or describe a location. Deactivation is refused while it holds stock."""
    changes = location_in.model_dump(exclude_unset=True)
    return StorageLocationService(db).update(location_id, changes)


@router.get("/{location_id}/stock", response_model=List[LocationContentLine])
@limiter.limit("60/minute")
def get_location_stock(request: Request, location_id: int, db: DbSession, current_user: RequireStaff):
    """Bulk stock held at a location, per product."""
    return StorageLocationService(db).location_contents(location_id)
