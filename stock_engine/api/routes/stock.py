"""Stock routes - derived totals, adjustments, ledger history, locations and integrity checks."""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Query, Request, status

from stock_engine.core.rate_limit import limiter
from stock_engine.core.rbac import RequireManager, RequireStaff
from stock_engine.db.session import DbSession
from stock_engine.schemas.location import LocationStockLine, StockTransferRequest
from stock_engine.schemas.stock import (
    IntegrityReportResponse,
    LedgerEntryResponse,
    StockAdjustmentRequest,
    StockTotalsResponse,
)
from stock_engine.services.stock_aggregator_service import StockAggregatorService
from stock_engine.services.stock_ledger_service import StockLedgerService
from stock_engine.services.storage_location_service import StorageLocationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{product_id}", response_model=StockTotalsResponse)
@limiter.limit("60/minute")
def get_stock_totals(
    request: Request,
    product_id: int,
    db: DbSession,
    current_user: RequireStaff,
    as_of: Optional[date] = None,
):
    """Stock snapshot: master stock, bulk pool, tracked unit breakdown."""
    return StockAggregatorService(db).current_totals(product_id, as_of)


@router.post(
    "/{product_id}/adjustments",
    response_model=LedgerEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
def adjust_stock(
    request: Request,
    product_id: int,
    adjustment: StockAdjustmentRequest,
    db: DbSession,
    current_user: RequireManager,
):
    """Manual correction of the bulk pool, recorded as a manual-adjust entry."""
    return StockLedgerService(db).adjust(
        product_id,
        adjustment.qty_delta,
        note=adjustment.notes,
        actor=current_user.actor,
        created_by=current_user.user_id,
        storage_location_id=adjustment.storage_location_id,
    )


@router.get("/{product_id}/ledger", response_model=List[LedgerEntryResponse])
@limiter.limit("60/minute")
def get_ledger(
    request: Request,
    product_id: int,
    db: DbSession,
    current_user: RequireStaff,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """Ledger entries of a product, newest first."""
    return StockLedgerService(db).history(product_id, skip=skip, limit=limit)


@router.get("/{product_id}/integrity", response_model=IntegrityReportResponse)
@limiter.limit("10/minute")
def check_integrity(request: Request, product_id: int, db: DbSession, current_user: RequireManager):
    """Recompute stock from the raw tables and report inconsistencies."""
    return StockAggregatorService(db).integrity_report(product_id)


@router.get("/{product_id}/locations", response_model=List[LocationStockLine])
@limiter.limit("60/minute")
def get_stock_by_location(request: Request, product_id: int, db: DbSession, current_user: RequireStaff):
    """Bulk pool broken down by storage location."""
    return StorageLocationService(db).stock_by_location(product_id)


@router.post("/{product_id}/transfers", response_model=List[LocationStockLine])
@limiter.limit("30/minute")
def transfer_stock(
    request: Request,
    product_id: int,
    transfer: StockTransferRequest,
    db: DbSession,
    current_user: RequireManager,
):
    """Move bulk units between storage locations. Master stock is unchanged."""
    return StorageLocationService(db).transfer(
        product_id,
        transfer.quantity,
        from_location_id=transfer.from_location_id,
        to_location_id=transfer.to_location_id,
        actor=current_user.actor,
        note=transfer.note,
        created_by=current_user.user_id,
    )
