"""Stock schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class StockTotalsResponse(BaseModel):
    """Derived stock totals of a product on one day."""

    product_id: int
    as_of: date
    master_stock: int
    bulk_pool: int
    bulk_on_hold: int
    bulk_pool_available: int
    tracked_total: int
    tracked_available: int
    tracked_reserved: int
    tracked_maintenance: int
    tracked_retired: int
    on_job_today: int
    reserved_future: int
    physically_available: int
    is_low_stock: bool

    model_config = {"from_attributes": True}


class LedgerEntryResponse(BaseModel):
    """Stock ledger entry response schema."""

    id: int
    ts: datetime
    product_id: int
    qty_delta: int
    reason: str
    affects_bulk: bool
    storage_location_id: Optional[int] = None
    notes: Optional[str] = None
    actor: str
    created_by: Optional[int] = None

    model_config = {"from_attributes": True}


class StockAdjustmentRequest(BaseModel):
    """Manual correction of the bulk pool."""

    qty_delta: int
    notes: Optional[str] = Field(None, max_length=500)
    storage_location_id: Optional[int] = None


class HeldUnitIssue(BaseModel):
    reservation_id: int
    unit_id: int
    code: str
    status: str


class DoubleBookedUnit(BaseModel):
    unit_id: int
    code: str
    reservation_ids: List[int]


class NegativeLocationBalance(BaseModel):
    storage_location_id: Optional[int] = None
    quantity: int


class IntegrityReportResponse(BaseModel):
    """Result of recomputing a product's stock from the raw tables."""

    product_id: int
    as_of: date
    ok: bool
    bulk_pool: int
    tracked_total: int
    master_stock: int
    expected_tracked_from_ledger: int
    peak_bulk_commitment: int
    negative_locations: List[NegativeLocationBalance]
    unusable_holds: List[HeldUnitIssue]
    double_booked_units: List[DoubleBookedUnit]
    issues: List[str]
