"""Stock Aggregator Service - derived stock totals per product.

Holds no state of its own. Totals are recomputed from the ledger, the unit
table and the active reservations, and cached per (product, day) in the
Redis-or-memory cache under the product's version, which every ledger
append, unit change and reservation change increments (see ``stock_cache``).

    master_stock          = bulk_pool + tracked_total
    bulk_pool_available   = bulk_pool - bulk held on as_of
    tracked_available     = in-service units not held on as_of
    physically_available  = bulk_pool_available + tracked_available
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from stock_engine.core.cache import redis_cache
from stock_engine.core.config import settings
from stock_engine.core.dates import local_today
from stock_engine.core.errors import ProductNotFound
from stock_engine.models.product import Product
from stock_engine.models.reservations import Reservation, ReservationMode, ReservationStatus
from stock_engine.models.stock import LedgerReason, StockLedgerEntry
from stock_engine.models.unit import IN_SERVICE_STATUSES, Unit, UnitStatus
from stock_engine.services.availability_service import overlapping_reservations, peak_commitment
from stock_engine.services.product_service import get_product
from stock_engine.services.stock_cache import totals_key
from stock_engine.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


@dataclass
class StockTotals:
    """Snapshot of a product's stock on one day."""
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

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["as_of"] = self.as_of.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StockTotals":
        values = dict(data)
        values["as_of"] = date.fromisoformat(values["as_of"])
        return cls(**values)


class StockAggregatorService:
    """Read model over ledger, units and reservations."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedgerService(db)

    def current_totals(self, product_id: int, as_of: Optional[date] = None) -> StockTotals:
        """Totals for ``as_of`` (default: today in the business timezone)."""
        day = as_of or local_today()
        # Read before computing: the snapshot is at least as new as this version
        version = (
            self.db.query(Product.version).filter(Product.id == product_id).scalar()
        )
        if version is None:
            raise ProductNotFound(product_id)
        key = totals_key(product_id, version, day.isoformat())

        cached = redis_cache.get(key)
        if cached is not None:
            return StockTotals.from_dict(cached)

        totals = self._compute(product_id, day)
        redis_cache.set(key, totals.to_dict(), ttl_seconds=settings.stock_cache_ttl_seconds)
        return totals

    def _compute(self, product_id: int, day: date) -> StockTotals:
        threshold = (
            self.db.query(Product.low_stock_threshold).filter(Product.id == product_id).scalar()
        )
        pool = self.ledger.bulk_pool(product_id)

        covering = overlapping_reservations(self.db, product_id, day, day).all()
        bulk_on_hold = sum(
            res.quantity for res in covering if res.mode == ReservationMode.BULK.value
        )
        held_today = {
            unit_id
            for res in covering if res.mode == ReservationMode.SPECIFIC.value
            for unit_id in res.unit_ids
        }

        units = (
            self.db.query(Unit)
            .filter(Unit.product_id == product_id, Unit.not_deleted())
            .all()
        )
        in_service = [unit for unit in units if unit.status in IN_SERVICE_STATUSES]
        tracked_reserved = sum(1 for unit in in_service if unit.id in held_today)
        tracked_available = len(in_service) - tracked_reserved
        tracked_maintenance = sum(1 for unit in units if unit.status == UnitStatus.MAINTENANCE.value)
        tracked_retired = sum(1 for unit in units if unit.status == UnitStatus.RETIRED.value)

        reserved_future = (
            self.db.query(func.coalesce(func.sum(Reservation.quantity), 0))
            .filter(
                Reservation.product_id == product_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
                Reservation.start_date > day,
            )
            .scalar()
        )

        bulk_pool_available = pool - bulk_on_hold
        physically_available = bulk_pool_available + tracked_available

        return StockTotals(
            product_id=product_id,
            as_of=day,
            master_stock=pool + len(units),
            bulk_pool=pool,
            bulk_on_hold=bulk_on_hold,
            bulk_pool_available=bulk_pool_available,
            tracked_total=len(units),
            tracked_available=tracked_available,
            tracked_reserved=tracked_reserved,
            tracked_maintenance=tracked_maintenance,
            tracked_retired=tracked_retired,
            on_job_today=bulk_on_hold + tracked_reserved,
            reserved_future=int(reserved_future or 0),
            physically_available=physically_available,
            is_low_stock=physically_available <= (threshold or 0),
        )

    def integrity_report(self, product_id: int, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Recompute a product's stock from the raw tables and list inconsistencies.

        Read-only. Checks that master stock equals bulk plus units, that the
        live unit count matches what the ledger says was added, converted and
        removed, that the bulk pool is not negative or over-committed, that
        no storage location holds a negative balance and transfers net to
        zero, and that no active hold points at a unit that cannot be used.
        """
        get_product(self.db, product_id)
        today = as_of or local_today()
        pool = self.ledger.bulk_pool(product_id)

        sums = dict(
            self.db.query(StockLedgerEntry.reason, func.sum(StockLedgerEntry.qty_delta))
            .filter(StockLedgerEntry.product_id == product_id)
            .group_by(StockLedgerEntry.reason)
            .all()
        )
        expected_units = (
            int(sums.get(LedgerReason.ADD_TRACKED.value) or 0)
            - int(sums.get(LedgerReason.CONVERT_TO_TRACKED.value) or 0)
            + int(sums.get(LedgerReason.REMOVE_TRACKED.value) or 0)
        )
        live_units = (
            self.db.query(func.count(Unit.id))
            .filter(Unit.product_id == product_id, Unit.not_deleted())
            .scalar()
        )
        transfer_net = int(sums.get(LedgerReason.TRANSFER.value) or 0)
        negative_locations = {
            location_id: balance
            for location_id, balance in self.ledger.location_balances(product_id).items()
            if balance < 0
        }

        open_reservations = (
            self.db.query(Reservation)
            .filter(
                Reservation.product_id == product_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
                or_(Reservation.end_date.is_(None), Reservation.end_date >= today),
            )
            .order_by(Reservation.id)
            .all()
        )
        bulk_peak = peak_commitment(
            [res for res in open_reservations if res.mode == ReservationMode.BULK.value], today
        )

        unusable_holds: List[Dict[str, Any]] = []
        double_booked: List[Dict[str, Any]] = []
        specific = [res for res in open_reservations if res.mode == ReservationMode.SPECIFIC.value]
        for index, res in enumerate(specific):
            for unit in res.units:
                if unit.is_deleted or unit.status not in IN_SERVICE_STATUSES:
                    unusable_holds.append({
                        "reservation_id": res.id,
                        "unit_id": unit.id,
                        "code": unit.code,
                        "status": "removed" if unit.is_deleted else unit.status,
                    })
                for other in specific[index + 1:]:
                    if unit.id in other.unit_ids and other.overlaps(
                        res.start_date, res.end_date or date.max
                    ):
                        double_booked.append({
                            "unit_id": unit.id,
                            "code": unit.code,
                            "reservation_ids": [res.id, other.id],
                        })

        issues = []
        if pool < 0:
            issues.append(f"Bulk pool is negative ({pool})")
        if bulk_peak > pool:
            issues.append(f"Bulk holds peak at {bulk_peak} but the pool holds {pool}")
        if negative_locations:
            issues.append(f"Negative balance at storage locations {negative_locations}")
        if transfer_net != 0:
            issues.append(f"Transfer entries net to {transfer_net} instead of zero")
        if expected_units != live_units:
            issues.append(f"Ledger implies {expected_units} tracked units but {live_units} exist")
        if unusable_holds:
            issues.append(f"{len(unusable_holds)} active holds reference unusable units")
        if double_booked:
            issues.append(f"{len(double_booked)} units are held twice for overlapping windows")

        if issues:
            logger.warning(f"Integrity check for product {product_id} found: {'; '.join(issues)}")

        return {
            "product_id": product_id,
            "as_of": today,
            "ok": not issues,
            "bulk_pool": pool,
            "tracked_total": live_units,
            "master_stock": pool + live_units,
            "expected_tracked_from_ledger": expected_units,
            "peak_bulk_commitment": bulk_peak,
            "negative_locations": [
                {"storage_location_id": location_id, "quantity": balance}
                for location_id, balance in negative_locations.items()
            ],
            "unusable_holds": unusable_holds,
            "double_booked_units": double_booked,
            "issues": issues,
        }
