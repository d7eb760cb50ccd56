"""Availability Service - free bulk capacity and free tracked units for a window.

A reservation blocks a window when it is active and
``res.start <= end AND (res.end IS NULL OR res.end >= start)``.

    bulk_free    = bulk pool - sum(quantity of overlapping active bulk holds)
    tracked_free = in-service units - units of overlapping active specific holds
    total_free   = bulk_free + len(tracked_free)

Units in maintenance or retired, and removed units, are never counted.
Over-booked pools are reported as they are; detecting them is the job of the
allocation service at write time.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from stock_engine.core.config import settings
from stock_engine.core.dates import local_today, normalize_window
from stock_engine.core.errors import InvalidDateRange, InvalidQuantity
from stock_engine.models.reservations import (
    Reservation,
    ReservationMode,
    ReservationStatus,
    reservation_units,
)
from stock_engine.models.unit import IN_SERVICE_STATUSES, Unit
from stock_engine.services.product_service import get_product
from stock_engine.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


@dataclass
class Availability:
    """Free capacity of one product over a closed date window."""
    product_id: int
    start_date: date
    end_date: date
    bulk_free: int
    tracked_free: List[Unit] = field(default_factory=list)

    @property
    def total_free(self) -> int:
        return self.bulk_free + len(self.tracked_free)

    @property
    def tracked_free_ids(self) -> List[int]:
        return [unit.id for unit in self.tracked_free]


def overlapping_reservations(
    db: Session,
    product_id: int,
    start: date,
    end: date,
    mode: Optional[ReservationMode] = None,
    exclude_reservation_id: Optional[int] = None,
):
    """Query of active reservations of a product whose window meets [start, end]."""
    query = db.query(Reservation).filter(
        Reservation.product_id == product_id,
        Reservation.status == ReservationStatus.ACTIVE.value,
        Reservation.start_date <= end,
        or_(Reservation.end_date.is_(None), Reservation.end_date >= start),
    )
    if mode is not None:
        query = query.filter(Reservation.mode == mode.value)
    if exclude_reservation_id is not None:
        query = query.filter(Reservation.id != exclude_reservation_id)
    return query


def held_unit_ids(
    db: Session,
    product_id: int,
    start: date,
    end: date,
    exclude_reservation_id: Optional[int] = None,
) -> Set[int]:
    """Ids of units held by active specific reservations overlapping the window."""
    reservation_ids = overlapping_reservations(
        db, product_id, start, end, ReservationMode.SPECIFIC, exclude_reservation_id
    ).with_entities(Reservation.id)
    rows = (
        db.query(reservation_units.c.unit_id)
        .filter(reservation_units.c.reservation_id.in_(reservation_ids.scalar_subquery()))
        .all()
    )
    return {row[0] for row in rows}


def peak_commitment(reservations: List[Reservation], since: date) -> int:
    """Largest total quantity held on any single day from ``since`` onward."""
    windows = []
    for res in reservations:
        if res.end_date is not None and res.end_date < since:
            continue
        windows.append((max(res.start_date, since), res.end_date, res.quantity))

    peak = 0
    # The daily total only rises on a window's first day
    for day, _, _ in windows:
        held = sum(
            qty for start, end, qty in windows
            if start <= day and (end is None or end >= day)
        )
        peak = max(peak, held)
    return peak


class AvailabilityService:
    """Read-only availability queries."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedgerService(db)

    def in_service_units(self, product_id: int) -> List[Unit]:
        return (
            self.db.query(Unit)
            .filter(
                Unit.product_id == product_id,
                Unit.not_deleted(),
                Unit.status.in_(IN_SERVICE_STATUSES),
            )
            .order_by(Unit.code)
            .all()
        )

    def bulk_held(
        self,
        product_id: int,
        start: date,
        end: date,
        exclude_reservation_id: Optional[int] = None,
    ) -> int:
        reservations = overlapping_reservations(
            self.db, product_id, start, end, ReservationMode.BULK, exclude_reservation_id
        ).all()
        return sum(res.quantity for res in reservations)

    def available(
        self,
        product_id: int,
        start_date: date,
        end_date: Optional[date] = None,
        exclude_reservation_id: Optional[int] = None,
    ) -> Availability:
        """
        Free bulk capacity and free tracked units of a product for a window.

        Args:
            product_id: Product to check
            start_date: First day of the window
            end_date: Last day of the window (defaults to start_date)
            exclude_reservation_id: Reservation to ignore, used when sizing a move

        Returns:
            Availability with bulk_free, tracked_free and total_free
        """
        start, end = normalize_window(start_date, end_date)
        get_product(self.db, product_id)

        bulk_free = self.ledger.bulk_pool(product_id) - self.bulk_held(
            product_id, start, end, exclude_reservation_id
        )
        held = held_unit_ids(self.db, product_id, start, end, exclude_reservation_id)
        tracked_free = [unit for unit in self.in_service_units(product_id) if unit.id not in held]

        return Availability(
            product_id=product_id,
            start_date=start,
            end_date=end,
            bulk_free=bulk_free,
            tracked_free=tracked_free,
        )

    def daily(
        self,
        product_id: int,
        start_date: date,
        end_date: Optional[date] = None,
        requested: int = 1,
    ) -> List[Dict]:
        """
        Per-day availability calendar.

        Each day is "available" when at least ``requested`` units are free,
        "partial" when some are, and "unavailable" otherwise.
        """
        start, end = normalize_window(start_date, end_date)
        if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
            raise InvalidQuantity(requested)
        days = (end - start).days + 1
        if days > settings.max_calendar_days:
            raise InvalidDateRange(
                f"Calendar range of {days} days exceeds the limit of {settings.max_calendar_days}",
                start_date=start.isoformat(),
                end_date=end.isoformat(),
            )
        get_product(self.db, product_id)

        pool = self.ledger.bulk_pool(product_id)
        units = self.in_service_units(product_id)
        in_service_ids = {unit.id for unit in units}
        reservations = overlapping_reservations(self.db, product_id, start, end).all()

        calendar = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            covering = [res for res in reservations if res.covers(day)]
            bulk_free = pool - sum(
                res.quantity for res in covering if res.mode == ReservationMode.BULK.value
            )
            held = {
                unit_id
                for res in covering if res.mode == ReservationMode.SPECIFIC.value
                for unit_id in res.unit_ids
            }
            tracked_free = len(in_service_ids - held)
            total_free = bulk_free + tracked_free
            if total_free >= requested:
                status = "available"
            elif total_free > 0:
                status = "partial"
            else:
                status = "unavailable"
            calendar.append({
                "day": day,
                "bulk_free": bulk_free,
                "tracked_free": tracked_free,
                "total_free": total_free,
                "status": status,
            })
        return calendar

    def free_bulk_for_removal(self, product_id: int, as_of: Optional[date] = None) -> int:
        """Bulk stock that may leave the pool without over-booking any current or future hold."""
        today = as_of or local_today()
        reservations = (
            self.db.query(Reservation)
            .filter(
                Reservation.product_id == product_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
                Reservation.mode == ReservationMode.BULK.value,
                or_(Reservation.end_date.is_(None), Reservation.end_date >= today),
            )
            .all()
        )
        return self.ledger.bulk_pool(product_id) - peak_commitment(reservations, today)
