"""Allocation Service - the only writer of reservation state.

Every write runs inside the product critical section (keyed in-process lock
plus a row lock on the product, session expired on entry). Availability is
recomputed inside the section, so two callers racing for the same stock are
serialized and the loser gets a typed error instead of a double booking.

Reservations never write to the ledger: they hold stock, they do not move it.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from stock_engine.core.dates import validate_booking_window
from stock_engine.core.errors import (
    InsufficientStock,
    InvalidQuantity,
    InventoryError,
    ReservationNotFound,
    UnitUnavailable,
)
from stock_engine.models.reservations import Reservation, ReservationMode, ReservationStatus
from stock_engine.models.unit import Unit
from stock_engine.services.availability_service import AvailabilityService, held_unit_ids
from stock_engine.services.product_service import get_product, locked_product
from stock_engine.services.stock_cache import mark_stale
from stock_engine.services.unit_registry_service import UnitRegistryService

logger = logging.getLogger(__name__)


def _window_end(end_date: Optional[date]) -> date:
    # An open-ended hold blocks every later day
    return end_date if end_date is not None else date.max


def _require_job(job_id: str) -> str:
    job_id = (job_id or "").strip()
    if not job_id:
        raise InventoryError("A job id is required", job_id=job_id)
    return job_id


def _refuse_released(reservation: Reservation) -> None:
    if reservation.status == ReservationStatus.RELEASED.value:
        raise ReservationNotFound(
            reservation.id, f"Reservation {reservation.id} was released and cannot be completed"
        )


class AllocationService:
    """Creates, moves and ends reservations."""

    def __init__(self, db: Session):
        self.db = db
        self.availability = AvailabilityService(db)
        self.registry = UnitRegistryService(db)

    def _finish_write(self, product, product_id: int) -> None:
        self.registry.apply_held_statuses(product_id)
        product.increment_version()
        mark_stale(self.db, product_id)
        self.db.commit()

    # ===== CREATE =====

    def reserve_bulk(
        self,
        product_id: int,
        quantity: int,
        start_date: date,
        end_date: Optional[date],
        job_id: str,
        actor: str,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> int:
        """
        Hold ``quantity`` units of the bulk pool for a job over a window.

        Raises InsufficientStock when the pool minus overlapping bulk holds
        cannot cover the request. Products that do not track inventory accept
        any quantity.

        Returns:
            The reservation id
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantity(quantity)
        start, end = validate_booking_window(start_date, end_date)
        job_id = _require_job(job_id)

        with locked_product(self.db, product_id) as product:
            if product.track_inventory:
                free = self.availability.available(product_id, start, _window_end(end)).bulk_free
                if quantity > free:
                    logger.warning(
                        f"Bulk reservation refused for product {product_id} job {job_id}: "
                        f"requested {quantity}, free {free}"
                    )
                    raise InsufficientStock(product_id, requested=quantity, available=max(free, 0))

            reservation = Reservation(
                product_id=product_id,
                mode=ReservationMode.BULK.value,
                quantity=quantity,
                start_date=start,
                end_date=end,
                job_id=job_id,
                notes=notes,
                actor=actor,
                created_by=created_by,
            )
            self.db.add(reservation)
            product.increment_version()
            mark_stale(self.db, product_id)
            self.db.commit()

        logger.info(
            f"Reservation {reservation.id}: {quantity} bulk of product {product_id} "
            f"for job {job_id} {start}..{end or 'open'} by {actor}"
        )
        return reservation.id

    def reserve_specific(
        self,
        unit_ids: Iterable[int],
        start_date: date,
        end_date: Optional[date],
        job_id: str,
        actor: str,
        product_id: Optional[int] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> int:
        """
        Hold a set of tracked units for a job over a window, all or nothing.

        Raises UnitUnavailable naming the first unit that is unknown, belongs
        to another product, is out of service, or is already held for an
        overlapping window.

        Returns:
            The reservation id
        """
        ids = list(dict.fromkeys(unit_ids))
        if not ids:
            raise InvalidQuantity(0, "At least one unit id is required")
        start, end = validate_booking_window(start_date, end_date)
        job_id = _require_job(job_id)

        if product_id is None:
            first = self.db.get(Unit, ids[0])
            if first is None or first.is_deleted:
                raise UnitUnavailable(ids[0], reason="not found")
            product_id = first.product_id

        with locked_product(self.db, product_id) as product:
            units = {
                unit.id: unit
                for unit in self.db.query(Unit).filter(Unit.id.in_(ids))
            }
            for unit_id in ids:
                unit = units.get(unit_id)
                if unit is None or unit.is_deleted or unit.product_id != product_id:
                    raise UnitUnavailable(unit_id, reason="not found")
                if not unit.in_service:
                    raise UnitUnavailable(unit_id, reason=unit.status)

            held = held_unit_ids(self.db, product_id, start, _window_end(end))
            for unit_id in ids:
                if unit_id in held:
                    logger.warning(
                        f"Specific reservation refused for job {job_id}: unit {unit_id} already held"
                    )
                    raise UnitUnavailable(unit_id, reason="reserved")

            reservation = Reservation(
                product_id=product_id,
                mode=ReservationMode.SPECIFIC.value,
                quantity=len(ids),
                start_date=start,
                end_date=end,
                job_id=job_id,
                notes=notes,
                actor=actor,
                created_by=created_by,
                units=[units[unit_id] for unit_id in ids],
            )
            self.db.add(reservation)
            self.db.flush()
            self._finish_write(product, product_id)

        logger.info(
            f"Reservation {reservation.id}: units {ids} of product {product_id} "
            f"for job {job_id} {start}..{end or 'open'} by {actor}"
        )
        return reservation.id

    # ===== END =====

    def _end(self, reservation_id: int, status: ReservationStatus, actor: str) -> bool:
        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None or not reservation.is_active:
            return False

        product_id = reservation.product_id
        with locked_product(self.db, product_id, require_active=False) as product:
            reservation = self.db.get(Reservation, reservation_id)
            if not reservation.is_active:
                self.db.rollback()
                return False
            reservation.mark_released(status)
            self.db.flush()
            self._finish_write(product, product_id)

        logger.info(f"Reservation {reservation_id} {status.value} by {actor}")
        return True

    def release(self, reservation_id: int, actor: str = "system") -> bool:
        """
        Cancel a reservation. Idempotent: unknown or already ended
        reservations are a no-op.

        Returns:
            True when this call released the reservation
        """
        released = self._end(reservation_id, ReservationStatus.RELEASED, actor)
        if not released:
            logger.debug(f"Release of reservation {reservation_id} was a no-op")
        return released

    def complete(self, reservation_id: int, actor: str = "system") -> Reservation:
        """Mark a reservation's job as done; repeating it is a no-op."""
        _refuse_released(self.get(reservation_id))
        if not self._end(reservation_id, ReservationStatus.COMPLETED, actor):
            # A concurrent release may have taken the lock first
            _refuse_released(self.get(reservation_id))
        return self.get(reservation_id)

    # ===== MOVE =====

    def reschedule(
        self,
        reservation_id: int,
        start_date: date,
        end_date: Optional[date],
        actor: str = "system",
    ) -> Reservation:
        """
        Move or shorten an active reservation.

        The new window is validated as if the reservation did not exist, so a
        hold can always shrink inside its own footprint.
        """
        start, end = validate_booking_window(start_date, end_date)
        reservation = self.get(reservation_id)
        if not reservation.is_active:
            raise ReservationNotFound(reservation_id, f"Reservation {reservation_id} is not active")

        product_id = reservation.product_id
        with locked_product(self.db, product_id) as product:
            reservation = self.db.get(Reservation, reservation_id)
            if not reservation.is_active:
                raise ReservationNotFound(
                    reservation_id, f"Reservation {reservation_id} is not active"
                )

            if reservation.mode == ReservationMode.BULK.value:
                if product.track_inventory:
                    free = self.availability.available(
                        product_id, start, _window_end(end), exclude_reservation_id=reservation_id
                    ).bulk_free
                    if reservation.quantity > free:
                        logger.warning(
                            f"Reschedule of reservation {reservation_id} refused: "
                            f"needs {reservation.quantity}, free {free}"
                        )
                        raise InsufficientStock(
                            product_id, requested=reservation.quantity, available=max(free, 0)
                        )
            else:
                held = held_unit_ids(
                    self.db, product_id, start, _window_end(end), exclude_reservation_id=reservation_id
                )
                for unit in reservation.units:
                    if unit.is_deleted:
                        raise UnitUnavailable(unit.id, reason="not found")
                    if not unit.in_service:
                        raise UnitUnavailable(unit.id, reason=unit.status)
                    if unit.id in held:
                        raise UnitUnavailable(unit.id, reason="reserved")

            previous = (reservation.start_date, reservation.end_date)
            reservation.start_date = start
            reservation.end_date = end
            self.db.flush()
            self._finish_write(product, product_id)

        logger.info(
            f"Reservation {reservation_id} moved from {previous[0]}..{previous[1] or 'open'} "
            f"to {start}..{end or 'open'} by {actor}"
        )
        return self.get(reservation_id)

    # ===== READ =====

    def get(self, reservation_id: int) -> Reservation:
        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        return reservation

    def list_for_product(self, product_id: int, active_only: bool = True) -> List[Reservation]:
        get_product(self.db, product_id)
        query = self.db.query(Reservation).filter(Reservation.product_id == product_id)
        if active_only:
            query = query.filter(Reservation.status == ReservationStatus.ACTIVE.value)
        return query.order_by(Reservation.start_date, Reservation.id).all()
