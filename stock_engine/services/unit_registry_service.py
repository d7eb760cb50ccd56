"""Unit Registry Service - individually tracked units and their codes.

Codes look like ``1000-0007``: a category prefix and a zero-padded sequence
number. Numbers are issued from a ``UnitCodeSequence`` row per
(product, prefix), serialized by an in-process keyed lock and a row lock on
the sequence. Contention while issuing numbers is retried; a collision on the
unit code itself means the sequence was bypassed and is raised as
DuplicateUnitCode.

The ``reserved`` status is derived: an in-service unit is ``reserved`` while
an active reservation covers today and ``available`` otherwise.
"""

import logging
import time
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from stock_engine.core.config import settings
from stock_engine.core.dates import local_today
from stock_engine.core.errors import (
    DuplicateUnitCode,
    InvalidQuantity,
    InvalidUnitStatus,
    UnitUnavailable,
)
from stock_engine.core.locks import unit_code_locks
from stock_engine.models.reservations import (
    Reservation,
    ReservationMode,
    ReservationStatus,
    reservation_units,
)
from stock_engine.models.unit import IN_SERVICE_STATUSES, Unit, UnitCodeSequence, UnitStatus
from stock_engine.services.availability_service import held_unit_ids
from stock_engine.services.product_service import get_product, locked_product
from stock_engine.services.stock_cache import mark_stale

logger = logging.getLogger(__name__)

# Statuses a caller may set directly; "reserved" follows the reservations
SETTABLE_STATUSES = (
    UnitStatus.AVAILABLE.value,
    UnitStatus.MAINTENANCE.value,
    UnitStatus.RETIRED.value,
)


def format_code(prefix: str, number: int, width: int) -> str:
    return f"{prefix}-{number:0{width}d}"


def parse_suffix(code: str, prefix: str) -> Optional[str]:
    """Numeric suffix of a code issued under ``prefix``, or None."""
    head = f"{prefix}-"
    if not code.startswith(head):
        return None
    suffix = code[len(head):]
    return suffix if suffix.isdigit() else None


class UnitRegistryService:
    """Creates tracked units and manages their lifecycle status."""

    def __init__(self, db: Session):
        self.db = db

    # ===== CODE SEQUENCE =====

    def _seed(self, product_id: int, prefix: str) -> Tuple[int, int]:
        """Resume numbering after the highest code already issued under the prefix."""
        codes = (
            self.db.query(Unit.code)
            .filter(Unit.product_id == product_id, Unit.category_prefix == prefix)
            .all()
        )
        last, width = 0, settings.unit_code_width
        for (code,) in codes:
            suffix = parse_suffix(code, prefix)
            if suffix is not None and int(suffix) >= last:
                last, width = int(suffix), len(suffix)
        return last, width

    def _issue_numbers(self, product_id: int, prefix: str, count: int) -> Tuple[int, int]:
        """Advance the sequence by ``count``; returns (first number, width)."""
        max_retries = settings.unit_code_max_retries
        for attempt in range(1, max_retries + 1):
            try:
                with self.db.begin_nested():
                    sequence = (
                        self.db.query(UnitCodeSequence)
                        .filter(
                            UnitCodeSequence.product_id == product_id,
                            UnitCodeSequence.category_prefix == prefix,
                        )
                        .with_for_update()
                        .first()
                    )
                    if sequence is None:
                        last, width = self._seed(product_id, prefix)
                        sequence = UnitCodeSequence(
                            product_id=product_id,
                            category_prefix=prefix,
                            last_value=last,
                            width=width,
                        )
                        self.db.add(sequence)
                    first = sequence.last_value + 1
                    width = sequence.width
                    sequence.last_value = sequence.last_value + count
                    # Later codes keep the width of the last one issued
                    sequence.width = max(width, len(str(sequence.last_value)))
                    self.db.flush()
                return first, width
            except (OperationalError, IntegrityError) as e:
                if attempt >= max_retries:
                    logger.error(
                        f"Unit code sequence for product {product_id} prefix {prefix} "
                        f"still contended after {attempt} attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"Unit code sequence contention for product {product_id} prefix {prefix} "
                    f"(attempt {attempt}/{max_retries}): {e}"
                )
                time.sleep(0.05 * attempt)

    # ===== UNITS =====

    def create_units(
        self,
        product_id: int,
        count: int,
        category_prefix: Optional[str] = None,
        attributes: Optional[Dict[str, Any]] = None,
        created_by: Optional[int] = None,
    ) -> List[Unit]:
        """
        Create ``count`` units with consecutive codes, inside the caller's transaction.

        Args:
            product_id: Owning product
            count: Number of units (positive integer)
            category_prefix: Code prefix, defaults to the product's prefix
            attributes: Display attributes copied onto every unit
            created_by: User id recorded on the units

        Returns:
            The new units, flushed but not committed
        """
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise InvalidQuantity(count)
        product = get_product(self.db, product_id)
        prefix = category_prefix or product.default_category_prefix

        with unit_code_locks.hold((product_id, prefix)):
            first, width = self._issue_numbers(product_id, prefix, count)
            units = [
                Unit(
                    product_id=product_id,
                    code=format_code(prefix, number, width),
                    category_prefix=prefix,
                    status=UnitStatus.AVAILABLE.value,
                    attributes=dict(attributes or {}),
                    created_by=created_by,
                )
                for number in range(first, first + count)
            ]
            self.db.add_all(units)
            try:
                self.db.flush()
            except IntegrityError as e:
                logger.error(f"Duplicate unit code for product {product_id} prefix {prefix}: {e}")
                raise DuplicateUnitCode(product_id, prefix) from e

        mark_stale(self.db, product_id)
        logger.debug(f"Issued {units[0].code}..{units[-1].code} for product {product_id}")
        return units

    def get(self, unit_id: int) -> Optional[Unit]:
        return (
            self.db.query(Unit)
            .filter(Unit.id == unit_id, Unit.not_deleted())
            .first()
        )

    def list_by_product(
        self,
        product_id: int,
        status: Optional[str] = None,
        include_removed: bool = False,
    ) -> List[Unit]:
        get_product(self.db, product_id)
        query = self.db.query(Unit).filter(Unit.product_id == product_id)
        if not include_removed:
            query = query.filter(Unit.not_deleted())
        if status:
            if status not in [s.value for s in UnitStatus]:
                raise InvalidUnitStatus(f"Unknown unit status '{status}'", status=status)
            query = query.filter(Unit.status == status)
        return query.order_by(Unit.code).all()

    def set_status(self, unit_id: int, status: str, actor: str = "system") -> Unit:
        """Manually move a unit to available, maintenance or retired."""
        if status not in SETTABLE_STATUSES:
            raise InvalidUnitStatus(
                f"Status '{status}' cannot be set directly; allowed: {', '.join(SETTABLE_STATUSES)}",
                status=status,
            )
        unit = self.get(unit_id)
        if unit is None:
            raise UnitUnavailable(unit_id, reason="not found")

        product_id = unit.product_id
        with locked_product(self.db, product_id, require_active=False) as product:
            unit = self.get(unit_id)
            if unit is None:
                raise UnitUnavailable(unit_id, reason="not found")
            previous = unit.status
            if status == UnitStatus.AVAILABLE.value:
                today = local_today()
                if unit.id in held_unit_ids(self.db, product_id, today, today):
                    status = UnitStatus.RESERVED.value
            unit.status = status
            product.increment_version()
            mark_stale(self.db, product_id)
            self.db.commit()

        self.db.refresh(unit)
        logger.info(f"Unit {unit.code} status {previous} -> {unit.status} by {actor}")
        return unit

    def apply_held_statuses(self, product_id: int, as_of: Optional[date] = None) -> int:
        """
        Re-derive reserved/available for a product's in-service units.

        Runs inside the caller's transaction; returns how many units changed.
        """
        day = as_of or local_today()
        held = held_unit_ids(self.db, product_id, day, day)
        units = (
            self.db.query(Unit)
            .filter(
                Unit.product_id == product_id,
                Unit.not_deleted(),
                Unit.status.in_(IN_SERVICE_STATUSES),
            )
            .all()
        )
        changed = 0
        for unit in units:
            wanted = UnitStatus.RESERVED.value if unit.id in held else UnitStatus.AVAILABLE.value
            if unit.status != wanted:
                unit.status = wanted
                changed += 1
        if changed:
            self.db.flush()
            mark_stale(self.db, product_id)
        return changed

    def sync_statuses(self, product_id: Optional[int] = None, as_of: Optional[date] = None) -> Dict[int, int]:
        """
        Daily roll-over of derived unit statuses.

        Returns a map of product id to the number of units changed.
        """
        if product_id is not None:
            product_ids = [product_id]
        else:
            product_ids = [
                row[0] for row in self.db.query(Unit.product_id).filter(Unit.not_deleted()).distinct()
            ]

        results = {}
        for pid in product_ids:
            with locked_product(self.db, pid, require_active=False) as product:
                changed = self.apply_held_statuses(pid, as_of)
                if changed:
                    product.increment_version()
                self.db.commit()
            results[pid] = changed
            if changed:
                logger.info(f"Status sync changed {changed} units of product {pid}")
        return results

    def remove_units(
        self,
        product_id: int,
        unit_ids: Iterable[int],
        as_of: Optional[date] = None,
    ) -> List[Unit]:
        """
        Soft-delete units inside the caller's transaction.

        Refuses units of another product, already removed units, and units
        held by an active reservation that has not ended.
        """
        ids = list(dict.fromkeys(unit_ids))
        if not ids:
            raise InvalidQuantity(0, "At least one unit id is required")

        units = {
            unit.id: unit
            for unit in self.db.query(Unit).filter(Unit.id.in_(ids), Unit.product_id == product_id)
        }
        for unit_id in ids:
            unit = units.get(unit_id)
            if unit is None or unit.is_deleted:
                raise UnitUnavailable(unit_id, reason="not found")

        committed = self._units_with_open_holds(product_id, ids, as_of or local_today())
        for unit_id in ids:
            if unit_id in committed:
                raise UnitUnavailable(unit_id, reason="reserved")

        removed = [units[unit_id] for unit_id in ids]
        for unit in removed:
            unit.soft_delete()
        self.db.flush()
        mark_stale(self.db, product_id)
        return removed

    def _units_with_open_holds(self, product_id: int, unit_ids: List[int], today: date) -> Set[int]:
        rows = (
            self.db.query(reservation_units.c.unit_id)
            .join(Reservation, Reservation.id == reservation_units.c.reservation_id)
            .filter(
                Reservation.product_id == product_id,
                Reservation.mode == ReservationMode.SPECIFIC.value,
                Reservation.status == ReservationStatus.ACTIVE.value,
                or_(Reservation.end_date.is_(None), Reservation.end_date >= today),
                reservation_units.c.unit_id.in_(unit_ids),
            )
            .all()
        )
        return {row[0] for row in rows}
