"""Stock Ledger Service - append-only log of stock quantity changes.

Every change to a product's stock is recorded as a signed delta with a reason.
The bulk pool is never stored: it is the sum of the deltas whose reason
affects the bulk pool. Entries are never edited or deleted; a mistake is
corrected by appending an offsetting entry.

Bulk entries also name the storage location the units sit in (NULL means
unassigned), so the same fold grouped by location gives the per-location
breakdown. Location balances always add up to the bulk pool.

Flow for a write:
1. Caller opens the product critical section (or owns its transaction)
2. append() validates the delta against the reason, the current pool and the
   balance at the entry's storage location
3. The entry is flushed and the product's cached totals are marked stale
4. Caller commits and bumps the product version; totals are invalidated again
   after commit
"""

import logging
from typing import Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from stock_engine.core.errors import (
    InsufficientStock,
    InvalidQuantity,
    LocationInactive,
    LocationNotFound,
)
from stock_engine.models.location import StorageLocation
from stock_engine.models.stock import LedgerReason, REASON_SIGNS, StockLedgerEntry
from stock_engine.services.product_service import get_product, locked_product
from stock_engine.services.stock_cache import mark_stale

logger = logging.getLogger(__name__)


def _check_sign(delta: int, reason: LedgerReason) -> None:
    expected = REASON_SIGNS[reason]
    if expected is None:
        ok = delta != 0
    elif expected == 0:
        ok = delta == 0
    else:
        ok = delta * expected > 0
    if not ok:
        raise InvalidQuantity(delta, f"Delta {delta} is not allowed for reason '{reason.value}'")


class StockLedgerService:
    """Writes and reads the stock ledger."""

    def __init__(self, db: Session):
        self.db = db

    def bulk_pool(self, product_id: int) -> int:
        """Current bulk pool: fold of all bulk-affecting deltas."""
        total = (
            self.db.query(func.coalesce(func.sum(StockLedgerEntry.qty_delta), 0))
            .filter(
                StockLedgerEntry.product_id == product_id,
                StockLedgerEntry.affects_bulk.is_(True),
            )
            .scalar()
        )
        return int(total or 0)

    def location_balances(self, product_id: int) -> Dict[Optional[int], int]:
        """Bulk pool per storage location id (``None`` for unassigned stock)."""
        rows = (
            self.db.query(StockLedgerEntry.storage_location_id, func.sum(StockLedgerEntry.qty_delta))
            .filter(
                StockLedgerEntry.product_id == product_id,
                StockLedgerEntry.affects_bulk.is_(True),
            )
            .group_by(StockLedgerEntry.storage_location_id)
            .all()
        )
        return {location_id: int(total or 0) for location_id, total in rows}

    def location_balance(self, product_id: int, location_id: Optional[int]) -> int:
        column = StockLedgerEntry.storage_location_id
        total = (
            self.db.query(func.coalesce(func.sum(StockLedgerEntry.qty_delta), 0))
            .filter(
                StockLedgerEntry.product_id == product_id,
                StockLedgerEntry.affects_bulk.is_(True),
                column.is_(None) if location_id is None else column == location_id,
            )
            .scalar()
        )
        return int(total or 0)

    def append(
        self,
        product_id: int,
        delta: int,
        reason: Union[LedgerReason, str],
        note: Optional[str] = None,
        actor: str = "system",
        created_by: Optional[int] = None,
        storage_location_id: Optional[int] = None,
    ) -> int:
        """
        Append one ledger entry inside the caller's transaction.

        The entry is flushed, not committed. Bulk entries without a location
        go to the product's default storage location; transfer entries are
        taken as given, ``None`` meaning unassigned. Entries that do not touch
        the bulk pool carry no location.

        Raises InvalidQuantity for a non-integer delta or a sign the reason
        does not allow, and InsufficientStock when a bulk-affecting delta
        would leave the pool or the location's balance negative.

        Returns:
            The new entry id
        """
        reason = LedgerReason(reason)
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidQuantity(delta, f"Delta must be an integer, got {delta!r}")
        _check_sign(delta, reason)

        product = get_product(self.db, product_id)

        if not reason.affects_bulk:
            storage_location_id = None
        else:
            if storage_location_id is None and reason != LedgerReason.TRANSFER:
                storage_location_id = product.default_storage_location_id
            if storage_location_id is not None:
                location = self.db.get(StorageLocation, storage_location_id)
                if location is None:
                    raise LocationNotFound(storage_location_id)
                if delta > 0 and not location.active:
                    raise LocationInactive(storage_location_id)

        if reason.affects_bulk and delta < 0:
            # Balances are never negative, so the location bounds the pool check too
            here = self.location_balance(product_id, storage_location_id)
            if here + delta < 0:
                logger.warning(
                    f"Rejected {reason.value} of {delta} on product {product_id}: "
                    f"location {storage_location_id or 'unassigned'} holds {here}"
                )
                raise InsufficientStock(
                    product_id,
                    requested=-delta,
                    available=max(here, 0),
                    storage_location_id=storage_location_id,
                )
            pool = self.bulk_pool(product_id)
            if pool + delta < 0:
                logger.warning(
                    f"Rejected {reason.value} of {delta} on product {product_id}: bulk pool is {pool}"
                )
                raise InsufficientStock(product_id, requested=-delta, available=pool)

        entry = StockLedgerEntry(
            product_id=product_id,
            qty_delta=delta,
            reason=reason.value,
            affects_bulk=reason.affects_bulk,
            storage_location_id=storage_location_id,
            notes=note[:500] if note else None,
            actor=actor,
            created_by=created_by,
        )
        self.db.add(entry)
        self.db.flush()
        mark_stale(self.db, product_id)
        logger.debug(f"Ledger entry {entry.id}: product {product_id} {reason.value} {delta:+d}")
        return entry.id

    def history(self, product_id: int, skip: int = 0, limit: int = 100) -> List[StockLedgerEntry]:
        """Newest-first page of a product's ledger."""
        get_product(self.db, product_id)
        return (
            self.db.query(StockLedgerEntry)
            .filter(StockLedgerEntry.product_id == product_id)
            .order_by(StockLedgerEntry.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def adjust(
        self,
        product_id: int,
        delta: int,
        note: Optional[str] = None,
        actor: str = "system",
        created_by: Optional[int] = None,
        storage_location_id: Optional[int] = None,
    ) -> StockLedgerEntry:
        """
        Manual correction of the bulk pool.

        A negative adjustment may only take stock that no current or future
        bulk reservation is counting on.
        """
        from stock_engine.services.availability_service import AvailabilityService

        with locked_product(self.db, product_id) as product:
            if isinstance(delta, int) and not isinstance(delta, bool) and delta < 0:
                free = AvailabilityService(self.db).free_bulk_for_removal(product_id)
                if -delta > free:
                    logger.warning(
                        f"Rejected manual adjustment of {delta} on product {product_id}: {free} free"
                    )
                    raise InsufficientStock(product_id, requested=-delta, available=free)
            entry_id = self.append(
                product_id,
                delta,
                LedgerReason.MANUAL_ADJUST,
                note=note,
                actor=actor,
                created_by=created_by,
                storage_location_id=storage_location_id,
            )
            product.increment_version()
            self.db.commit()

        logger.info(f"Manual adjustment on product {product_id}: {delta:+d} by {actor}")
        return self.db.get(StockLedgerEntry, entry_id)
