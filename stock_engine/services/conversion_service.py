"""Conversion Service - moves quantity between the bulk pool and tracked units.

| operation        | bulk | tracked | master | ledger reason      |
|------------------|------|---------|--------|--------------------|
| convert(k)       |  -k  |   +k    |   0    | convert-to-tracked |
| add_tracked(k)   |   0  |   +k    |   +k   | add-tracked        |
| add_bulk(k)      |  +k  |    0    |   +k   | add-bulk           |
| remove_bulk(k)   |  -k  |    0    |   -k   | remove-bulk        |
| remove_tracked   |   0  |   -k    |   -k   | remove-tracked     |

Each operation runs in the product critical section and commits once: units
are created (or removed) first, the ledger entry is appended after, so a
failure anywhere leaves nothing behind.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from stock_engine.core.errors import InsufficientStock, InvalidQuantity
from stock_engine.models.stock import LedgerReason
from stock_engine.services.availability_service import AvailabilityService
from stock_engine.services.product_service import locked_product
from stock_engine.services.stock_aggregator_service import StockAggregatorService, StockTotals
from stock_engine.services.stock_ledger_service import StockLedgerService
from stock_engine.services.unit_registry_service import UnitRegistryService

logger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity(quantity)


class ConversionService:
    """Stock-moving operations that keep master stock = bulk + units."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedgerService(db)
        self.registry = UnitRegistryService(db)
        self.availability = AvailabilityService(db)
        self.aggregator = StockAggregatorService(db)

    def _check_free_bulk(self, product_id: int, quantity: int, operation: str) -> None:
        free = self.availability.free_bulk_for_removal(product_id)
        if quantity > free:
            logger.warning(
                f"{operation} of {quantity} refused for product {product_id}: {free} bulk free"
            )
            raise InsufficientStock(product_id, requested=quantity, available=max(free, 0))

    def convert(
        self,
        product_id: int,
        quantity: int,
        actor: str,
        category_prefix: Optional[str] = None,
        attributes: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None,
        created_by: Optional[int] = None,
        storage_location_id: Optional[int] = None,
    ) -> StockTotals:
        """Turn ``quantity`` bulk units into individually tracked units.

        The bulk units are taken from ``storage_location_id`` (default: the
        product's default location).
        """
        _check_quantity(quantity)
        with locked_product(self.db, product_id) as product:
            self._check_free_bulk(product_id, quantity, "Conversion")
            product.increment_version()
            self.db.flush()
            units = self.registry.create_units(
                product_id, quantity, category_prefix, attributes, created_by=created_by
            )
            self.ledger.append(
                product_id,
                -quantity,
                LedgerReason.CONVERT_TO_TRACKED,
                note=note or f"Converted to {units[0].code}..{units[-1].code}",
                actor=actor,
                created_by=created_by,
                storage_location_id=storage_location_id,
            )
            self.db.commit()

        logger.info(f"Converted {quantity} bulk units of product {product_id} to tracked by {actor}")
        return self.aggregator.current_totals(product_id)

    def add_tracked(
        self,
        product_id: int,
        quantity: int,
        actor: str,
        category_prefix: Optional[str] = None,
        attributes: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> StockTotals:
        """Register newly purchased tracked units."""
        _check_quantity(quantity)
        with locked_product(self.db, product_id) as product:
            product.increment_version()
            self.db.flush()
            units = self.registry.create_units(
                product_id, quantity, category_prefix, attributes, created_by=created_by
            )
            self.ledger.append(
                product_id,
                quantity,
                LedgerReason.ADD_TRACKED,
                note=note or f"Added {units[0].code}..{units[-1].code}",
                actor=actor,
                created_by=created_by,
            )
            self.db.commit()

        logger.info(f"Added {quantity} tracked units to product {product_id} by {actor}")
        return self.aggregator.current_totals(product_id)

    def add_bulk(
        self,
        product_id: int,
        quantity: int,
        actor: str,
        note: Optional[str] = None,
        created_by: Optional[int] = None,
        storage_location_id: Optional[int] = None,
    ) -> StockTotals:
        _check_quantity(quantity)
        with locked_product(self.db, product_id) as product:
            self.ledger.append(
                product_id, quantity, LedgerReason.ADD_BULK,
                note=note, actor=actor, created_by=created_by,
                storage_location_id=storage_location_id,
            )
            product.increment_version()
            self.db.commit()

        logger.info(f"Added {quantity} bulk units to product {product_id} by {actor}")
        return self.aggregator.current_totals(product_id)

    def remove_bulk(
        self,
        product_id: int,
        quantity: int,
        actor: str,
        note: Optional[str] = None,
        created_by: Optional[int] = None,
        storage_location_id: Optional[int] = None,
    ) -> StockTotals:
        _check_quantity(quantity)
        with locked_product(self.db, product_id) as product:
            self._check_free_bulk(product_id, quantity, "Bulk removal")
            self.ledger.append(
                product_id, -quantity, LedgerReason.REMOVE_BULK,
                note=note, actor=actor, created_by=created_by,
                storage_location_id=storage_location_id,
            )
            product.increment_version()
            self.db.commit()

        logger.info(f"Removed {quantity} bulk units from product {product_id} by {actor}")
        return self.aggregator.current_totals(product_id)

    def remove_tracked(
        self,
        product_id: int,
        unit_ids: Iterable[int],
        actor: str,
        note: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> StockTotals:
        """Write off tracked units. Units held by an open reservation are refused."""
        with locked_product(self.db, product_id) as product:
            removed = self.registry.remove_units(product_id, unit_ids)
            self.ledger.append(
                product_id,
                -len(removed),
                LedgerReason.REMOVE_TRACKED,
                note=note or f"Removed {', '.join(unit.code for unit in removed)}",
                actor=actor,
                created_by=created_by,
            )
            product.increment_version()
            self.db.commit()

        logger.info(f"Removed {len(removed)} tracked units from product {product_id} by {actor}")
        return self.aggregator.current_totals(product_id)
