"""Storage Location Service - where the bulk pool physically sits.

Locations do not hold quantities of their own. A product's balance at a
location is the fold of its bulk ledger entries booked there, so the balances
of all locations (plus unassigned stock) always add up to the bulk pool.

A transfer moves bulk units between two locations as a pair of ``transfer``
entries (-k at the source, +k at the destination). Bulk pool and master stock
are unchanged, and reservations are not location-bound, so availability is
unaffected.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_engine.core.errors import (
    DuplicateLocation,
    InvalidQuantity,
    InvalidTransfer,
    LocationInUse,
    LocationNotFound,
)
from stock_engine.models.location import StorageLocation
from stock_engine.models.product import Product
from stock_engine.models.stock import LedgerReason, StockLedgerEntry
from stock_engine.services.product_service import get_product, locked_product
from stock_engine.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class StorageLocationService:
    """Storage location admin, per-location stock and transfers."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedgerService(db)

    # ===== ADMIN =====

    def get(self, location_id: int) -> StorageLocation:
        location = self.db.get(StorageLocation, location_id)
        if location is None:
            raise LocationNotFound(location_id)
        return location

    def list_locations(self, active_only: bool = True) -> List[StorageLocation]:
        query = self.db.query(StorageLocation)
        if active_only:
            query = query.filter(StorageLocation.active.is_(True))
        return query.order_by(StorageLocation.name).all()

    def _check_unique(self, name: Optional[str], code: Optional[str], exclude_id: Optional[int] = None):
        for column, value in ((StorageLocation.name, name), (StorageLocation.code, code)):
            if value is None:
                continue
            query = self.db.query(StorageLocation.id).filter(column == value)
            if exclude_id is not None:
                query = query.filter(StorageLocation.id != exclude_id)
            if query.first():
                raise DuplicateLocation(
                    f"A storage location with {column.key} '{value}' already exists",
                    **{column.key: value},
                )

    def create(self, name: str, code: Optional[str] = None, description: Optional[str] = None) -> StorageLocation:
        self._check_unique(name, code)
        location = StorageLocation(name=name, code=code, description=description)
        self.db.add(location)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateLocation(f"Storage location '{name}' already exists", name=name) from e
        self.db.refresh(location)
        logger.info(f"Created storage location {location.id} '{name}'")
        return location

    def update(self, location_id: int, changes: Dict[str, Any]) -> StorageLocation:
        """Rename or describe a location; ``active=False`` deactivates it."""
        location = self.get(location_id)
        self._check_unique(changes.get("name"), changes.get("code"), exclude_id=location_id)
        for field in ("name", "code", "description"):
            if field in changes and changes[field] is not None:
                setattr(location, field, changes[field])
        if changes.get("active") is True:
            location.active = True
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateLocation(f"Storage location {location_id} clashes with another", **changes) from e
        if changes.get("active") is False:
            return self.deactivate(location_id)
        self.db.refresh(location)
        return location

    def deactivate(self, location_id: int) -> StorageLocation:
        """
        Stop a location from receiving stock.

        Refused while any product still has bulk stock there or uses it as
        its default location; transfer the stock out first.
        """
        location = self.get(location_id)
        if not location.active:
            return location

        holding = (
            self.db.query(StockLedgerEntry.product_id)
            .filter(
                StockLedgerEntry.storage_location_id == location_id,
                StockLedgerEntry.affects_bulk.is_(True),
            )
            .group_by(StockLedgerEntry.product_id)
            .having(func.sum(StockLedgerEntry.qty_delta) != 0)
            .all()
        )
        if holding:
            product_ids = sorted(row[0] for row in holding)
            raise LocationInUse(
                f"Storage location {location_id} still holds stock of products {product_ids}",
                storage_location_id=location_id,
                product_ids=product_ids,
            )
        defaults = [
            row[0]
            for row in self.db.query(Product.id).filter(Product.default_storage_location_id == location_id)
        ]
        if defaults:
            raise LocationInUse(
                f"Storage location {location_id} is the default location of products {sorted(defaults)}",
                storage_location_id=location_id,
                product_ids=sorted(defaults),
            )

        location.active = False
        self.db.commit()
        self.db.refresh(location)
        logger.info(f"Deactivated storage location {location_id}")
        return location

    # ===== STOCK BY LOCATION =====

    def stock_by_location(self, product_id: int) -> List[Dict[str, Any]]:
        """
        A product's bulk pool broken down by location.

        Lists every location holding stock, plus the default location even
        when empty. Unassigned stock comes last with ``storage_location_id``
        None. The quantities add up to the bulk pool.
        """
        product = get_product(self.db, product_id)
        balances = self.ledger.location_balances(product_id)
        default_id = product.default_storage_location_id
        if default_id is not None:
            balances.setdefault(default_id, 0)

        located = [location_id for location_id in balances if location_id is not None]
        names = dict(
            self.db.query(StorageLocation.id, StorageLocation.name)
            .filter(StorageLocation.id.in_(located))
            .all()
        ) if located else {}

        lines = [
            {
                "storage_location_id": location_id,
                "name": names.get(location_id, f"Location {location_id}"),
                "quantity": balances[location_id],
                "is_default": location_id == default_id,
            }
            for location_id in located
            if balances[location_id] != 0 or location_id == default_id
        ]
        lines.sort(key=lambda line: line["name"])
        if balances.get(None):
            lines.append({
                "storage_location_id": None,
                "name": "Unassigned",
                "quantity": balances[None],
                "is_default": False,
            })
        return lines

    def location_contents(self, location_id: int) -> List[Dict[str, Any]]:
        """Products with bulk stock at a location, and how much each holds there."""
        self.get(location_id)
        quantity = func.sum(StockLedgerEntry.qty_delta)
        rows = (
            self.db.query(Product.id, Product.name, Product.low_stock_threshold, quantity)
            .join(StockLedgerEntry, StockLedgerEntry.product_id == Product.id)
            .filter(
                StockLedgerEntry.storage_location_id == location_id,
                StockLedgerEntry.affects_bulk.is_(True),
            )
            .group_by(Product.id, Product.name, Product.low_stock_threshold)
            .having(quantity != 0)
            .order_by(Product.name)
            .all()
        )
        return [
            {
                "product_id": product_id,
                "product_name": name,
                "quantity": int(total),
                "low_stock_threshold": threshold,
            }
            for product_id, name, threshold, total in rows
        ]

    # ===== TRANSFER =====

    def transfer(
        self,
        product_id: int,
        quantity: int,
        from_location_id: Optional[int],
        to_location_id: int,
        actor: str,
        note: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Move bulk units of a product from one location to another.

        ``from_location_id`` None takes unassigned stock. Raises
        InsufficientStock when the source holds less than ``quantity``, and
        InvalidTransfer when source and destination are the same.

        Returns:
            The product's stock by location after the move
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantity(quantity)
        if to_location_id is None:
            raise InvalidTransfer("A destination location is required", product_id=product_id)
        if from_location_id == to_location_id:
            raise InvalidTransfer(
                "Source and destination locations are the same",
                product_id=product_id,
                storage_location_id=to_location_id,
            )

        with locked_product(self.db, product_id) as product:
            source = self.get(from_location_id).name if from_location_id is not None else "Unassigned"
            destination = self.get(to_location_id).name
            text = note or f"Transfer {source} -> {destination}"
            self.ledger.append(
                product_id, -quantity, LedgerReason.TRANSFER,
                note=text, actor=actor, created_by=created_by,
                storage_location_id=from_location_id,
            )
            self.ledger.append(
                product_id, quantity, LedgerReason.TRANSFER,
                note=text, actor=actor, created_by=created_by,
                storage_location_id=to_location_id,
            )
            product.increment_version()
            self.db.commit()

        logger.info(
            f"Transferred {quantity} bulk units of product {product_id} "
            f"from {source} to {destination} by {actor}"
        )
        return self.stock_by_location(product_id)
