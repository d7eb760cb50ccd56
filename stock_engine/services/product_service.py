"""Product lookup, the per-product write critical section, and product admin."""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session

from stock_engine.core.errors import (
    InvalidQuantity,
    LocationInactive,
    LocationNotFound,
    ProductInactive,
    ProductNotFound,
)
from stock_engine.core.locks import product_locks
from stock_engine.models.location import StorageLocation
from stock_engine.models.product import Product
from stock_engine.models.stock import LedgerReason

logger = logging.getLogger(__name__)


def get_product(
    db: Session,
    product_id: int,
    for_update: bool = False,
    require_active: bool = False,
) -> Product:
    """Load a product or raise ProductNotFound."""
    query = db.query(Product).filter(Product.id == product_id)
    if for_update:
        query = query.with_for_update()
    product = query.first()
    if product is None:
        raise ProductNotFound(product_id)
    if require_active and not product.active:
        raise ProductInactive(product_id)
    return product


@contextmanager
def locked_product(db: Session, product_id: int, require_active: bool = True) -> Iterator[Product]:
    """Per-product critical section.

    Holds the in-process product lock and a row lock on the product for the
    lifetime of the block. Session state is expired on entry so every check
    inside re-reads committed data. The caller commits; any exception rolls
    the session back.
    """
    with product_locks.hold(product_id):
        db.expire_all()
        try:
            product = get_product(db, product_id, for_update=True, require_active=require_active)
            yield product
        except Exception:
            db.rollback()
            raise


def _usable_location(db: Session, location_id: int) -> StorageLocation:
    location = db.get(StorageLocation, location_id)
    if location is None:
        raise LocationNotFound(location_id)
    if not location.active:
        raise LocationInactive(location_id)
    return location


class ProductService:
    """Product administration. Stock quantities only move through the ledger."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str,
        actor: str,
        track_inventory: bool = True,
        low_stock_threshold: int = 0,
        default_category_prefix: Optional[str] = None,
        initial_bulk_quantity: int = 0,
        created_by: Optional[int] = None,
        default_storage_location_id: Optional[int] = None,
    ) -> Product:
        """Create a product, recording any opening bulk stock as an add-bulk entry.

        Opening stock is booked into the default storage location when one is given.
        """
        from stock_engine.services.stock_ledger_service import StockLedgerService

        if isinstance(initial_bulk_quantity, bool) or not isinstance(initial_bulk_quantity, int) \
                or initial_bulk_quantity < 0:
            raise InvalidQuantity(
                initial_bulk_quantity, "Initial bulk quantity must be a non-negative integer"
            )
        if default_storage_location_id is not None:
            _usable_location(self.db, default_storage_location_id)

        product = Product(
            name=name,
            track_inventory=track_inventory,
            low_stock_threshold=low_stock_threshold,
            default_storage_location_id=default_storage_location_id,
        )
        if default_category_prefix:
            product.default_category_prefix = default_category_prefix
        self.db.add(product)
        try:
            self.db.flush()
            if initial_bulk_quantity:
                StockLedgerService(self.db).append(
                    product.id,
                    initial_bulk_quantity,
                    LedgerReason.ADD_BULK,
                    note="Opening stock",
                    actor=actor,
                    created_by=created_by,
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(product)
        logger.info(f"Created product {product.id} '{product.name}' with {initial_bulk_quantity} bulk units")
        return product

    def list_products(self, active_only: bool = True) -> List[Product]:
        query = self.db.query(Product)
        if active_only:
            query = query.filter(Product.active.is_(True))
        return query.order_by(Product.name).all()

    def update(
        self,
        product_id: int,
        changes: dict,
        expected_version: Optional[int] = None,
        actor: str = "system",
    ) -> Product:
        """Edit descriptive fields. Stock columns are not editable here.

        Setting ``default_storage_location_id`` (``None`` clears it) moves any
        unassigned bulk stock into the new default with a pair of transfer
        entries.
        """
        with locked_product(self.db, product_id, require_active=False) as product:
            product.check_version(expected_version)
            for field in ("name", "track_inventory", "low_stock_threshold", "default_category_prefix"):
                if field in changes and changes[field] is not None:
                    setattr(product, field, changes[field])
            if "default_storage_location_id" in changes:
                self._set_default_location(product, changes["default_storage_location_id"], actor)
            product.increment_version()
            self.db.commit()
        self.db.refresh(product)
        return product

    def _set_default_location(self, product: Product, location_id: Optional[int], actor: str) -> None:
        from stock_engine.services.stock_ledger_service import StockLedgerService

        if location_id == product.default_storage_location_id:
            return
        if location_id is None:
            product.default_storage_location_id = None
            logger.info(f"Cleared default storage location of product {product.id}")
            return

        location = _usable_location(self.db, location_id)
        product.default_storage_location_id = location_id
        ledger = StockLedgerService(self.db)
        unassigned = ledger.location_balance(product.id, None)
        if unassigned > 0:
            note = f"Unassigned stock moved to default location {location.name}"
            ledger.append(product.id, -unassigned, LedgerReason.TRANSFER, note=note, actor=actor)
            ledger.append(
                product.id, unassigned, LedgerReason.TRANSFER,
                note=note, actor=actor, storage_location_id=location_id,
            )
        logger.info(
            f"Default storage location of product {product.id} set to {location_id} "
            f"({unassigned} unassigned units moved)"
        )

    def deactivate(self, product_id: int) -> Product:
        """Soft-deactivate; rows referencing the product are kept."""
        with locked_product(self.db, product_id, require_active=False) as product:
            if product.active:
                product.active = False
                product.increment_version()
                self.db.commit()
                logger.info(f"Deactivated product {product_id}")
        self.db.refresh(product)
        return product
