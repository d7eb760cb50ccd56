"""Product model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_engine.core.config import settings
from stock_engine.db.base import Base, TimestampMixin, VersionMixin


class Product(Base, TimestampMixin, VersionMixin):
    """Bookable product. Owns a bulk pool (ledger fold) and zero or more tracked units."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    track_inventory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    default_category_prefix: Mapped[str] = mapped_column(
        String(20), default=lambda: settings.default_category_prefix, nullable=False
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Bulk additions and removals without an explicit location use this one
    default_storage_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("storage_locations.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    ledger_entries: Mapped[list["StockLedgerEntry"]] = relationship(
        "StockLedgerEntry", back_populates="product"
    )
    units: Mapped[list["Unit"]] = relationship("Unit", back_populates="product")
    reservations: Mapped[list["Reservation"]] = relationship(
        "Reservation", back_populates="product"
    )
    default_storage_location: Mapped[Optional["StorageLocation"]] = relationship("StorageLocation")

    def __repr__(self):
        return f"<Product {self.id}: {self.name}>"


# Forward references
from stock_engine.models.stock import StockLedgerEntry
from stock_engine.models.unit import Unit
from stock_engine.models.reservations import Reservation
from stock_engine.models.location import StorageLocation
