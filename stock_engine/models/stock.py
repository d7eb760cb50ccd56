"""Stock ledger model: the append-only log of quantity changes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, event, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_engine.db.base import Base


class LedgerReason(str, Enum):
    """Reasons for stock ledger entries."""

    MANUAL_ADJUST = "manual-adjust"  # Manual correction of the bulk pool
    CONVERT_TO_TRACKED = "convert-to-tracked"  # Bulk units turned into tracked units
    ADD_TRACKED = "add-tracked"  # New tracked units purchased
    ADD_BULK = "add-bulk"  # New bulk units purchased
    REMOVE_BULK = "remove-bulk"  # Bulk units written off
    REMOVE_TRACKED = "remove-tracked"  # Tracked units written off
    TRANSFER = "transfer"  # Bulk units moved between storage locations, always paired
    RESERVATION_SIDE_EFFECT_NONE = "reservation-side-effect-none"  # Audit marker, no quantity

    @property
    def affects_bulk(self) -> bool:
        return self in BULK_REASONS


BULK_REASONS = frozenset({
    LedgerReason.MANUAL_ADJUST,
    LedgerReason.CONVERT_TO_TRACKED,
    LedgerReason.ADD_BULK,
    LedgerReason.REMOVE_BULK,
    LedgerReason.TRANSFER,
})

# Sign each reason's delta must have: 1 positive, -1 negative, 0 zero, None any non-zero
REASON_SIGNS = {
    LedgerReason.MANUAL_ADJUST: None,
    LedgerReason.CONVERT_TO_TRACKED: -1,
    LedgerReason.ADD_TRACKED: 1,
    LedgerReason.ADD_BULK: 1,
    LedgerReason.REMOVE_BULK: -1,
    LedgerReason.REMOVE_TRACKED: -1,
    LedgerReason.TRANSFER: None,
    LedgerReason.RESERVATION_SIDE_EFFECT_NONE: 0,
}


class StockLedgerEntry(Base):
    """Immutable ledger of stock changes (single source of truth for the bulk pool)."""

    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        Index("ix_ledger_product_bulk", "product_id", "affects_bulk"),
        Index("ix_ledger_product_location", "product_id", "storage_location_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    qty_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    affects_bulk: Mapped[bool] = mapped_column(Boolean, nullable=False)
    # Where the bulk units sit; NULL for unassigned bulk and for tracked-unit entries
    storage_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("storage_locations.id"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="ledger_entries")
    storage_location: Mapped[Optional["StorageLocation"]] = relationship(
        "StorageLocation", back_populates="ledger_entries"
    )

    def __repr__(self):
        return f"<StockLedgerEntry {self.id} | Product {self.product_id} | {self.reason}: {self.qty_delta}>"


@event.listens_for(StockLedgerEntry, "before_update")
def _refuse_update(mapper, connection, target):
    raise RuntimeError(f"Stock ledger entries are immutable (entry {target.id})")


@event.listens_for(StockLedgerEntry, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise RuntimeError(f"Stock ledger entries cannot be deleted (entry {target.id})")


# Forward references
from stock_engine.models.product import Product
from stock_engine.models.location import StorageLocation
