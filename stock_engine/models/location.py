"""Storage location model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_engine.db.base import Base, TimestampMixin


class StorageLocation(Base, TimestampMixin):
    """Physical place bulk stock sits in (warehouse, yard, truck, satellite store)."""

    __tablename__ = "storage_locations"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    ledger_entries: Mapped[list["StockLedgerEntry"]] = relationship(
        "StockLedgerEntry", back_populates="storage_location"
    )

    def __repr__(self):
        return f"<StorageLocation {self.id}: {self.name}>"


# Forward references
from stock_engine.models.stock import StockLedgerEntry
