"""Reservation models: exclusive holds on bulk quantity or specific units."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Table, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_engine.core.dates import windows_overlap
from stock_engine.db.base import Base


class ReservationMode(str, Enum):
    BULK = "bulk"
    SPECIFIC = "specific"


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"
    COMPLETED = "completed"


reservation_units = Table(
    "reservation_units",
    Base.metadata,
    Column("reservation_id", ForeignKey("reservations.id", ondelete="CASCADE"), primary_key=True),
    Column("unit_id", ForeignKey("units.id"), primary_key=True, index=True),
)


class Reservation(Base):
    """Hold on a product for a job over a date window."""

    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservation_product_status", "product_id", "status"),
        Index("ix_reservation_window", "start_date", "end_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # None = open-ended
    job_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ReservationStatus.ACTIVE.value, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="reservations")
    units: Mapped[list["Unit"]] = relationship(
        "Unit", secondary=reservation_units, order_by="Unit.code"
    )

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE.value

    @property
    def unit_ids(self) -> list[int]:
        return [unit.id for unit in self.units]

    def overlaps(self, start: date, end: date) -> bool:
        return windows_overlap(self.start_date, self.end_date, start, end)

    def covers(self, day: date) -> bool:
        return self.overlaps(day, day)

    def mark_released(self, status: ReservationStatus = ReservationStatus.RELEASED) -> None:
        self.status = status.value
        self.released_at = datetime.now(timezone.utc)

    def __repr__(self):
        return f"<Reservation {self.id}: {self.mode} x{self.quantity} job={self.job_id} ({self.status})>"


# Forward references
from stock_engine.models.product import Product
from stock_engine.models.unit import Unit
