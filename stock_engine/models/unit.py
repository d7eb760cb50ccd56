"""Tracked unit models: individually identified units and their code sequences."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_engine.db.base import Base, SoftDeleteMixin, TimestampMixin


class UnitStatus(str, Enum):
    """Lifecycle status of a tracked unit."""

    AVAILABLE = "available"
    RESERVED = "reserved"  # Held by a reservation covering today; managed by allocation
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


# Statuses that can be booked; "reserved" only reflects today's holds
IN_SERVICE_STATUSES = (UnitStatus.AVAILABLE.value, UnitStatus.RESERVED.value)


class Unit(Base, TimestampMixin, SoftDeleteMixin):
    """Individually identified unit of a product."""

    __tablename__ = "units"
    __table_args__ = (
        UniqueConstraint("product_id", "code", name="uq_unit_product_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    category_prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=UnitStatus.AVAILABLE.value, nullable=False, index=True
    )
    attributes: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="units")

    @property
    def in_service(self) -> bool:
        return not self.is_deleted and self.status in IN_SERVICE_STATUSES

    def __repr__(self):
        return f"<Unit {self.id}: {self.code} ({self.status})>"


class UnitCodeSequence(Base):
    """Last issued code suffix per (product, category prefix)."""

    __tablename__ = "unit_code_sequences"
    __table_args__ = (
        UniqueConstraint("product_id", "category_prefix", name="uq_unit_code_sequence"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"), nullable=False, index=True
    )
    category_prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    last_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)


# Forward references
from stock_engine.models.product import Product
