"""SQLAlchemy models."""

from stock_engine.models.user import User
from stock_engine.models.location import StorageLocation
from stock_engine.models.product import Product
from stock_engine.models.stock import StockLedgerEntry, LedgerReason
from stock_engine.models.unit import Unit, UnitCodeSequence, UnitStatus
from stock_engine.models.reservations import (
    Reservation,
    ReservationMode,
    ReservationStatus,
    reservation_units,
)

__all__ = [
    "User",
    "StorageLocation",
    "Product",
    "StockLedgerEntry",
    "LedgerReason",
    "Unit",
    "UnitCodeSequence",
    "UnitStatus",
    "Reservation",
    "ReservationMode",
    "ReservationStatus",
    "reservation_units",
]
