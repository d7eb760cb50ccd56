"""Typed errors raised by the inventory services.

Each error carries a stable ``code`` and an HTTP status; the API layer renders
them through a single exception handler.
"""

from typing import Any, Dict, Optional


class InventoryError(Exception):
    """Base class for inventory engine errors."""

    code = "inventory_error"
    status_code = 400

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "error": self.code, **self.context}


class ProductNotFound(InventoryError):
    code = "product_not_found"
    status_code = 404

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found", product_id=product_id)


class ProductInactive(InventoryError):
    code = "product_inactive"
    status_code = 409

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is deactivated", product_id=product_id)


class InsufficientStock(InventoryError):
    """Raised when a bulk request exceeds free capacity."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        product_id: int,
        requested: int,
        available: int,
        storage_location_id: Optional[int] = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.storage_location_id = storage_location_id
        context = {"product_id": product_id, "requested": requested, "available": available}
        where = ""
        if storage_location_id is not None:
            context["storage_location_id"] = storage_location_id
            where = f" at location {storage_location_id}"
        super().__init__(
            f"Insufficient stock for product {product_id}{where}: "
            f"requested {requested}, available {available}",
            **context,
        )


class UnitUnavailable(InventoryError):
    """Raised when a specific unit is reserved, out of service, removed or unknown."""

    code = "unit_unavailable"
    status_code = 409

    def __init__(self, unit_id: int, reason: str = "reserved"):
        self.unit_id = unit_id
        self.reason = reason
        super().__init__(f"Unit {unit_id} is unavailable ({reason})", unit_id=unit_id, reason=reason)


class InvalidQuantity(InventoryError):
    code = "invalid_quantity"
    status_code = 422

    def __init__(self, quantity: Any, message: Optional[str] = None):
        self.quantity = quantity
        super().__init__(
            message or f"Quantity must be a positive integer, got {quantity!r}",
            quantity=str(quantity),
        )


class InvalidDateRange(InventoryError):
    code = "invalid_date_range"
    status_code = 422


class InvalidUnitStatus(InventoryError):
    code = "invalid_unit_status"
    status_code = 422


class VersionConflict(InventoryError):
    code = "version_conflict"
    status_code = 409


class DuplicateUnitCode(InventoryError):
    """A unit code collided. The code sequence was not serialized; never retried."""

    code = "duplicate_unit_code"
    status_code = 500

    def __init__(self, product_id: int, category_prefix: str):
        self.product_id = product_id
        self.category_prefix = category_prefix
        super().__init__(
            f"Duplicate unit code issued for product {product_id} prefix {category_prefix}",
            product_id=product_id,
            category_prefix=category_prefix,
        )


class ReservationNotFound(InventoryError):
    code = "reservation_not_found"
    status_code = 404

    def __init__(self, reservation_id: int, message: Optional[str] = None):
        self.reservation_id = reservation_id
        super().__init__(
            message or f"Reservation {reservation_id} not found",
            reservation_id=reservation_id,
        )


class LocationNotFound(InventoryError):
    code = "location_not_found"
    status_code = 404

    def __init__(self, location_id: int):
        self.location_id = location_id
        super().__init__(f"Storage location {location_id} not found", storage_location_id=location_id)


class DuplicateLocation(InventoryError):
    code = "duplicate_location"
    status_code = 409


class LocationInUse(InventoryError):
    """Raised when deactivating a location that still holds stock or is a product default."""

    code = "location_in_use"
    status_code = 409


class InvalidTransfer(InventoryError):
    code = "invalid_transfer"
    status_code = 422


class LocationInactive(InventoryError):
    code = "location_inactive"
    status_code = 409

    def __init__(self, location_id: int):
        self.location_id = location_id
        super().__init__(
            f"Storage location {location_id} is deactivated and cannot receive stock",
            storage_location_id=location_id,
        )
