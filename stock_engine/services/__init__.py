# Services module

from stock_engine.services.product_service import ProductService, get_product, locked_product
from stock_engine.services.stock_ledger_service import StockLedgerService
from stock_engine.services.availability_service import Availability, AvailabilityService
from stock_engine.services.stock_aggregator_service import StockAggregatorService, StockTotals
from stock_engine.services.unit_registry_service import UnitRegistryService
from stock_engine.services.allocation_service import AllocationService
from stock_engine.services.conversion_service import ConversionService
from stock_engine.services.storage_location_service import StorageLocationService

__all__ = [
    "ProductService",
    "get_product",
    "locked_product",
    "StockLedgerService",
    "Availability",
    "AvailabilityService",
    "StockAggregatorService",
    "StockTotals",
    "UnitRegistryService",
    "AllocationService",
    "ConversionService",
    "StorageLocationService",
]
