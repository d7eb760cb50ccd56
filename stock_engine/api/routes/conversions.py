"""Conversion routes - move stock between the bulk pool and tracked units."""

from fastapi import APIRouter, Request

from stock_engine.core.rate_limit import limiter
from stock_engine.core.rbac import RequireManager
from stock_engine.db.session import DbSession
from stock_engine.schemas.conversion import ConversionOperation, ConversionRequest
from stock_engine.schemas.stock import StockTotalsResponse
from stock_engine.services.conversion_service import ConversionService

router = APIRouter()


@router.post("/", response_model=StockTotalsResponse)
@limiter.limit("30/minute")
def run_conversion(
    request: Request,
    data: ConversionRequest,
    db: DbSession,
    current_user: RequireManager,
):
    """Run a stock conversion and return the product's updated totals."""
    service = ConversionService(db)
    common = {"actor": current_user.actor, "note": data.note, "created_by": current_user.user_id}

    if data.operation == ConversionOperation.CONVERT:
        return service.convert(
            data.product_id, data.quantity,
            category_prefix=data.category_prefix, attributes=data.attributes,
            storage_location_id=data.storage_location_id, **common,
        )
    if data.operation == ConversionOperation.ADD_TRACKED:
        return service.add_tracked(
            data.product_id, data.quantity,
            category_prefix=data.category_prefix, attributes=data.attributes, **common,
        )
    if data.operation == ConversionOperation.ADD_BULK:
        return service.add_bulk(
            data.product_id, data.quantity, storage_location_id=data.storage_location_id, **common
        )
    if data.operation == ConversionOperation.REMOVE_BULK:
        return service.remove_bulk(
            data.product_id, data.quantity, storage_location_id=data.storage_location_id, **common
        )
    return service.remove_tracked(data.product_id, data.unit_ids, **common)
