"""API routes."""

import logging
from fastapi import APIRouter

from stock_engine.api.routes import (
    auth, products, stock, availability, reservations, conversions, units, locations,
)

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
api_router.include_router(availability.router, prefix="/availability", tags=["availability"])
api_router.include_router(reservations.router, prefix="/reservations", tags=["reservations"])
api_router.include_router(conversions.router, prefix="/conversions", tags=["conversions", "stock"])
api_router.include_router(units.router, prefix="/units", tags=["units"])
api_router.include_router(locations.router, prefix="/locations", tags=["locations"])
