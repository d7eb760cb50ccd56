"""Product routes. Stock quantities are changed through conversions and adjustments."""

from typing import List

from fastapi import APIRouter, Request, status

from stock_engine.core.rate_limit import limiter
from stock_engine.core.rbac import RequireManager, RequireStaff
from stock_engine.db.session import DbSession
from stock_engine.schemas.product import ProductCreate, ProductResponse, ProductUpdate
from stock_engine.services.product_service import ProductService, get_product

router = APIRouter()


@router.post("/", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_product(
    request: Request,
    product_in: ProductCreate,
    db: DbSession,
    current_user: RequireManager,
):
    """Create a product, optionally with opening bulk stock."""
    return ProductService(db).create(
        name=product_in.name,
        actor=current_user.actor,
        track_inventory=product_in.track_inventory,
        low_stock_threshold=product_in.low_stock_threshold,
        default_category_prefix=product_in.default_category_prefix,
        initial_bulk_quantity=product_in.initial_bulk_quantity,
        default_storage_location_id=product_in.default_storage_location_id,
        created_by=current_user.user_id,
    )


@router.get("/", response_model=List[ProductResponse])
@limiter.limit("60/minute")
def list_products(
    request: Request,
    db: DbSession,
    current_user: RequireStaff,
    active_only: bool = True,
):
    """List products."""
    return ProductService(db).list_products(active_only=active_only)


@router.get("/{product_id}", response_model=ProductResponse)
@limiter.limit("60/minute")
def get_product_by_id(request: Request, product_id: int, db: DbSession, current_user: RequireStaff):
    """Get a product by ID."""
    return get_product(db, product_id)


@router.patch("/{product_id}", response_model=ProductResponse)
@limiter.limit("30/minute")
def update_product(
    request: Request,
    product_id: int,
    product_in: ProductUpdate,
    db: DbSession,
    current_user: RequireManager,
):
    """Update descriptive fields or the default storage location.

    Pass ``version`` to guard against concurrent edits.
    """
    changes = product_in.model_dump(exclude_unset=True, exclude={"version"})
    return ProductService(db).update(
        product_id, changes, expected_version=product_in.version, actor=current_user.actor
    )


@router.post("/{product_id}/deactivate", response_model=ProductResponse)
@limiter.limit("30/minute")
def deactivate_product(request: Request, product_id: int, db: DbSession, current_user: RequireManager):
    """Deactivate a product. Its history and units are kept."""
    return ProductService(db).deactivate(product_id)
