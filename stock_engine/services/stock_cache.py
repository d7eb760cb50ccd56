"""Invalidation of cached stock totals.

Entries are keyed by the product's ``version``, which every committed stock,
unit or reservation change increments. A reader records the version before
computing, so a snapshot can only be stored under a version it is at least as
new as; writers never have to win a race against readers. Writers still call
``mark_stale`` so superseded entries are dropped instead of waiting for the TTL.
"""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from stock_engine.core.cache import redis_cache

logger = logging.getLogger(__name__)

CACHE_PREFIX = "stock_totals"
_STALE_KEY = "stale_products"


def totals_key(product_id: int, version: int, as_of: str) -> str:
    return f"{CACHE_PREFIX}:{product_id}:{version}:{as_of}"


def invalidate_product(product_id: int) -> None:
    redis_cache.invalidate_pattern(f"{CACHE_PREFIX}:{product_id}:*")


def mark_stale(db: Optional[Session], product_id: int) -> None:
    invalidate_product(product_id)
    if db is not None:
        db.info.setdefault(_STALE_KEY, set()).add(product_id)


@event.listens_for(Session, "after_commit")
def _invalidate_after_commit(session: Session) -> None:
    stale = session.info.pop(_STALE_KEY, None)
    if stale:
        for product_id in stale:
            invalidate_product(product_id)
        logger.debug(f"Invalidated stock totals for products {sorted(stale)}")


@event.listens_for(Session, "after_rollback")
def _forget_after_rollback(session: Session) -> None:
    # Rolled-back writes never became visible; nothing to invalidate again
    session.info.pop(_STALE_KEY, None)
