"""Date helpers for availability windows."""

from datetime import date, datetime
from typing import Optional, Tuple

import pytz

from stock_engine.core.config import settings
from stock_engine.core.errors import InvalidDateRange


def local_today() -> date:
    """Today in the configured business timezone."""
    return datetime.now(pytz.timezone(settings.timezone)).date()


def normalize_window(start: date, end: Optional[date] = None) -> Tuple[date, date]:
    """Single-day window when end is absent; end may not precede start."""
    if end is None:
        end = start
    if end < start:
        raise InvalidDateRange(
            f"End date {end.isoformat()} is before start date {start.isoformat()}",
            start_date=start.isoformat(),
            end_date=end.isoformat(),
        )
    return start, end


def validate_booking_window(start: date, end: Optional[date]) -> Tuple[date, Optional[date]]:
    """Reservation windows keep a missing end as open-ended."""
    if end is not None:
        normalize_window(start, end)
    return start, end


def windows_overlap(res_start: date, res_end: Optional[date], start: date, end: date) -> bool:
    """Closed-interval overlap; an open-ended reservation never ends."""
    return res_start <= end and (res_end is None or res_end >= start)
