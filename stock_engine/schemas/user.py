"""User schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr

from stock_engine.core.rbac import UserRole


class UserResponse(BaseModel):
    """Authenticated user as returned by /auth/me."""

    id: int
    email: EmailStr
    name: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
