"""Shared rate limiter for the route modules.

Authenticated callers are limited per user so a crew sharing one office IP
does not exhaust a single bucket; anonymous calls fall back to the client IP.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from stock_engine.core.config import settings


def rate_limit_key(request: Request) -> str:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        from stock_engine.core.security import decode_access_token
        payload = decode_access_token(auth[len("Bearer "):])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    enabled=settings.rate_limit_enabled,
)
