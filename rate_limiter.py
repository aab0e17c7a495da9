"""
Rate limiting for the Volunteer Platform API.

Every /api route gets the default per-address limit through SlowAPIMiddleware.
The auth endpoints are decorated with a stricter limit, which replaces the
default for them.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

import config

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "Too many requests from this IP, please try again later."
TOO_MANY_AUTH_ATTEMPTS = "Too many login attempts, please try again later."

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[config.RATE_LIMIT_DEFAULT],
    storage_uri=config.RATE_LIMIT_STORAGE_URI,
    enabled=config.RATE_LIMIT_ENABLED,
    strategy="fixed-window",
)


def auth_rate_limit():
    """Decorator for the auth endpoints; the route must accept `request: Request`"""
    return limiter.limit(config.RATE_LIMIT_AUTH)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # must stay sync: SlowAPIMiddleware does not await exception handlers
    if request.url.path.startswith(f"{config.API_PREFIX}/auth"):
        message = TOO_MANY_AUTH_ATTEMPTS
    else:
        message = TOO_MANY_REQUESTS
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": message, "code": "RATE_LIMITED"},
    )
