"""Rate limiting middleware — Redis-based fixed window.

Learn: Uses a per-window counter stored in Redis.
Each IP gets a counter key like "portal:rl:{ip}:{bucket}:{window}".
The login endpoint gets a much stricter limit (5 per 30 min) than the
rest of the API (100 per 15 min) to slow down password guessing.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
Only /api routes are limited; the WebSocket and file downloads are not.
"""

import time
from typing import Optional

import redis.asyncio as aioredis
import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from invoiceportal.config import settings

logger = structlog.get_logger()

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per window."""

    def __init__(
        self,
        app,
        api_limit: int = 100,
        api_window: int = 15 * 60,
        login_limit: int = 5,
        login_window: int = 30 * 60,
    ):
        super().__init__(app)
        self.api_limit = api_limit
        self.api_window = api_window
        self.login_limit = login_limit
        self.login_window = login_window

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if not path.startswith("/api"):
            return await call_next(request)

        # Try to get Redis — skip rate limiting if unavailable
        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        is_login = path.startswith("/api/login")
        limit = self.login_limit if is_login else self.api_limit
        window_seconds = self.login_window if is_login else self.api_window

        window = int(time.time() // window_seconds)
        bucket = "login" if is_login else "api"
        key = f"portal:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, window_seconds * 2)
        except Exception as e:
            # Redis error — don't block the request
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > limit:
            retry_after = window_seconds - int(time.time()) % window_seconds
            message = (
                "Too many login attempts, please try again later."
                if is_login
                else "Rate limit exceeded. Try again later."
            )
            return JSONResponse(
                status_code=429,
                content={"detail": message},
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        return response
