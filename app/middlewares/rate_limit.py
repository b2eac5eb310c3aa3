# app/middlewares/rate_limit.py
import time

from fastapi import Request
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware

from app.platform.config import settings
from app.platform.exceptions import FAILURE_STATUS, FailureKind, error_payload
from app.platform.response import api_response


def _too_many_requests(retry_after: int):
    status_code, message = FAILURE_STATUS[FailureKind.RATE_LIMITED]
    retry_after = max(retry_after, 1)
    return api_response(
        status_code=status_code,
        message=message,
        data={**error_payload(FailureKind.RATE_LIMITED), "retry_after": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window limiter keyed by client IP and path.

    Only paths listed in settings.RATE_LIMITS are limited, so /health is
    never counted.
    """

    def __init__(self, app):
        super().__init__(app)
        self.redis = None
        self.memory_store = {}
        self._next_sweep = 0.0

    def _drop_expired(self, now: float) -> None:
        """Forget windows that have ended, at most once per window length."""
        if now < self._next_sweep:
            return
        self.memory_store = {
            key: (count, expiry) for key, (count, expiry) in self.memory_store.items() if expiry > now
        }
        self._next_sweep = now + settings.RATE_LIMIT_WINDOW_SECONDS

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "testclient"

        # Skip limit if whitelisted
        if client_ip in settings.WHITELIST_IPS:
            return await call_next(request)

        path = request.url.path.rstrip("/") or "/"
        limit = settings.RATE_LIMITS.get(path)

        # If endpoint is not rate-limited, continue
        if limit is None:
            return await call_next(request)

        window = settings.RATE_LIMIT_WINDOW_SECONDS

        # ---------------------------
        # In-memory store (single process)
        # ---------------------------
        if settings.FORCE_IN_MEMORY_RATE_LIMITER:
            key = f"{client_ip}:{path}"
            now = time.time()
            self._drop_expired(now)
            count, expiry = self.memory_store.get(key, (0, now + window))

            if now > expiry:
                count = 0
                expiry = now + window

            if count >= limit:
                return _too_many_requests(int(expiry - now))

            self.memory_store[key] = (count + 1, expiry)
            return await call_next(request)

        # ---------------------------
        # PRODUCTION: Redis store
        # ---------------------------
        if self.redis is None:
            self.redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)

        key = f"rl:{client_ip}:{path}"
        current_count = await self.redis.get(key)

        if current_count is None:
            await self.redis.set(key, 1, ex=window)
        else:
            current_count = int(current_count)
            if current_count >= limit:
                ttl = await self.redis.ttl(key)
                return _too_many_requests(ttl)
            await self.redis.incr(key)

        return await call_next(request)
