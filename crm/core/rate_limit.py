import math
from typing import Optional
from fastapi import Depends, Request, Response
from crm.core.config import settings
from crm.core.exceptions import RateLimited
from crm.core.kv_store import KeyValueStore, get_kv_store
from crm.core.logging_config import logger


class RateLimiter:
    """
    Fixed-window request limiter keyed by client address and bearer token.

    Used as a router dependency. Counting is skipped when no key-value store
    is configured, and a store outage lets requests through.
    """

    def __init__(self, key: str, limit: int, window_seconds: int):
        self.key = key
        self.limit = limit
        self.window_seconds = window_seconds

    def identifier(self, request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        elif request.client:
            ip = request.client.host
        else:
            ip = "unknown"
        authorization = request.headers.get("Authorization", "")
        # Only a suffix of the token: enough to separate callers, not enough to leak it
        caller = authorization[-16:] if authorization else ""
        return f"{ip}:{caller}"

    def __call__(
        self,
        request: Request,
        response: Response,
        store: Optional[KeyValueStore] = Depends(get_kv_store)
    ) -> None:
        if store is None:
            return

        redis_key = f"rl:{self.key}:{self.identifier(request)}"
        try:
            count, reset_in = store.incr(redis_key, self.window_seconds)
        except Exception as e:
            logger.error(f"Rate limiting unavailable, allowing request: {type(e).__name__}: {str(e)}")
            return

        remaining = max(self.limit - count, 0)
        if count > self.limit:
            retry_after = max(reset_in, 1)
            raise RateLimited(
                headers={
                    "X-RateLimit-Limit": str(self.limit),
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": str(math.ceil(retry_after)),
                }
            )

        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)


api_rate_limiter = RateLimiter(
    key="api",
    limit=settings.RATE_LIMIT_REQUESTS,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
)

admin_rate_limiter = RateLimiter(key="admin", limit=50, window_seconds=60)
