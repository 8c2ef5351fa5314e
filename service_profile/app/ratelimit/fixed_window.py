"""
Fixed-window rate limiter for the profile gateway.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request

from shared.logging import get_logger


class FixedWindowRateLimiter:
    """Per-client request counter over fixed time windows.

    Counters live in process memory unless ``redis_url`` is given, in which
    case they are shared by every instance pointing at the same Redis.
    Counter store failures fail open: the request is allowed and the error
    is reported in the result.
    """

    def __init__(self, limit: int = 300, window_seconds: int = 60, redis_url: Optional[str] = None):
        self.limit = limit
        self.window_seconds = window_seconds
        self.redis_url = redis_url
        self.logger = get_logger("gateway.rate_limiter")
        self._redis: Optional[redis.Redis] = None
        self._windows: Dict[str, Tuple[int, float]] = {}  # key -> (count, window_start)
        self._last_prune = time.monotonic()

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, client_id: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{client_id}"

    async def check_rate_limit(self, client_id: str) -> Dict[str, Any]:
        """Count one request for ``client_id`` and report whether it is allowed."""
        key = self._make_key(client_id)
        try:
            if self.redis_url:
                current_count, reset_in = await self._increment_redis(key)
            else:
                current_count, reset_in = self._increment_local(key)
        except Exception as e:
            self.logger.error("Rate limit check error", client_id=client_id, error=str(e))
            return {
                "allowed": True,
                "current_count": 0,
                "limit": self.limit,
                "remaining": self.limit,
                "reset_in_seconds": self.window_seconds,
                "error": str(e)
            }

        if current_count > self.limit:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=current_count,
                limit=self.limit
            )
            return {
                "allowed": False,
                "current_count": current_count,
                "limit": self.limit,
                "remaining": 0,
                "reset_in_seconds": reset_in,
                "retry_after": reset_in
            }

        return {
            "allowed": True,
            "current_count": current_count,
            "limit": self.limit,
            "remaining": max(0, self.limit - current_count),
            "reset_in_seconds": reset_in
        }

    def _increment_local(self, key: str) -> Tuple[int, int]:
        now = time.monotonic()
        count, window_start = self._windows.get(key, (0, now))
        if now - window_start >= self.window_seconds:
            count, window_start = 0, now
        count += 1
        self._windows[key] = (count, window_start)
        self._prune(now)
        reset_in = max(1, int(round(self.window_seconds - (now - window_start))))
        return count, reset_in

    def _prune(self, now: float) -> None:
        # Expired windows are swept at most once per window length.
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        expired = [
            key for key, (_, start) in self._windows.items()
            if now - start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

    async def _increment_redis(self, key: str) -> Tuple[int, int]:
        redis_client = await self._get_redis()

        pipeline_obj = redis_client.pipeline()
        if asyncio.iscoroutine(pipeline_obj):
            pipeline_obj = await pipeline_obj

        async with pipeline_obj as pipeline:
            pipeline.incr(key)
            pipeline.ttl(key)
            results = await pipeline.execute()

        current_count = int(results[0])
        ttl = results[1]

        if not isinstance(ttl, (int, float)) or ttl < 0:
            await redis_client.expire(key, self.window_seconds)
            ttl = self.window_seconds

        return current_count, max(1, int(ttl))

    async def reset(self, client_id: str) -> None:
        """Forget the counter for ``client_id``."""
        key = self._make_key(client_id)
        self._windows.pop(key, None)
        if self.redis_url:
            redis_client = await self._get_redis()
            await redis_client.delete(key)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class RateLimitMiddleware:
    """Rate limiting helper used by the HTTP middleware chain."""

    exempt_paths = ("/health", "/metrics")

    def __init__(self, rate_limiter: FixedWindowRateLimiter, trust_proxy_headers: bool = False):
        self.rate_limiter = rate_limiter
        self.trust_proxy_headers = trust_proxy_headers
        self.logger = get_logger("gateway.rate_limit_middleware")

    def is_exempt(self, request: Request) -> bool:
        return request.url.path in self.exempt_paths

    async def check_request(self, request: Request) -> Dict[str, Any]:
        """Check rate limit for request."""
        client_id = self._get_client_id(request)
        return await self.rate_limiter.check_rate_limit(client_id)

    def _get_client_id(self, request: Request) -> str:
        """Extract client ID from request.

        Forwarded headers are client-controlled, so they are only honoured
        when the service sits behind a proxy that sets them.
        """
        if not self.trust_proxy_headers:
            return request.client.host if request.client else 'unknown'

        forwarded_for = request.headers.get('X-Forwarded-For')
        if isinstance(forwarded_for, str) and forwarded_for:
            return forwarded_for.split(',')[0].strip()

        real_ip = request.headers.get('X-Real-IP')
        if isinstance(real_ip, str) and real_ip:
            return real_ip

        return request.client.host if request.client else 'unknown'

    @staticmethod
    def headers_for(result: Dict[str, Any]) -> Dict[str, str]:
        """Standard rate limit headers for a check result."""
        headers = {}
        if result.get("limit") is not None:
            headers["X-RateLimit-Limit"] = str(result["limit"])
        if result.get("remaining") is not None:
            headers["X-RateLimit-Remaining"] = str(result["remaining"])
        if result.get("reset_in_seconds") is not None:
            headers["X-RateLimit-Reset"] = str(result["reset_in_seconds"])
        if result.get("retry_after") is not None:
            headers["Retry-After"] = str(result["retry_after"])
        return headers
