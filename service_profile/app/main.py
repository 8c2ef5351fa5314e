"""
Profile gateway service: users and their posts with SWR caching.
"""

from typing import Optional

from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import InvalidParameterError, RateLimitError
from shared.retry import RetryConfig

from service_profile.app.adapters.upstream_client import UpstreamClient
from service_profile.app.caching.swr_cache import SWRCache
from service_profile.app.domain.user_posts import UserPostsService, parse_user_id
from service_profile.app.ratelimit.fixed_window import FixedWindowRateLimiter, RateLimitMiddleware


HOME_HTML = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Profile Gateway</title></head>
<body>
<h1>Profile Gateway</h1>
<p>Fetch a user and their posts: <code>GET /api/user/{userId}</code></p>
<ul>
<li><a href="/health">/health</a></li>
<li><a href="/metrics">/metrics</a></li>
<li><a href="/docs">/docs</a></li>
</ul>
</body>
</html>
"""


class ProfileGatewayService(BaseService):
    """Profile gateway service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 upstream_client: Optional[UpstreamClient] = None):
        super().__init__("gateway", config)

        self.upstream_client = upstream_client or UpstreamClient(
            self.config.upstream_base_url,
            retry_config=RetryConfig(
                max_attempts=self.config.upstream_max_attempts,
                base_delay=self.config.upstream_retry_delay_seconds,
                backoff_strategy=self.config.upstream_backoff_strategy,
            ),
            timeout=self.config.upstream_timeout_seconds,
            metrics=self.metrics,
        )
        self.cache = SWRCache(
            name="user",
            max_entries=self.config.swr_max_entries,
            coalesce_misses=self.config.swr_coalesce_misses,
            metrics=self.metrics,
        )
        self.user_posts = UserPostsService(self.upstream_client, self.cache)

        self.rate_limiter = FixedWindowRateLimiter(
            limit=self.config.rate_limit_max,
            window_seconds=self.config.rate_limit_window_seconds,
            redis_url=self.config.redis_url,
        )
        self.rate_limit_middleware = RateLimitMiddleware(
            self.rate_limiter,
            trust_proxy_headers=self.config.trust_proxy_headers,
        )

        self._setup_user_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    async def on_shutdown(self) -> None:
        await self.cache.close()
        await self.upstream_client.close()
        await self.rate_limiter.close()

    def _setup_service_middleware(self):
        """Set up rate limiting."""

        @self.app.middleware("http")
        async def enforce_rate_limit(request: Request, call_next):
            if self.rate_limit_middleware.is_exempt(request):
                return await call_next(request)

            result = await self.rate_limit_middleware.check_request(request)
            headers = RateLimitMiddleware.headers_for(result)

            if not result.get("allowed", False):
                self.metrics.increment_counter("rate_limit_hits_total", endpoint=self._endpoint_label(request))
                error = RateLimitError(
                    f"Rate limit exceeded, retry in {result.get('reset_in_seconds')} seconds"
                )
                return JSONResponse(
                    status_code=error.status_code,
                    content=error.to_response().model_dump(exclude_none=True),
                    headers=headers,
                )

            response = await call_next(request)
            response.headers.update(headers)
            return response

    def _setup_user_routes(self):
        """Set up user routes."""

        @self.app.get("/", response_class=HTMLResponse, include_in_schema=False)
        async def home():
            """Landing page."""
            return HOME_HTML

        @self.app.get("/api/user/", include_in_schema=False)
        async def get_user_missing_id():
            """Reject requests without a user identifier."""
            raise InvalidParameterError(
                "Invalid path parameter",
                details={"userId": ["Field required"]}
            )

        @self.app.get("/api/user/{userId}")
        async def get_user(userId: str):
            """Return a user and their posts."""
            user_id = parse_user_id(userId)
            result = await self.user_posts.get_user_with_posts(user_id)
            return result.model_dump()


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI app instance."""
    service = ProfileGatewayService(config)
    return service.app


if __name__ == "__main__":
    ProfileGatewayService().run()
