"""
Upstream REST API client for the profile gateway.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.errors import ExternalServiceError, UpstreamHTTPError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, retry_async


UPSTREAM_SERVICE = "upstream_api"
DEFAULT_TIMEOUT_SECONDS = 5.0

logger = get_logger("gateway.upstream")


async def fetch_json_with_retry(client: httpx.AsyncClient,
                                url: str,
                                config: Optional[RetryConfig] = None,
                                timeout: float = DEFAULT_TIMEOUT_SECONDS,
                                params: Optional[Dict[str, Any]] = None,
                                metrics: Optional[MetricsCollector] = None,
                                endpoint: str = "unknown") -> Any:
    """GET ``url`` and decode its JSON body, retrying transient failures.

    Redirects are followed within a single attempt. 4xx answers raise
    :class:`UpstreamHTTPError` on the first attempt.
    Timeouts, transport errors and 5xx answers are retried according to
    ``config``; a timed-out attempt counts against the attempt budget.
    """

    async def _attempt() -> Any:
        try:
            response = await client.get(url, params=params, timeout=timeout, follow_redirects=True)
        except httpx.TimeoutException as exc:
            _record(metrics, endpoint, "timeout")
            raise ExternalServiceError(
                UPSTREAM_SERVICE,
                f"Request to {url} timed out",
                details={"url": url}
            ) from exc
        except httpx.HTTPError as exc:
            _record(metrics, endpoint, "transport_error")
            raise ExternalServiceError(
                UPSTREAM_SERVICE,
                f"Request to {url} failed: {exc}",
                details={"url": url}
            ) from exc

        if not response.is_success:
            _record(metrics, endpoint, f"http_{response.status_code // 100}xx")
            raise UpstreamHTTPError(UPSTREAM_SERVICE, response.status_code, str(response.url))

        _record(metrics, endpoint, "success")
        logger.debug("Upstream response received", url=str(response.url), status_code=response.status_code)
        return response.json()

    return await retry_async(_attempt, config, name=f"fetch_{endpoint}")


def _record(metrics: Optional[MetricsCollector], endpoint: str, outcome: str) -> None:
    if metrics is not None:
        metrics.increment_counter("upstream_attempts_total", endpoint=endpoint, outcome=outcome)


class UpstreamClient:
    """Client for the users/posts REST API."""

    def __init__(self,
                 base_url: str,
                 retry_config: Optional[RetryConfig] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 http_client: Optional[httpx.AsyncClient] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.base_url = base_url.rstrip('/')
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.metrics = metrics
        self._client = http_client or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )

    async def get_user(self, user_id: int) -> Dict[str, Any]:
        """Fetch a single user."""
        return await fetch_json_with_retry(
            self._client,
            f"{self.base_url}/users/{user_id}",
            self.retry_config,
            timeout=self.timeout,
            metrics=self.metrics,
            endpoint="users",
        )

    async def get_posts(self, user_id: int) -> List[Dict[str, Any]]:
        """Fetch every post authored by ``user_id``."""
        return await fetch_json_with_retry(
            self._client,
            f"{self.base_url}/posts",
            self.retry_config,
            timeout=self.timeout,
            params={"userId": user_id},
            metrics=self.metrics,
            endpoint="posts",
        )

    async def close(self) -> None:
        await self._client.aclose()
