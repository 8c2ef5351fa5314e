"""
Unit tests for the profile gateway service wiring.
"""

import pytest
import httpx
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import BaseConfig, ServiceConfig, get_config
from shared.retry import RetryConfig
from service_profile.app.adapters.upstream_client import UpstreamClient
from service_profile.app.main import ProfileGatewayService, create_app


def _upstream(handler) -> UpstreamClient:
    return UpstreamClient(
        "http://upstream.test",
        retry_config=RetryConfig(max_attempts=1, base_delay=0),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def _large_posts_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/posts":
        return httpx.Response(200, json=[
            {"userId": 1, "id": i, "title": f"title {i}", "body": "lorem ipsum " * 20}
            for i in range(1, 11)
        ])
    return httpx.Response(200, json={
        "id": 1,
        "name": "Leanne Graham",
        "username": "Bret",
        "email": "Sincere@april.biz",
        "address": {"street": "Kulas Light", "suite": "Apt. 556", "city": "Gwenborough", "zipcode": "92998-3874"},
        "phone": "1-770-736-8031 x56442",
        "website": "hildegard.org",
        "company": {"name": "Romaguera-Crona", "catchPhrase": "Multi-layered", "bs": "harness"},
    })


class TestProfileGatewayService:
    """Test cases for ProfileGatewayService."""

    @pytest.fixture
    def service(self):
        """Create ProfileGatewayService instance."""
        return ProfileGatewayService(get_config("gateway"), upstream_client=_upstream(_large_posts_handler))

    @pytest.fixture
    def client(self, service):
        """Create test client."""
        with TestClient(service.app) as test_client:
            yield test_client

    def test_create_app(self):
        app = create_app(get_config("gateway"))
        assert isinstance(app.state.gateway_service, ProfileGatewayService)

    def test_home_page(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "/api/user/{userId}" in response.text

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health_reports_shutdown(self, client, service):
        service.begin_shutdown()

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json() == {"status": "shutting_down"}

    def test_metrics_endpoint(self, client):
        client.get("/api/user/1")
        client.get("/api/user/1")

        response = client.get("/metrics")

        assert response.status_code == 200
        user_requests = [
            line for line in response.text.splitlines()
            if line.startswith("http_requests_total{") and "/api/user/" in line
        ]
        assert len(user_requests) == 1
        assert user_requests[0].endswith(" 2.0")
        assert 'cache_misses_total{cache_type="user"} 1.0' in response.text
        assert 'cache_hits_total{cache_type="user"} 1.0' in response.text
        assert "upstream_attempts_total" in response.text
        assert "python_info{" in response.text

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert "Content-Security-Policy" not in response.headers
        assert "Strict-Transport-Security" not in response.headers

    def test_csp_enabled_in_production(self):
        service = ProfileGatewayService(get_config("gateway", env="production"), upstream_client=_upstream(_large_posts_handler))
        with TestClient(service.app) as client:
            response = client.get("/health")
            docs = client.get("/docs")

        assert "default-src 'self'" in response.headers["Content-Security-Policy"]
        assert docs.status_code == 404

    def test_hsts_over_https(self, service):
        with TestClient(service.app, base_url="https://testserver") as client:
            response = client.get("/health")

        assert response.headers["Strict-Transport-Security"].startswith("max-age=")

    def test_large_responses_are_gzipped(self, client):
        response = client.get("/api/user/1", headers={"Accept-Encoding": "gzip"})

        assert response.status_code == 200
        assert response.headers["content-encoding"] == "gzip"
        assert len(response.json()["posts"]) == 10

    def test_small_responses_are_not_compressed(self, client):
        response = client.get("/health", headers={"Accept-Encoding": "gzip"})

        assert "content-encoding" not in response.headers

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self, client):
        response = client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 36

    def test_rate_limit_headers(self, client):
        response = client.get("/api/user/1")
        assert response.headers["X-RateLimit-Limit"] == "300"
        assert response.headers["X-RateLimit-Remaining"] == "299"

    def test_rate_limit_exceeded(self):
        service = ProfileGatewayService(
            get_config("gateway", rate_limit_max=2),
            upstream_client=_upstream(_large_posts_handler),
        )
        with TestClient(service.app) as client:
            statuses = [client.get("/api/user/1").status_code for _ in range(3)]
            blocked = client.get("/api/user/1")
            health = client.get("/health")

        assert statuses == [200, 200, 429]
        assert blocked.json()["code"] == "RATE_LIMITED"
        assert blocked.headers["Retry-After"]
        assert blocked.headers["X-Content-Type-Options"] == "nosniff"
        assert health.status_code == 200

    def test_spoofed_forwarded_for_does_not_reset_budget(self):
        service = ProfileGatewayService(
            get_config("gateway", rate_limit_max=2),
            upstream_client=_upstream(_large_posts_handler),
        )
        with TestClient(service.app) as client:
            statuses = [
                client.get("/", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
                for i in range(4)
            ]

        assert statuses == [200, 200, 429, 429]

    def test_forwarded_for_is_honoured_behind_trusted_proxy(self):
        service = ProfileGatewayService(
            get_config("gateway", rate_limit_max=2, trust_proxy_headers=True),
            upstream_client=_upstream(_large_posts_handler),
        )
        with TestClient(service.app) as client:
            statuses = [
                client.get("/", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
                for i in range(4)
            ]

        assert statuses == [200, 200, 200, 200]

    def test_unhandled_errors_hide_details(self, service):
        with patch.object(service.user_posts, "get_user_with_posts", new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = KeyError("database password")
            with TestClient(service.app, raise_server_exceptions=False) as client:
                response = client.get("/api/user/1")

        assert response.status_code == 500
        assert response.json() == {"code": "INTERNAL_ERROR", "message": "Internal server error"}

    def test_shutdown_releases_resources(self, service):
        with patch.object(service.cache, "close", new_callable=AsyncMock) as mock_cache_close, \
                patch.object(service.upstream_client, "close", new_callable=AsyncMock) as mock_upstream_close:
            with TestClient(service.app) as client:
                client.get("/health")

        assert service.shutting_down is True
        mock_cache_close.assert_awaited_once()
        mock_upstream_close.assert_awaited_once()


class TestConfig:
    """Test cases for environment-driven configuration."""

    def test_defaults(self):
        config = get_config("gateway")

        assert isinstance(config, ServiceConfig)
        assert isinstance(config, BaseConfig)
        assert config.upstream_base_url == "https://jsonplaceholder.typicode.com"
        assert config.upstream_timeout_seconds == 5.0
        assert config.upstream_backoff_strategy == "fixed"
        assert config.rate_limit_max == 300
        assert config.swr_max_entries is None
        assert config.swr_coalesce_misses is False
        assert config.trust_proxy_headers is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_UPSTREAM_BASE_URL", "http://mirror.internal")
        monkeypatch.setenv("GATEWAY_UPSTREAM_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("GATEWAY_SWR_COALESCE_MISSES", "true")

        config = get_config("gateway")

        assert config.upstream_base_url == "http://mirror.internal"
        assert config.upstream_max_attempts == 5
        assert config.swr_coalesce_misses is True
