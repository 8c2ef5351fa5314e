"""
Base service class for gateway services.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import time

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from shared.config import ServiceConfig, get_config
from shared.errors import GatewayException, InvalidParameterError
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector
from shared.middleware import SecurityHeadersMiddleware


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.config = config or get_config(service_name)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self.shutting_down = False

        # Configure logging
        configure_logging(service_name, self.config.log_level)

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        docs_enabled = not self.config.is_production
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"{self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if docs_enabled else None,
            redoc_url="/redoc" if docs_enabled else None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        self.logger.info("Service starting", service=self.service_name, port=self.config.port)
        await self.on_startup()
        try:
            yield
        finally:
            self.begin_shutdown()
            await self.on_shutdown()
            self.logger.info("Service stopped", service=self.service_name)

    async def on_startup(self) -> None:
        """Startup hook. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Shutdown hook. Override in subclasses."""

    def begin_shutdown(self) -> None:
        """Mark the service as draining; health checks start failing."""
        if not self.shutting_down:
            self.logger.info("Shutdown started", service=self.service_name)
        self.shutting_down = True

    def _setup_middleware(self):
        """Set up middleware.

        Starlette runs the most recently added middleware first, so the
        request timing wrapper added last sees every response, including
        those produced by the other layers.
        """
        self.app.add_middleware(GZipMiddleware, minimum_size=self.config.compression_min_size)
        self._setup_service_middleware()
        self.app.add_middleware(SecurityHeadersMiddleware, enable_csp=self.config.is_production)

        # Request timing middleware
        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

            try:
                # Process request
                response = await call_next(request)

                # Calculate duration
                duration = time.time() - start_time
                endpoint = self._endpoint_label(request)

                # Record metrics
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration=duration
                )

                # Log request
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )

                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

    def _setup_service_middleware(self):
        """Service-specific middleware, wrapped by security headers and request timing. Override in subclasses."""

    @staticmethod
    def _endpoint_label(request: Request) -> str:
        """Route template when matched, so path parameters don't explode label cardinality."""
        route = request.scope.get("route")
        return getattr(route, "path", None) or request.url.path

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            if self.shutting_down:
                return JSONResponse(status_code=503, content={"status": "shutting_down"})
            return {"status": "ok"}

        @self.app.get("/metrics", include_in_schema=False)
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.render(),
                media_type=self.metrics.content_type
            )

        # Error handlers
        @self.app.exception_handler(GatewayException)
        async def gateway_exception_handler(request: Request, exc: GatewayException):
            """Handle GatewayException."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.info
            log(
                "Request failed",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                path=request.url.path
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump(exclude_none=True)
            )

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            """Handle FastAPI request validation errors as INVALID_PARAMETER."""
            details: Dict[str, Any] = {}
            for issue in exc.errors():
                # drop the leading "path"/"query" segment
                loc = [str(part) for part in issue.get("loc", ())][1:]
                if loc:
                    details.setdefault(".".join(loc), []).append(issue.get("msg", "Invalid value"))
            error = InvalidParameterError("Invalid request parameter", details=details)
            return JSONResponse(status_code=error.status_code, content=error.to_response().model_dump(exclude_none=True))

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error"
                }
            )

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
