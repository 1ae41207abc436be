"""
Logging, request correlation and Prometheus metrics.

Every log line is a single JSON object carrying the request ID of the HTTP
request that produced it, so one flow compilation can be followed from the
access log through the compiler to the policy backend call.

Usage:
    from app.core.observability import metrics, get_request_id

    metrics.flow_compilations_total.labels(status="success").inc()
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from fastapi import Request, Response
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

# ============================================================================
# Request Correlation
# ============================================================================

_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    return uuid.uuid4().hex


def get_request_id() -> str:
    """Request ID of the current context, or "" outside a request."""
    return _request_id_ctx.get()


def set_correlation_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)


# ============================================================================
# Structured Logging
# ============================================================================

# Attributes every LogRecord carries; anything else came from `extra=`
_RESERVED_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}

# Loggers whose output duplicates ObservabilityMiddleware's access log
_QUIETED_LOGGERS = ("uvicorn.access",)


class StructuredFormatter(logging.Formatter):
    """
    Render log records as one JSON object per line.

    Keys: ``timestamp``, ``level``, ``logger``, ``message``, ``source``
    (file, line, function), plus ``request_id`` inside a request,
    ``exception`` when exc_info is set and ``extra`` for fields passed via
    ``extra=``. Values that are not JSON serializable are written with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_RECORD_KEYS
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)


def configure_structured_logging(level: str = "INFO") -> None:
    """
    Send all logging through a single JSON handler on the root logger.

    Replaces any handlers already installed (uvicorn's default console
    handler included) and silences uvicorn's own access log.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))

    for name in _QUIETED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with other Prometheus metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection for the application.

    Metrics groups:
    - HTTP: Request rate, errors, latency
    - Compiler: Flow compilation duration, graph size, validation errors
    - Backend: Policy backend call count and latency
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        """Initialize all metrics with proper labels."""
        self.registry = registry

        # -------------------------------------------------------------------
        # HTTP Metrics
        # -------------------------------------------------------------------

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )

        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "route"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )

        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method"],
            registry=self.registry,
        )

        self.http_errors_total = Counter(
            "http_errors_total",
            "Total HTTP errors",
            ["error_type", "method", "route"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Flow Compiler Metrics
        # -------------------------------------------------------------------

        self.flow_compilations_total = Counter(
            "flow_compilations_total",
            "Total flow compilations",
            ["status"],
            registry=self.registry,
        )

        self.flow_compile_duration_seconds = Histogram(
            "flow_compile_duration_seconds",
            "Flow validation and serialization duration in seconds",
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
            registry=self.registry,
        )

        self.flow_nodes_count = Histogram(
            "flow_nodes_count",
            "Number of nodes in compiled flows",
            buckets=(1, 5, 10, 25, 50, 100, 250, 500),
            registry=self.registry,
        )

        self.flow_validation_errors_total = Counter(
            "flow_validation_errors_total",
            "Total validation errors reported for compiled flows",
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Policy Backend Metrics
        # -------------------------------------------------------------------

        self.backend_requests_total = Counter(
            "policy_backend_requests_total",
            "Total requests forwarded to the policy backend",
            ["operation", "status"],
            registry=self.registry,
        )

        self.backend_request_duration_seconds = Histogram(
            "policy_backend_request_duration_seconds",
            "Policy backend request latency in seconds",
            ["operation"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


# ============================================================================
# Middleware
# ============================================================================

# Probe and scrape paths are counted in metrics but not access-logged
DEFAULT_SKIP_PATHS = ("/api/v1/health", "/api/v1/readyz", "/metrics")

_access_logger = logging.getLogger("app.request")


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Request correlation, access logging and HTTP metrics.

    The request ID is taken from the incoming header when present, stored in
    the logging context for the duration of the request and echoed back on
    the response. Metrics are labeled with the matched route template
    (``/api/v1/flows/{flow_id}``) so path parameters do not create new series.
    """

    def __init__(
        self,
        app: ASGIApp,
        metrics_instance: Metrics | None = None,
        skip_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        """
        Args:
            app: ASGI application
            metrics_instance: Metrics to record into (global instance if None)
            skip_paths: Path prefixes excluded from access logging (probes, scraping)
            request_id_header: Header carrying the correlation ID
        """
        super().__init__(app)
        self.metrics = metrics_instance or metrics
        self.skip_paths = tuple(skip_paths or DEFAULT_SKIP_PATHS)
        self.request_id_header = request_id_header

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.request_id_header) or generate_request_id()
        set_correlation_id(request_id)

        in_progress = self.metrics.http_requests_in_progress.labels(method=request.method)
        in_progress.inc()
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            route = _route_label(request)
            self._observe(request.method, route, 500, start_time)
            self.metrics.http_errors_total.labels(
                error_type=type(e).__name__, method=request.method, route=route
            ).inc()
            _access_logger.error(
                f"{request.method} {route} failed: {type(e).__name__}",
                extra={"route": route, "status_code": 500, "error_type": type(e).__name__},
                exc_info=True,
            )
            raise
        finally:
            in_progress.dec()

        route = _route_label(request)
        latency_ms = self._observe(request.method, route, response.status_code, start_time)
        response.headers[self.request_id_header] = request_id

        if not request.url.path.startswith(self.skip_paths):
            _access_logger.info(
                f"{request.method} {route} {response.status_code}",
                extra={
                    "route": route,
                    "status_code": response.status_code,
                    "latency_ms": latency_ms,
                },
            )

        return response

    def _observe(self, method: str, route: str, status_code: int, start_time: float) -> float:
        """Record count and latency; return latency in milliseconds."""
        elapsed = time.time() - start_time
        self.metrics.http_requests_total.labels(
            method=method, route=route, status_code=status_code
        ).inc()
        self.metrics.http_request_duration_seconds.labels(method=method, route=route).observe(
            elapsed
        )
        return round(elapsed * 1000, 2)


def _route_label(request: Request) -> str:
    """Matched route template, or the raw path when no route matched."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


# ============================================================================
# Metrics Endpoint
# ============================================================================


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    """
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


def extract_request_context(request: Request) -> dict[str, Any]:
    """
    Extract observability context from request for logging.

    Args:
        request: FastAPI Request object

    Returns:
        Dictionary with request_id and HTTP method
    """
    return {
        "request_id": get_request_id(),
        "method": request.method,
    }
