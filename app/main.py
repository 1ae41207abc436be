import hmac
import logging
import re
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes.flows import router as flows_router
from app.api.routes.health import router as health_router
from app.core.config import AppEnvironment, settings
from app.core.errors import (
    FlowStudioError,
    get_status_code,
)
from app.core.observability import (
    ObservabilityMiddleware,
    configure_structured_logging,
    extract_request_context,
    metrics_endpoint,
)

# Configure structured logging before creating logger
if settings.observability_structured_logs:
    configure_structured_logging(settings.app_log_level)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

_SENSITIVE_PATTERNS = [
    r"[/\\][\w/-]+\.py",  # File paths
    r"https?://[^\s]+",  # Backend URLs
    r"Traceback \(most recent call last\)",
]


def _sanitize_error_details(details: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitize error details to prevent information leakage in production.

    Redacts file paths, backend URLs and stack traces. Everything else
    (validation errors, node ids, checksums) passes through so the editor
    can show it.

    Args:
        details: Original error details dictionary

    Returns:
        Sanitized details dictionary
    """
    if settings.app_env != AppEnvironment.PROD:
        return details

    sanitized: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, str):
            if any(re.search(pattern, value, re.IGNORECASE) for pattern in _SENSITIVE_PATTERNS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_error_details(value)
        elif isinstance(value, list):
            sanitized[key] = [
                _sanitize_error_details(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


# ============================================================================
# Exception Handlers
# ============================================================================


async def flow_studio_error_handler(request: Request, exc: FlowStudioError) -> JSONResponse:
    """Map a domain error to its status code and the shared error body."""
    status_code = get_status_code(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"{exc.__class__.__name__}: {exc.message}",
        extra={"details": exc.details, "path": request.url.path, **extract_request_context(request)},
    )
    return _error_response(
        status_code,
        exc.__class__.__name__,
        exc.message,
        _sanitize_error_details(exc.details),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Give FastAPI HTTP exceptions the same body as domain errors."""
    if exc.status_code == 403 or exc.status_code >= 500:
        logger.warning(
            f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}",
            extra={
                "path": request.url.path,
                "client_ip": request.client.host if request.client else "unknown",
                **extract_request_context(request),
            },
        )
    return _error_response(exc.status_code, "HTTPException", exc.detail, headers=exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for unexpected exceptions.

    The traceback is logged; the client only sees a generic 500.
    """
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={"path": request.url.path, **extract_request_context(request)},
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
    )


def _error_response(
    status_code: int,
    error: str,
    message: Any,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details or {}},
        headers=headers,
    )


# ============================================================================
# Metrics Endpoint (Prometheus) - Token Protected
# ============================================================================


async def protected_metrics(request: Request) -> Response:
    """
    Prometheus scrape endpoint.

    Requires the X-Metrics-Token header to match METRICS_TOKEN; answers 500
    when no token is configured so a misconfigured deployment is visible.
    """
    expected_token = settings.metrics_token
    if not expected_token:
        logger.error("Metrics endpoint accessed but METRICS_TOKEN not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Metrics token not configured. Set METRICS_TOKEN environment variable.",
        )

    if not hmac.compare_digest(request.headers.get("X-Metrics-Token") or "", expected_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid metrics token")

    return metrics_endpoint()


# ============================================================================
# Application Factory
# ============================================================================


def create_app() -> FastAPI:
    """
    Build the FastAPI application.

    Middleware: request observability (when enabled) and CORS.
    Routers: health probes and flow routes under ``/api/v1``.
    """
    app = FastAPI(
        title="Policy Flow API",
        description="Compiles visual policy flows into text and forwards them to the policy backend",
        version="0.1.0",
    )

    if settings.observability_enabled:
        app.add_middleware(
            ObservabilityMiddleware,
            request_id_header=settings.observability_request_id_header,
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FlowStudioError, flow_studio_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(flows_router, prefix=API_PREFIX)

    if settings.observability_enabled:
        app.add_route("/metrics", protected_metrics)

    return app


app = create_app()
