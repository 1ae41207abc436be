"""
Policy Backend Client

Forwards flow documents to the policy backend, which owns persistence,
versioning and execution. This service never stores flows itself.

Every call opens a short-lived httpx.AsyncClient bounded by the configured
timeout. Backend failures are translated into domain errors:
- HTTP error status -> PolicyBackendError (502)
- Connection/timeout failure -> PolicyBackendUnavailableError (503)
"""

import logging
import time
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import (
    FlowStudioError,
    NotFoundError,
    PolicyBackendError,
    PolicyBackendUnavailableError,
)
from app.core.observability import metrics

logger = logging.getLogger(__name__)

# Fields of a stored flow returned to the editor
FLOW_DOCUMENT_FIELDS = (
    "id",
    "baseId",
    "name",
    "description",
    "tags",
    "nodes",
    "edges",
    "status",
    "version",
    "createdAt",
    "updatedAt",
    "hasDraft",
)


class PolicyBackendClient:
    """Thin async client for the policy backend's flow endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: Backend root URL without trailing slash
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def list_flows(self) -> Any:
        """List stored flows."""
        return await self._request("list_flows", "GET", "/flows")

    async def get_flow(self, flow_id: str, version: str | int | None = None) -> dict[str, Any]:
        """
        Fetch a stored flow, optionally at a specific version.

        Raises:
            NotFoundError: If the backend returns no flow document
        """
        path = f"/flow/{flow_id}/{version}" if version else f"/flow/{flow_id}"
        document = await self._request("get_flow", "GET", path)

        if not isinstance(document, dict) or not document.get("id"):
            raise NotFoundError(
                "Flow not found",
                details={"flow_id": flow_id, "version": version},
            )

        return {field: document.get(field) for field in FLOW_DOCUMENT_FIELDS}

    async def create_flow(self, document: dict[str, Any]) -> dict[str, Any]:
        """
        Store a new flow.

        Args:
            document: name, description, tags, nodes, edges, yaml, yamlFlat

        Returns:
            ``{"id": <new flow id>}``
        """
        created = await self._request("create_flow", "POST", "/flow", json=document)
        flow_id = created.get("id") if isinstance(created, dict) else None
        if not flow_id:
            raise PolicyBackendError(
                "Policy backend did not return a flow id",
                details={"operation": "create_flow"},
            )
        return {"id": flow_id}

    async def update_flow(self, flow_id: str, document: dict[str, Any]) -> None:
        """
        Replace a stored flow.

        The backend expects ``version`` as a string; it is sent empty when
        the caller does not pin one.
        """
        version = document.get("version")
        payload = {**document, "id": flow_id, "version": str(version) if version else ""}
        await self._request("update_flow", "PUT", f"/flow/{flow_id}", json=payload)

    async def list_flow_versions(self, flow_id: str) -> list[Any]:
        """List the stored versions of a flow; empty when the backend has none."""
        versions = await self._request("list_flow_versions", "GET", f"/flow/{flow_id}/versions")
        if isinstance(versions, list):
            return versions
        return []

    async def ping(self) -> bool:
        """Return True when the backend answers the flow listing."""
        try:
            await self.list_flows()
        except FlowStudioError as e:
            logger.warning("Policy backend not ready: %s", e.message)
            return False
        return True

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        start = time.time()
        status = "success"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()

        except httpx.HTTPStatusError as e:
            status = "error"
            upstream_status = e.response.status_code
            logger.error(
                "Policy backend %s failed: %s %s -> %d",
                operation,
                method,
                path,
                upstream_status,
            )
            if upstream_status == 404:
                raise NotFoundError(
                    "Resource not found in policy backend",
                    details={"operation": operation, "path": path},
                ) from e
            raise PolicyBackendError(
                f"Policy backend returned HTTP {upstream_status}",
                details={
                    "operation": operation,
                    "path": path,
                    "upstream_status": upstream_status,
                },
            ) from e

        except httpx.RequestError as e:
            status = "unavailable"
            logger.error(
                "Policy backend %s unreachable: %s",
                operation,
                e,
                exc_info=True,
            )
            raise PolicyBackendUnavailableError(
                "Policy backend is unavailable",
                details={"operation": operation, "path": path, "error": type(e).__name__},
            ) from e

        except ValueError as e:
            status = "error"
            raise PolicyBackendError(
                "Policy backend returned invalid JSON",
                details={"operation": operation, "path": path},
            ) from e

        finally:
            metrics.backend_requests_total.labels(operation=operation, status=status).inc()
            metrics.backend_request_duration_seconds.labels(operation=operation).observe(
                time.time() - start
            )


def get_policy_backend() -> PolicyBackendClient:
    """FastAPI dependency providing a client configured from settings."""
    return PolicyBackendClient(
        base_url=settings.policy_api_server,
        timeout=settings.policy_api_timeout_seconds,
    )
