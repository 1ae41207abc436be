"""
Pytest configuration and shared fixtures.

Provides:
- Environment defaults applied before the app is imported
- Flow graph fixtures in editor (camelCase dict) and typed form
- FastAPI TestClient with the policy backend replaced by an AsyncMock
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

ROOT = Path(__file__).resolve().parents[1]

# Add app to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Set test environment variables before importing app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("OBSERVABILITY_STRUCTURED_LOGS", "false")
os.environ.setdefault("METRICS_TOKEN", "test-metrics-token")
os.environ.setdefault("POLICY_API_SERVER", "http://policy-backend.test")

import pytest  # noqa: E402 (import after env setup)
from fastapi.testclient import TestClient  # noqa: E402 (import after env setup)

from app.domain.flow import parse_flow_edges, parse_flow_nodes  # noqa: E402
from app.main import create_app  # noqa: E402 (import after env setup)
from app.services.policy_backend import (  # noqa: E402
    PolicyBackendClient,
    get_policy_backend,
)

# =============================================================================
# AnyIO backend
# =============================================================================


@pytest.fixture
def anyio_backend():
    return "asyncio"


# =============================================================================
# Flow graph fixtures
# =============================================================================


def _edge(edge_id: str, source: str, target: str, handle: str | None) -> dict[str, Any]:
    edge: dict[str, Any] = {"id": edge_id, "source": source, "target": target}
    if handle is not None:
        edge["sourceHandle"] = handle
    return edge


@pytest.fixture
def diamond_flow_payload() -> dict[str, Any]:
    """
    Valid flow whose two policies reconverge on the same return nodes.

        start-1 --true--> policy-1 --true--> return-true
                                   --false-> return-false
                --false-> policy-2 --true--> return-true
                                   --false-> return-false
    """
    return {
        "nodes": [
            {
                "id": "start-1",
                "type": "start",
                "policyId": "p-start",
                "policyName": "Start Policy",
                "position": {"x": 0, "y": 0},
            },
            {"id": "policy-1", "type": "policy", "policyId": "p-1"},
            {"id": "policy-2", "type": "policy", "policyId": "p-2"},
            {"id": "return-true", "type": "return", "returnValue": True},
            {"id": "return-false", "type": "return", "returnValue": False},
        ],
        "edges": [
            _edge("e1", "start-1", "policy-1", "true"),
            _edge("e2", "start-1", "policy-2", "false"),
            _edge("e3", "policy-1", "return-true", "true"),
            _edge("e4", "policy-1", "return-false", "false"),
            _edge("e5", "policy-2", "return-true", "true"),
            _edge("e6", "policy-2", "return-false", "false"),
        ],
    }


@pytest.fixture
def diamond_flow(diamond_flow_payload):
    """Typed (nodes, edges) of the diamond flow."""
    return (
        parse_flow_nodes(diamond_flow_payload["nodes"]),
        parse_flow_edges(diamond_flow_payload["edges"]),
    )


@pytest.fixture
def missing_false_path_payload() -> dict[str, Any]:
    """Start node with only a TRUE edge."""
    return {
        "nodes": [
            {"id": "start-1", "type": "start", "policyId": "p-start"},
            {"id": "return-1", "type": "return", "returnValue": True},
        ],
        "edges": [_edge("e1", "start-1", "return-1", "true")],
    }


# =============================================================================
# API client fixtures
# =============================================================================


@pytest.fixture
def mock_backend() -> AsyncMock:
    """Policy backend client double; configure return values per test."""
    return AsyncMock(spec=PolicyBackendClient)


@pytest.fixture
def client(mock_backend: AsyncMock):
    """TestClient whose routes receive ``mock_backend`` as the policy backend."""
    app = create_app()
    app.dependency_overrides[get_policy_backend] = lambda: mock_backend
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
