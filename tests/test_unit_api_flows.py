"""
Unit tests for the flow API routes.

Tests cover:
- Validate, compile and export (in-process)
- Payload size limits
- Storage routes forwarded to the policy backend (mocked)
- Strict compilation before saving
- Backend error mapping to HTTP status codes
"""

import time
from unittest.mock import patch

import pytest

from app.core.errors import NotFoundError, PolicyBackendError, PolicyBackendUnavailableError

# =============================================================================
# Validate
# =============================================================================


class TestValidateFlow:
    """POST /api/v1/flows/validate"""

    @pytest.mark.anyio
    async def test_valid_flow(self, client, diamond_flow_payload):
        resp = client.post("/api/v1/flows/validate", json=diamond_flow_payload)

        assert resp.status_code == 200
        body = resp.json()
        assert body["isValid"] is True
        assert body["errors"] == []
        assert body["unterminatedNodes"] == []
        assert body["checksum"].startswith("sha256:")

    @pytest.mark.anyio
    async def test_invalid_flow_is_still_200(self, client, missing_false_path_payload):
        """Validation findings are data, not HTTP errors."""
        resp = client.post("/api/v1/flows/validate", json=missing_false_path_payload)

        assert resp.status_code == 200
        body = resp.json()
        assert body["isValid"] is False
        assert body["errors"] == ['start node "start-1" is missing a FALSE path']
        assert body["unterminatedNodes"] == ["start-1"]

    @pytest.mark.anyio
    async def test_empty_flow(self, client):
        resp = client.post("/api/v1/flows/validate", json={"nodes": [], "edges": []})

        assert resp.status_code == 200
        assert resp.json()["errors"] == ["No start node found in the flow"]

    @pytest.mark.anyio
    async def test_unknown_node_type_is_422(self, client):
        resp = client.post(
            "/api/v1/flows/validate",
            json={"nodes": [{"id": "x", "type": "loop"}], "edges": []},
        )

        assert resp.status_code == 422

    @pytest.mark.anyio
    async def test_long_double_edge_chain_is_fast(self, client):
        """Forty policies, each linked to the next by both branches."""
        nodes = [{"id": "start-1", "type": "start", "policyId": "p-start"}]
        edges = []
        previous = "start-1"
        for index in range(40):
            node_id = f"p{index}"
            nodes.append({"id": node_id, "type": "policy", "policyId": f"policy-{index}"})
            edges += [
                {"id": f"{node_id}-in-t", "source": previous, "target": node_id, "sourceHandle": "true"},
                {"id": f"{node_id}-in-f", "source": previous, "target": node_id, "sourceHandle": "false"},
            ]
            previous = node_id
        nodes.append({"id": "end", "type": "return", "returnValue": True})
        edges += [
            {"id": "end-t", "source": previous, "target": "end", "sourceHandle": "true"},
            {"id": "end-f", "source": previous, "target": "end", "sourceHandle": "false"},
        ]

        started = time.perf_counter()
        resp = client.post("/api/v1/flows/validate", json={"nodes": nodes, "edges": edges})
        elapsed = time.perf_counter() - started

        assert resp.status_code == 200
        assert resp.json()["isValid"] is True
        assert elapsed < 5.0

    @pytest.mark.anyio
    async def test_too_many_nodes_is_422(self, client, diamond_flow_payload):
        with patch("app.api.schemas.flow.settings") as mock_settings:
            mock_settings.flow_max_nodes = 2
            mock_settings.flow_max_edges = 100

            resp = client.post("/api/v1/flows/validate", json=diamond_flow_payload)

        assert resp.status_code == 422
        assert "maximum is 2" in resp.text


# =============================================================================
# Compile and Export
# =============================================================================


class TestCompileFlow:
    """POST /api/v1/flows/compile"""

    @pytest.mark.anyio
    async def test_compile_returns_both_forms(self, client, diamond_flow_payload):
        resp = client.post("/api/v1/flows/compile", json=diamond_flow_payload)

        assert resp.status_code == 200
        body = resp.json()
        assert body["validation"]["isValid"] is True
        assert body["yaml"].startswith("flow:\n  start:\n    - id: start-1")
        assert body["yamlFlat"].startswith("flow:\n  nodes:\n")
        assert body["checksum"] == body["validation"]["checksum"]

    @pytest.mark.anyio
    async def test_compile_invalid_flow_is_advisory(self, client, missing_false_path_payload):
        """Invalid graphs still compile; the validation tells the editor why."""
        resp = client.post("/api/v1/flows/compile", json=missing_false_path_payload)

        assert resp.status_code == 200
        assert resp.json()["validation"]["isValid"] is False

    @pytest.mark.anyio
    async def test_compile_expand_shared(self, client, diamond_flow_payload):
        resp = client.post("/api/v1/flows/compile?expand_shared=true", json=diamond_flow_payload)

        assert resp.json()["yaml"].count("- id: return-true") == 2


class TestExportFlow:
    """POST /api/v1/flows/export"""

    @pytest.mark.anyio
    async def test_export_hierarchical_by_default(self, client, diamond_flow_payload):
        resp = client.post("/api/v1/flows/export", json=diamond_flow_payload)

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text.startswith("flow:\n  start:\n")
        assert "metadata:\n  totalNodes: 5\n  totalEdges: 6\n" in resp.text

    @pytest.mark.anyio
    async def test_export_flat(self, client, diamond_flow_payload):
        resp = client.post("/api/v1/flows/export?format=flat", json=diamond_flow_payload)

        assert resp.status_code == 200
        assert resp.text.startswith("flow:\n  nodes:\n    - id: start-1\n")
        assert "      condition: false" in resp.text

    @pytest.mark.anyio
    async def test_export_without_start_is_sentinel(self, client):
        resp = client.post("/api/v1/flows/export", json={"nodes": [], "edges": []})

        assert resp.status_code == 200
        assert resp.text == "# No start node found\n"

    @pytest.mark.anyio
    async def test_export_unknown_format_is_422(self, client, diamond_flow_payload):
        resp = client.post("/api/v1/flows/export?format=xml", json=diamond_flow_payload)

        assert resp.status_code == 422


# =============================================================================
# Storage Routes
# =============================================================================


class TestReadFlows:
    """GET routes forwarded to the policy backend."""

    @pytest.mark.anyio
    async def test_list_flows(self, client, mock_backend):
        mock_backend.list_flows.return_value = [{"id": "f1", "name": "Flow"}]

        resp = client.get("/api/v1/flows")

        assert resp.status_code == 200
        assert resp.json() == [{"id": "f1", "name": "Flow"}]

    @pytest.mark.anyio
    async def test_get_flow(self, client, mock_backend):
        mock_backend.get_flow.return_value = {
            "id": "f1",
            "baseId": "base-1",
            "name": "Flow",
            "description": None,
            "tags": ["cards"],
            "nodes": [{"id": "start-1", "type": "start"}],
            "edges": [],
            "status": "draft",
            "version": 2,
            "createdAt": "2026-01-01T00:00:00Z",
            "updatedAt": None,
            "hasDraft": True,
        }

        resp = client.get("/api/v1/flows/f1")

        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == "f1"
        assert body["baseId"] == "base-1"
        assert body["hasDraft"] is True
        assert body["createdAt"] == "2026-01-01T00:00:00Z"
        mock_backend.get_flow.assert_awaited_once_with("f1", None)

    @pytest.mark.anyio
    async def test_get_flow_with_numeric_ids(self, client, mock_backend):
        """Numeric ids from the backend pass through unchanged."""
        mock_backend.get_flow.return_value = {"id": 7, "baseId": 3, "version": 1}

        resp = client.get("/api/v1/flows/7")

        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == 7
        assert body["baseId"] == 3

    @pytest.mark.anyio
    async def test_get_flow_version(self, client, mock_backend):
        mock_backend.get_flow.return_value = {"id": "f1", "version": "3"}

        resp = client.get("/api/v1/flows/f1?version=3")

        assert resp.status_code == 200
        mock_backend.get_flow.assert_awaited_once_with("f1", "3")

    @pytest.mark.anyio
    async def test_get_flow_not_found(self, client, mock_backend):
        mock_backend.get_flow.side_effect = NotFoundError("Flow not found", {"flow_id": "nope"})

        resp = client.get("/api/v1/flows/nope")

        assert resp.status_code == 404
        body = resp.json()
        assert body["error"] == "NotFoundError"
        assert body["message"] == "Flow not found"
        assert body["details"] == {"flow_id": "nope"}

    @pytest.mark.anyio
    async def test_list_flow_versions(self, client, mock_backend):
        mock_backend.list_flow_versions.return_value = [{"version": 1}]

        resp = client.get("/api/v1/flows/f1/versions")

        assert resp.status_code == 200
        assert resp.json() == [{"version": 1}]
        mock_backend.list_flow_versions.assert_awaited_once_with("f1")


class TestSaveFlows:
    """POST/PUT routes: strict compile, then forward."""

    @pytest.mark.anyio
    async def test_create_flow(self, client, mock_backend, diamond_flow_payload):
        mock_backend.create_flow.return_value = {"id": "new-1"}

        resp = client.post(
            "/api/v1/flows",
            json={"name": "Card checks", "tags": ["cards"], **diamond_flow_payload},
        )

        assert resp.status_code == 201
        assert resp.json() == {"id": "new-1"}

        (document,) = mock_backend.create_flow.await_args.args
        assert document["name"] == "Card checks"
        assert document["tags"] == ["cards"]
        assert document["yaml"].startswith("flow:\n  start:\n")
        assert document["yamlFlat"].startswith("flow:\n  nodes:\n")
        # Editor-only fields are not forwarded
        assert "position" not in document["nodes"][0]
        assert document["edges"][0] == {
            "id": "e1",
            "source": "start-1",
            "target": "policy-1",
            "sourceHandle": "true",
        }

    @pytest.mark.anyio
    async def test_create_invalid_flow_is_422(
        self, client, mock_backend, missing_false_path_payload
    ):
        """Invalid graphs never reach the backend."""
        resp = client.post("/api/v1/flows", json={"name": "Broken", **missing_false_path_payload})

        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "FlowCompilationError"
        assert body["details"]["errors"] == ['start node "start-1" is missing a FALSE path']
        assert body["details"]["unterminated_nodes"] == ["start-1"]
        mock_backend.create_flow.assert_not_awaited()

    @pytest.mark.anyio
    async def test_create_flow_requires_name(self, client, mock_backend, diamond_flow_payload):
        resp = client.post("/api/v1/flows", json=diamond_flow_payload)

        assert resp.status_code == 422
        mock_backend.create_flow.assert_not_awaited()

    @pytest.mark.anyio
    async def test_update_flow(self, client, mock_backend, diamond_flow_payload):
        resp = client.put(
            "/api/v1/flows/f1",
            json={
                "name": "Card checks",
                "baseId": "base-1",
                "version": 4,
                "status": "draft",
                **diamond_flow_payload,
            },
        )

        assert resp.status_code == 200
        assert resp.json() == {}

        flow_id, document = mock_backend.update_flow.await_args.args
        assert flow_id == "f1"
        assert document["baseId"] == "base-1"
        assert document["version"] == 4
        assert document["status"] == "draft"
        assert "yaml" in document

    @pytest.mark.anyio
    async def test_update_invalid_flow_is_422(
        self, client, mock_backend, missing_false_path_payload
    ):
        resp = client.put("/api/v1/flows/f1", json={"name": "Broken", **missing_false_path_payload})

        assert resp.status_code == 422
        mock_backend.update_flow.assert_not_awaited()


class TestBackendFailures:
    """Backend errors surface as gateway status codes."""

    @pytest.mark.anyio
    async def test_backend_error_is_502(self, client, mock_backend):
        mock_backend.list_flows.side_effect = PolicyBackendError(
            "Policy backend returned HTTP 500", {"upstream_status": 500}
        )

        resp = client.get("/api/v1/flows")

        assert resp.status_code == 502
        assert resp.json()["error"] == "PolicyBackendError"

    @pytest.mark.anyio
    async def test_backend_unavailable_is_503(self, client, mock_backend):
        mock_backend.list_flows.side_effect = PolicyBackendUnavailableError(
            "Policy backend is unavailable"
        )

        resp = client.get("/api/v1/flows")

        assert resp.status_code == 503
        assert resp.json()["message"] == "Policy backend is unavailable"
