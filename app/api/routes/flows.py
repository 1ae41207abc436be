"""
API routes for policy flows.

Compilation routes (validate, compile, export) run entirely in-process.
Storage routes forward to the policy backend; saving a flow first compiles
it strictly so only well-formed graphs reach the backend.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import PlainTextResponse

from app.api.schemas.flow import (
    CompiledFlowResponse,
    FlowCreatedResponse,
    FlowDocumentResponse,
    FlowGraph,
    FlowSaveRequest,
    FlowValidationResponse,
)
from app.compiler import (
    compile_flow,
    compute_flow_checksum,
    flow_to_flat_text,
    flow_to_hierarchical_text,
    validate_flow_termination,
)
from app.domain.enums import ExportFormat
from app.domain.flow import dump_flow_edges, dump_flow_nodes
from app.services.policy_backend import PolicyBackendClient, get_policy_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["flows"])

PolicyBackend = Annotated[PolicyBackendClient, Depends(get_policy_backend)]


# =============================================================================
# Compilation Routes
# =============================================================================


@router.post("/flows/validate")
def validate_flow(payload: FlowGraph) -> FlowValidationResponse:
    """Validate a flow graph and report every problem found.

    Invalid graphs are a normal outcome here (200 with ``isValid: false``);
    the editor calls this on every change.
    """
    result = validate_flow_termination(payload.nodes, payload.edges)
    checksum = compute_flow_checksum(payload.nodes, payload.edges)
    return FlowValidationResponse.from_result(result, checksum)


@router.post("/flows/compile")
def compile_flow_preview(
    payload: FlowGraph,
    expand_shared: Annotated[
        bool, Query(description="Re-emit subtrees reached through several branches")
    ] = False,
) -> CompiledFlowResponse:
    """Compile a flow to both text forms without requiring it to be valid."""
    compiled = compile_flow(
        payload.nodes,
        payload.edges,
        require_valid=False,
        expand_shared_subtrees=expand_shared,
    )
    return CompiledFlowResponse(
        validation=FlowValidationResponse.from_result(compiled.validation, compiled.checksum),
        yaml=compiled.yaml,
        yaml_flat=compiled.yaml_flat,
        checksum=compiled.checksum,
    )


@router.post("/flows/export", response_class=PlainTextResponse)
def export_flow(
    payload: FlowGraph,
    output_format: Annotated[
        ExportFormat, Query(alias="format", description="Text form to produce")
    ] = ExportFormat.HIERARCHICAL,
    expand_shared: Annotated[bool, Query()] = False,
) -> str:
    """Export a flow as plain text.

    A flow without a start node exports as the ``# No start node found``
    sentinel in hierarchical form.
    """
    if output_format is ExportFormat.FLAT:
        return flow_to_flat_text(payload.nodes, payload.edges)
    return flow_to_hierarchical_text(
        payload.nodes, payload.edges, expand_shared_subtrees=expand_shared
    )


# =============================================================================
# Storage Routes (forwarded to the policy backend)
# =============================================================================


@router.get("/flows")
async def list_flows(backend: PolicyBackend) -> Any:
    """List stored flows."""
    return await backend.list_flows()


@router.get("/flows/{flow_id}")
async def get_flow(
    flow_id: str,
    backend: PolicyBackend,
    version: Annotated[str | None, Query(description="Specific version to load")] = None,
) -> FlowDocumentResponse:
    """Load a stored flow, optionally at a specific version."""
    document = await backend.get_flow(flow_id, version)
    return FlowDocumentResponse.model_validate(document)


@router.get("/flows/{flow_id}/versions")
async def list_flow_versions(flow_id: str, backend: PolicyBackend) -> list[Any]:
    """List the stored versions of a flow."""
    return await backend.list_flow_versions(flow_id)


@router.post("/flows", status_code=status.HTTP_201_CREATED)
async def create_flow(payload: FlowSaveRequest, backend: PolicyBackend) -> FlowCreatedResponse:
    """Compile a flow and store it in the policy backend.

    Returns 422 with the validation errors when the graph is not valid.
    """
    document = _build_flow_document(payload)
    created = await backend.create_flow(document)
    logger.info("Created flow %s (%s)", created["id"], payload.name)
    return FlowCreatedResponse(id=created["id"])


@router.put("/flows/{flow_id}")
async def update_flow(flow_id: str, payload: FlowSaveRequest, backend: PolicyBackend) -> dict:
    """Compile a flow and replace the stored copy in the policy backend."""
    document = _build_flow_document(payload)
    document.update(
        {
            "baseId": payload.base_id,
            "version": payload.version,
            "status": payload.status,
        }
    )
    await backend.update_flow(flow_id, document)
    logger.info("Updated flow %s", flow_id)
    return {}


def _build_flow_document(payload: FlowSaveRequest) -> dict[str, Any]:
    """Compile the graph strictly and assemble the document the backend stores."""
    compiled = compile_flow(payload.nodes, payload.edges, require_valid=True)
    return {
        "name": payload.name,
        "description": payload.description,
        "tags": payload.tags,
        "nodes": dump_flow_nodes(payload.nodes),
        "edges": dump_flow_edges(payload.edges),
        "yaml": compiled.yaml,
        "yamlFlat": compiled.yaml_flat,
    }
