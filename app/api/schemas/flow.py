"""Pydantic schemas for flow API requests/responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from app.compiler.validator import FlowValidationResult
from app.core.config import settings
from app.domain.flow import FlowEdge, FlowNode

# =============================================================================
# Graph Payloads
# =============================================================================


class FlowGraph(BaseModel):
    """Nodes and edges as produced by the flow editor."""

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_graph_size(self) -> FlowGraph:
        """Reject graphs larger than the configured limits."""
        if len(self.nodes) > settings.flow_max_nodes:
            raise ValueError(
                f"Flow has {len(self.nodes)} nodes, maximum is {settings.flow_max_nodes}"
            )
        if len(self.edges) > settings.flow_max_edges:
            raise ValueError(
                f"Flow has {len(self.edges)} edges, maximum is {settings.flow_max_edges}"
            )
        return self


class FlowSaveRequest(FlowGraph):
    """Create or update a stored flow."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    tags: list[str] = Field(default_factory=list)

    # Update-only fields, passed through to the backend
    base_id: str | int | None = Field(None, alias="baseId")
    version: str | int | None = None
    status: str | None = None


# =============================================================================
# Responses
# =============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class FlowValidationResponse(_CamelModel):
    """Validation outcome; error strings are displayed verbatim by the editor."""

    is_valid: bool
    errors: list[str]
    unterminated_nodes: list[str]
    checksum: str

    @classmethod
    def from_result(cls, result: FlowValidationResult, checksum: str) -> FlowValidationResponse:
        return cls(
            is_valid=result.is_valid,
            errors=result.errors,
            unterminated_nodes=result.unterminated_nodes,
            checksum=checksum,
        )


class CompiledFlowResponse(_CamelModel):
    """Both text forms of a flow plus its validation outcome."""

    validation: FlowValidationResponse
    yaml: str
    yaml_flat: str
    checksum: str


class FlowCreatedResponse(BaseModel):
    id: str | int


class FlowDocumentResponse(_CamelModel):
    """Stored flow as returned by the policy backend."""

    id: str | int
    base_id: str | int | None = None
    name: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    nodes: list[dict[str, Any]] | None = None
    edges: list[dict[str, Any]] | None = None
    status: str | None = None
    version: str | int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    has_draft: bool | None = None
