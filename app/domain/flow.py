"""
Typed flow graph model.

A flow is a list of nodes and a list of edges as produced by the visual
editor. Nodes are a closed tagged union on ``type``; each variant declares
only the fields it needs. Editor-only fields (position, styling, ...) are
accepted and dropped.

JSON keys follow the editor's camelCase naming (``policyId``,
``returnValue``, ``sourceHandle``); Python code can use the snake_case
attribute names as well.
"""

from collections.abc import Iterable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _FlowModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class _BaseNode(_FlowModel):
    id: str
    label: str | None = None


class StartNode(_BaseNode):
    """Entry point of the flow. Evaluates a policy and branches on the result."""

    type: Literal["start"] = "start"
    policy_id: str | None = Field(default=None, alias="policyId")
    policy_name: str | None = Field(default=None, alias="policyName")


class PolicyNode(_BaseNode):
    """Intermediate decision evaluating another policy."""

    type: Literal["policy"] = "policy"
    policy_id: str | None = Field(default=None, alias="policyId")
    policy_name: str | None = Field(default=None, alias="policyName")


class ReturnNode(_BaseNode):
    """Terminal node ending the flow with a boolean result."""

    type: Literal["return"] = "return"
    return_value: bool = Field(alias="returnValue")


class CustomNode(_BaseNode):
    """Terminal node ending the flow with a free-form outcome."""

    type: Literal["custom"] = "custom"
    outcome: str = ""


FlowNode = Annotated[
    StartNode | PolicyNode | ReturnNode | CustomNode,
    Field(discriminator="type"),
]


class FlowEdge(_FlowModel):
    """Directed edge between two nodes, labeled by its source handle."""

    id: str
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    label: str | None = None


_nodes_adapter = TypeAdapter(list[FlowNode])
_edges_adapter = TypeAdapter(list[FlowEdge])


def parse_flow_nodes(raw: Iterable[dict[str, Any]]) -> list[FlowNode]:
    """
    Parse editor node dictionaries into typed nodes.

    Raises:
        pydantic.ValidationError: If a node has an unknown type or is
            missing a field its variant requires.
    """
    return _nodes_adapter.validate_python(list(raw))


def parse_flow_edges(raw: Iterable[dict[str, Any]]) -> list[FlowEdge]:
    """Parse editor edge dictionaries into typed edges."""
    return _edges_adapter.validate_python(list(raw))


def dump_flow_nodes(nodes: Iterable[FlowNode]) -> list[dict[str, Any]]:
    """Dump nodes back to editor-shaped dictionaries (camelCase, no unset optionals)."""
    return [node.model_dump(by_alias=True, exclude_none=True) for node in nodes]


def dump_flow_edges(edges: Iterable[FlowEdge]) -> list[dict[str, Any]]:
    return [edge.model_dump(by_alias=True, exclude_none=True) for edge in edges]
