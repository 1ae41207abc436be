"""
Domain enums for policy flows.

These enums give type-safe names to the string tags the flow editor
produces for node types and edge handles.
"""

from enum import Enum


class NodeType(str, Enum):
    """Node type tag - matches the editor's node ``type`` values."""

    START = "start"
    POLICY = "policy"
    RETURN = "return"
    CUSTOM = "custom"


# Nodes that evaluate a policy and branch on its boolean result.
DECISION_NODE_TYPES = frozenset({NodeType.START.value, NodeType.POLICY.value})

# Nodes that end the flow with an outcome.
TERMINAL_NODE_TYPES = frozenset({NodeType.RETURN.value, NodeType.CUSTOM.value})


class EdgeHandle(str, Enum):
    """
    Source handle of an edge leaving a decision node.

    Edges with any other handle (or none) are kept in the graph but carry
    no decision semantics.
    """

    TRUE = "true"
    FALSE = "false"


class ExportFormat(str, Enum):
    """Textual forms a flow can be serialized to."""

    HIERARCHICAL = "hierarchical"
    FLAT = "flat"
