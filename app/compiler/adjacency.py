"""
Adjacency map for flow graphs.

Both the validator and the serializers walk the flow through this map
rather than through the raw edge list: every decision node has at most
one TRUE successor and one FALSE successor.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from app.domain.enums import EdgeHandle
from app.domain.flow import FlowEdge

logger = logging.getLogger(__name__)


@dataclass
class Successors:
    """TRUE/FALSE successor ids of a single node."""

    true: str | None = None
    false: str | None = None

    def get(self, handle: EdgeHandle) -> str | None:
        return self.true if handle is EdgeHandle.TRUE else self.false

    def existing(self) -> list[str]:
        """Successor ids in TRUE, FALSE order, skipping missing ones."""
        return [target for target in (self.true, self.false) if target]


AdjacencyMap = dict[str, Successors]


def build_adjacency(edges: Iterable[FlowEdge]) -> AdjacencyMap:
    """
    Build the TRUE/FALSE successor map from an edge list.

    Edges whose source handle is neither ``"true"`` nor ``"false"`` are
    ignored. When several edges share the same (source, handle) pair the
    last one wins.

    Args:
        edges: Flow edges in editor order

    Returns:
        Mapping of source node id -> Successors

    Example:
        >>> adj = build_adjacency([FlowEdge(id="e1", source="a", target="b", sourceHandle="true")])
        >>> adj["a"].true
        'b'
    """
    adjacency: AdjacencyMap = {}

    for edge in edges:
        if edge.source_handle == EdgeHandle.TRUE.value:
            successors = adjacency.setdefault(edge.source, Successors())
            if successors.true is not None and successors.true != edge.target:
                logger.debug(
                    "Edge %s replaces TRUE successor %s of node %s",
                    edge.id,
                    successors.true,
                    edge.source,
                )
            successors.true = edge.target
        elif edge.source_handle == EdgeHandle.FALSE.value:
            successors = adjacency.setdefault(edge.source, Successors())
            if successors.false is not None and successors.false != edge.target:
                logger.debug(
                    "Edge %s replaces FALSE successor %s of node %s",
                    edge.id,
                    successors.false,
                    edge.source,
                )
            successors.false = edge.target

    return adjacency
