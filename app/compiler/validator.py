"""
Flow Graph Validation.

Checks that a flow graph is well-formed and guaranteed to terminate:
- A start node exists (and only one)
- Every decision node has a policy and both a TRUE and a FALSE path
- Every path from the start node ends at a terminal node, without cycles
- Every node is reachable from the start node

Problems are not raised: the editor re-validates on every change and
highlights all offending nodes at once, so every detected problem is
collected and returned as data. The error strings are shown to users
verbatim.
"""

import logging
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field

from app.compiler.adjacency import AdjacencyMap, build_adjacency
from app.domain.enums import DECISION_NODE_TYPES, TERMINAL_NODE_TYPES, NodeType
from app.domain.flow import FlowEdge, FlowNode

logger = logging.getLogger(__name__)


NO_START_NODE = "No start node found in the flow"
NOT_ALL_PATHS_TERMINATE = "Not all paths lead to terminal nodes"
TOO_MANY_PATHS = "Flow has too many paths to validate"

# Upper bound on node visits during the path walk. Only graphs whose
# failing subtrees are reached along very many distinct paths get near it.
MAX_PATH_STEPS = 10_000


class FlowValidationResult(BaseModel):
    """Outcome of validating a flow graph."""

    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    errors: list[str] = Field(default_factory=list)
    unterminated_nodes: list[str] = Field(default_factory=list, alias="unterminatedNodes")


def validate_flow_termination(
    nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]
) -> FlowValidationResult:
    """
    Validate a flow graph.

    Passes run in order and accumulate errors; only a missing start node
    stops validation early since every later pass walks from it.

    Args:
        nodes: Flow nodes
        edges: Flow edges

    Returns:
        FlowValidationResult with every error found and the ids of the
        nodes involved (deduplicated, first-seen order)

    Example:
        >>> result = validate_flow_termination([StartNode(id="s", policyId="p")], [])
        >>> result.is_valid
        False
        >>> result.errors[0]
        'start node "s" is missing a TRUE path'
    """
    errors: list[str] = []
    flagged: list[str] = []

    adjacency = build_adjacency(edges)

    # Pass 1: start node
    start_nodes = [node for node in nodes if node.type == NodeType.START.value]
    if not start_nodes:
        errors.append(NO_START_NODE)
        return FlowValidationResult(is_valid=False, errors=errors, unterminated_nodes=[])

    start_node = start_nodes[0]
    if len(start_nodes) > 1:
        ids = ", ".join(f'"{node.id}"' for node in start_nodes)
        errors.append(f"Flow has multiple start nodes: {ids}")
        flagged.extend(node.id for node in start_nodes[1:])

    # Pass 2: decision node completeness
    _check_decision_nodes(nodes, adjacency, errors, flagged)

    # Pass 3: every path from start terminates
    nodes_by_id = _index_nodes(nodes)
    walker = _PathWalker(nodes_by_id, adjacency, errors)
    terminates = walker.check(start_node.id, set())
    if not terminates and not errors:
        errors.append(NOT_ALL_PATHS_TERMINATE)

    # Pass 4: orphans
    reachable = _collect_reachable(start_node.id, adjacency)
    for node in nodes:
        if node.id not in reachable and node.id != start_node.id:
            errors.append(f'Node "{node.id}" is not connected to the flow')
            flagged.append(node.id)

    result = FlowValidationResult(
        is_valid=not errors,
        errors=errors,
        unterminated_nodes=list(dict.fromkeys(flagged)),
    )

    if not result.is_valid:
        logger.debug(
            "Flow validation found %d error(s) across %d node(s)",
            len(result.errors),
            len(result.unterminated_nodes),
        )

    return result


def _index_nodes(nodes: Sequence[FlowNode]) -> dict[str, FlowNode]:
    """Index nodes by id, keeping the first node when ids repeat."""
    index: dict[str, FlowNode] = {}
    for node in nodes:
        index.setdefault(node.id, node)
    return index


def _check_decision_nodes(
    nodes: Sequence[FlowNode],
    adjacency: AdjacencyMap,
    errors: list[str],
    flagged: list[str],
) -> None:
    """
    Check that every decision node has a policy id and both paths.

    Terminal nodes are skipped: they need no outgoing connections.
    """
    for node in nodes:
        if node.type not in DECISION_NODE_TYPES:
            continue

        policy_id = getattr(node, "policy_id", None)
        if not policy_id or not policy_id.strip():
            errors.append(f'{node.type} node "{node.id}" must have a Policy ID')
            flagged.append(node.id)

        successors = adjacency.get(node.id)
        if successors is None or not successors.true:
            errors.append(f'{node.type} node "{node.id}" is missing a TRUE path')
            flagged.append(node.id)
        if successors is None or not successors.false:
            errors.append(f'{node.type} node "{node.id}" is missing a FALSE path')
            flagged.append(node.id)


class _PathWalker:
    """
    Depth-first check that every path from a node reaches a terminal node.

    ``visited`` holds the nodes on the current path only. Each branch gets
    its own copy, so two branches that reconverge on the same node (a
    diamond) are not mistaken for a cycle.

    A node whose subtree terminated cleanly is remembered: no cycle is
    reachable from it, so every later path through it terminates too and
    its subtree is not walked again. Failing subtrees are re-walked so each
    path reports its own errors, up to ``max_steps`` node visits.
    """

    def __init__(
        self,
        nodes_by_id: dict[str, FlowNode],
        adjacency: AdjacencyMap,
        errors: list[str],
        max_steps: int = MAX_PATH_STEPS,
    ):
        self.nodes_by_id = nodes_by_id
        self.adjacency = adjacency
        self.errors = errors
        self.max_steps = max_steps
        self.steps = 0
        self.exhausted = False
        self.terminating: set[str] = set()

    def check(self, node_id: str, visited: set[str]) -> bool:
        """Return True if every path from ``node_id`` terminates."""
        if node_id in self.terminating:
            return True

        if self.exhausted:
            return False
        self.steps += 1
        if self.steps > self.max_steps:
            self.exhausted = True
            self.errors.append(TOO_MANY_PATHS)
            logger.warning("Flow path walk stopped after %d steps", self.max_steps)
            return False

        if node_id in visited:
            self.errors.append(f'Circular reference detected involving node "{node_id}"')
            return False

        node = self.nodes_by_id.get(node_id)
        if node is None:
            self.errors.append(f'Referenced node "{node_id}" not found')
            return False

        if node.type in TERMINAL_NODE_TYPES:
            return True

        visited.add(node_id)

        successors = self.adjacency.get(node_id)
        if successors is None:
            # Missing paths were already reported by the completeness pass
            return False

        errors_before = len(self.errors)
        all_paths_terminate = True
        for target in (successors.true, successors.false):
            if not target:
                all_paths_terminate = False
                continue
            if not self.check(target, set(visited)):
                all_paths_terminate = False

        if all_paths_terminate and len(self.errors) == errors_before:
            self.terminating.add(node_id)

        return all_paths_terminate


def _collect_reachable(start_id: str, adjacency: AdjacencyMap) -> set[str]:
    """Collect every node id reachable from ``start_id`` via TRUE/FALSE successors."""
    reachable: set[str] = set()
    stack = [start_id]

    while stack:
        node_id = stack.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)

        successors = adjacency.get(node_id)
        if successors is not None:
            stack.extend(successors.existing())

    return reachable
