"""
Flow serialization to the backend's textual formats.

Two equivalent YAML-like forms are produced:
- Hierarchical: a nested tree rooted at the start node, with each
  decision's TRUE/FALSE branches inlined under ``onTrue:``/``onFalse:``
- Flat: every node, then every edge, with no traversal

The output is the contract with the execution backend and must stay
byte-stable: same graph (and timestamp) in, same text out.
"""

from collections.abc import Sequence
from datetime import UTC, datetime

from app.compiler.adjacency import AdjacencyMap, build_adjacency
from app.domain.enums import EdgeHandle, NodeType
from app.domain.flow import FlowEdge, FlowNode

NO_START_NODE_SENTINEL = "# No start node found\n"

INDENT = "  "

_BRANCHES = ((EdgeHandle.TRUE, "onTrue"), (EdgeHandle.FALSE, "onFalse"))


def flow_to_hierarchical_text(
    nodes: Sequence[FlowNode],
    edges: Sequence[FlowEdge],
    *,
    generated_at: datetime | None = None,
    expand_shared_subtrees: bool = False,
) -> str:
    """
    Serialize a flow as a tree rooted at its start node.

    By default each node is written at most once in the whole document: a
    node reached again through a second branch (a diamond) leaves that
    branch's marker line empty. With ``expand_shared_subtrees`` the shared
    subtree is written again in full under every branch that reaches it;
    only a node already on the current path (a cycle) is cut.

    Args:
        nodes: Flow nodes
        edges: Flow edges
        generated_at: Timestamp for the metadata footer (defaults to now)
        expand_shared_subtrees: Re-emit subtrees reached through several branches

    Returns:
        The hierarchical text, or NO_START_NODE_SENTINEL when the flow has
        no start node

    Example:
        >>> print(flow_to_hierarchical_text(nodes, edges))
        flow:
          start:
            - id: start-1
              type: start
              policyId: policy-start
              onTrue:
                - id: return-1
                  type: return
                  returnValue: true
        <BLANKLINE>
        metadata:
          totalNodes: 2
          totalEdges: 1
          timestamp: 2026-01-01T00:00:00.000Z
    """
    start_node = next((node for node in nodes if node.type == NodeType.START.value), None)
    if start_node is None:
        return NO_START_NODE_SENTINEL

    adjacency = build_adjacency(edges)
    nodes_by_id: dict[str, FlowNode] = {}
    for node in nodes:
        nodes_by_id.setdefault(node.id, node)

    lines = ["flow:", f"{INDENT}start:"]
    _emit_node(
        start_node.id,
        level=2,
        nodes_by_id=nodes_by_id,
        adjacency=adjacency,
        lines=lines,
        seen=set(),
        path_local=expand_shared_subtrees,
    )
    lines.extend(_metadata_footer(len(nodes), len(edges), generated_at))

    return "\n".join(lines)


def flow_to_flat_text(nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]) -> str:
    """
    Serialize a flow as independent node and edge lists.

    Always succeeds, with or without a start node. Edges without a TRUE/FALSE
    handle are written with ``condition: default``.
    """
    lines = ["flow:", f"{INDENT}nodes:"]

    item = INDENT * 2
    field = INDENT * 3
    for node in nodes:
        lines.append(f"{item}- id: {node.id}")
        lines.append(f"{field}type: {node.type}")
        lines.extend(f"{field}{line}" for line in _node_fields(node))

    lines.append(f"{INDENT}edges:")
    for edge in edges:
        lines.append(f"{item}- from: {edge.source}")
        lines.append(f"{field}to: {edge.target}")
        lines.append(f"{field}condition: {edge.source_handle or 'default'}")
        if edge.label:
            lines.append(f'{field}label: "{edge.label}"')

    return "\n".join(lines)


def format_timestamp(moment: datetime | None = None) -> str:
    """
    Format a UTC ISO-8601 timestamp with millisecond precision and a ``Z`` suffix.

    Naive datetimes are taken to be UTC already.
    """
    moment = moment or datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _emit_node(
    node_id: str,
    *,
    level: int,
    nodes_by_id: dict[str, FlowNode],
    adjacency: AdjacencyMap,
    lines: list[str],
    seen: set[str],
    path_local: bool,
) -> None:
    """
    Append the block for ``node_id`` and, recursively, its branches.

    ``seen`` is shared by the whole document unless ``path_local`` is set,
    in which case each branch gets its own copy holding the current path.
    """
    if node_id in seen:
        return
    seen.add(node_id)

    node = nodes_by_id.get(node_id)
    if node is None:
        return

    item = INDENT * level
    field = item + INDENT
    lines.append(f"{item}- id: {node.id}")
    lines.append(f"{field}type: {node.type}")
    lines.extend(f"{field}{line}" for line in _node_fields(node))

    successors = adjacency.get(node.id)
    if successors is None:
        return

    for handle, marker in _BRANCHES:
        target = successors.get(handle)
        if not target or target not in nodes_by_id:
            continue
        lines.append(f"{field}{marker}:")
        _emit_node(
            target,
            level=level + 2,
            nodes_by_id=nodes_by_id,
            adjacency=adjacency,
            lines=lines,
            seen=set(seen) if path_local else seen,
            path_local=path_local,
        )


def _node_fields(node: FlowNode) -> list[str]:
    """Type-specific field lines of a node, without indentation."""
    if node.type in (NodeType.START.value, NodeType.POLICY.value):
        fields = []
        if node.policy_id:
            fields.append(f"policyId: {node.policy_id}")
        if node.policy_name:
            fields.append(f'policyName: "{node.policy_name}"')
        return fields

    if node.type == NodeType.RETURN.value:
        return [f"returnValue: {'true' if node.return_value else 'false'}"]

    if node.type == NodeType.CUSTOM.value:
        return [f'outcome: "{node.outcome or ""}"']

    return []


def _metadata_footer(total_nodes: int, total_edges: int, generated_at: datetime | None) -> list[str]:
    return [
        "",
        "metadata:",
        f"{INDENT}totalNodes: {total_nodes}",
        f"{INDENT}totalEdges: {total_edges}",
        f"{INDENT}timestamp: {format_timestamp(generated_at)}",
    ]
