"""
JSON canonicalization for flow fingerprints.

The editor re-validates a flow on every change. A checksum over the
canonical form of the graph lets callers skip recomputation when the
graph content has not changed, regardless of key order in the payload.
"""

import hashlib
import json
from collections.abc import Sequence
from typing import Any

from app.domain.flow import FlowEdge, FlowNode, dump_flow_edges, dump_flow_nodes


def canonicalize_json(obj: Any) -> dict | list | Any:
    """
    Produce a deterministic, canonical representation of a JSON object.

    - All dictionary keys are sorted alphabetically
    - Nested structures are recursively canonicalized
    - List order is preserved (node and edge order is part of the flow)

    Example:
        >>> canonicalize_json({"z": 1, "a": {"c": 2, "b": 3}})
        {'a': {'b': 3, 'c': 2}, 'z': 1}
    """
    if isinstance(obj, dict):
        return {k: canonicalize_json(v) for k, v in sorted(obj.items())}

    elif isinstance(obj, list):
        return [canonicalize_json(item) for item in obj]

    else:
        return obj


def to_canonical_json_string(obj: Any) -> str:
    """
    Convert a Python object to a canonical JSON string.

    Sorted keys, no extra whitespace, non-ASCII characters kept as-is.

    Example:
        >>> to_canonical_json_string({"target": "b", "source": "a"})
        '{"source":"a","target":"b"}'
    """
    canonical = canonicalize_json(obj)
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_flow_checksum(nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]) -> str:
    """
    Compute a content checksum of a flow graph.

    Only fields of the typed flow model take part; editor-only fields such
    as node positions are dropped when the graph is parsed.

    Returns:
        Checksum in format ``sha256:<lowercase-hex>``
    """
    payload = to_canonical_json_string(
        {"nodes": dump_flow_nodes(nodes), "edges": dump_flow_edges(edges)}
    )
    return f"sha256:{hashlib.sha256(payload.encode('utf-8')).hexdigest()}"
