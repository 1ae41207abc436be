"""
Flow Graph Compiler for the Policy Flow API.

This package validates decision flows built in the editor and serializes
them into the textual forms consumed by the policy execution backend.

Key Components:
- adjacency: TRUE/FALSE successor map shared by validator and serializer
- validator: Well-formedness and termination checks
- serializer: Hierarchical and flat text forms
- canonicalizer: Deterministic JSON and content checksums
- compiler: Composes the above for the API

Design Principles:
- Purity: validation and serialization are side-effect-free functions of (nodes, edges)
- Determinism: Same graph and timestamp produce byte-for-byte identical text
- Reporting over raising: Validation returns every problem as data
"""

from app.compiler.adjacency import build_adjacency
from app.compiler.canonicalizer import compute_flow_checksum
from app.compiler.compiler import CompiledFlow, compile_flow
from app.compiler.serializer import flow_to_flat_text, flow_to_hierarchical_text
from app.compiler.validator import FlowValidationResult, validate_flow_termination

__all__ = [
    "build_adjacency",
    "compile_flow",
    "compute_flow_checksum",
    "CompiledFlow",
    "flow_to_flat_text",
    "flow_to_hierarchical_text",
    "FlowValidationResult",
    "validate_flow_termination",
]
