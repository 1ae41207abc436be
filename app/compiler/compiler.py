"""
Flow Compiler.

Turns an editor flow graph into the artifacts the policy backend stores
and executes:
- The validation result (errors are shown in the editor)
- The hierarchical text form
- The flat text form
- A content checksum of the graph

Validation and serialization stay independent pure functions; this
module only composes them, times the work and records metrics.
"""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from app.compiler.canonicalizer import compute_flow_checksum
from app.compiler.serializer import flow_to_flat_text, flow_to_hierarchical_text
from app.compiler.validator import FlowValidationResult, validate_flow_termination
from app.core.errors import FlowCompilationError
from app.core.observability import metrics
from app.domain.flow import FlowEdge, FlowNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledFlow:
    """Artifacts produced by compiling a flow graph."""

    validation: FlowValidationResult
    yaml: str
    yaml_flat: str
    checksum: str


def compile_flow(
    nodes: Sequence[FlowNode],
    edges: Sequence[FlowEdge],
    *,
    require_valid: bool = True,
    expand_shared_subtrees: bool = False,
    generated_at: datetime | None = None,
) -> CompiledFlow:
    """
    Validate a flow graph and serialize it to both text forms.

    Args:
        nodes: Flow nodes
        edges: Flow edges
        require_valid: Raise instead of returning artifacts for an invalid graph
        expand_shared_subtrees: Re-emit shared subtrees in the hierarchical form
        generated_at: Timestamp for the hierarchical metadata footer

    Returns:
        CompiledFlow with the validation result and both text forms

    Raises:
        FlowCompilationError: If require_valid is set and the graph is invalid.
            ``details`` carries ``errors`` and ``unterminated_nodes``.
    """
    start_time = time.time()

    validation = validate_flow_termination(nodes, edges)
    checksum = compute_flow_checksum(nodes, edges)

    if not validation.is_valid:
        metrics.flow_validation_errors_total.inc(len(validation.errors))

        if require_valid:
            _record_compiler_metrics("invalid", time.time() - start_time, len(nodes))
            logger.info(
                "Rejected flow %s: %d validation error(s)",
                checksum,
                len(validation.errors),
            )
            raise FlowCompilationError(
                "Flow graph is not valid",
                details={
                    "checksum": checksum,
                    "errors": validation.errors,
                    "unterminated_nodes": validation.unterminated_nodes,
                },
            )

    compiled = CompiledFlow(
        validation=validation,
        yaml=flow_to_hierarchical_text(
            nodes,
            edges,
            generated_at=generated_at,
            expand_shared_subtrees=expand_shared_subtrees,
        ),
        yaml_flat=flow_to_flat_text(nodes, edges),
        checksum=checksum,
    )

    duration = time.time() - start_time
    _record_compiler_metrics("success", duration, len(nodes))

    logger.info(
        "Compiled flow %s: %d nodes, %d edges, valid=%s, duration=%.4fs",
        checksum,
        len(nodes),
        len(edges),
        validation.is_valid,
        duration,
    )

    return compiled


def _record_compiler_metrics(status: str, duration: float, node_count: int) -> None:
    """Record compilation outcome, duration and graph size."""
    metrics.flow_compilations_total.labels(status=status).inc()
    metrics.flow_compile_duration_seconds.observe(duration)
    if status == "success":
        metrics.flow_nodes_count.observe(node_count)
