#!/usr/bin/env python3
"""
Compile a flow exported from the editor into its text form.

Reads a JSON document with ``nodes`` and ``edges`` arrays, validates it and
prints the compiled text to stdout. Validation errors go to stderr.

Usage:
    compile-flow flow.json
    compile-flow flow.json --format flat
    compile-flow flow.json --expand-shared
    cat flow.json | compile-flow -

Exit Codes:
    0 - Flow compiled
    1 - Flow is not valid (use --force to print the text anyway)
    2 - Input could not be read or parsed
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from app.compiler import flow_to_flat_text, flow_to_hierarchical_text, validate_flow_termination
from app.domain.enums import ExportFormat
from app.domain.flow import parse_flow_edges, parse_flow_nodes


def load_flow(source: str) -> dict:
    """Read the flow document from a path, or stdin when the path is ``-``."""
    if source == "-":
        return json.load(sys.stdin)
    with open(Path(source), encoding="utf-8") as f:
        return json.load(f)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compile a policy flow JSON document to text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("source", help="Path to the flow JSON file, or - for stdin")
    parser.add_argument(
        "--format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.HIERARCHICAL.value,
        help="Text form to print (default: hierarchical)",
    )
    parser.add_argument(
        "--expand-shared",
        action="store_true",
        help="Re-emit subtrees reached through more than one branch",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Print the text even when the flow is not valid",
    )
    args = parser.parse_args(argv)

    try:
        document = load_flow(args.source)
        nodes = parse_flow_nodes(document.get("nodes", []))
        edges = parse_flow_edges(document.get("edges", []))
    except (OSError, json.JSONDecodeError, AttributeError) as e:
        print(f"ERROR: could not read flow: {e}", file=sys.stderr)
        return 2
    except ValidationError as e:
        print(f"ERROR: invalid flow document:\n{e}", file=sys.stderr)
        return 2

    result = validate_flow_termination(nodes, edges)
    for error in result.errors:
        print(f"[INVALID] {error}", file=sys.stderr)

    if not result.is_valid and not args.force:
        return 1

    if args.format == ExportFormat.FLAT.value:
        print(flow_to_flat_text(nodes, edges))
    else:
        print(flow_to_hierarchical_text(nodes, edges, expand_shared_subtrees=args.expand_shared))

    return 0 if result.is_valid else 1


if __name__ == "__main__":
    sys.exit(main())
