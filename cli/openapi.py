"""CLI wrapper: Write the OpenAPI schema to docs/openapi.json."""

from __future__ import annotations

import sys
from pathlib import Path

from cli._runner import run


def main() -> None:
    script = Path(__file__).parent.parent / "scripts" / "generate_openapi.py"
    run([sys.executable, str(script), *sys.argv[1:]])
