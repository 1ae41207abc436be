#!/usr/bin/env python3
"""
Generate the OpenAPI JSON schema for the Policy Flow API.

Usage:
  openapi
  python scripts/generate_openapi.py --output docs/openapi.json
"""

import argparse
import json
from pathlib import Path

from app.main import create_app


def main():
    """Generate OpenAPI JSON and save it (docs/openapi.json by default)."""
    parser = argparse.ArgumentParser(description="Generate the OpenAPI schema")
    parser.add_argument("--output", default="docs/openapi.json", help="Output file path")
    args = parser.parse_args()

    app = create_app()
    openapi_schema = app.openapi()

    output_file = Path(args.output)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(openapi_schema, f, indent=2)
        f.write("\n")

    print(f"[OK] OpenAPI schema generated: {output_file}")
    print(f"   Title: {openapi_schema['info']['title']}")
    print(f"   Version: {openapi_schema['info']['version']}")
    print(f"   Endpoints: {len(openapi_schema['paths'])} paths")

    print("\nEndpoint Summary:")
    for path, methods in openapi_schema["paths"].items():
        for method, details in methods.items():
            tags = details.get("tags", [""])
            summary = details.get("summary", "No summary")
            print(f"   {method.upper():6} {path:32} [{tags[0]}] {summary}")


if __name__ == "__main__":
    main()
