#!/usr/bin/env python3
"""Export the MindWell journal OpenAPI schema to JSON.

Usage:
    python scripts/export_openapi.py [OUTPUT_PATH]

    OUTPUT_PATH defaults to ``docs/openapi.json`` (relative to repo root).

The script builds the FastAPI app, calls ``app.openapi()`` to obtain the
schema dict, and writes it as pretty-printed JSON. No server is started, no
database connection is made and no model is loaded; only route metadata is
read.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path


def main() -> None:
    from mindwell.api.app import create_app

    output_path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("docs/openapi.json")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    schema = create_app().openapi()

    output_path.write_text(json.dumps(schema, indent=2, ensure_ascii=False) + "\n")
    print(f"OpenAPI schema written to {output_path} ({output_path.stat().st_size:,} bytes)")


if __name__ == "__main__":
    main()
