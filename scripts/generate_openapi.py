"""Utility script to export the FastAPI OpenAPI specification."""

from __future__ import annotations

import json
from pathlib import Path

from paygate.main import create_application


def main() -> None:
    app = create_application()
    destination = Path("docs/openapi.json")
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(app.openapi(), indent=2), encoding="utf-8")
    print(f"OpenAPI specification written to {destination}")


if __name__ == "__main__":
    main()
