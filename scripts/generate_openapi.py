"""Write the service's OpenAPI schema to openapi.json."""

import argparse
import json
from pathlib import Path

from avatar_chat.main import app


def main() -> None:
    parser = argparse.ArgumentParser(description="Dump the OpenAPI schema")
    parser.add_argument("--output", default="openapi.json", help="Target file")
    args = parser.parse_args()

    schema = app.openapi()
    output = Path(args.output)
    output.write_text(json.dumps(schema, indent=2, ensure_ascii=False) + "\n")
    print(f"Generated {output} ({len(schema['paths'])} paths)")


if __name__ == "__main__":
    main()
