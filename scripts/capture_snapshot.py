"""Capture an introspection snapshot from a live GraphQL endpoint.

Usage:
    python scripts/capture_snapshot.py https://api.cartql.com/ cartql.json

The written file can be used as GATEWAY_UPSTREAM_*_SNAPSHOT_PATH.
"""

import argparse
import json
import sys
from pathlib import Path

import httpx
from graphql import build_client_schema, get_introspection_query


def capture(url: str, output: Path, timeout: float) -> None:
    response = httpx.post(
        url,
        json={"query": get_introspection_query(descriptions=True)},
        timeout=timeout,
        follow_redirects=True,
    )
    response.raise_for_status()
    body = response.json()
    if body.get("errors"):
        raise SystemExit(f"Introspection failed: {body['errors']}")

    # Fail before writing anything the gateway could not load
    build_client_schema(body["data"])

    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w") as f:
        json.dump(body["data"], f, indent=2)
    print(f"Captured schema of {url} to {output}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("url", help="GraphQL endpoint to introspect")
    parser.add_argument("output", type=Path, help="Snapshot file to write (.json)")
    parser.add_argument("--timeout", type=float, default=30.0)
    args = parser.parse_args(argv)
    capture(args.url, args.output, args.timeout)


if __name__ == "__main__":
    main(sys.argv[1:])
