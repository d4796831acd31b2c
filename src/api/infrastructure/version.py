"""Version management for the gateway.

Provides version information using importlib.metadata with fallback to pyproject.toml
for source checkouts that were not installed.
"""

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

DISTRIBUTION_NAME = "storefront-gateway"


def get_version() -> str:
    """Get the application version.

    Tries to read from installed package metadata first.
    Falls back to reading the repository's pyproject.toml.

    Returns:
        Version string (e.g., "0.1.0")
    """
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        # src/api/infrastructure/version.py -> repository root
        pyproject_path = Path(__file__).resolve().parents[3] / "pyproject.toml"

        with open(pyproject_path, "rb") as f:
            pyproject_data = tomllib.load(f)

        return pyproject_data["project"]["version"]


__version__ = get_version()
