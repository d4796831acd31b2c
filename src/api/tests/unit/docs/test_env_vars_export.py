"""Tests for the environment variable documentation export.

scripts/export_settings.py writes docs/env-vars.json from the settings
classes; these tests check that the metadata it produces matches the
variables the settings actually read.
"""

import importlib.util
from pathlib import Path

import pytest

from infrastructure.settings import GatewaySettings, UpstreamSettings

SCRIPT = Path(__file__).resolve().parents[5] / "scripts" / "export_settings.py"


@pytest.fixture(scope="module")
def export_settings():
    spec = importlib.util.spec_from_file_location("export_settings", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _env_vars(metadata: dict) -> set[str]:
    return {name for prop in metadata["properties"] for name in prop["env_vars"]}


class TestEnvVarsExport:
    """Validate exported settings metadata matches the settings classes."""

    def test_gateway_variables(self, export_settings):
        metadata = export_settings.get_model_metadata(GatewaySettings)

        assert metadata["prefix"] == "GATEWAY_"
        assert _env_vars(metadata) >= {
            "GATEWAY_HOST",
            "GATEWAY_PORT",
            "PORT",
            "GATEWAY_GRAPHIQL",
            "GATEWAY_DEBUG",
            "GATEWAY_LOG_LEVEL",
            "GATEWAY_REQUEST_TIMEOUT_SECONDS",
        }

    def test_upstream_variables(self, export_settings):
        metadata = export_settings.get_model_metadata(UpstreamSettings)

        assert _env_vars(metadata) == {
            "GATEWAY_UPSTREAM_CART_URL",
            "GATEWAY_UPSTREAM_CART_PREFIX",
            "GATEWAY_UPSTREAM_CART_SNAPSHOT_PATH",
            "GATEWAY_UPSTREAM_CMS_URL",
            "GATEWAY_UPSTREAM_CMS_PREFIX",
            "GATEWAY_UPSTREAM_CMS_SNAPSHOT_PATH",
            "GATEWAY_UPSTREAM_TIMEOUT_SECONDS",
        }

    def test_defaults_exported(self, export_settings):
        metadata = export_settings.get_model_metadata(UpstreamSettings)
        by_var = {prop["env_vars"][0]: prop for prop in metadata["properties"]}

        assert by_var["GATEWAY_UPSTREAM_CART_PREFIX"]["default"] == "CartQL_"
        assert by_var["GATEWAY_UPSTREAM_CART_SNAPSHOT_PATH"]["default"] is None
        assert by_var["GATEWAY_UPSTREAM_CART_SNAPSHOT_PATH"]["required"] is False

    def test_booleans_stay_booleans(self, export_settings):
        metadata = export_settings.get_model_metadata(GatewaySettings)
        by_var = {prop["env_vars"][0]: prop for prop in metadata["properties"]}

        assert by_var["GATEWAY_GRAPHIQL"]["default"] is True
        assert by_var["GATEWAY_DEBUG"]["default"] is False
