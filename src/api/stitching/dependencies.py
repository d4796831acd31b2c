"""Dependency injection for Stitching bounded context.

Composes settings and the process-wide HTTP client with stitching
components (repositories, loaders, runtime, services).
"""

from pathlib import Path
from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request, status

from infrastructure.settings import (
    GatewaySettings,
    UpstreamSettings,
    get_settings,
    get_upstream_settings,
)
from stitching.application.services import (
    GatewayContextBuilder,
    GatewayRuntime,
    GatewayService,
)
from stitching.domain.value_objects import ServiceNamespace, UpstreamService
from stitching.infrastructure.http_executor import HttpRemoteSchemaLoader
from stitching.infrastructure.snapshot_repository import FileSchemaSnapshotRepository

BUNDLED_SNAPSHOT_DIR = Path(__file__).parent / "infrastructure" / "snapshots"
CART_SNAPSHOT = BUNDLED_SNAPSHOT_DIR / "cartql.graphql"
CMS_SNAPSHOT = BUNDLED_SNAPSHOT_DIR / "graphcms.graphql"


def build_upstream_services(settings: UpstreamSettings) -> list[UpstreamService]:
    """Describe the cart and content services from settings."""
    return [
        UpstreamService(
            name="cart",
            endpoint_url=settings.cart_url,
            namespace=ServiceNamespace(prefix=settings.cart_prefix),
            snapshot_path=settings.cart_snapshot_path or CART_SNAPSHOT,
        ),
        UpstreamService(
            name="cms",
            endpoint_url=settings.cms_url,
            namespace=ServiceNamespace(prefix=settings.cms_prefix),
            snapshot_path=settings.cms_snapshot_path or CMS_SNAPSHOT,
        ),
    ]


def build_gateway_runtime(
    client: httpx.AsyncClient | None = None,
    settings: UpstreamSettings | None = None,
) -> GatewayRuntime:
    """Create an unstarted runtime for the configured upstream services.

    Args:
        client: Shared HTTP client for upstream calls; a client per call
            is used when omitted.
        settings: Upstream settings; loaded from the environment when omitted.
    """
    settings = settings or get_upstream_settings()
    builder = GatewayContextBuilder(
        services=build_upstream_services(settings),
        snapshot_repository=FileSchemaSnapshotRepository(),
        remote_schema_loader=HttpRemoteSchemaLoader(
            client=client, timeout_seconds=settings.timeout_seconds
        ),
    )
    return GatewayRuntime(builder)


def get_gateway_runtime(request: Request) -> GatewayRuntime:
    """Get the application-scoped runtime created in the lifespan.

    Raises:
        HTTPException: 503 if the gateway has not finished starting.
    """
    runtime: GatewayRuntime | None = getattr(
        request.app.state, "gateway_runtime", None
    )
    if runtime is None or not runtime.started:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway schema is not loaded",
        )
    return runtime


def get_gateway_service(
    runtime: Annotated[GatewayRuntime, Depends(get_gateway_runtime)],
    settings: Annotated[GatewaySettings, Depends(get_settings)],
) -> GatewayService:
    """Get GatewayService bound to the current runtime."""
    return GatewayService(
        runtime=runtime, timeout_seconds=settings.request_timeout_seconds
    )
