"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Annotated

import httpx
import structlog
import uvicorn
from fastapi import Depends, FastAPI

from infrastructure.logging import configure_logging
from infrastructure.settings import get_settings, get_upstream_settings
from infrastructure.version import __version__
from stitching.application.services import GatewayRuntime
from stitching.dependencies import build_gateway_runtime, get_gateway_runtime
from stitching.presentation import routes as stitching_routes
from util import dev_routes

logger = structlog.get_logger()


@asynccontextmanager
async def gateway_lifespan(app: FastAPI):
    """Application lifespan context.

    Manages:
    - Logging configuration
    - The shared upstream HTTP client (closed on shutdown)
    - Building the composed schema; startup fails if it cannot be built
    """
    settings = get_settings()
    upstream_settings = get_upstream_settings()
    configure_logging(settings.log_level)

    async with httpx.AsyncClient(timeout=upstream_settings.timeout_seconds) as client:
        runtime = build_gateway_runtime(client=client, settings=upstream_settings)
        runtime.start()
        app.state.gateway_runtime = runtime
        logger.info(
            "gateway_started",
            version=__version__,
            digests=runtime.context.digests(),
        )

        yield

        app.state.gateway_runtime = None


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(
        title=settings.app_name,
        description="GraphQL gateway stitching the CartQL and GraphCMS schemas",
        version=__version__,
        lifespan=gateway_lifespan,
    )

    # Include Stitching bounded context routes
    application.include_router(stitching_routes.router)

    if settings.debug:
        application.include_router(dev_routes.router)

    @application.get("/health")
    def health(
        runtime: Annotated[GatewayRuntime, Depends(get_gateway_runtime)],
    ) -> dict:
        """Health check reporting the schema snapshots in use."""
        context = runtime.context
        return {
            "status": "ok",
            "version": __version__,
            "schema_built_at": context.built_at.isoformat(),
            "snapshots": context.digests(),
        }

    return application


app = create_app()


def run() -> None:
    """Serve the gateway with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
