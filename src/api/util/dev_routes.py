"""Development utility routes.

These endpoints are for development/debugging only and should NOT be
exposed in production. They are mounted only when GATEWAY_DEBUG is set.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse
from graphql import print_schema

from stitching.application.services import GatewayRuntime
from stitching.dependencies import get_gateway_runtime
from stitching.domain.value_objects import SnapshotInfo
from stitching.ports.exceptions import StitchingError

router = APIRouter(prefix="/util", tags=["dev-utilities"])


@router.get("/schema/sdl", response_class=PlainTextResponse)
def composed_schema_sdl(
    runtime: Annotated[GatewayRuntime, Depends(get_gateway_runtime)],
) -> PlainTextResponse:
    """Return the composed schema in schema definition language."""
    return PlainTextResponse(print_schema(runtime.context.schema))


@router.get("/schema/snapshots")
def schema_snapshots(
    runtime: Annotated[GatewayRuntime, Depends(get_gateway_runtime)],
) -> dict:
    """List the snapshots the current schema was built from."""
    context = runtime.context
    snapshots: list[SnapshotInfo] = [s.info() for s in context.snapshots]
    return {
        "built_at": context.built_at.isoformat(),
        "snapshots": [s.model_dump(mode="json") for s in snapshots],
    }


@router.post("/schema/reload")
async def reload_schema(
    runtime: Annotated[GatewayRuntime, Depends(get_gateway_runtime)],
) -> dict:
    """Rebuild the composed schema from the snapshots on disk.

    The current schema keeps serving if the rebuild fails.

    Raises:
        HTTPException: 500 with the composition error if the rebuild fails.
    """
    try:
        context = await runtime.reload()
    except StitchingError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to reload schema: {e}",
        ) from e
    return {"built_at": context.built_at.isoformat(), "digests": context.digests()}
