"""HTTP routes for the Stitching bounded context.

Serves the composed schema over GraphQL-over-HTTP on ``/graphql``:

- ``POST`` executes any operation from a JSON body;
- ``GET`` serves GraphiQL to browsers, and executes query operations passed
  as URL parameters otherwise.
"""

from __future__ import annotations

import json
import uuid
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, Response
from graphql import OperationType
from pydantic import ValidationError

from infrastructure.settings import GatewaySettings, get_settings
from shared_kernel.observability_context import ObservationContext
from stitching.application.services import GatewayService
from stitching.dependencies import get_gateway_service
from stitching.domain.value_objects import GraphQLRequest
from stitching.ports.exceptions import (
    GatewayTimeout,
    InvalidOperation,
    OperationNotAllowed,
)
from stitching.presentation.graphiql import render_graphiql

REQUEST_ID_HEADER = "X-Request-ID"

router = APIRouter(tags=["graphql"])


def _error_response(
    status_code: int,
    message: str,
    extensions: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {"message": message}
    if extensions:
        error["extensions"] = extensions
    return JSONResponse(
        status_code=status_code, content={"errors": [error]}, headers=headers
    )


def _observe(request: Request, operation_name: str | None) -> ObservationContext:
    """Bind the request id for every log line of this request."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return ObservationContext(request_id=request_id, operation_name=operation_name)


async def _execute(
    service: GatewayService,
    graphql_request: GraphQLRequest,
    observation: ObservationContext,
    allowed_operations: tuple[OperationType, ...] | None = None,
) -> Response:
    headers = {REQUEST_ID_HEADER: observation.request_id or ""}
    try:
        result = await service.execute(
            graphql_request,
            observation=observation,
            allowed_operations=allowed_operations,
        )
    except InvalidOperation as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"errors": [error.formatted for error in e.errors]},
            headers=headers,
        )
    except OperationNotAllowed as e:
        return _error_response(
            status.HTTP_405_METHOD_NOT_ALLOWED,
            str(e),
            headers={**headers, "Allow": "POST"},
        )
    except GatewayTimeout as e:
        return _error_response(
            status.HTTP_504_GATEWAY_TIMEOUT,
            str(e),
            extensions={"code": "GATEWAY_TIMEOUT"},
            headers=headers,
        )
    return JSONResponse(content=result.formatted, headers=headers)


def _parse_request(payload: Any) -> GraphQLRequest | JSONResponse:
    if not isinstance(payload, dict) or not payload.get("query"):
        return _error_response(
            status.HTTP_400_BAD_REQUEST, "Must provide query string."
        )
    try:
        return GraphQLRequest.model_validate(payload)
    except ValidationError as e:
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            "Invalid GraphQL request: "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ),
        )


@router.post("/graphql")
async def graphql_post(
    request: Request,
    service: Annotated[GatewayService, Depends(get_gateway_service)],
) -> Response:
    """Execute a GraphQL operation sent as ``{query, variables, operationName}``.

    Returns:
        200 with ``{data, errors}`` for executed operations, partial results
        included; 400 when the body is not a GraphQL request or the operation
        does not parse or validate; 504 when execution exceeds the time bound.
    """
    try:
        payload = json.loads(await request.body())
    except ValueError:
        return _error_response(
            status.HTTP_400_BAD_REQUEST, "POST body sent invalid JSON."
        )

    graphql_request = _parse_request(payload)
    if isinstance(graphql_request, JSONResponse):
        return graphql_request

    observation = _observe(request, graphql_request.operation_name)
    return await _execute(service, graphql_request, observation)


@router.get("/graphql")
async def graphql_get(
    request: Request,
    settings: Annotated[GatewaySettings, Depends(get_settings)],
    service: Annotated[GatewayService, Depends(get_gateway_service)],
) -> Response:
    """Serve GraphiQL to browsers, or execute a query operation.

    Query parameters: ``query``, ``variables`` (JSON), ``operationName``.
    Mutations are refused with 405, since GET must not change state.
    """
    params = request.query_params
    accepts_html = "text/html" in request.headers.get("accept", "")
    if settings.graphiql and accepts_html and "raw" not in params:
        return HTMLResponse(
            render_graphiql(str(request.url.path), title=settings.app_name)
        )

    payload: dict[str, Any] = {
        "query": params.get("query"),
        "operationName": params.get("operationName") or None,
    }
    if params.get("variables"):
        try:
            payload["variables"] = json.loads(params["variables"])
        except ValueError:
            return _error_response(
                status.HTTP_400_BAD_REQUEST, "Variables are invalid JSON."
            )

    graphql_request = _parse_request(payload)
    if isinstance(graphql_request, JSONResponse):
        return graphql_request

    observation = _observe(request, graphql_request.operation_name)
    return await _execute(
        service,
        graphql_request,
        observation,
        allowed_operations=(OperationType.QUERY,),
    )

