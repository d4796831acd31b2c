"""GraphQL-over-HTTP transport to upstream services."""

from __future__ import annotations

import time
from typing import Any, NoReturn

import httpx
from graphql import DocumentNode, GraphQLSchema, print_ast

from stitching.domain.schemas import RemoteSchema
from stitching.infrastructure.observability import (
    DefaultRemoteExecutorProbe,
    RemoteExecutorProbe,
)
from stitching.ports.exceptions import (
    UpstreamGraphQLError,
    UpstreamResponseInvalid,
    UpstreamUnreachable,
)
from stitching.ports.repositories import IRemoteSchemaLoader


class HttpRemoteExecutor:
    """Sends GraphQL operations to one upstream endpoint.

    Each call is a single ``POST`` with a JSON body holding ``query`` and
    ``variables``. The upstream's ``data`` member is returned; transport
    failures and upstream ``errors`` are raised as upstream exceptions; the
    partial ``data`` sent with ``errors`` stays on the raised exception.
    """

    def __init__(
        self,
        endpoint_url: str,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        service: str | None = None,
        probe: RemoteExecutorProbe | None = None,
    ):
        self._endpoint_url = endpoint_url
        self._client = client
        self._timeout = timeout_seconds
        self._service = service
        self._probe = probe or DefaultRemoteExecutorProbe()

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    async def __call__(
        self,
        document: DocumentNode | str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        query = document if isinstance(document, str) else print_ast(document)
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        response = await self._post(payload)
        return self._read_data(response)

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        url = self._endpoint_url
        self._probe.upstream_request_sent(service=self._service, url=url)
        started = time.perf_counter()
        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=payload, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            self._probe.upstream_unreachable(
                service=self._service, url=url, reason=repr(e)
            )
            raise UpstreamUnreachable(
                f"Could not reach upstream at {url}",
                service=self._service,
                url=url,
            ) from e

        self._probe.upstream_response_received(
            service=self._service,
            url=url,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    def _read_data(self, response: httpx.Response) -> dict[str, Any]:
        url = self._endpoint_url
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            self._invalid("response body is not JSON", status)

        if not isinstance(body, dict):
            self._invalid("response body is not a JSON object", status)

        errors = body.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [{"message": str(errors)}]
            data = body.get("data") if isinstance(body.get("data"), dict) else None
            first = errors[0] if isinstance(errors[0], dict) else {}
            self._probe.upstream_graphql_error(
                service=self._service,
                url=url,
                error_count=len(errors),
                message=str(first.get("message", "")),
            )
            raise UpstreamGraphQLError(
                [e if isinstance(e, dict) else {"message": str(e)} for e in errors],
                data=data,
                service=self._service,
                url=url,
            )

        if status >= 400:
            self._invalid(f"HTTP {status} without GraphQL errors", status)

        data = body.get("data")
        if not isinstance(data, dict):
            self._invalid("response has no 'data' object", status)
        return data

    def _invalid(self, reason: str, status_code: int) -> NoReturn:
        self._probe.upstream_response_invalid(
            service=self._service,
            url=self._endpoint_url,
            reason=reason,
            status_code=status_code,
        )
        raise UpstreamResponseInvalid(
            f"Invalid response from upstream at {self._endpoint_url}: {reason}",
            service=self._service,
            url=self._endpoint_url,
            status_code=status_code,
        )


class HttpRemoteSchemaLoader(IRemoteSchemaLoader):
    """Binds schemas to HTTP endpoints served through a shared client."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        probe: RemoteExecutorProbe | None = None,
    ):
        self._client = client
        self._timeout = timeout_seconds
        self._probe = probe or DefaultRemoteExecutorProbe()

    def load(
        self,
        schema: GraphQLSchema,
        endpoint_url: str,
        service: str | None = None,
    ) -> RemoteSchema:
        if not endpoint_url:
            raise ValueError("endpoint_url must not be empty")

        executor = HttpRemoteExecutor(
            endpoint_url=endpoint_url,
            client=self._client,
            timeout_seconds=self._timeout,
            service=service,
            probe=self._probe,
        )
        return RemoteSchema(
            service=service or endpoint_url,
            endpoint_url=endpoint_url,
            schema=schema,
            executor=executor,
        )
