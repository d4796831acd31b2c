"""Unit test fixtures with in-process upstream services.

The cart and CMS upstreams are graphql-core schemas built from the bundled
snapshots and served through ``httpx.MockTransport``, so the gateway talks
GraphQL-over-HTTP without any network access.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from graphql import build_schema, graphql_sync

from infrastructure.settings import UpstreamSettings
from stitching.application.services import GatewayRuntime, GatewayService
from stitching.application.transforms import NamespaceTransformer, TransformedSchema
from stitching.dependencies import CART_SNAPSHOT, CMS_SNAPSHOT, build_gateway_runtime
from stitching.domain.schemas import RemoteSchema
from stitching.domain.value_objects import ServiceNamespace

CART_ID = "ck-cart-1"

CART_ITEMS = [
    {"id": "ckprod-tee", "name": "Logo Tee", "type": "SKU", "quantity": 2},
    {"id": "ckprod-mug", "name": "Coffee Mug", "type": "SKU", "quantity": 1},
    {"id": "ship-standard", "name": "Standard shipping", "type": "SHIPPING", "quantity": 1},
]

PRODUCTS = {
    "ckprod-tee": {
        "__typename": "Product",
        "id": "ckprod-tee",
        "name": "Logo Tee",
        "slug": "logo-tee",
        "price": 2500,
    },
    "ckprod-mug": {
        "__typename": "Product",
        "id": "ckprod-mug",
        "name": "Coffee Mug",
        "slug": "coffee-mug",
        "price": 1200,
    },
}


def _cart(cart_id: str, items: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "id": cart_id,
        "email": None,
        "isEmpty": not items,
        "totalItems": sum(item["quantity"] for item in items),
        "totalUniqueItems": len(items),
        "currency": {"code": "USD", "symbol": "$"},
        "items": items,
    }


def _resolve_cart(_info, id, currency=None):
    return _cart(id, CART_ITEMS)


def _resolve_add_item(_info, input):
    item = {
        "id": input["id"],
        "name": input.get("name"),
        "type": input["type"],
        "quantity": input["quantity"],
    }
    return _cart(input["cartId"], [*CART_ITEMS, item])


def _resolve_product(_info, where, stage="PUBLISHED", locales=None):
    product = PRODUCTS.get(where.get("id"))
    if product is None:
        return None
    return {**product, "stage": stage}


def _resolve_node(_info, id, stage="PUBLISHED", locales=None):
    product = PRODUCTS.get(id)
    if product is None:
        return None
    return {**product, "stage": stage}


class FakeUpstream:
    """In-process GraphQL service standing in for an upstream endpoint.

    Records every request body it receives. Set ``reachable`` to False to
    refuse connections, or ``errors`` to answer every request with them.
    """

    def __init__(self, snapshot: Path, root_value: dict[str, Any]):
        self.schema = build_schema(snapshot.read_text())
        self.root_value = root_value
        self.requests: list[dict[str, Any]] = []
        self.reachable = True
        self.errors: list[dict[str, Any]] | None = None

    @property
    def queries(self) -> list[str]:
        return [request["query"] for request in self.requests]

    def handle(self, request: httpx.Request) -> httpx.Response:
        if not self.reachable:
            raise httpx.ConnectError("Connection refused", request=request)
        payload = json.loads(request.content)
        self.requests.append(payload)
        if self.errors is not None:
            return httpx.Response(200, json={"data": None, "errors": self.errors})
        result = graphql_sync(
            self.schema,
            payload["query"],
            root_value=self.root_value,
            variable_values=payload.get("variables"),
        )
        return httpx.Response(200, json=result.formatted)


@pytest.fixture
def cart_upstream() -> FakeUpstream:
    """Fake CartQL service."""
    return FakeUpstream(
        CART_SNAPSHOT, {"cart": _resolve_cart, "addItem": _resolve_add_item}
    )


@pytest.fixture
def cms_upstream() -> FakeUpstream:
    """Fake GraphCMS service."""
    return FakeUpstream(
        CMS_SNAPSHOT, {"product": _resolve_product, "node": _resolve_node}
    )


@pytest.fixture
def upstream_transport(cart_upstream, cms_upstream) -> httpx.MockTransport:
    """Route requests to the fake upstreams by host; other hosts are unreachable."""
    upstreams = {"cart.test": cart_upstream, "cms.test": cms_upstream}

    def route(request: httpx.Request) -> httpx.Response:
        upstream = upstreams.get(request.url.host)
        if upstream is None:
            raise httpx.ConnectError("Name does not resolve", request=request)
        return upstream.handle(request)

    return httpx.MockTransport(route)


@pytest.fixture
def upstream_client(upstream_transport) -> httpx.AsyncClient:
    """Shared upstream HTTP client backed by the fake upstreams."""
    return httpx.AsyncClient(transport=upstream_transport)


@pytest.fixture
def upstream_settings() -> UpstreamSettings:
    """Upstream settings pointing at the fake upstream hosts."""
    return UpstreamSettings(
        cart_url="http://cart.test/graphql",
        cms_url="http://cms.test/graphql",
        timeout_seconds=5.0,
    )


@pytest.fixture
def gateway_runtime(upstream_client, upstream_settings) -> GatewayRuntime:
    """Started runtime composed from the bundled snapshots."""
    runtime = build_gateway_runtime(client=upstream_client, settings=upstream_settings)
    runtime.start()
    return runtime


@pytest.fixture
def gateway_service(gateway_runtime) -> GatewayService:
    """Gateway service executing against the fake upstreams."""
    return GatewayService(runtime=gateway_runtime, timeout_seconds=5.0)


@pytest.fixture
def cart_id() -> str:
    return CART_ID


@pytest.fixture
def make_subschema() -> Callable[..., TransformedSchema]:
    """Factory namespacing an SDL schema bound to a mock executor."""

    def make(
        sdl: str,
        prefix: str,
        service: str = "upstream",
        executor: Any = None,
    ) -> TransformedSchema:
        remote = RemoteSchema(
            service=service,
            endpoint_url=f"http://{service}.test/graphql",
            schema=build_schema(sdl),
            executor=executor or AsyncMock(return_value={}),
        )
        transformer = NamespaceTransformer.for_namespace(
            ServiceNamespace(prefix=prefix)
        )
        return transformer.transform(remote)

    return make
