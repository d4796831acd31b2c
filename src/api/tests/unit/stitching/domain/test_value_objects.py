"""Unit tests for Stitching domain value objects."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from stitching.domain.value_objects import (
    GraphQLRequest,
    NamespaceCollisionError,
    ServiceNamespace,
    UpstreamService,
)


class TestServiceNamespace:
    """Tests for ServiceNamespace renaming rules."""

    def test_rename_prepends_prefix(self):
        """Names should be prefixed unchanged otherwise."""
        namespace = ServiceNamespace(prefix="CartQL_")
        assert namespace.rename("CartItem") == "CartQL_CartItem"
        assert namespace.rename("cart") == "CartQL_cart"

    def test_prefix_must_be_graphql_name(self):
        """A prefix that cannot start a GraphQL name should be rejected."""
        with pytest.raises(ValidationError):
            ServiceNamespace(prefix="1Cart")
        with pytest.raises(ValidationError):
            ServiceNamespace(prefix="Cart-")

    def test_is_frozen(self):
        """Namespaces should be immutable."""
        namespace = ServiceNamespace(prefix="CMS_")
        with pytest.raises(ValidationError):
            namespace.prefix = "Other_"

    def test_distinct_prefixes_are_disjoint(self):
        """Prefixes where neither starts with the other cannot collide."""
        cart = ServiceNamespace(prefix="CartQL_")
        cms = ServiceNamespace(prefix="CMS_")
        assert cart.is_disjoint_from(cms)
        assert cms.is_disjoint_from(cart)

    def test_nested_prefixes_overlap(self):
        """'A_' + 'B_x' equals 'A_B_' + 'x', so nested prefixes overlap."""
        outer = ServiceNamespace(prefix="A_")
        inner = ServiceNamespace(prefix="A_B_")
        assert outer.rename("B_x") == inner.rename("x")
        assert not outer.is_disjoint_from(inner)

    def test_ensure_disjoint_raises_on_overlap(self):
        """Overlapping namespaces should be reported by prefix."""
        with pytest.raises(NamespaceCollisionError, match="'CMS_'"):
            ServiceNamespace.ensure_disjoint(
                [
                    ServiceNamespace(prefix="CartQL_"),
                    ServiceNamespace(prefix="CMS_"),
                    ServiceNamespace(prefix="CMS_"),
                ]
            )

    def test_ensure_disjoint_accepts_generators(self):
        """Any iterable of namespaces should be accepted."""
        prefixes = ["CartQL_", "CMS_"]
        ServiceNamespace.ensure_disjoint(ServiceNamespace(prefix=p) for p in prefixes)


class TestUpstreamService:
    """Tests for UpstreamService."""

    def test_requires_endpoint_url(self):
        """An empty endpoint URL should be rejected."""
        with pytest.raises(ValidationError):
            UpstreamService(
                name="cart",
                endpoint_url="",
                namespace=ServiceNamespace(prefix="CartQL_"),
                snapshot_path=Path("cart.graphql"),
            )

    def test_snapshot_path_coerced_to_path(self):
        """String snapshot paths should become Path objects."""
        service = UpstreamService(
            name="cms",
            endpoint_url="http://cms.test/graphql",
            namespace=ServiceNamespace(prefix="CMS_"),
            snapshot_path="snapshots/cms.json",
        )
        assert service.snapshot_path == Path("snapshots/cms.json")


class TestGraphQLRequest:
    """Tests for GraphQLRequest."""

    def test_reads_operation_name_alias(self):
        """The wire name operationName should populate operation_name."""
        request = GraphQLRequest.model_validate(
            {"query": "query A { __typename }", "operationName": "A"}
        )
        assert request.operation_name == "A"

    def test_accepts_field_name(self):
        """The Python field name should also be accepted."""
        request = GraphQLRequest(query="{ __typename }", operation_name="B")
        assert request.operation_name == "B"

    def test_variables_default_to_none(self):
        """Variables are optional."""
        request = GraphQLRequest(query="{ __typename }")
        assert request.variables is None

    def test_rejects_empty_query(self):
        """An empty document is not a request."""
        with pytest.raises(ValidationError):
            GraphQLRequest(query="")

    def test_rejects_non_object_variables(self):
        """Variables must be a JSON object."""
        with pytest.raises(ValidationError):
            GraphQLRequest.model_validate(
                {"query": "{ __typename }", "variables": [1, 2]}
            )
