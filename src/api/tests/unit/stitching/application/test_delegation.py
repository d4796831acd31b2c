"""Unit tests for delegating gateway fields to upstream services.

Upstream executors are mocks; the tests check the operation each upstream
receives and how its answer is merged into the gateway result.
"""

from unittest.mock import AsyncMock

import pytest
from graphql import OperationType, graphql, parse, print_ast

from shared_kernel.observability_context import ObservationContext
from stitching.application.composer import FieldResolver, SchemaComposer
from stitching.application.delegation import delegate_to_schema
from stitching.application.services import GatewayRequestContext
from stitching.ports.exceptions import UpstreamGraphQLError

LIBRARY_SDL = """
type Book { id: ID! title: String authorId: ID }
type Film { id: ID! director: String }
union Media = Book | Film
input BookInput { title: String! }
type Query {
  book(id: ID!): Book
  search(term: String): [Media!]!
  ping: String
}
type Mutation { createBook(input: BookInput!): Book }
"""

AUTHORS_SDL = """
type Author { id: ID! name: String }
type Query { author(id: ID!): Author }
"""


def _sent(executor: AsyncMock) -> str:
    """The operation an upstream received, printed."""
    document = executor.call_args.args[0]
    return print_ast(document)


def _normalized(source: str) -> str:
    return print_ast(parse(source))


@pytest.fixture
def library_executor():
    return AsyncMock(return_value={})


@pytest.fixture
def authors_executor():
    return AsyncMock(return_value={})


@pytest.fixture
def gateway_schema(make_subschema, library_executor, authors_executor):
    """Library and authors schemas joined by Lib_Book.author."""
    library = make_subschema(
        LIBRARY_SDL, "Lib_", service="library", executor=library_executor
    )
    authors = make_subschema(
        AUTHORS_SDL, "Auth_", service="authors", executor=authors_executor
    )

    async def resolve_author(parent, info, **_args):
        return await delegate_to_schema(
            authors,
            OperationType.QUERY,
            "Auth_author",
            info,
            args={"id": parent["authorId"]},
        )

    async def resolve_broken(parent, info, **_args):
        return await delegate_to_schema(
            authors, OperationType.QUERY, "Auth_author", info, args={"nope": 1}
        )

    def resolve_shelf(parent, info, **_args):
        return "A3"

    composed = SchemaComposer().compose(
        [library, authors],
        type_defs="""
            extend type Lib_Book {
              author: Auth_Author
              broken: Auth_Author
              shelf: String
            }
        """,
        resolvers={
            "Lib_Book": {
                "author": FieldResolver(resolve_author, selection_set="{ authorId }"),
                "broken": resolve_broken,
                "shelf": resolve_shelf,
            }
        },
    )
    return composed.schema


class TestRootFieldDelegation:
    """Tests for root fields forwarded to their subschema."""

    @pytest.mark.asyncio
    async def test_forwards_field_under_original_name(
        self, gateway_schema, library_executor
    ):
        """The upstream should receive its own field name, aliased to the gateway's."""
        library_executor.return_value = {"Lib_book": {"title": "Dune"}}

        result = await graphql(gateway_schema, '{ Lib_book(id: "1") { title } }')

        assert result.errors is None
        assert result.data == {"Lib_book": {"title": "Dune"}}
        assert _sent(library_executor) == _normalized(
            '{ Lib_book: book(id: "1") { title } }'
        )

    @pytest.mark.asyncio
    async def test_keeps_client_aliases(self, gateway_schema, library_executor):
        library_executor.return_value = {"b": {"t": "Dune"}}

        result = await graphql(gateway_schema, '{ b: Lib_book(id: "1") { t: title } }')

        assert result.data == {"b": {"t": "Dune"}}
        assert _sent(library_executor) == _normalized(
            '{ b: book(id: "1") { t: title } }'
        )

    @pytest.mark.asyncio
    async def test_scalar_root_field(self, gateway_schema, library_executor):
        library_executor.return_value = {"Lib_ping": "pong"}

        result = await graphql(gateway_schema, "{ Lib_ping }")

        assert result.data == {"Lib_ping": "pong"}
        assert _sent(library_executor) == _normalized("{ Lib_ping: ping }")

    @pytest.mark.asyncio
    async def test_forwards_only_used_variables(
        self, gateway_schema, library_executor, authors_executor
    ):
        """Variables not referenced by the delegated field should not be sent."""
        library_executor.return_value = {"Lib_book": {"id": "1"}}
        authors_executor.return_value = {"Auth_author": {"name": "Frank Herbert"}}

        result = await graphql(
            gateway_schema,
            "query Q($id: ID!, $other: ID!) {"
            " Lib_book(id: $id) { id } Auth_author(id: $other) { name } }",
            variable_values={"id": "1", "other": "a1"},
        )

        assert result.errors is None
        assert _sent(library_executor) == _normalized(
            "query Q($id: ID!) { Lib_book: book(id: $id) { id } }"
        )
        assert library_executor.call_args.args[1] == {"id": "1"}
        assert _sent(authors_executor) == _normalized(
            "query Q($other: ID!) { Auth_author: author(id: $other) { name } }"
        )
        assert authors_executor.call_args.args[1] == {"other": "a1"}

    @pytest.mark.asyncio
    async def test_renames_variable_types(self, gateway_schema, library_executor):
        """Variable types should use the upstream's type names."""
        library_executor.return_value = {"Lib_createBook": {"id": "9"}}

        result = await graphql(
            gateway_schema,
            "mutation M($input: Lib_BookInput!) {"
            " Lib_createBook(input: $input) { id } }",
            variable_values={"input": {"title": "Dune"}},
        )

        assert result.data == {"Lib_createBook": {"id": "9"}}
        assert _sent(library_executor) == _normalized(
            "mutation M($input: BookInput!) {"
            " Lib_createBook: createBook(input: $input) { id } }"
        )
        assert library_executor.call_args.args[1] == {"input": {"title": "Dune"}}

    @pytest.mark.asyncio
    async def test_inlines_named_fragments(self, gateway_schema, library_executor):
        """Fragment spreads should be sent as inline fragments on upstream types."""
        library_executor.return_value = {"Lib_book": {"title": "Dune"}}

        result = await graphql(
            gateway_schema,
            '{ Lib_book(id: "1") { ...Parts } } fragment Parts on Lib_Book { title }',
        )

        assert result.data == {"Lib_book": {"title": "Dune"}}
        assert _sent(library_executor) == _normalized(
            '{ Lib_book: book(id: "1") { ... on Book { title } } }'
        )

    @pytest.mark.asyncio
    async def test_abstract_results_resolve_to_namespaced_types(
        self, gateway_schema, library_executor
    ):
        """Upstream __typename values should map to the gateway's type names."""
        library_executor.return_value = {
            "Lib_search": [
                {"__typename": "Book", "title": "Dune"},
                {"__typename": "Film", "director": "Villeneuve"},
            ]
        }

        result = await graphql(
            gateway_schema,
            "{ Lib_search { __typename ... on Lib_Book { title }"
            " ... on Lib_Film { director } } }",
        )

        assert result.errors is None
        assert result.data == {
            "Lib_search": [
                {"__typename": "Lib_Book", "title": "Dune"},
                {"__typename": "Lib_Film", "director": "Villeneuve"},
            ]
        }
        assert _sent(library_executor) == _normalized(
            "{ Lib_search: search { __typename ... on Book { title }"
            " ... on Film { director } } }"
        )

    @pytest.mark.asyncio
    async def test_requests_typename_under_abstract_types(
        self, gateway_schema, library_executor
    ):
        library_executor.return_value = {
            "Lib_search": [{"__typename": "Book", "title": "Dune"}]
        }

        result = await graphql(
            gateway_schema, "{ Lib_search { ... on Lib_Book { title } } }"
        )

        assert result.data == {"Lib_search": [{"title": "Dune"}]}
        assert "__typename" in _sent(library_executor)

    @pytest.mark.asyncio
    async def test_upstream_errors_are_forwarded(
        self, gateway_schema, library_executor
    ):
        """Upstream errors should appear at the delegated field's path."""
        library_executor.side_effect = UpstreamGraphQLError(
            [{"message": "Book not found", "extensions": {"code": "NOT_FOUND"}}],
            service="library",
        )

        result = await graphql(gateway_schema, '{ Lib_book(id: "x") { title } }')

        assert result.data == {"Lib_book": None}
        error = result.errors[0]
        assert error.message == "Book not found"
        assert error.path == ["Lib_book"]
        assert error.extensions == {"code": "NOT_FOUND", "service": "library"}


class TestUpstreamErrorReporting:
    """Tests for upstream errors reported per error at gateway paths."""

    @pytest.fixture
    def request_context(self):
        return GatewayRequestContext(observation=ObservationContext())

    @pytest.mark.asyncio
    async def test_partial_data_is_kept(
        self, gateway_schema, library_executor, request_context
    ):
        """Data sent with errors should reach the client, errors at their paths."""
        library_executor.side_effect = UpstreamGraphQLError(
            [{"message": "title failed", "path": ["Lib_book", "title"]}],
            data={"Lib_book": {"id": "1", "title": None}},
            service="library",
        )

        result = await graphql(
            gateway_schema,
            '{ Lib_book(id: "1") { id title } }',
            context_value=request_context,
        )

        assert result.errors is None
        assert result.data == {"Lib_book": {"id": "1", "title": None}}
        [error] = request_context.errors
        assert error.message == "title failed"
        assert error.path == ["Lib_book", "title"]
        assert error.extensions == {"service": "library"}

    @pytest.mark.asyncio
    async def test_each_upstream_error_is_reported(
        self, gateway_schema, library_executor, request_context
    ):
        """Every upstream error should become its own gateway error."""
        library_executor.side_effect = UpstreamGraphQLError(
            [{"message": "first"}, {"message": "second"}], service="library"
        )

        result = await graphql(
            gateway_schema,
            '{ Lib_book(id: "x") { id } }',
            context_value=request_context,
        )

        assert result.data == {"Lib_book": None}
        errors = [*result.errors, *request_context.errors]
        assert [e.message for e in errors] == ["first", "second"]
        assert all(e.path == ["Lib_book"] for e in errors)
        assert all(e.extensions == {"service": "library"} for e in errors)

    @pytest.mark.asyncio
    async def test_paths_rebased_under_joined_field(
        self, gateway_schema, library_executor, authors_executor, request_context
    ):
        """Errors from a joined upstream should point below the join field."""
        library_executor.return_value = {"Lib_book": {"authorId": "a1"}}
        authors_executor.side_effect = UpstreamGraphQLError(
            [{"message": "name hidden", "path": ["author", "name"]}],
            data={"author": {"name": None}},
            service="authors",
        )

        result = await graphql(
            gateway_schema,
            '{ Lib_book(id: "1") { author { name } } }',
            context_value=request_context,
        )

        assert result.data == {"Lib_book": {"author": {"name": None}}}
        [error] = request_context.errors
        assert error.path == ["Lib_book", "author", "name"]

    @pytest.mark.asyncio
    async def test_without_error_list_first_error_fails_field(
        self, gateway_schema, library_executor
    ):
        """Without a request error list the combined upstream error is raised."""
        library_executor.side_effect = UpstreamGraphQLError(
            [{"message": "first"}, {"message": "second"}], service="library"
        )

        result = await graphql(gateway_schema, '{ Lib_book(id: "x") { id } }')

        [error] = result.errors
        assert error.message == "first"
        assert error.extensions["upstreamErrors"] == ["first", "second"]


class TestLocalFieldSelections:
    """Tests for gateway-resolved fields inside delegated selections."""

    @pytest.mark.asyncio
    async def test_replaces_local_field_with_required_selection(
        self, gateway_schema, library_executor, authors_executor
    ):
        """The upstream should receive the key field instead of the join field."""
        library_executor.return_value = {
            "Lib_book": {"title": "Dune", "authorId": "a1"}
        }
        authors_executor.return_value = {"author": {"name": "Frank Herbert"}}

        result = await graphql(
            gateway_schema, '{ Lib_book(id: "1") { title author { name } } }'
        )

        assert result.errors is None
        assert result.data == {
            "Lib_book": {"title": "Dune", "author": {"name": "Frank Herbert"}}
        }
        assert _sent(library_executor) == _normalized(
            '{ Lib_book: book(id: "1") { title authorId } }'
        )
        assert _sent(authors_executor) == _normalized(
            '{ author(id: "a1") { name } }'
        )

    @pytest.mark.asyncio
    async def test_key_field_not_leaked_to_client(
        self, gateway_schema, library_executor, authors_executor
    ):
        """Fields only requested for the resolver stay out of the response."""
        library_executor.return_value = {"Lib_book": {"authorId": "a1"}}
        authors_executor.return_value = {"writer": {"name": "Frank Herbert"}}

        result = await graphql(
            gateway_schema, '{ Lib_book(id: "1") { writer: author { name } } }'
        )

        assert result.data == {"Lib_book": {"writer": {"name": "Frank Herbert"}}}
        assert _sent(authors_executor) == _normalized(
            '{ writer: author(id: "a1") { name } }'
        )

    @pytest.mark.asyncio
    async def test_typename_when_only_local_fields_selected(
        self, gateway_schema, library_executor
    ):
        """A selection emptied by local fields should still be valid upstream."""
        library_executor.return_value = {"Lib_book": {"__typename": "Book"}}

        result = await graphql(gateway_schema, '{ Lib_book(id: "1") { shelf } }')

        assert result.data == {"Lib_book": {"shelf": "A3"}}
        assert _sent(library_executor) == _normalized(
            '{ Lib_book: book(id: "1") { __typename } }'
        )

    @pytest.mark.asyncio
    async def test_unknown_delegated_argument_is_field_error(
        self, gateway_schema, library_executor, authors_executor
    ):
        """Delegating with an argument the target lacks should fail that field."""
        library_executor.return_value = {"Lib_book": {"__typename": "Book"}}

        result = await graphql(
            gateway_schema, '{ Lib_book(id: "1") { broken { name } } }'
        )

        assert result.data == {"Lib_book": {"broken": None}}
        assert "nope" in result.errors[0].message
        authors_executor.assert_not_called()
