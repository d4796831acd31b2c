"""Exceptions raised by the Stitching bounded context.

Upstream errors carry GraphQL ``extensions``. When a resolver raises one,
graphql-core copies ``message`` and ``extensions`` into the error entry it
reports at the failing field's path.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from graphql import GraphQLError


class StitchingError(Exception):
    """Base exception for the Stitching bounded context."""

    pass


class UpstreamError(StitchingError):
    """Base exception for failures talking to an upstream service."""

    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        service: str | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.url = url

    @property
    def extensions(self) -> dict[str, Any]:
        extensions: dict[str, Any] = {"code": self.code}
        if self.service is not None:
            extensions["service"] = self.service
        return extensions


class UpstreamUnreachable(UpstreamError):
    """Raised when the HTTP call to an upstream cannot complete."""

    code = "UPSTREAM_UNREACHABLE"


class UpstreamResponseInvalid(UpstreamError):
    """Raised when an upstream answers with something that is not GraphQL JSON."""

    code = "UPSTREAM_RESPONSE_INVALID"

    def __init__(
        self,
        message: str,
        service: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, service=service, url=url)
        self.status_code = status_code


class UpstreamGraphQLError(UpstreamError):
    """Raised when an upstream reports GraphQL errors.

    The first upstream error's message and extensions are forwarded
    unchanged; all of them are kept on ``errors``.
    """

    code = "UPSTREAM_GRAPHQL_ERROR"

    def __init__(
        self,
        errors: Sequence[dict[str, Any]],
        data: dict[str, Any] | None = None,
        service: str | None = None,
        url: str | None = None,
    ):
        self.errors = list(errors)
        self.data = data
        first = self.errors[0] if self.errors else {}
        message = str(first.get("message", "Upstream GraphQL error"))
        super().__init__(message, service=service, url=url)

    @property
    def extensions(self) -> dict[str, Any]:
        first = self.errors[0] if self.errors else {}
        extensions: dict[str, Any] = dict(first.get("extensions") or {})
        if self.service is not None:
            extensions.setdefault("service", self.service)
        if len(self.errors) > 1:
            extensions["upstreamErrors"] = [
                error.get("message") for error in self.errors
            ]
        return extensions


class GatewayTimeout(StitchingError):
    """Raised when a client operation exceeds the gateway time bound."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            f"Operation did not complete within {timeout_seconds:g} seconds"
        )
        self.timeout_seconds = timeout_seconds


class InvalidOperation(StitchingError):
    """Raised when a client operation fails to parse, validate or coerce.

    Nothing is delegated for such operations.
    """

    def __init__(self, errors: Sequence[GraphQLError]):
        self.errors = list(errors)
        super().__init__("; ".join(error.message for error in self.errors))


class OperationNotAllowed(StitchingError):
    """Raised when an operation type is not accepted over the transport used."""

    def __init__(self, operation: str, allowed: Sequence[str]):
        super().__init__(
            f"Can only perform a {', '.join(allowed)} operation from this request; "
            f"got {operation}"
        )
        self.operation = operation
        self.allowed = tuple(allowed)


class SchemaSnapshotInvalid(StitchingError):
    """Raised when a stored schema description cannot be used."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Invalid schema snapshot {source}: {reason}")
        self.source = source
        self.reason = reason


class SchemaCompositionError(StitchingError):
    """Base exception for failures while building the composed schema."""

    pass


class SchemaCompositionConflict(SchemaCompositionError):
    """Raised when two schemas declare the same name after renaming."""

    def __init__(self, kind: str, name: str, sources: Sequence[str] = ()):
        origin = f" (declared by {', '.join(sources)})" if sources else ""
        super().__init__(f"Conflicting {kind} name {name!r}{origin}")
        self.kind = kind
        self.name = name
        self.sources = tuple(sources)


class UnknownExtensionTarget(SchemaCompositionError):
    """Raised when an extension or resolver names a type or field that does not exist."""

    def __init__(self, type_name: str, field_name: str | None = None):
        target = type_name if field_name is None else f"{type_name}.{field_name}"
        super().__init__(f"Cannot extend unknown target {target!r}")
        self.type_name = type_name
        self.field_name = field_name


class UnknownDelegationTarget(SchemaCompositionError):
    """Raised when a delegation names a root field or type the target lacks."""

    def __init__(self, service: str, name: str):
        super().__init__(f"Schema of service {service!r} has no {name!r}")
        self.service = service
        self.name = name
