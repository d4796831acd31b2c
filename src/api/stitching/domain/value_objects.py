"""Domain value objects for the Stitching bounded context."""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from itertools import combinations
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

GRAPHQL_NAME_PATTERN = r"^[_A-Za-z][_0-9A-Za-z]*$"


class NamespaceCollisionError(ValueError):
    """Raised when two namespaces could produce the same renamed name."""

    pass


class ServiceNamespace(BaseModel):
    """Renaming rule applied to one upstream schema.

    Every root field and every named type of the upstream schema is
    prefixed with ``prefix``. Renaming is a pure function of the prefix,
    which keeps the collision rules checkable before any schema is loaded.

    Attributes:
        prefix: String prepended to root field and type names (e.g. "CartQL_").
    """

    model_config = ConfigDict(frozen=True)

    prefix: str = Field(pattern=GRAPHQL_NAME_PATTERN)

    def rename(self, name: str) -> str:
        """Return the namespaced form of ``name``."""
        return f"{self.prefix}{name}"

    def is_disjoint_from(self, other: ServiceNamespace) -> bool:
        """Whether no name renamed by ``self`` can equal one renamed by ``other``.

        ``p1 + a == p2 + b`` is only possible when one prefix starts with
        the other, so checking the prefixes is enough.
        """
        return not (
            self.prefix.startswith(other.prefix) or other.prefix.startswith(self.prefix)
        )

    @staticmethod
    def ensure_disjoint(namespaces: Iterable[ServiceNamespace]) -> None:
        """Check that a set of namespaces renames injectively.

        Raises:
            NamespaceCollisionError: If any two namespaces overlap.
        """
        for first, second in combinations(list(namespaces), 2):
            if not first.is_disjoint_from(second):
                raise NamespaceCollisionError(
                    f"Namespaces {first.prefix!r} and {second.prefix!r} overlap"
                )


class UpstreamService(BaseModel):
    """A remote GraphQL service that takes part in composition.

    Attributes:
        name: Short service identifier used in logs and errors (e.g. "cart").
        endpoint_url: URL receiving GraphQL POST requests.
        namespace: Renaming rule for the service's schema.
        snapshot_path: Location of the pre-captured schema description.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    endpoint_url: str = Field(min_length=1)
    namespace: ServiceNamespace
    snapshot_path: Path


class SnapshotFormat(StrEnum):
    """Serialization of a stored schema description."""

    INTROSPECTION = "introspection"
    SDL = "sdl"


class GraphQLRequest(BaseModel):
    """A GraphQL-over-HTTP request body.

    Attributes:
        query: The GraphQL document.
        variables: Variable values for the operation.
        operation_name: Operation to run when the document has several.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    query: str = Field(min_length=1)
    variables: dict[str, Any] | None = None
    operation_name: str | None = Field(default=None, alias="operationName")


class SnapshotInfo(BaseModel):
    """Public description of a loaded snapshot."""

    model_config = ConfigDict(frozen=True)

    service: str
    source: str
    format: SnapshotFormat
    digest: str
