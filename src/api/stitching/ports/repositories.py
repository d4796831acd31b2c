"""Repository and loader interfaces (ports) for the Stitching bounded context.

These protocols define how schema descriptions are obtained and bound to
upstream endpoints without specifying storage or transport details.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from graphql import GraphQLSchema

from stitching.domain.schemas import RemoteSchema, SchemaSnapshot


@runtime_checkable
class ISchemaSnapshotRepository(Protocol):
    """Read access to pre-captured schema descriptions."""

    def load(self, service: str, path: Path) -> SchemaSnapshot:
        """Load and validate the snapshot stored at ``path``.

        Raises:
            SchemaSnapshotInvalid: If the snapshot is missing or malformed.
        """
        ...


@runtime_checkable
class IRemoteSchemaLoader(Protocol):
    """Binds schema descriptions to the endpoints that serve them."""

    def load(
        self,
        schema: GraphQLSchema,
        endpoint_url: str,
        service: str | None = None,
    ) -> RemoteSchema:
        """Create a proxy schema forwarding operations to ``endpoint_url``.

        Binding performs no I/O; requests are sent per delegated field.
        """
        ...
