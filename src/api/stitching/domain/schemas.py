"""Schema-level artifacts handled by the gateway.

These are not application data: they describe upstream GraphQL services
and how to reach them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from graphql import DocumentNode, GraphQLSchema

from stitching.domain.value_objects import SnapshotFormat, SnapshotInfo


class RemoteExecutor(Protocol):
    """Sends one GraphQL operation to an upstream service.

    Returns the ``data`` member of the upstream response. Upstream GraphQL
    errors are raised as ``UpstreamGraphQLError``, which keeps any partial
    ``data`` that came with them.
    """

    async def __call__(
        self,
        document: DocumentNode | str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class SchemaSnapshot:
    """A validated, immutable schema description of one upstream service.

    Attributes:
        service: Service the snapshot belongs to.
        source: Where the snapshot was read from.
        format: Serialization the snapshot was stored in.
        digest: SHA-256 of the stored bytes; identifies the snapshot version.
        schema: The schema built from the snapshot (no resolvers).
    """

    service: str
    source: str
    format: SnapshotFormat
    digest: str
    schema: GraphQLSchema

    def info(self) -> SnapshotInfo:
        return SnapshotInfo(
            service=self.service,
            source=self.source,
            format=self.format,
            digest=self.digest,
        )


@dataclass(frozen=True)
class RemoteSchema:
    """A schema description bound to the endpoint that serves it.

    Any field resolved against this schema is satisfied by sending an
    operation through ``executor``.
    """

    service: str
    endpoint_url: str
    schema: GraphQLSchema
    executor: RemoteExecutor
