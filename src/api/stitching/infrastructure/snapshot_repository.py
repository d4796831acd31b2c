"""File-backed storage of pre-captured upstream schema descriptions."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, NoReturn

from graphql import (
    GraphQLError,
    GraphQLSchema,
    build_client_schema,
    build_schema,
    validate_schema,
)

from stitching.domain.schemas import SchemaSnapshot
from stitching.domain.value_objects import SnapshotFormat
from stitching.infrastructure.observability import (
    DefaultSnapshotRepositoryProbe,
    SnapshotRepositoryProbe,
)
from stitching.ports.exceptions import SchemaSnapshotInvalid
from stitching.ports.repositories import ISchemaSnapshotRepository

_SUFFIX_FORMATS = {
    ".json": SnapshotFormat.INTROSPECTION,
    ".graphql": SnapshotFormat.SDL,
    ".gql": SnapshotFormat.SDL,
}


class FileSchemaSnapshotRepository(ISchemaSnapshotRepository):
    """Reads schema snapshots from the local filesystem.

    Two formats are accepted, selected by file suffix:

    - ``.json``: an introspection result, either bare (``{"__schema": ...}``)
      or wrapped in a response envelope (``{"data": {"__schema": ...}}``).
    - ``.graphql`` / ``.gql``: schema definition language.
    """

    def __init__(self, probe: SnapshotRepositoryProbe | None = None):
        self._probe = probe or DefaultSnapshotRepositoryProbe()

    def load(self, service: str, path: Path) -> SchemaSnapshot:
        source = str(path)
        try:
            snapshot_format = _SUFFIX_FORMATS[path.suffix.lower()]
        except KeyError:
            self._reject(service, source, f"unsupported file suffix {path.suffix!r}")

        try:
            raw = path.read_bytes()
        except OSError as e:
            self._reject(service, source, f"cannot read file: {e.strerror or e}", e)

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            self._reject(service, source, "file is not valid UTF-8", e)

        try:
            if snapshot_format is SnapshotFormat.INTROSPECTION:
                schema = build_client_schema(_introspection_payload(text))
            else:
                schema = build_schema(text)
        except (GraphQLError, TypeError, ValueError) as e:
            self._reject(service, source, str(e), e)

        self._check_usable(service, source, schema)

        digest = hashlib.sha256(raw).hexdigest()
        self._probe.snapshot_loaded(
            service=service,
            source=source,
            format=snapshot_format.value,
            digest=digest,
            type_count=len(schema.type_map),
        )
        return SchemaSnapshot(
            service=service,
            source=source,
            format=snapshot_format,
            digest=digest,
            schema=schema,
        )

    def _check_usable(self, service: str, source: str, schema: GraphQLSchema) -> None:
        errors = validate_schema(schema)
        if errors:
            self._reject(service, source, "; ".join(e.message for e in errors))
        if schema.query_type is None:
            self._reject(service, source, "schema has no query root type")

    def _reject(
        self,
        service: str,
        source: str,
        reason: str,
        cause: BaseException | None = None,
    ) -> NoReturn:
        self._probe.snapshot_invalid(service=service, source=source, reason=reason)
        raise SchemaSnapshotInvalid(source=source, reason=reason) from cause


def _introspection_payload(text: str) -> dict[str, Any]:
    """Extract the introspection result from a stored JSON document."""
    document = json.loads(text)
    if not isinstance(document, dict):
        raise ValueError("introspection snapshot must be a JSON object")
    if "__schema" not in document and isinstance(document.get("data"), dict):
        document = document["data"]
    if not isinstance(document.get("__schema"), dict):
        raise ValueError("introspection snapshot has no '__schema' member")
    return document
