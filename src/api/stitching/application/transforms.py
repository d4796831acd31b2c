"""Namespacing of upstream schemas.

A transform renames every named type and every query/mutation root field of
an upstream schema so that schemas from different services can be merged
without clashes. The renamed schema is rebuilt from SDL, so every type
reference is updated consistently or the build fails.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from graphql import (
    DocumentNode,
    GraphQLError,
    GraphQLObjectType,
    GraphQLSchema,
    ObjectTypeDefinitionNode,
    OperationType,
    Visitor,
    build_ast_schema,
    is_introspection_type,
    is_specified_scalar_type,
    parse,
    print_schema,
    visit,
)

from stitching.application.ast_utils import rename_node, replace_node
from stitching.application.observability import (
    DefaultSchemaCompositionProbe,
    SchemaCompositionProbe,
)
from stitching.domain.schemas import RemoteExecutor, RemoteSchema
from stitching.domain.value_objects import GRAPHQL_NAME_PATTERN, ServiceNamespace
from stitching.ports.exceptions import (
    SchemaCompositionConflict,
    SchemaCompositionError,
    UnknownDelegationTarget,
)

TypeRenamer = Callable[[str], str]
RootFieldRenamer = Callable[[OperationType, str], str]

DELEGATED_OPERATIONS = (OperationType.QUERY, OperationType.MUTATION)

_VALID_NAME = re.compile(GRAPHQL_NAME_PATTERN)


def root_type(
    schema: GraphQLSchema, operation: OperationType
) -> GraphQLObjectType | None:
    """Return the root type of ``schema`` for ``operation``, if it has one."""
    if operation is OperationType.QUERY:
        return schema.query_type
    if operation is OperationType.MUTATION:
        return schema.mutation_type
    return schema.subscription_type


@dataclass(frozen=True)
class TransformedSchema:
    """An upstream schema after renaming, with the renames it applied.

    Attributes:
        remote: The upstream schema the transform was applied to.
        schema: The renamed schema.
        document: SDL document the renamed schema was built from.
        type_renames: Original type name to renamed type name.
        root_field_renames: Per operation, original root field name to
            renamed root field name.
    """

    remote: RemoteSchema
    schema: GraphQLSchema
    document: DocumentNode
    type_renames: Mapping[str, str]
    root_field_renames: Mapping[OperationType, Mapping[str, str]]

    @property
    def service(self) -> str:
        return self.remote.service

    @property
    def executor(self) -> RemoteExecutor:
        return self.remote.executor

    @cached_property
    def _original_types(self) -> dict[str, str]:
        return {renamed: original for original, renamed in self.type_renames.items()}

    @cached_property
    def _original_root_fields(self) -> dict[OperationType, dict[str, str]]:
        return {
            operation: {renamed: original for original, renamed in renames.items()}
            for operation, renames in self.root_field_renames.items()
        }

    def original_type_name(self, name: str) -> str:
        """Map a renamed type name back to the upstream name.

        Names that were never renamed (built-in scalars, root types) map to
        themselves.
        """
        return self._original_types.get(name, name)

    def renamed_type_name(self, original: str) -> str:
        try:
            return self.type_renames[original]
        except KeyError:
            if original in self.remote.schema.type_map:
                return original
            raise UnknownDelegationTarget(self.service, original) from None

    def original_root_field(self, operation: OperationType, field_name: str) -> str:
        try:
            return self._original_root_fields[operation][field_name]
        except KeyError:
            raise UnknownDelegationTarget(
                self.service, f"{operation.value}.{field_name}"
            ) from None

    def renamed_root_field(self, operation: OperationType, original: str) -> str:
        try:
            return self.root_field_renames[operation][original]
        except KeyError:
            raise UnknownDelegationTarget(
                self.service, f"{operation.value}.{original}"
            ) from None


class _RenamingVisitor(Visitor):
    """Renames type definitions, type references and root fields in SDL."""

    def __init__(
        self,
        type_renames: Mapping[str, str],
        root_field_renames: Mapping[str, Mapping[str, str]],
    ):
        super().__init__()
        self._type_renames = type_renames
        self._root_field_renames = root_field_renames

    def _rename_type(self, node: Any, *_args: Any) -> Any:
        renamed = self._type_renames.get(node.name.value)
        if renamed is None:
            return None
        return rename_node(node, renamed)

    enter_named_type = _rename_type
    enter_scalar_type_definition = _rename_type
    enter_interface_type_definition = _rename_type
    enter_union_type_definition = _rename_type
    enter_enum_type_definition = _rename_type
    enter_input_object_type_definition = _rename_type

    def enter_object_type_definition(
        self, node: ObjectTypeDefinitionNode, *_args: Any
    ) -> Any:
        field_renames = self._root_field_renames.get(node.name.value)
        if field_renames is None:
            return self._rename_type(node)
        fields = [
            rename_node(field, field_renames[field.name.value])
            if field.name.value in field_renames
            else field
            for field in node.fields or ()
        ]
        return replace_node(node, fields=fields)


class NamespaceTransformer:
    """Applies a root field renamer and a type renamer to remote schemas.

    Built-in scalars, introspection types and the root operation types keep
    their names: the root types are merged by the composer, and the others
    are shared by every schema.
    """

    def __init__(
        self,
        root_field_renamer: RootFieldRenamer,
        type_renamer: TypeRenamer,
        probe: SchemaCompositionProbe | None = None,
    ):
        self._root_field_renamer = root_field_renamer
        self._type_renamer = type_renamer
        self._probe = probe or DefaultSchemaCompositionProbe()

    @classmethod
    def for_namespace(
        cls,
        namespace: ServiceNamespace,
        probe: SchemaCompositionProbe | None = None,
    ) -> NamespaceTransformer:
        """Transformer prefixing root fields and types with ``namespace``."""
        return cls(
            root_field_renamer=lambda _operation, name: namespace.rename(name),
            type_renamer=namespace.rename,
            probe=probe,
        )

    def transform(self, remote: RemoteSchema) -> TransformedSchema:
        schema = remote.schema
        root_types = {
            operation: type_
            for operation in (*DELEGATED_OPERATIONS, OperationType.SUBSCRIPTION)
            if (type_ := root_type(schema, operation)) is not None
        }
        root_type_names = {type_.name for type_ in root_types.values()}

        type_renames = self._type_renames(remote.service, schema, root_type_names)
        root_field_renames = {
            operation: self._root_field_renames(remote.service, operation, type_)
            for operation, type_ in root_types.items()
            if operation in DELEGATED_OPERATIONS
        }

        document = visit(
            parse(print_schema(schema)),
            _RenamingVisitor(
                type_renames,
                {
                    root_types[operation].name: renames
                    for operation, renames in root_field_renames.items()
                },
            ),
        )
        try:
            renamed = build_ast_schema(document)
        except (GraphQLError, TypeError) as e:
            raise SchemaCompositionError(
                f"Renamed schema of service {remote.service!r} is invalid: {e}"
            ) from e

        self._probe.subschema_transformed(
            service=remote.service,
            type_count=len(type_renames),
            root_field_count=sum(len(r) for r in root_field_renames.values()),
        )
        return TransformedSchema(
            remote=remote,
            schema=renamed,
            document=document,
            type_renames=type_renames,
            root_field_renames=root_field_renames,
        )

    def _type_renames(
        self, service: str, schema: GraphQLSchema, root_type_names: set[str]
    ) -> dict[str, str]:
        kept = {
            name
            for name, type_ in schema.type_map.items()
            if name in root_type_names
            or is_specified_scalar_type(type_)
            or is_introspection_type(type_)
        }
        renames: dict[str, str] = {}
        for name in schema.type_map:
            if name in kept:
                continue
            renamed = self._type_renamer(name)
            _check_name(renamed, kind="type", service=service)
            renames[name] = renamed
        _check_injective(renames, kept, kind="type", service=service)
        return renames

    def _root_field_renames(
        self, service: str, operation: OperationType, type_: GraphQLObjectType
    ) -> dict[str, str]:
        renames: dict[str, str] = {}
        for name in type_.fields:
            renamed = self._root_field_renamer(operation, name)
            _check_name(renamed, kind=f"{operation.value} field", service=service)
            renames[name] = renamed
        _check_injective(
            renames, set(), kind=f"{operation.value} field", service=service
        )
        return renames


def _check_name(name: str, kind: str, service: str) -> None:
    if not _VALID_NAME.match(name) or name.startswith("__"):
        raise SchemaCompositionConflict(kind, name, sources=(service,))


def _check_injective(
    renames: Mapping[str, str], kept: set[str], kind: str, service: str
) -> None:
    seen = set(kept)
    for renamed in renames.values():
        if renamed in seen:
            raise SchemaCompositionConflict(kind, renamed, sources=(service,))
        seen.add(renamed)
