"""Composition of namespaced subschemas into one gateway schema.

The composer merges the type definitions of every subschema, gathers their
query and mutation root fields into ``Query`` and ``Mutation``, applies
extension definitions written against the merged names, and binds resolvers:

- root fields of a subschema delegate to its upstream service;
- abstract types map upstream ``__typename`` values into the namespace;
- extension fields use the resolvers supplied by the caller;
- every other field reads its response key from the parent result.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from graphql import (
    DirectiveDefinitionNode,
    DocumentNode,
    FieldDefinitionNode,
    FieldNode,
    GraphQLError,
    GraphQLInterfaceType,
    GraphQLObjectType,
    GraphQLResolveInfo,
    GraphQLSchema,
    InlineFragmentNode,
    NameNode,
    ObjectTypeDefinitionNode,
    ObjectTypeExtensionNode,
    OperationType,
    SchemaDefinitionNode,
    SchemaExtensionNode,
    SelectionSetNode,
    TypeDefinitionNode,
    TypeExtensionNode,
    build_ast_schema,
    extend_schema,
    get_named_type,
    is_abstract_type,
    is_introspection_type,
    parse,
)

from stitching.application.delegation import delegate_to_schema
from stitching.application.observability import (
    DefaultSchemaCompositionProbe,
    SchemaCompositionProbe,
)
from stitching.application.stitching_info import (
    STITCHING_EXTENSION_KEY,
    StitchingInfo,
)
from stitching.application.transforms import (
    DELEGATED_OPERATIONS,
    TransformedSchema,
    root_type,
)
from stitching.ports.exceptions import (
    SchemaCompositionConflict,
    SchemaCompositionError,
    UnknownExtensionTarget,
)

ROOT_TYPE_NAMES = {
    OperationType.QUERY: "Query",
    OperationType.MUTATION: "Mutation",
}


@dataclass(frozen=True)
class FieldResolver:
    """Resolver of an extension field.

    Attributes:
        resolve: Called as ``resolve(parent, info, **args)``; may be async.
        selection_set: Fields the resolver needs on its parent object, in
            selection set syntax (e.g. ``"{ id }"``). They are requested from
            the upstream even when the client did not select them.
    """

    resolve: Callable[..., Any]
    selection_set: str | None = None


ResolverMap = Mapping[str, Mapping[str, FieldResolver | Callable[..., Any]]]


@dataclass(frozen=True)
class ComposedSchema:
    """The executable gateway schema and the subschemas behind it."""

    schema: GraphQLSchema
    subschemas: tuple[TransformedSchema, ...]
    stitching: StitchingInfo

    def subschema(self, service: str) -> TransformedSchema:
        for subschema in self.subschemas:
            if subschema.service == service:
                return subschema
        raise KeyError(service)


def resolve_from_response_key(
    source: Any, info: GraphQLResolveInfo, **_args: Any
) -> Any:
    """Read a field from a parent result by its response key.

    Delegated results are keyed by the client's aliases, because the client's
    selection set is forwarded with its aliases.
    """
    if isinstance(source, Mapping):
        return source.get(info.path.key)
    return getattr(source, info.field_name, None)


class SchemaComposer:
    """Builds a ComposedSchema. Every failure is a ``SchemaCompositionError``."""

    def __init__(self, probe: SchemaCompositionProbe | None = None):
        self._probe = probe or DefaultSchemaCompositionProbe()

    def compose(
        self,
        subschemas: Sequence[TransformedSchema],
        type_defs: str | DocumentNode | Iterable[str | DocumentNode] = (),
        resolvers: ResolverMap | None = None,
    ) -> ComposedSchema:
        try:
            composed = self._compose(subschemas, type_defs, resolvers or {})
        except SchemaCompositionError as e:
            self._probe.composition_failed(error=str(e))
            raise

        self._probe.schema_composed(
            subschema_count=len(subschemas),
            type_count=len(composed.schema.type_map),
            local_field_count=sum(
                len(f) for f in composed.stitching.local_fields.values()
            ),
        )
        return composed

    def _compose(
        self,
        subschemas: Sequence[TransformedSchema],
        type_defs: str | DocumentNode | Iterable[str | DocumentNode],
        resolvers: ResolverMap,
    ) -> ComposedSchema:
        merged = _MergedDefinitions()
        for subschema in subschemas:
            merged.add(subschema)

        schema = _build(merged.document())
        extensions = _parse_type_defs(type_defs)
        local_fields = _check_extensions(schema, extensions)
        if extensions.definitions:
            try:
                schema = extend_schema(schema, extensions)
            except (GraphQLError, TypeError) as e:
                raise SchemaCompositionError(f"Invalid extension: {e}") from e

        required_selections = _bind_resolvers(schema, resolvers)
        for type_name, field_names in local_fields.items():
            for field_name in field_names:
                if schema.get_type(type_name).fields[field_name].resolve is None:
                    raise SchemaCompositionError(
                        f"Field {type_name}.{field_name} has no resolver"
                    )

        stitching = StitchingInfo(
            type_origins=merged.type_origins,
            root_field_origins=merged.root_field_origins,
            local_fields={
                name: frozenset(fields) for name, fields in local_fields.items()
            },
            required_selections=required_selections,
        )
        _bind_root_fields(schema, stitching)
        _bind_type_resolvers(schema, stitching)
        _bind_default_resolvers(schema)
        schema.extensions[STITCHING_EXTENSION_KEY] = stitching

        return ComposedSchema(
            schema=schema, subschemas=tuple(subschemas), stitching=stitching
        )


class _MergedDefinitions:
    """Accumulates SDL definitions of several subschemas, detecting clashes."""

    def __init__(self) -> None:
        self.types: dict[str, TypeDefinitionNode] = {}
        self.directives: dict[str, DirectiveDefinitionNode] = {}
        self.type_origins: dict[str, TransformedSchema] = {}
        self.root_fields: dict[OperationType, dict[str, FieldDefinitionNode]] = {
            operation: {} for operation in DELEGATED_OPERATIONS
        }
        self.root_field_origins: dict[
            OperationType, dict[str, TransformedSchema]
        ] = {operation: {} for operation in DELEGATED_OPERATIONS}

    def add(self, subschema: TransformedSchema) -> None:
        root_names = {
            type_.name: operation
            for operation in (*DELEGATED_OPERATIONS, OperationType.SUBSCRIPTION)
            if (type_ := root_type(subschema.schema, operation)) is not None
        }
        for definition in subschema.document.definitions:
            if isinstance(definition, SchemaDefinitionNode):
                continue
            if isinstance(definition, DirectiveDefinitionNode):
                self.directives.setdefault(definition.name.value, definition)
                continue
            if not isinstance(definition, TypeDefinitionNode):
                continue

            name = definition.name.value
            operation = root_names.get(name)
            if operation is OperationType.SUBSCRIPTION:
                continue
            if operation is not None:
                self._add_root_fields(subschema, operation, definition)
                continue
            self._add_type(subschema, name, definition)

    def _add_type(
        self, subschema: TransformedSchema, name: str, definition: TypeDefinitionNode
    ) -> None:
        if name in ROOT_TYPE_NAMES.values():
            raise SchemaCompositionConflict("type", name, (subschema.service,))
        if name in self.types:
            raise SchemaCompositionConflict(
                "type", name, (self.type_origins[name].service, subschema.service)
            )
        self.types[name] = definition
        self.type_origins[name] = subschema

    def _add_root_fields(
        self,
        subschema: TransformedSchema,
        operation: OperationType,
        definition: ObjectTypeDefinitionNode,
    ) -> None:
        fields = self.root_fields[operation]
        origins = self.root_field_origins[operation]
        for field_def in definition.fields or ():
            name = field_def.name.value
            if name in fields:
                raise SchemaCompositionConflict(
                    f"{operation.value} field",
                    name,
                    (origins[name].service, subschema.service),
                )
            fields[name] = field_def
            origins[name] = subschema

    def document(self) -> DocumentNode:
        roots = [
            ObjectTypeDefinitionNode(
                name=NameNode(value=ROOT_TYPE_NAMES[operation]),
                interfaces=[],
                directives=[],
                fields=list(fields.values()),
            )
            for operation, fields in self.root_fields.items()
            if fields
        ]
        if not self.root_fields[OperationType.QUERY]:
            raise SchemaCompositionError("Composed schema has no query fields")
        return DocumentNode(
            definitions=[*self.directives.values(), *roots, *self.types.values()]
        )


def _build(document: DocumentNode) -> GraphQLSchema:
    try:
        return build_ast_schema(document)
    except (GraphQLError, TypeError) as e:
        raise SchemaCompositionError(f"Merged schema is invalid: {e}") from e


def _parse_type_defs(
    type_defs: str | DocumentNode | Iterable[str | DocumentNode],
) -> DocumentNode:
    if isinstance(type_defs, (str, DocumentNode)):
        type_defs = [type_defs]
    definitions = []
    for type_def in type_defs:
        try:
            document = parse(type_def) if isinstance(type_def, str) else type_def
        except GraphQLError as e:
            raise SchemaCompositionError(f"Invalid extension: {e.message}") from e
        definitions.extend(document.definitions)
    return DocumentNode(definitions=definitions)


def _check_extensions(
    schema: GraphQLSchema, extensions: DocumentNode
) -> dict[str, set[str]]:
    """Check extension targets and return the object fields they add per type.

    Fields added to existing object types are resolved in the gateway and
    need resolvers. Types declared by the extensions themselves resolve
    their fields from parent results.
    """
    local_fields: dict[str, set[str]] = {}
    added_fields: dict[str, set[str]] = {}
    declared = set(schema.type_map)
    for definition in extensions.definitions:
        if isinstance(definition, TypeExtensionNode):
            name = definition.name.value
            if name not in declared:
                raise UnknownExtensionTarget(name)
            target = schema.type_map.get(name)
            existing = set(getattr(target, "fields", None) or ())
            added = added_fields.setdefault(name, set())
            new_fields = [
                field_def.name.value
                for field_def in getattr(definition, "fields", None) or ()
            ]
            for field_name in new_fields:
                if field_name in existing or field_name in added:
                    raise SchemaCompositionConflict("field", f"{name}.{field_name}")
                added.add(field_name)
            if isinstance(definition, ObjectTypeExtensionNode) and target is not None:
                local_fields.setdefault(name, set()).update(new_fields)
        elif isinstance(definition, TypeDefinitionNode):
            name = definition.name.value
            if name in declared:
                raise SchemaCompositionConflict("type", name)
            declared.add(name)
        elif isinstance(definition, DirectiveDefinitionNode):
            if schema.get_directive(definition.name.value) is not None:
                raise SchemaCompositionConflict("directive", definition.name.value)
        elif not isinstance(definition, SchemaExtensionNode):
            raise SchemaCompositionError(
                f"Unsupported definition in extensions: {definition.kind}"
            )
    return local_fields


def _bind_resolvers(
    schema: GraphQLSchema, resolvers: ResolverMap
) -> dict[str, dict[str, SelectionSetNode]]:
    required: dict[str, dict[str, SelectionSetNode]] = {}
    for type_name, field_resolvers in resolvers.items():
        type_ = schema.get_type(type_name)
        if not isinstance(type_, GraphQLObjectType):
            raise UnknownExtensionTarget(type_name)
        for field_name, resolver in field_resolvers.items():
            field_def = type_.fields.get(field_name)
            if field_def is None:
                raise UnknownExtensionTarget(type_name, field_name)
            if not isinstance(resolver, FieldResolver):
                resolver = FieldResolver(resolve=resolver)
            field_def.resolve = resolver.resolve
            if resolver.selection_set:
                selection_set = _parse_selection_set(resolver.selection_set)
                _check_selection_set(type_, selection_set)
                required.setdefault(type_name, {})[field_name] = selection_set
    return required


def _parse_selection_set(selection_set: str) -> SelectionSetNode:
    try:
        document = parse(selection_set, no_location=True)
    except GraphQLError as e:
        raise SchemaCompositionError(
            f"Invalid selection set {selection_set!r}: {e.message}"
        ) from e
    return document.definitions[0].selection_set


def _check_selection_set(
    parent: GraphQLObjectType | GraphQLInterfaceType, selection_set: SelectionSetNode
) -> None:
    for selection in selection_set.selections:
        if isinstance(selection, InlineFragmentNode):
            _check_selection_set(parent, selection.selection_set)
            continue
        if not isinstance(selection, FieldNode):
            raise SchemaCompositionError(
                f"Selection set of {parent.name} must not use fragment spreads"
            )
        name = selection.name.value
        if name == "__typename":
            continue
        field_def = parent.fields.get(name)
        if field_def is None:
            raise UnknownExtensionTarget(parent.name, name)
        child = get_named_type(field_def.type)
        if selection.selection_set is not None:
            if not isinstance(child, (GraphQLObjectType, GraphQLInterfaceType)):
                raise SchemaCompositionError(
                    f"Field {parent.name}.{name} has no sub-selections"
                )
            _check_selection_set(child, selection.selection_set)


def _proxy_root_field(
    subschema: TransformedSchema, operation: OperationType, field_name: str
) -> Callable[..., Any]:
    async def resolve(_source: Any, info: GraphQLResolveInfo, **_args: Any) -> Any:
        return await delegate_to_schema(subschema, operation, field_name, info)

    return resolve


def _bind_root_fields(schema: GraphQLSchema, stitching: StitchingInfo) -> None:
    for operation, origins in stitching.root_field_origins.items():
        root = root_type(schema, operation)
        if root is None:
            continue
        for field_name, subschema in origins.items():
            field_def = root.fields[field_name]
            if field_def.resolve is None:
                field_def.resolve = _proxy_root_field(subschema, operation, field_name)


def _namespaced_type_resolver(subschema: TransformedSchema) -> Callable[..., Any]:
    def resolve_type(value: Any, _info: GraphQLResolveInfo, _type: Any) -> Any:
        if isinstance(value, Mapping):
            typename = value.get("__typename")
        else:
            typename = getattr(value, "__typename", None)
        if typename is None:
            return None
        return subschema.renamed_type_name(typename)

    return resolve_type


def _bind_type_resolvers(schema: GraphQLSchema, stitching: StitchingInfo) -> None:
    for name, subschema in stitching.type_origins.items():
        type_ = schema.get_type(name)
        if is_abstract_type(type_) and type_.resolve_type is None:
            type_.resolve_type = _namespaced_type_resolver(subschema)


def _bind_default_resolvers(schema: GraphQLSchema) -> None:
    for type_ in schema.type_map.values():
        if is_introspection_type(type_) or not isinstance(type_, GraphQLObjectType):
            continue
        for field_def in type_.fields.values():
            if field_def.resolve is None:
                field_def.resolve = resolve_from_response_key
