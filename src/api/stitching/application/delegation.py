"""Delegation of gateway fields to upstream services.

A delegated field is answered by sending a single-field operation to the
subschema that owns the target root field. The operation is built from the
client's own selection set, rewritten for the upstream:

- type conditions use the upstream's original type names;
- named fragments are inlined, since their definitions are not sent;
- gateway-resolved fields are dropped and replaced by the parent fields
  their resolvers need;
- ``__typename`` is requested under abstract types so that results can be
  resolved to a concrete type.

Only the variables referenced by the rewritten operation are declared and
sent.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from graphql import (
    ArgumentNode,
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    GraphQLError,
    GraphQLInterfaceType,
    GraphQLNamedType,
    GraphQLObjectType,
    GraphQLResolveInfo,
    GraphQLSchema,
    InlineFragmentNode,
    NamedTypeNode,
    NameNode,
    OperationDefinitionNode,
    OperationType,
    SelectionNode,
    SelectionSetNode,
    VariableDefinitionNode,
    VariableNode,
    Visitor,
    ast_from_value,
    get_named_type,
    is_abstract_type,
    visit,
)

from stitching.application.ast_utils import rename_node, replace_node
from stitching.application.observability import (
    DefaultDelegationProbe,
    DelegationProbe,
)
from stitching.application.stitching_info import StitchingInfo, get_stitching_info
from stitching.application.transforms import TransformedSchema, root_type
from stitching.ports.exceptions import UnknownDelegationTarget, UpstreamGraphQLError

_TYPENAME = "__typename"


async def delegate_to_schema(
    schema: TransformedSchema,
    operation: OperationType | str,
    field_name: str,
    info: GraphQLResolveInfo,
    args: Mapping[str, Any] | None = None,
    context: Any = None,
    probe: DelegationProbe | None = None,
) -> Any:
    """Resolve the current field through a root field of ``schema``.

    Args:
        schema: Subschema that owns the target root field.
        operation: Root operation of the target field.
        field_name: Target root field, by its namespaced name
            (e.g. ``"CMS_product"``).
        info: Resolve info of the field being resolved.
        args: Arguments for the target field. When omitted, the client's own
            argument nodes are forwarded, variables included.
        context: Request context; defaults to ``info.context``.
        probe: Domain probe for delegation events.

    Returns:
        The upstream's value for the field: an object, a list, a scalar or
        None. Upstream errors keep their message and extensions; partial
        data returned with them is kept.
    """
    operation = OperationType(operation)
    context = info.context if context is None else context
    probe = _bind_probe(probe or DefaultDelegationProbe(), context)

    original_name = schema.original_root_field(operation, field_name)
    target_root = root_type(schema.schema, operation)
    target_field = target_root.fields[field_name]

    response_key = info.path.key
    arguments = (
        _arguments_from_values(schema, field_name, target_field.args, args)
        if args is not None
        else list(info.field_nodes[0].arguments or ())
    )
    selection_set = _merge_selection_sets(info.field_nodes)
    if selection_set is not None:
        rewriter = _SelectionRewriter(
            schema=schema,
            gateway_schema=info.schema,
            stitching=get_stitching_info(info.schema),
            fragments=info.fragments,
        )
        selection_set = rewriter.rewrite(
            selection_set, get_named_type(info.return_type)
        )

    alias = NameNode(value=response_key) if response_key != original_name else None
    field_node = FieldNode(
        alias=alias,
        name=NameNode(value=original_name),
        arguments=arguments,
        directives=[],
        selection_set=selection_set,
    )
    variable_names = _referenced_variables(field_node)
    document = DocumentNode(
        definitions=[
            OperationDefinitionNode(
                operation=operation,
                name=info.operation.name,
                variable_definitions=_variable_definitions(
                    schema, info, variable_names
                ),
                directives=[],
                selection_set=SelectionSetNode(selections=[field_node]),
            )
        ]
    )
    variables = {
        name: info.variable_values[name]
        for name in variable_names
        if name in info.variable_values
    }

    probe.delegation_started(
        service=schema.service,
        operation=operation.value,
        field_name=field_name,
        path=".".join(str(key) for key in info.path.as_list()),
    )
    try:
        data = await schema.executor(document, variables or None)
    except UpstreamGraphQLError as e:
        return _partial_result(e, response_key, info, context)
    return data.get(response_key)


def _partial_result(
    error: UpstreamGraphQLError,
    response_key: str,
    info: GraphQLResolveInfo,
    context: Any,
) -> Any:
    """Keep the upstream's partial data and report each of its errors.

    Errors at the delegated field itself are raised when the field has no
    value; the first one fails the field, the rest go to the request's error
    list. Errors below the field are reported with their path rebased under
    ``info.path``. Without an error list on ``context``, only the error that
    fails the field is reported.
    """
    value = (error.data or {}).get(response_key)
    at_field: list[UpstreamGraphQLError] = []
    below_field: list[tuple[UpstreamGraphQLError, list[str | int]]] = []
    for upstream_error in error.errors:
        single = UpstreamGraphQLError(
            [upstream_error], service=error.service, url=error.url
        )
        relative = _relative_path(upstream_error.get("path"), response_key)
        if relative:
            below_field.append((single, relative))
        else:
            at_field.append(single)

    sink = getattr(context, "errors", None)
    if sink is None:
        if value is None:
            raise error
        return value

    raised = at_field.pop(0) if value is None and at_field else None
    gateway_path = info.path.as_list()
    sink.extend(
        GraphQLError(
            single.message,
            nodes=info.field_nodes,
            path=[*gateway_path, *relative],
            original_error=single,
        )
        for single, relative in [*((e, []) for e in at_field), *below_field]
    )
    if raised is not None:
        raise raised
    return value


def _relative_path(path: Any, response_key: str) -> list[str | int]:
    """Path of an upstream error below the delegated field, if it has one."""
    if not isinstance(path, list) or len(path) < 2 or path[0] != response_key:
        return []
    return path[1:]


def _bind_probe(probe: DelegationProbe, context: Any) -> DelegationProbe:
    observation = getattr(context, "observation", None)
    if observation is None:
        return probe
    return probe.with_context(observation)


def _arguments_from_values(
    schema: TransformedSchema,
    field_name: str,
    argument_defs: Mapping[str, Any],
    args: Mapping[str, Any],
) -> list[ArgumentNode]:
    arguments = []
    for name, value in args.items():
        argument_def = argument_defs.get(name)
        if argument_def is None:
            raise UnknownDelegationTarget(schema.service, f"{field_name}({name}:)")
        value_node = ast_from_value(value, argument_def.type)
        if value_node is None:
            raise GraphQLError(
                f"Cannot pass {value!r} as argument {name!r} of {field_name}"
            )
        arguments.append(ArgumentNode(name=NameNode(value=name), value=value_node))
    return arguments


def _merge_selection_sets(
    field_nodes: Iterable[FieldNode],
) -> SelectionSetNode | None:
    selections: list[SelectionNode] = []
    for node in field_nodes:
        if node.selection_set is not None:
            selections.extend(node.selection_set.selections)
    if not selections:
        return None
    return SelectionSetNode(selections=selections)


class _SelectionRewriter:
    """Rewrites a gateway selection set into one the upstream understands."""

    def __init__(
        self,
        schema: TransformedSchema,
        gateway_schema: GraphQLSchema,
        stitching: StitchingInfo,
        fragments: Mapping[str, FragmentDefinitionNode],
    ):
        self._schema = schema
        self._gateway_schema = gateway_schema
        self._stitching = stitching
        self._fragments = fragments

    def rewrite(
        self, selection_set: SelectionSetNode, parent: GraphQLNamedType
    ) -> SelectionSetNode:
        selections: list[SelectionNode] = []
        for selection in selection_set.selections:
            selections.extend(self._rewrite_selection(selection, parent))

        if is_abstract_type(parent) or not selections:
            if not any(_is_plain_typename(s) for s in selections):
                selections.append(FieldNode(name=NameNode(value=_TYPENAME)))
        return SelectionSetNode(selections=selections)

    def _rewrite_selection(
        self, selection: SelectionNode, parent: GraphQLNamedType
    ) -> list[SelectionNode]:
        if isinstance(selection, FieldNode):
            return self._rewrite_field(selection, parent)
        if isinstance(selection, InlineFragmentNode):
            return [
                self._rewrite_fragment(
                    selection.type_condition,
                    selection.directives,
                    selection.selection_set,
                    parent,
                )
            ]
        if isinstance(selection, FragmentSpreadNode):
            fragment = self._fragments[selection.name.value]
            return [
                self._rewrite_fragment(
                    fragment.type_condition,
                    selection.directives,
                    fragment.selection_set,
                    parent,
                )
            ]
        return [selection]

    def _rewrite_field(
        self, node: FieldNode, parent: GraphQLNamedType
    ) -> list[SelectionNode]:
        name = node.name.value
        if name.startswith("__"):
            return [node]

        if self._stitching.is_local_field(parent.name, name):
            required = self._stitching.required_selection(parent.name, name)
            if required is None:
                return []
            return list(self.rewrite(required, parent).selections)

        if node.selection_set is None or not isinstance(
            parent, (GraphQLObjectType, GraphQLInterfaceType)
        ):
            return [node]
        field_def = parent.fields.get(name)
        if field_def is None:
            return [node]
        return [
            replace_node(
                node,
                selection_set=self.rewrite(
                    node.selection_set, get_named_type(field_def.type)
                ),
            )
        ]

    def _rewrite_fragment(
        self,
        type_condition: NamedTypeNode | None,
        directives: Any,
        selection_set: SelectionSetNode,
        parent: GraphQLNamedType,
    ) -> InlineFragmentNode:
        condition_type = parent
        if type_condition is not None:
            condition_type = (
                self._gateway_schema.get_type(type_condition.name.value) or parent
            )
            type_condition = rename_node(
                type_condition,
                self._schema.original_type_name(type_condition.name.value),
            )
        return InlineFragmentNode(
            type_condition=type_condition,
            directives=directives or [],
            selection_set=self.rewrite(selection_set, condition_type),
        )


def _is_plain_typename(selection: SelectionNode) -> bool:
    return (
        isinstance(selection, FieldNode)
        and selection.name.value == _TYPENAME
        and selection.alias is None
    )


class _VariableCollector(Visitor):
    def __init__(self) -> None:
        super().__init__()
        self.names: list[str] = []

    def enter_variable(self, node: VariableNode, *_args: Any) -> None:
        if node.name.value not in self.names:
            self.names.append(node.name.value)


def _referenced_variables(node: FieldNode) -> list[str]:
    collector = _VariableCollector()
    visit(node, collector)
    return collector.names


class _TypeReferenceRenamer(Visitor):
    def __init__(self, schema: TransformedSchema):
        super().__init__()
        self._schema = schema

    def enter_named_type(self, node: NamedTypeNode, *_args: Any) -> Any:
        original = self._schema.original_type_name(node.name.value)
        if original == node.name.value:
            return None
        return rename_node(node, original)


def _variable_definitions(
    schema: TransformedSchema, info: GraphQLResolveInfo, names: list[str]
) -> list[VariableDefinitionNode]:
    renamer = _TypeReferenceRenamer(schema)
    definitions = []
    for definition in info.operation.variable_definitions or ():
        if definition.variable.name.value in names:
            definitions.append(
                replace_node(definition, type=visit(definition.type, renamer))
            )
    return definitions
