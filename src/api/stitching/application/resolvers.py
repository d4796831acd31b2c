"""Cross-schema join fields.

A join adds a field to a type of one subschema whose value is looked up in
another subschema by key. The storefront join links cart items to the CMS
product with the same id::

    extend type CartQL_CartItem {
      product(stage: CMS_Stage): CMS_Product
    }
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from graphql import GraphQLObjectType, GraphQLResolveInfo, OperationType

from stitching.application.composer import FieldResolver
from stitching.application.delegation import delegate_to_schema
from stitching.application.transforms import TransformedSchema, root_type
from stitching.ports.exceptions import UnknownDelegationTarget


@dataclass(frozen=True)
class CrossSchemaJoin:
    """A field on ``source_type`` resolved through a root field of ``target``.

    Names are given as the upstream services know them; the namespaced
    names are derived from the subschemas.

    Attributes:
        source: Subschema declaring the extended type.
        source_type: Type receiving the join field (e.g. "CartItem").
        field_name: Name of the join field (e.g. "product").
        target: Subschema answering the lookup.
        target_field: Query root field used for the lookup (e.g. "product").
        target_type: Type returned by the join field (e.g. "Product").
        key_field: Field of the source object holding the lookup key.
        lookup_argument: Input object argument of ``target_field`` that
            receives ``{key_field: <key>}``.
        optional_arguments: Arguments of the join field forwarded to
            ``target_field`` when the client sets them, with their upstream
            type names.
    """

    source: TransformedSchema
    source_type: str
    field_name: str
    target: TransformedSchema
    target_field: str
    target_type: str
    key_field: str = "id"
    lookup_argument: str = "where"
    optional_arguments: Mapping[str, str] = field(
        default_factory=lambda: {"stage": "Stage"}
    )

    def __post_init__(self) -> None:
        source_type = self.source.schema.get_type(self.source_type_name)
        if not isinstance(source_type, GraphQLObjectType):
            raise UnknownDelegationTarget(self.source.service, self.source_type)
        if self.key_field not in source_type.fields:
            raise UnknownDelegationTarget(
                self.source.service, f"{self.source_type}.{self.key_field}"
            )

        query = root_type(self.target.schema, OperationType.QUERY)
        lookup = query.fields.get(self.target_field_name) if query else None
        if lookup is None:
            raise UnknownDelegationTarget(self.target.service, self.target_field)
        for argument in (self.lookup_argument, *self.optional_arguments):
            if argument not in lookup.args:
                raise UnknownDelegationTarget(
                    self.target.service, f"{self.target_field}({argument}:)"
                )
        for type_name in (self.target_type, *self.optional_arguments.values()):
            self.target.renamed_type_name(type_name)

    @property
    def source_type_name(self) -> str:
        return self.source.renamed_type_name(self.source_type)

    @property
    def target_field_name(self) -> str:
        return self.target.renamed_root_field(OperationType.QUERY, self.target_field)

    def type_defs(self) -> str:
        """Extension definition adding the join field."""
        arguments = ", ".join(
            f"{name}: {self.target.renamed_type_name(type_name)}"
            for name, type_name in self.optional_arguments.items()
        )
        signature = f"({arguments})" if arguments else ""
        return (
            f"extend type {self.source_type_name} {{\n"
            f"  {self.field_name}{signature}: "
            f"{self.target.renamed_type_name(self.target_type)}\n"
            "}\n"
        )

    def resolvers(self) -> dict[str, dict[str, FieldResolver]]:
        return {
            self.source_type_name: {
                self.field_name: FieldResolver(
                    resolve=self.resolve,
                    selection_set=f"{{ {self.key_field} }}",
                )
            }
        }

    async def resolve(
        self, parent: Any, info: GraphQLResolveInfo, **args: Any
    ) -> Any:
        if isinstance(parent, Mapping):
            key = parent.get(self.key_field)
        else:
            key = getattr(parent, self.key_field, None)
        if key is None:
            return None

        delegated_args: dict[str, Any] = {self.lookup_argument: {self.key_field: key}}
        for name in self.optional_arguments:
            if args.get(name) is not None:
                delegated_args[name] = args[name]

        return await delegate_to_schema(
            schema=self.target,
            operation=OperationType.QUERY,
            field_name=self.target_field_name,
            info=info,
            args=delegated_args,
        )


def cart_item_product_join(
    cart: TransformedSchema, cms: TransformedSchema
) -> CrossSchemaJoin:
    """``CartItem.product``: the CMS product whose id equals the cart item id."""
    return CrossSchemaJoin(
        source=cart,
        source_type="CartItem",
        field_name="product",
        target=cms,
        target_field="product",
        target_type="Product",
    )


def storefront_joins(
    subschemas: Mapping[str, TransformedSchema],
) -> list[CrossSchemaJoin]:
    """Joins of the storefront gateway, given subschemas by service name."""
    for service in ("cart", "cms"):
        if service not in subschemas:
            raise UnknownDelegationTarget(service, "schema")
    return [cart_item_product_join(subschemas["cart"], subschemas["cms"])]
