"""Stitching metadata attached to a composed schema."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from graphql import GraphQLSchema, OperationType, SelectionSetNode

if TYPE_CHECKING:
    from stitching.application.transforms import TransformedSchema

STITCHING_EXTENSION_KEY = "stitching"


@dataclass(frozen=True)
class StitchingInfo:
    """How the composed schema maps onto its subschemas.

    Attributes:
        type_origins: Composed type name to the subschema declaring it.
        root_field_origins: Per operation, composed root field name to the
            subschema serving it.
        local_fields: Type name to the names of fields resolved in the gateway.
        required_selections: Type name to field name to the parent selection
            the field's resolver needs.
    """

    type_origins: Mapping[str, TransformedSchema] = field(default_factory=dict)
    root_field_origins: Mapping[OperationType, Mapping[str, TransformedSchema]] = (
        field(default_factory=dict)
    )
    local_fields: Mapping[str, frozenset[str]] = field(default_factory=dict)
    required_selections: Mapping[str, Mapping[str, SelectionSetNode]] = field(
        default_factory=dict
    )

    def is_local_field(self, type_name: str, field_name: str) -> bool:
        return field_name in self.local_fields.get(type_name, ())

    def required_selection(
        self, type_name: str, field_name: str
    ) -> SelectionSetNode | None:
        return self.required_selections.get(type_name, {}).get(field_name)


def get_stitching_info(schema: GraphQLSchema) -> StitchingInfo:
    """Return the stitching info stored on a composed schema.

    Schemas that were not composed have none; an empty info is returned.
    """
    return schema.extensions.get(STITCHING_EXTENSION_KEY) or StitchingInfo()
