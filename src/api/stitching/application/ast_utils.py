"""Helpers for rewriting graphql-core AST nodes."""

from __future__ import annotations

from typing import Any, TypeVar

from graphql import NameNode, Node

N = TypeVar("N", bound=Node)


def replace_node(node: N, **changes: Any) -> N:
    """Return a copy of ``node`` with some attributes replaced.

    Lists are converted to tuples by the node constructor.
    """
    values = {key: getattr(node, key) for key in node.keys}
    values.update(changes)
    return node.__class__(**values)


def rename_node(node: N, name: str) -> N:
    """Return a copy of a named node carrying ``name``."""
    return replace_node(node, name=NameNode(value=name))
