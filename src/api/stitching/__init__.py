"""Stitching bounded context.

Composes independently hosted GraphQL services into one gateway schema and
delegates field resolution back to the service that owns each field.
"""
