"""Domain probes for the Stitching application layer.

Following Domain Oriented Observability pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class SchemaCompositionProbe(Protocol):
    """Domain probe for building the composed schema."""

    def subschema_transformed(
        self, service: str, type_count: int, root_field_count: int
    ) -> None:
        """Record that an upstream schema was namespaced."""
        ...

    def schema_composed(
        self, subschema_count: int, type_count: int, local_field_count: int
    ) -> None:
        """Record that the composed schema was built."""
        ...

    def composition_failed(self, error: str) -> None:
        """Record that the composed schema could not be built."""
        ...

    def context_built(self, digests: dict[str, str]) -> None:
        """Record that a gateway context is ready to serve."""
        ...

    def context_reloaded(self, digests: dict[str, str]) -> None:
        """Record that a new gateway context replaced the previous one."""
        ...

    def with_context(self, context: ObservationContext) -> SchemaCompositionProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultSchemaCompositionProbe:
    """Default implementation using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(
        self, context: ObservationContext
    ) -> DefaultSchemaCompositionProbe:
        return DefaultSchemaCompositionProbe(logger=self._logger, context=context)

    def subschema_transformed(
        self, service: str, type_count: int, root_field_count: int
    ) -> None:
        self._logger.info(
            "subschema_transformed",
            upstream=service,
            type_count=type_count,
            root_field_count=root_field_count,
            **self._get_context_kwargs(),
        )

    def schema_composed(
        self, subschema_count: int, type_count: int, local_field_count: int
    ) -> None:
        self._logger.info(
            "schema_composed",
            subschema_count=subschema_count,
            type_count=type_count,
            local_field_count=local_field_count,
            **self._get_context_kwargs(),
        )

    def composition_failed(self, error: str) -> None:
        self._logger.error(
            "schema_composition_failed",
            error=error,
            **self._get_context_kwargs(),
        )

    def context_built(self, digests: dict[str, str]) -> None:
        self._logger.info(
            "gateway_context_built",
            digests=digests,
            **self._get_context_kwargs(),
        )

    def context_reloaded(self, digests: dict[str, str]) -> None:
        self._logger.info(
            "gateway_context_reloaded",
            digests=digests,
            **self._get_context_kwargs(),
        )


class DelegationProbe(Protocol):
    """Domain probe for fields delegated to upstream services."""

    def delegation_started(
        self,
        service: str,
        operation: str,
        field_name: str,
        path: str,
    ) -> None:
        """Record that a field is being forwarded upstream."""
        ...

    def with_context(self, context: ObservationContext) -> DelegationProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultDelegationProbe:
    """Default implementation using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultDelegationProbe:
        return DefaultDelegationProbe(logger=self._logger, context=context)

    def delegation_started(
        self,
        service: str,
        operation: str,
        field_name: str,
        path: str,
    ) -> None:
        self._logger.debug(
            "delegation_started",
            upstream=service,
            operation=operation,
            field_name=field_name,
            path=path,
            **self._get_context_kwargs(),
        )


class GatewayServiceProbe(Protocol):
    """Domain probe for client operations executed by the gateway."""

    def operation_received(
        self, operation_name: str | None, query_length: int
    ) -> None:
        """Record that a client operation was received."""
        ...

    def operation_executed(
        self, operation_name: str | None, error_count: int, execution_time_ms: float
    ) -> None:
        """Record that a client operation produced a result."""
        ...

    def operation_timed_out(
        self, operation_name: str | None, timeout_seconds: float
    ) -> None:
        """Record that a client operation exceeded the time bound."""
        ...

    def with_context(self, context: ObservationContext) -> GatewayServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultGatewayServiceProbe:
    """Default implementation using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultGatewayServiceProbe:
        return DefaultGatewayServiceProbe(logger=self._logger, context=context)

    def operation_received(
        self, operation_name: str | None, query_length: int
    ) -> None:
        self._logger.info(
            "graphql_operation_received",
            query_length=query_length,
            **self._get_context_kwargs(),
        )

    def operation_executed(
        self, operation_name: str | None, error_count: int, execution_time_ms: float
    ) -> None:
        self._logger.info(
            "graphql_operation_executed",
            error_count=error_count,
            execution_time_ms=execution_time_ms,
            **self._get_context_kwargs(),
        )

    def operation_timed_out(
        self, operation_name: str | None, timeout_seconds: float
    ) -> None:
        self._logger.warning(
            "graphql_operation_timed_out",
            timeout_seconds=timeout_seconds,
            **self._get_context_kwargs(),
        )
