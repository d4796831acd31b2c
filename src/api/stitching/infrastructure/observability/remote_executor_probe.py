"""Domain probe for upstream GraphQL calls.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events of operations forwarded to upstream services.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class RemoteExecutorProbe(Protocol):
    """Domain probe for upstream GraphQL calls."""

    def upstream_request_sent(self, service: str | None, url: str) -> None:
        """Record that an operation was sent upstream."""
        ...

    def upstream_response_received(
        self, service: str | None, url: str, status_code: int, duration_ms: float
    ) -> None:
        """Record that an upstream answered with data."""
        ...

    def upstream_unreachable(
        self, service: str | None, url: str, reason: str
    ) -> None:
        """Record that the HTTP call could not complete."""
        ...

    def upstream_graphql_error(
        self, service: str | None, url: str, error_count: int, message: str
    ) -> None:
        """Record that an upstream reported GraphQL errors."""
        ...

    def upstream_response_invalid(
        self,
        service: str | None,
        url: str,
        reason: str,
        status_code: int | None = None,
    ) -> None:
        """Record that an upstream answered with an unusable body."""
        ...

    def with_context(self, context: ObservationContext) -> RemoteExecutorProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultRemoteExecutorProbe:
    """Default implementation of RemoteExecutorProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultRemoteExecutorProbe:
        """Create a new probe with observation context bound."""
        return DefaultRemoteExecutorProbe(logger=self._logger, context=context)

    def upstream_request_sent(self, service: str | None, url: str) -> None:
        self._logger.debug(
            "upstream_request_sent",
            upstream=service,
            url=url,
            **self._get_context_kwargs(),
        )

    def upstream_response_received(
        self, service: str | None, url: str, status_code: int, duration_ms: float
    ) -> None:
        self._logger.info(
            "upstream_response_received",
            upstream=service,
            url=url,
            status_code=status_code,
            duration_ms=duration_ms,
            **self._get_context_kwargs(),
        )

    def upstream_unreachable(
        self, service: str | None, url: str, reason: str
    ) -> None:
        self._logger.error(
            "upstream_unreachable",
            upstream=service,
            url=url,
            reason=reason,
            **self._get_context_kwargs(),
        )

    def upstream_graphql_error(
        self, service: str | None, url: str, error_count: int, message: str
    ) -> None:
        self._logger.warning(
            "upstream_graphql_error",
            upstream=service,
            url=url,
            error_count=error_count,
            message=message,
            **self._get_context_kwargs(),
        )

    def upstream_response_invalid(
        self,
        service: str | None,
        url: str,
        reason: str,
        status_code: int | None = None,
    ) -> None:
        self._logger.error(
            "upstream_response_invalid",
            upstream=service,
            url=url,
            reason=reason,
            status_code=status_code,
            **self._get_context_kwargs(),
        )
