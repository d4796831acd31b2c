"""Domain probe for schema snapshot loading."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class SnapshotRepositoryProbe(Protocol):
    """Domain probe for schema snapshot loading."""

    def snapshot_loaded(
        self, service: str, source: str, format: str, digest: str, type_count: int
    ) -> None:
        """Record that a snapshot was loaded and validated."""
        ...

    def snapshot_invalid(self, service: str, source: str, reason: str) -> None:
        """Record that a snapshot was rejected."""
        ...

    def with_context(self, context: ObservationContext) -> SnapshotRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultSnapshotRepositoryProbe:
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
    ) -> DefaultSnapshotRepositoryProbe:
        return DefaultSnapshotRepositoryProbe(logger=self._logger, context=context)

    def snapshot_loaded(
        self, service: str, source: str, format: str, digest: str, type_count: int
    ) -> None:
        self._logger.info(
            "schema_snapshot_loaded",
            upstream=service,
            source=source,
            format=format,
            digest=digest,
            type_count=type_count,
            **self._get_context_kwargs(),
        )

    def snapshot_invalid(self, service: str, source: str, reason: str) -> None:
        self._logger.error(
            "schema_snapshot_invalid",
            upstream=service,
            source=source,
            reason=reason,
            **self._get_context_kwargs(),
        )
