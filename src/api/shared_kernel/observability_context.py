"""Observation context for domain-oriented observability.

Observation contexts collect and manage contextual metadata for instrumentation,
following the Domain Oriented Observability pattern.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ObservationContext:
    """Immutable context containing metadata for observability.

    Captures request-scoped metadata that should be included with all
    instrumentation events, so that a client operation can be correlated
    with the upstream calls it caused.

    Attributes:
        request_id: Unique identifier for the current request.
        operation_name: GraphQL operation name sent by the client (if any).
        service: Upstream service being called (if applicable).
        extra: Additional contextual metadata.

    Example:
        context = ObservationContext(request_id="req-123", operation_name="Cart")
        probe = DefaultRemoteExecutorProbe().with_context(
            context.with_service("cms")
        )
    """

    request_id: str | None = None
    operation_name: str | None = None
    service: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging.

        Only includes non-None values to keep logs clean.
        """
        result: dict[str, Any] = {}
        if self.request_id is not None:
            result["request_id"] = self.request_id
        if self.operation_name is not None:
            result["operation_name"] = self.operation_name
        if self.service is not None:
            result["service"] = self.service
        result.update(self.extra)
        return result

    def with_service(self, service: str) -> ObservationContext:
        """Create a new context with the upstream service set."""
        return ObservationContext(
            request_id=self.request_id,
            operation_name=self.operation_name,
            service=service,
            extra=self.extra,
        )

    def with_extra(self, **kwargs: Any) -> ObservationContext:
        """Create a new context with additional metadata."""
        return ObservationContext(
            request_id=self.request_id,
            operation_name=self.operation_name,
            service=self.service,
            extra={**self.extra, **kwargs},
        )
