"""Application services for the Stitching bounded context."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Collection, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from inspect import isawaitable

from graphql import (
    DocumentNode,
    ExecutionResult,
    GraphQLError,
    GraphQLSchema,
    OperationType,
    execute,
    get_operation_ast,
    parse,
    validate,
)
from graphql.execution.values import get_variable_values

from shared_kernel.observability_context import ObservationContext
from stitching.application.composer import (
    ComposedSchema,
    FieldResolver,
    SchemaComposer,
)
from stitching.application.observability import (
    DefaultGatewayServiceProbe,
    DefaultSchemaCompositionProbe,
    GatewayServiceProbe,
    SchemaCompositionProbe,
)
from stitching.application.resolvers import CrossSchemaJoin, storefront_joins
from stitching.application.transforms import NamespaceTransformer, TransformedSchema
from stitching.domain.schemas import SchemaSnapshot
from stitching.domain.value_objects import (
    GraphQLRequest,
    ServiceNamespace,
    UpstreamService,
)
from stitching.ports.exceptions import (
    GatewayTimeout,
    InvalidOperation,
    OperationNotAllowed,
)
from stitching.ports.repositories import IRemoteSchemaLoader, ISchemaSnapshotRepository

JoinFactory = Callable[[Mapping[str, TransformedSchema]], Sequence[CrossSchemaJoin]]


@dataclass(frozen=True)
class GatewayContext:
    """Everything needed to serve client operations.

    Built once at startup and replaced as a whole on reload; never mutated.
    """

    snapshots: tuple[SchemaSnapshot, ...]
    composed: ComposedSchema
    built_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def schema(self) -> GraphQLSchema:
        return self.composed.schema

    def digests(self) -> dict[str, str]:
        return {snapshot.service: snapshot.digest for snapshot in self.snapshots}


class GatewayContextBuilder:
    """Builds a GatewayContext from upstream service definitions.

    Steps: load each snapshot, bind it to its endpoint, namespace it, derive
    the join fields, and compose. Any failure aborts the build.
    """

    def __init__(
        self,
        services: Sequence[UpstreamService],
        snapshot_repository: ISchemaSnapshotRepository,
        remote_schema_loader: IRemoteSchemaLoader,
        joins: JoinFactory = storefront_joins,
        composer: SchemaComposer | None = None,
        probe: SchemaCompositionProbe | None = None,
    ):
        self._services = list(services)
        self._snapshot_repository = snapshot_repository
        self._remote_schema_loader = remote_schema_loader
        self._joins = joins
        self._probe = probe or DefaultSchemaCompositionProbe()
        self._composer = composer or SchemaComposer(probe=self._probe)

    def build(self) -> GatewayContext:
        ServiceNamespace.ensure_disjoint(s.namespace for s in self._services)

        snapshots = []
        subschemas: dict[str, TransformedSchema] = {}
        for service in self._services:
            snapshot = self._snapshot_repository.load(
                service.name, service.snapshot_path
            )
            remote = self._remote_schema_loader.load(
                snapshot.schema, service.endpoint_url, service=service.name
            )
            transformer = NamespaceTransformer.for_namespace(
                service.namespace, probe=self._probe
            )
            snapshots.append(snapshot)
            subschemas[service.name] = transformer.transform(remote)

        joins = self._joins(subschemas)
        resolvers: dict[str, dict[str, FieldResolver]] = {}
        for join in joins:
            for type_name, fields in join.resolvers().items():
                resolvers.setdefault(type_name, {}).update(fields)

        composed = self._composer.compose(
            list(subschemas.values()),
            type_defs=[join.type_defs() for join in joins],
            resolvers=resolvers,
        )
        context = GatewayContext(snapshots=tuple(snapshots), composed=composed)
        self._probe.context_built(digests=context.digests())
        return context


class GatewayRuntime:
    """Holds the current GatewayContext.

    Requests read ``context`` once and use that context to the end, so a
    reload never affects operations already running.
    """

    def __init__(
        self,
        builder: GatewayContextBuilder,
        probe: SchemaCompositionProbe | None = None,
    ):
        self._builder = builder
        self._probe = probe or DefaultSchemaCompositionProbe()
        self._context: GatewayContext | None = None
        self._lock = asyncio.Lock()

    @property
    def context(self) -> GatewayContext:
        if self._context is None:
            raise RuntimeError("Gateway runtime has not been started")
        return self._context

    @property
    def started(self) -> bool:
        return self._context is not None

    def start(self) -> GatewayContext:
        self._context = self._builder.build()
        return self._context

    async def reload(self) -> GatewayContext:
        """Build a new context and swap it in.

        On failure the current context stays in place and the error is
        raised.
        """
        async with self._lock:
            context = await asyncio.to_thread(self._builder.build)
            self._context = context
        self._probe.context_reloaded(digests=context.digests())
        return context


@dataclass(frozen=True)
class GatewayRequestContext:
    """Context value passed to resolvers for one client operation.

    ``errors`` collects errors resolvers report besides the one they raise,
    such as further upstream errors of a delegated field. They are added to
    the operation result.
    """

    observation: ObservationContext
    errors: list[GraphQLError] = field(default_factory=list)


class GatewayService:
    """Executes client GraphQL operations against the composed schema."""

    def __init__(
        self,
        runtime: GatewayRuntime,
        timeout_seconds: float = 30.0,
        probe: GatewayServiceProbe | None = None,
    ):
        self._runtime = runtime
        self._timeout = timeout_seconds
        self._probe = probe or DefaultGatewayServiceProbe()

    async def execute(
        self,
        request: GraphQLRequest,
        observation: ObservationContext | None = None,
        allowed_operations: Collection[OperationType] | None = None,
    ) -> ExecutionResult:
        """Execute one client operation.

        Raises:
            InvalidOperation: If the document does not parse or validate, or
                the variables do not match their definitions.
            OperationNotAllowed: If the selected operation is not one of
                ``allowed_operations``.
            GatewayTimeout: If execution exceeds the configured bound.
        """
        observation = observation or ObservationContext(
            operation_name=request.operation_name
        )
        probe = self._probe.with_context(observation)
        probe.operation_received(
            operation_name=request.operation_name, query_length=len(request.query)
        )

        schema = self._runtime.context.schema
        try:
            document = parse(request.query)
        except GraphQLError as e:
            raise InvalidOperation([e]) from e

        errors = validate(schema, document)
        if errors:
            raise InvalidOperation(errors)

        operation = get_operation_ast(document, request.operation_name)
        if operation is None:
            message = (
                f"Unknown operation named '{request.operation_name}'."
                if request.operation_name
                else "Must provide operation name if query contains"
                " multiple operations."
            )
            raise InvalidOperation([GraphQLError(message)])
        if (
            allowed_operations is not None
            and operation.operation not in allowed_operations
        ):
            raise OperationNotAllowed(
                operation.operation.value,
                [allowed.value for allowed in allowed_operations],
            )

        coerced = get_variable_values(
            schema, operation.variable_definitions or (), request.variables or {}
        )
        if isinstance(coerced, list):
            raise InvalidOperation(coerced)

        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._run(schema, document, request, observation),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            probe.operation_timed_out(
                operation_name=request.operation_name, timeout_seconds=self._timeout
            )
            raise GatewayTimeout(self._timeout) from e

        probe.operation_executed(
            operation_name=request.operation_name,
            error_count=len(result.errors or ()),
            execution_time_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    async def _run(
        self,
        schema: GraphQLSchema,
        document: DocumentNode,
        request: GraphQLRequest,
        observation: ObservationContext,
    ) -> ExecutionResult:
        context = GatewayRequestContext(observation=observation)
        result = execute(
            schema,
            document,
            context_value=context,
            variable_values=request.variables,
            operation_name=request.operation_name,
        )
        if isawaitable(result):
            result = await result
        if context.errors:
            result = ExecutionResult(
                data=result.data,
                errors=[*(result.errors or ()), *context.errors],
                extensions=result.extensions,
            )
        return result
