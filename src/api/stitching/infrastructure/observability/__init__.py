"""Domain probes for Stitching infrastructure adapters."""

from stitching.infrastructure.observability.remote_executor_probe import (
    DefaultRemoteExecutorProbe,
    RemoteExecutorProbe,
)
from stitching.infrastructure.observability.snapshot_repository_probe import (
    DefaultSnapshotRepositoryProbe,
    SnapshotRepositoryProbe,
)

__all__ = [
    "DefaultRemoteExecutorProbe",
    "DefaultSnapshotRepositoryProbe",
    "RemoteExecutorProbe",
    "SnapshotRepositoryProbe",
]
