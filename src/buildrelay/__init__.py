"""Public API surface for buildrelay."""

__version__ = "0.1.0"

from buildrelay.contracts.config import BuildRelayConfig
from buildrelay.contracts.exceptions import (
    BuildRelayError,
    BuildToolsError,
    ConfigError,
    NonZeroExitError,
    OperationBusyError,
    OperationError,
    ProcessRuntimeError,
    SpawnError,
    TransportError,
)
from buildrelay.contracts.operation import (
    LifecycleState,
    Operation,
    OperationKind,
    OperationOutcome,
    TransportKind,
)
from buildrelay.contracts.progress import (
    NoOp,
    NullProgressSink,
    PercentAdvanced,
    PhaseChanged,
    ProgressEvent,
    ProgressSink,
)
from buildrelay.engine import CancellationToken, OperationRegistry, OperationRunner, ProgressParser, default_registry
from buildrelay.sdk import BUILD_OPERATION, SYNC_OPERATION, BuildRelay, load_config
from buildrelay.tools import BuildToolsClient, ConfigListing

__all__ = [
    "BUILD_OPERATION",
    "SYNC_OPERATION",
    "BuildRelay",
    "BuildRelayConfig",
    "BuildRelayError",
    "BuildToolsClient",
    "BuildToolsError",
    "CancellationToken",
    "ConfigError",
    "ConfigListing",
    "LifecycleState",
    "NoOp",
    "NonZeroExitError",
    "NullProgressSink",
    "Operation",
    "OperationBusyError",
    "OperationError",
    "OperationKind",
    "OperationOutcome",
    "OperationRegistry",
    "OperationRunner",
    "PercentAdvanced",
    "PhaseChanged",
    "ProcessRuntimeError",
    "ProgressEvent",
    "ProgressParser",
    "ProgressSink",
    "SpawnError",
    "TransportError",
    "TransportKind",
    "__version__",
    "default_registry",
    "load_config",
]
