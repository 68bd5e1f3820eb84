"""Public contracts for buildrelay."""

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
    FailureKind,
    LifecycleState,
    Operation,
    OperationKind,
    OperationOutcome,
    TransportKind,
)
from buildrelay.contracts.progress import (
    NO_OP,
    NoOp,
    NullProgressSink,
    PercentAdvanced,
    PhaseChanged,
    ProgressEvent,
    ProgressSink,
)

__all__ = [
    "NO_OP",
    "BuildRelayConfig",
    "BuildRelayError",
    "BuildToolsError",
    "ConfigError",
    "FailureKind",
    "LifecycleState",
    "NoOp",
    "NonZeroExitError",
    "NullProgressSink",
    "Operation",
    "OperationBusyError",
    "OperationError",
    "OperationKind",
    "OperationOutcome",
    "PercentAdvanced",
    "PhaseChanged",
    "ProcessRuntimeError",
    "ProgressEvent",
    "ProgressSink",
    "SpawnError",
    "TransportError",
    "TransportKind",
]
