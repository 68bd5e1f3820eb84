"""Exception hierarchy for buildrelay.

All buildrelay exceptions inherit from :class:`BuildRelayError`, so callers can
catch any library error with a single ``except`` clause while still handling
specific failure modes.
"""

from __future__ import annotations


class BuildRelayError(Exception):
    """Base exception for all buildrelay errors."""


class ConfigError(BuildRelayError):
    """Configuration loading or validation failure."""


class OperationError(BuildRelayError):
    """Terminal failure of a tracked operation."""

    def __init__(self, message: str, *, operation_name: str) -> None:
        super().__init__(message)
        self.operation_name = operation_name


class SpawnError(OperationError):
    """The external command could not be started."""


class ProcessRuntimeError(OperationError):
    """An OS-level error occurred while the external command was running."""


class NonZeroExitError(OperationError):
    """The external command exited with a non-zero code."""

    def __init__(self, message: str, *, operation_name: str, exit_code: int) -> None:
        super().__init__(message, operation_name=operation_name)
        self.exit_code = exit_code


class TransportError(OperationError):
    """The progress transport could not be opened or accepted no producer."""


class OperationBusyError(BuildRelayError):
    """Another operation of the same kind is still running."""

    def __init__(self, message: str, *, kind: str) -> None:
        super().__init__(message)
        self.kind = kind


class BuildToolsError(BuildRelayError):
    """A build-tools helper command failed."""
