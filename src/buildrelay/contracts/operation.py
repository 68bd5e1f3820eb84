"""Operation contracts: kinds, lifecycle states and settled outcomes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel

from buildrelay.contracts.exceptions import (
    NonZeroExitError,
    ProcessRuntimeError,
    SpawnError,
    TransportError,
)


class OperationKind(StrEnum):
    """What an operation does; also the key the operation registry gates on."""

    BUILD = "build"
    SYNC = "sync"
    CHANGE_CONFIG = "change-config"


class TransportKind(StrEnum):
    """How an operation's output reaches the progress parser."""

    PIPE = "pipe"
    SOCKET_RELAY = "socket-relay"


class LifecycleState(StrEnum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    TRANSPORT_ERROR = "transport-error"

    @property
    def is_terminal(self) -> bool:
        return self is not LifecycleState.RUNNING


class FailureKind(StrEnum):
    """Which event source produced a failed outcome."""

    SPAWN = "spawn"
    RUNTIME = "runtime"
    EXIT = "exit"
    TRANSPORT = "transport"


@dataclass
class Operation:
    """One invocation of an external long-running command.

    ``state`` is owned by the completion arbiter while the operation runs and
    never leaves a terminal value once one is assigned.
    """

    name: str
    command: str
    kind: OperationKind
    env: dict[str, str] = field(default_factory=dict)
    transport: TransportKind = TransportKind.PIPE
    cwd: Path | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: LifecycleState = LifecycleState.RUNNING

    @property
    def title(self) -> str:
        """Short display title: the part of ``name`` after the first dash."""
        _, sep, tail = self.name.partition("-")
        return tail.strip() if sep and tail.strip() else self.name


class OperationOutcome(BaseModel):
    """Terminal result of an operation, produced exactly once by settlement."""

    operation_name: str
    state: LifecycleState
    exit_code: int | None = None
    failure: FailureKind | None = None
    message: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.state is LifecycleState.SUCCEEDED

    @property
    def canceled(self) -> bool:
        return self.state is LifecycleState.CANCELED

    @property
    def failed(self) -> bool:
        return self.state in (LifecycleState.FAILED, LifecycleState.TRANSPORT_ERROR)

    def raise_for_status(self) -> None:
        """Raise the exception matching a failed outcome; no-op otherwise."""
        if not self.failed:
            return
        message = self.message or f"'{self.operation_name}' failed"
        if self.failure is FailureKind.TRANSPORT:
            raise TransportError(message, operation_name=self.operation_name)
        if self.failure is FailureKind.SPAWN:
            raise SpawnError(message, operation_name=self.operation_name)
        if self.failure is FailureKind.RUNTIME:
            raise ProcessRuntimeError(message, operation_name=self.operation_name)
        raise NonZeroExitError(
            message,
            operation_name=self.operation_name,
            exit_code=self.exit_code if self.exit_code is not None else -1,
        )
