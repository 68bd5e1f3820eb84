"""Process-wide registry of running operations, keyed by kind."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from buildrelay.contracts.exceptions import OperationBusyError
from buildrelay.contracts.operation import Operation, OperationKind

logger = logging.getLogger(__name__)


def _conflicts(first: OperationKind, second: OperationKind) -> bool:
    if first is second:
        return True
    return OperationKind.CHANGE_CONFIG in (first, second)


class OperationRegistry:
    """Tracks which operations are in flight.

    An operation is inserted when it starts and removed once it has settled.
    Two operations of the same kind never run together, and a config change
    never overlaps a build or a sync.
    """

    def __init__(self) -> None:
        self._active: dict[OperationKind, Operation] = {}

    def is_busy(self, kind: OperationKind | None = None) -> bool:
        if kind is None:
            return bool(self._active)
        return any(_conflicts(kind, active_kind) for active_kind in self._active)

    def active(self, kind: OperationKind) -> Operation | None:
        return self._active.get(kind)

    def operations(self) -> list[Operation]:
        return list(self._active.values())

    def register(self, operation: Operation) -> None:
        for active_kind, active in self._active.items():
            if _conflicts(operation.kind, active_kind):
                raise OperationBusyError(
                    f"Can't start '{operation.name}', '{active.name}' is in progress",
                    kind=str(operation.kind),
                )
        self._active[operation.kind] = operation
        logger.debug("Registered '%s' (%s)", operation.name, operation.id)

    def release(self, operation: Operation) -> None:
        current = self._active.get(operation.kind)
        if current is not None and current.id == operation.id:
            del self._active[operation.kind]
            logger.debug("Released '%s' (%s)", operation.name, operation.id)

    @contextmanager
    def track(self, operation: Operation) -> Iterator[Operation]:
        self.register(operation)
        try:
            yield operation
        finally:
            self.release(operation)


default_registry = OperationRegistry()
