"""Exactly-once settlement of an operation's terminal outcome."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from buildrelay.contracts.exceptions import OperationError
from buildrelay.contracts.operation import FailureKind, LifecycleState, Operation, OperationOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Settlement(Generic[T]):
    """Single-assignment cell: the first :meth:`assign` wins, later ones are refused."""

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    @property
    def assigned(self) -> bool:
        return self._future.done()

    def assign(self, value: T) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def value(self) -> T:
        return self._future.result()

    async def wait(self) -> T:
        return await asyncio.shield(self._future)


class CompletionArbiter:
    """Single settlement point for one operation.

    Process exit, process error, transport error and cancellation report
    here in any order. The first report settles the operation and runs
    *cleanup* once; every later report is discarded.
    """

    def __init__(self, operation: Operation, cleanup: Callable[[], Awaitable[None]]) -> None:
        self._operation = operation
        self._cleanup = cleanup
        self._settlement: Settlement[OperationOutcome] = Settlement()
        self._released = asyncio.Event()
        self._cleanup_error: BaseException | None = None
        self._cancel_requested = False

    @property
    def settled(self) -> bool:
        return self._settlement.assigned

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def state(self) -> LifecycleState:
        return self._operation.state

    def mark_canceled(self) -> None:
        self._cancel_requested = True

    async def cancel(self) -> bool:
        self.mark_canceled()
        return await self._settle(self._canceled())

    async def process_exited(self, exit_code: int) -> bool:
        if self._cancel_requested:
            return await self._settle(self._canceled(exit_code))
        if exit_code == 0:
            return await self._settle(
                OperationOutcome(
                    operation_name=self._operation.name,
                    state=LifecycleState.SUCCEEDED,
                    exit_code=0,
                )
            )
        return await self._settle(
            OperationOutcome(
                operation_name=self._operation.name,
                state=LifecycleState.FAILED,
                exit_code=exit_code,
                failure=FailureKind.EXIT,
                message=f"'{self._operation.name}' failed with exit code {exit_code}",
            )
        )

    async def spawn_failed(self, error: BaseException) -> bool:
        return await self._fail(error, FailureKind.SPAWN)

    async def process_errored(self, error: BaseException) -> bool:
        return await self._fail(error, FailureKind.RUNTIME)

    async def transport_failed(self, error: BaseException) -> bool:
        if self._cancel_requested:
            return await self._settle(self._canceled())
        message = str(error)
        if not isinstance(error, OperationError):
            message = f"'{self._operation.name}' could not open its progress socket: {error}"
        return await self._settle(
            OperationOutcome(
                operation_name=self._operation.name,
                state=LifecycleState.TRANSPORT_ERROR,
                failure=FailureKind.TRANSPORT,
                message=message,
            )
        )

    async def wait(self) -> OperationOutcome:
        """Outcome of the operation, available once cleanup has finished."""
        outcome = await self._settlement.wait()
        await self._released.wait()
        if self._cleanup_error is not None:
            raise self._cleanup_error
        return outcome

    async def wait_released(self) -> None:
        await self._released.wait()

    async def _fail(self, error: BaseException, failure: FailureKind) -> bool:
        if self._cancel_requested:
            return await self._settle(self._canceled())
        message = str(error)
        if not isinstance(error, OperationError):
            message = f"'{self._operation.name}' had an error occur: {error}"
        return await self._settle(
            OperationOutcome(
                operation_name=self._operation.name,
                state=LifecycleState.FAILED,
                failure=failure,
                message=message,
            )
        )

    def _canceled(self, exit_code: int | None = None) -> OperationOutcome:
        return OperationOutcome(
            operation_name=self._operation.name,
            state=LifecycleState.CANCELED,
            exit_code=exit_code,
        )

    async def _settle(self, outcome: OperationOutcome) -> bool:
        if not self._settlement.assign(outcome):
            logger.debug(
                "Discarding late %s signal for '%s' (already %s)",
                outcome.state,
                self._operation.name,
                self._operation.state,
            )
            return False

        self._operation.state = outcome.state
        logger.debug("'%s' settled as %s", self._operation.name, outcome.state)
        try:
            await self._cleanup()
        except Exception as exc:
            self._cleanup_error = exc
        finally:
            self._released.set()
        return True
