"""Operation runner: spawn, stream progress, settle exactly once."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from buildrelay.contracts.exceptions import SpawnError, TransportError
from buildrelay.contracts.operation import Operation, OperationOutcome
from buildrelay.contracts.progress import NullProgressSink, ProgressEvent, ProgressSink, deliver
from buildrelay.engine.arbiter import CompletionArbiter
from buildrelay.engine.cancellation import CancellationToken
from buildrelay.engine.framer import frame_lines
from buildrelay.engine.invoker import DEFAULT_NINJA_STATUS, OperationInvoker, build_environment
from buildrelay.engine.parser import ProgressParser
from buildrelay.engine.registry import OperationRegistry, default_registry
from buildrelay.engine.termination import terminate_process_tree
from buildrelay.transports.base import ProgressTransport
from buildrelay.transports.factory import create_transport

logger = logging.getLogger(__name__)


class _Terminator(Protocol):
    def __call__(self, process: asyncio.subprocess.Process, *, timeout: float) -> Awaitable[None]: ...


class OperationRunner:
    """Drives one operation from spawn to settlement.

    Output flows transport → framer → parser → sink while the process exit,
    transport errors and the cancellation token race to settle the
    operation's :class:`~buildrelay.engine.arbiter.CompletionArbiter`. Once
    settled, cleanup terminates the process tree, closes the transport and
    unbinds the sink, so no event reaches the sink afterwards.
    """

    def __init__(
        self,
        operation: Operation,
        *,
        sink: ProgressSink | None = None,
        transport: ProgressTransport | None = None,
        invoker: OperationInvoker | None = None,
        parser: ProgressParser | None = None,
        registry: OperationRegistry | None = None,
        cancellation: CancellationToken | None = None,
        on_result: Callable[[OperationOutcome], None] | None = None,
        ninja_status: str = DEFAULT_NINJA_STATUS,
        newline: str = "\n",
        drain_timeout: float = 1.0,
        terminate_timeout: float = 3.0,
        terminate: _Terminator = terminate_process_tree,
    ) -> None:
        self._operation = operation
        self._sink: ProgressSink | None = sink or NullProgressSink()
        self._transport = transport or create_transport(operation.transport, operation_name=operation.name)
        self._invoker = invoker or OperationInvoker()
        self._parser = parser or ProgressParser(operation.kind)
        self._registry = registry if registry is not None else default_registry
        self._cancellation = cancellation or CancellationToken()
        self._on_result = on_result
        self._ninja_status = ninja_status
        self._newline = newline
        self._drain_timeout = drain_timeout
        self._terminate_timeout = terminate_timeout
        self._terminate = terminate
        self._process: asyncio.subprocess.Process | None = None
        self._arbiter: CompletionArbiter | None = None

    @property
    def operation(self) -> Operation:
        return self._operation

    @property
    def cancellation(self) -> CancellationToken:
        return self._cancellation

    @property
    def parser(self) -> ProgressParser:
        return self._parser

    async def run(self) -> OperationOutcome:
        with self._registry.track(self._operation):
            outcome = await self._run()
        if self._on_result is not None:
            self._on_result(outcome)
        return outcome

    async def _run(self) -> OperationOutcome:
        arbiter = CompletionArbiter(self._operation, self._cleanup)
        self._arbiter = arbiter
        tasks: list[asyncio.Task[None]] = []
        try:
            if self._cancellation.is_cancelled:
                await arbiter.cancel()
                return await arbiter.wait()
            tasks.append(asyncio.create_task(self._watch_cancellation(arbiter)))

            try:
                await self._transport.open()
            except TransportError as exc:
                await arbiter.transport_failed(exc)
                return await arbiter.wait()
            if arbiter.settled:
                # Canceled while the transport was opening.
                return await arbiter.wait()

            env = build_environment(self._operation.kind, self._operation.env, ninja_status=self._ninja_status)
            try:
                process = await self._invoker.spawn(
                    self._operation,
                    env=env,
                    relay_endpoint=self._transport.relay_endpoint,
                )
            except SpawnError as exc:
                await arbiter.spawn_failed(exc)
                return await arbiter.wait()

            self._process = process
            if arbiter.settled:
                # Canceled while spawning: cleanup already ran without a process.
                await self._terminate(process, timeout=self._terminate_timeout)
                return await arbiter.wait()

            self._transport.attach(process)
            pump = asyncio.create_task(self._pump(arbiter))
            tasks.append(pump)
            tasks.append(asyncio.create_task(self._watch_exit(arbiter, process, pump)))
            return await arbiter.wait()
        except asyncio.CancelledError:
            await arbiter.cancel()
            await arbiter.wait_released()
            raise
        finally:
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result

    async def _pump(self, arbiter: CompletionArbiter) -> None:
        try:
            async for line in frame_lines(self._transport.chunks(), newline=self._newline):
                if arbiter.settled:
                    break
                self._emit(arbiter, self._parser.parse(line))
        except OSError as exc:
            await arbiter.transport_failed(exc)

    def _emit(self, arbiter: CompletionArbiter, event: ProgressEvent) -> None:
        sink = self._sink
        if sink is None or arbiter.settled:
            return
        deliver(sink, event)

    async def _watch_exit(
        self,
        arbiter: CompletionArbiter,
        process: asyncio.subprocess.Process,
        pump: asyncio.Task[None],
    ) -> None:
        try:
            exit_code = await process.wait()
        except OSError as exc:
            await arbiter.process_errored(exc)
            return

        if not pump.done() and self._drain_timeout > 0:
            _, pending = await asyncio.wait({pump}, timeout=self._drain_timeout)
            if pending:
                logger.debug("'%s' output still open %.1fs after exit", self._operation.name, self._drain_timeout)
        if not self._transport.connected:
            await arbiter.transport_failed(
                TransportError(
                    f"'{self._operation.name}' progress relay never connected (exit code {exit_code})",
                    operation_name=self._operation.name,
                )
            )
            return
        await arbiter.process_exited(exit_code)

    async def _watch_cancellation(self, arbiter: CompletionArbiter) -> None:
        await self._cancellation.wait()
        if arbiter.settled:
            return
        logger.warning("User canceled '%s'", self._operation.command)
        await arbiter.cancel()

    async def _cleanup(self) -> None:
        self._sink = None
        try:
            if self._process is not None:
                await self._terminate(self._process, timeout=self._terminate_timeout)
        finally:
            await self._transport.close()
