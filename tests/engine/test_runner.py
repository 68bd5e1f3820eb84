from __future__ import annotations

import asyncio
import os
import shutil
import sys
from collections.abc import Mapping

import psutil
import pytest

from buildrelay.contracts.exceptions import NonZeroExitError, OperationBusyError, TransportError
from buildrelay.contracts.operation import (
    FailureKind,
    LifecycleState,
    Operation,
    OperationKind,
    OperationOutcome,
    TransportKind,
)
from buildrelay.engine.cancellation import CancellationToken
from buildrelay.engine.invoker import OperationInvoker
from buildrelay.engine.registry import OperationRegistry
from buildrelay.engine.runner import OperationRunner
from buildrelay.transports.socket_relay import SocketRelayTransport
from tests.fakes.process import FakeInvoker, FakeProcess, FakeTerminator
from tests.fakes.sink import RecordingSink
from tests.fakes.transport import FakeTransport

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell semantics")


class _Harness:
    def __init__(
        self,
        operation: Operation,
        registry: OperationRegistry,
        *,
        transport: FakeTransport | None = None,
        invoker: FakeInvoker | None = None,
        cancellation: CancellationToken | None = None,
        terminate: FakeTerminator | None = None,
        drain_timeout: float = 1.0,
    ) -> None:
        self.sink = RecordingSink()
        self.transport = transport or FakeTransport()
        self.invoker = invoker or FakeInvoker()
        self.terminate = terminate or FakeTerminator()
        self.results: list[OperationOutcome] = []
        self.runner = OperationRunner(
            operation,
            sink=self.sink,
            transport=self.transport,
            invoker=self.invoker,  # type: ignore[arg-type]
            registry=registry,
            cancellation=cancellation,
            on_result=self.results.append,
            drain_timeout=drain_timeout,
            terminate=self.terminate,  # type: ignore[arg-type]
        )

    @property
    def process(self) -> FakeProcess:
        return self.invoker.process

    async def start(self) -> asyncio.Task[OperationOutcome]:
        task = asyncio.create_task(self.runner.run())
        await asyncio.wait_for(self.invoker.spawned.wait(), 5)
        return task


@pytest.mark.asyncio
async def test_build_streams_progress_and_succeeds(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry)
    task = await harness.start()

    harness.transport.feed_lines("Running ninja...", "10% 5/50", "25% 12/50", "30% 15/50")
    harness.transport.end()
    harness.process.exit(0)
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.state is LifecycleState.SUCCEEDED
    assert harness.sink.reports == [("Starting", None), ("Compiling", 10), ("Compiling", 15), ("Compiling", 5)]
    assert harness.sink.cumulative == 30
    assert harness.results == [outcome]
    assert harness.transport.attached is harness.process
    assert harness.transport.close_calls == 1
    assert not registry.is_busy()


@pytest.mark.asyncio
async def test_build_environment_forces_ninja_status(build_operation: Operation, registry: OperationRegistry) -> None:
    build_operation.env = {"GOMA_DIR": "/goma"}
    harness = _Harness(build_operation, registry)
    task = await harness.start()
    harness.transport.end()
    harness.process.exit(0)
    await asyncio.wait_for(task, 5)

    (_, env, endpoint) = harness.invoker.calls[0]
    assert env["NINJA_STATUS"] == "%p %f/%t "
    assert env["GOMA_DIR"] == "/goma"
    assert endpoint is None


@pytest.mark.asyncio
async def test_relay_endpoint_is_handed_to_invoker(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry, transport=FakeTransport(endpoint="/tmp/socket-abc"))
    task = await harness.start()
    harness.transport.end()
    harness.process.exit(0)
    await asyncio.wait_for(task, 5)

    assert harness.invoker.calls[0][2] == "/tmp/socket-abc"


@pytest.mark.asyncio
async def test_nonzero_exit_fails(sync_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(sync_operation, registry)
    task = await harness.start()

    harness.transport.feed_lines("Syncing projects: 1%")
    harness.transport.end()
    harness.process.exit(2)
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.state is LifecycleState.FAILED
    assert outcome.failure is FailureKind.EXIT
    assert outcome.exit_code == 2
    assert outcome.message == "'Electron Build Tools - Syncing' failed with exit code 2"
    assert harness.sink.messages == ["Dependencies"]
    with pytest.raises(NonZeroExitError) as excinfo:
        outcome.raise_for_status()
    assert excinfo.value.exit_code == 2


@pytest.mark.asyncio
async def test_cancel_terminates_and_wins_over_later_exit(
    build_operation: Operation, registry: OperationRegistry, caplog: pytest.LogCaptureFixture
) -> None:
    harness = _Harness(build_operation, registry)
    task = await harness.start()
    harness.transport.feed_lines("10% 1/10")
    await asyncio.wait_for(harness.sink.wait_for("Compiling"), 5)

    with caplog.at_level("WARNING", logger="buildrelay.engine.runner"):
        harness.runner.cancellation.cancel()
        outcome = await asyncio.wait_for(task, 5)
    harness.process.exit(0)

    assert outcome.state is LifecycleState.CANCELED
    assert build_operation.state is LifecycleState.CANCELED
    assert harness.process.signals == ["terminate"]
    assert harness.terminate.calls == [harness.process]
    assert harness.transport.closed
    assert "User canceled 'electron-build-tools build'" in caplog.text
    assert harness.results == [outcome]


@pytest.mark.asyncio
async def test_exit_before_cancel_keeps_exit_outcome(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry)
    task = await harness.start()
    harness.transport.end()
    harness.process.exit(0)
    outcome = await asyncio.wait_for(task, 5)

    harness.runner.cancellation.cancel()
    await asyncio.sleep(0)

    assert outcome.state is LifecycleState.SUCCEEDED
    assert build_operation.state is LifecycleState.SUCCEEDED
    assert harness.results == [outcome]


@pytest.mark.asyncio
async def test_cancel_before_start_never_spawns(build_operation: Operation, registry: OperationRegistry) -> None:
    token = CancellationToken()
    token.cancel()
    harness = _Harness(build_operation, registry, cancellation=token)

    outcome = await asyncio.wait_for(harness.runner.run(), 5)

    assert outcome.state is LifecycleState.CANCELED
    assert harness.invoker.calls == []
    assert harness.transport.open_calls == 0
    assert harness.transport.close_calls == 1
    assert not registry.is_busy()


@pytest.mark.asyncio
async def test_spawn_error_settles_failed(build_operation: Operation, registry: OperationRegistry) -> None:
    invoker = FakeInvoker(error=FileNotFoundError(2, "No such file or directory"))
    harness = _Harness(build_operation, registry, invoker=invoker)

    outcome = await asyncio.wait_for(harness.runner.run(), 5)

    assert outcome.state is LifecycleState.FAILED
    assert outcome.failure is FailureKind.SPAWN
    assert outcome.message is not None
    assert outcome.message.startswith("'Electron Build Tools - Building' had an error occur:")
    assert harness.terminate.calls == []
    assert harness.transport.close_calls == 1
    assert harness.sink.reports == []


@pytest.mark.asyncio
async def test_transport_open_error_never_spawns(build_operation: Operation, registry: OperationRegistry) -> None:
    error = TransportError("'Electron Build Tools - Building' could not open its progress socket: denied", operation_name="x")
    harness = _Harness(build_operation, registry, transport=FakeTransport(open_error=error))

    outcome = await asyncio.wait_for(harness.runner.run(), 5)

    assert outcome.state is LifecycleState.TRANSPORT_ERROR
    assert outcome.message == str(error)
    assert harness.invoker.calls == []
    with pytest.raises(TransportError):
        outcome.raise_for_status()


@pytest.mark.asyncio
async def test_transport_read_error_terminates_process(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry)
    task = await harness.start()

    harness.transport.feed_lines("Running ninja")
    harness.transport.fail(ConnectionResetError("connection reset"))
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.state is LifecycleState.TRANSPORT_ERROR
    assert outcome.failure is FailureKind.TRANSPORT
    assert harness.process.signals == ["terminate"]
    assert harness.sink.messages == ["Starting"]


@pytest.mark.asyncio
async def test_output_after_exit_is_drained(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry, drain_timeout=5)
    task = await harness.start()

    harness.process.exit(0)
    await asyncio.sleep(0.01)
    harness.transport.feed_lines("100% 10/10")
    harness.transport.end()
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.succeeded
    assert harness.sink.reports == [("Compiling", 100)]


@pytest.mark.asyncio
async def test_stalled_output_does_not_block_settlement(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry, drain_timeout=0.05)
    task = await harness.start()

    harness.process.exit(0)
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.succeeded
    assert harness.transport.closed


@pytest.mark.asyncio
async def test_cancel_while_transport_opens_never_spawns(build_operation: Operation, registry: OperationRegistry) -> None:
    gate = asyncio.Event()
    harness = _Harness(build_operation, registry, transport=FakeTransport(open_gate=gate))
    task = asyncio.create_task(harness.runner.run())
    while harness.transport.open_calls == 0:
        await asyncio.sleep(0)

    harness.runner.cancellation.cancel()
    while not harness.transport.closed:
        await asyncio.sleep(0)
    gate.set()
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.state is LifecycleState.CANCELED
    assert harness.invoker.calls == []
    assert harness.terminate.calls == []
    assert harness.transport.close_calls == 1


@pytest.mark.asyncio
async def test_relay_without_producer_is_transport_error(build_operation: Operation, registry: OperationRegistry) -> None:
    transport = FakeTransport(endpoint="/tmp/socket-abc", connected=False)
    harness = _Harness(build_operation, registry, transport=transport, drain_timeout=0.05)
    task = await harness.start()

    harness.process.exit(0)
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.state is LifecycleState.TRANSPORT_ERROR
    assert outcome.failure is FailureKind.TRANSPORT
    assert outcome.message == "'Electron Build Tools - Building' progress relay never connected (exit code 0)"
    assert harness.transport.closed


@pytest.mark.asyncio
async def test_cancel_wins_over_missing_producer(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry, transport=FakeTransport(connected=False), drain_timeout=0.05)
    task = await harness.start()

    harness.runner.cancellation.cancel()
    outcome = await asyncio.wait_for(task, 5)

    assert outcome.state is LifecycleState.CANCELED


class _ChattyTerminator(FakeTerminator):
    """Produces output while the process is being torn down."""

    def __init__(self, transport: FakeTransport) -> None:
        super().__init__()
        self.transport = transport

    async def __call__(self, process: FakeProcess, *, timeout: float) -> None:
        self.transport.feed_lines("90% 9/10", "Running ninja")
        await super().__call__(process, timeout=timeout)


@pytest.mark.asyncio
async def test_no_events_after_settlement(build_operation: Operation, registry: OperationRegistry) -> None:
    transport = FakeTransport()
    harness = _Harness(build_operation, registry, transport=transport, terminate=_ChattyTerminator(transport))
    task = await harness.start()
    harness.transport.feed_lines("10% 1/10")
    await asyncio.wait_for(harness.sink.wait_for("Compiling"), 5)

    harness.runner.cancellation.cancel()
    await asyncio.wait_for(task, 5)
    await asyncio.sleep(0.01)

    assert harness.sink.reports == [("Compiling", 10)]


@pytest.mark.asyncio
async def test_busy_registry_refuses_second_build(build_operation: Operation, registry: OperationRegistry) -> None:
    registry.register(Operation(name="Other build", command="x", kind=OperationKind.BUILD))
    harness = _Harness(build_operation, registry)

    with pytest.raises(OperationBusyError):
        await harness.runner.run()

    assert harness.invoker.calls == []
    assert harness.results == []


@pytest.mark.asyncio
async def test_outer_task_cancellation_cleans_up(build_operation: Operation, registry: OperationRegistry) -> None:
    harness = _Harness(build_operation, registry)
    task = await harness.start()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert build_operation.state is LifecycleState.CANCELED
    assert harness.process.signals == ["terminate"]
    assert harness.transport.closed
    assert not registry.is_busy()


class _RecordingInvoker(OperationInvoker):
    def __init__(self) -> None:
        super().__init__()
        self.process: asyncio.subprocess.Process | None = None
        self.spawned = asyncio.Event()

    async def spawn(
        self,
        operation: Operation,
        *,
        env: Mapping[str, str],
        relay_endpoint: str | None = None,
    ) -> asyncio.subprocess.Process:
        self.process = await super().spawn(operation, env=env, relay_endpoint=relay_endpoint)
        self.spawned.set()
        return self.process


@posix_only
@pytest.mark.asyncio
async def test_real_pipe_build(registry: OperationRegistry) -> None:
    operation = Operation(
        name="Electron Build Tools - Building",
        command="printf 'Running ninja\\n20%% 2/10\\n60%% 6/10\\n'",
        kind=OperationKind.BUILD,
        transport=TransportKind.PIPE,
    )
    sink = RecordingSink()

    outcome = await asyncio.wait_for(OperationRunner(operation, sink=sink, registry=registry).run(), 10)

    assert outcome.succeeded
    assert sink.reports == [("Starting", None), ("Compiling", 20), ("Compiling", 40)]


@posix_only
@pytest.mark.skipif(shutil.which("bash") is None, reason="requires bash")
@pytest.mark.asyncio
async def test_real_socket_relay_keeps_command_exit_code(registry: OperationRegistry) -> None:
    operation = Operation(
        name="Electron Build Tools - Building",
        command="sh -c 'printf \"25%% 1/4\\n\"; exit 3'",
        kind=OperationKind.BUILD,
        transport=TransportKind.SOCKET_RELAY,
    )
    sink = RecordingSink()

    outcome = await asyncio.wait_for(OperationRunner(operation, sink=sink, registry=registry).run(), 20)

    assert outcome.state is LifecycleState.FAILED
    assert outcome.exit_code == 3
    assert sink.reports == [("Compiling", 25)]


def _gone(proc: psutil.Process) -> bool:
    try:
        return proc.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


@posix_only
@pytest.mark.asyncio
async def test_real_cancel_terminates_whole_tree(registry: OperationRegistry) -> None:
    operation = Operation(
        name="Electron Build Tools - Building",
        command="sleep 30 & sleep 30 & wait",
        kind=OperationKind.BUILD,
        transport=TransportKind.PIPE,
    )
    invoker = _RecordingInvoker()
    runner = OperationRunner(operation, invoker=invoker, registry=registry)
    task = asyncio.create_task(runner.run())
    await asyncio.wait_for(invoker.spawned.wait(), 5)
    assert invoker.process is not None

    root = psutil.Process(invoker.process.pid)
    children: list[psutil.Process] = []
    for _ in range(100):
        children = root.children(recursive=True)
        if len(children) >= 2:
            break
        await asyncio.sleep(0.05)
    assert len(children) >= 2

    runner.cancellation.cancel()
    outcome = await asyncio.wait_for(task, 20)

    assert outcome.canceled
    assert invoker.process.returncode is not None
    assert all(_gone(child) for child in children)


class _UnreachableRelay(SocketRelayTransport):
    """Binds normally, then loses its endpoint before the helper can connect."""

    async def open(self) -> None:
        await super().open()
        os.unlink(self.relay_endpoint)


@posix_only
@pytest.mark.skipif(shutil.which("bash") is None, reason="requires bash")
@pytest.mark.asyncio
async def test_real_relay_that_never_connects_is_transport_error(registry: OperationRegistry) -> None:
    operation = Operation(
        name="Electron Build Tools - Building",
        command="printf '50%% 1/2\\n'",
        kind=OperationKind.BUILD,
        transport=TransportKind.SOCKET_RELAY,
    )
    sink = RecordingSink()
    transport = _UnreachableRelay(operation_name=operation.name)

    outcome = await asyncio.wait_for(
        OperationRunner(operation, sink=sink, transport=transport, registry=registry).run(), 20
    )

    assert outcome.state is LifecycleState.TRANSPORT_ERROR
    assert "progress relay never connected" in (outcome.message or "")
    assert sink.reports == []
    assert transport.closed
