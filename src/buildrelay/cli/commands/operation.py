"""Build and sync commands."""

from __future__ import annotations

import argparse
import asyncio
import signal
from contextlib import suppress

from buildrelay import BuildRelay, BuildRelayConfig, CancellationToken, OperationOutcome, TransportKind
from buildrelay.cli.progress.rich import RichProgressSink


def format_outcome(outcome: OperationOutcome) -> str:
    if outcome.succeeded:
        return f"{outcome.operation_name}: done"
    if outcome.canceled:
        return f"{outcome.operation_name}: canceled"
    return f"error: {outcome.message}"


async def run_operation(args: argparse.Namespace, config: BuildRelayConfig) -> OperationOutcome:
    transport = TransportKind(args.transport) if args.transport else None
    cancellation = CancellationToken()
    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, cancellation.cancel)

    title = "Building" if args.command == "build" else "Syncing"
    try:
        with RichProgressSink(title) as sink:
            relay = BuildRelay(config, sink=sink)
            if args.command == "build":
                outcome = await relay.build(args.target, transport=transport, cancellation=cancellation)
            else:
                outcome = await relay.sync(transport=transport, cancellation=cancellation)
            sink.finish(outcome)
    finally:
        with suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)

    print(format_outcome(outcome))
    return outcome
