"""CLI app entrypoint and error mapping."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from buildrelay import (
    BuildRelayConfig,
    BuildToolsError,
    ConfigError,
    LifecycleState,
    OperationBusyError,
    load_config,
)
from buildrelay.cli.commands.configs import run_config_command
from buildrelay.cli.commands.operation import run_operation
from buildrelay.cli.parser import build_parser

_EXIT_CODES = {
    LifecycleState.SUCCEEDED: 0,
    LifecycleState.FAILED: 5,
    LifecycleState.TRANSPORT_ERROR: 6,
    LifecycleState.CANCELED: 130,
}


def _load(args: argparse.Namespace) -> BuildRelayConfig:
    if args.config is None:
        return BuildRelayConfig()
    return load_config(args.config)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(message)s", stream=sys.stderr)

    try:
        config = _load(args)
        if args.command in ("build", "sync"):
            outcome = asyncio.run(run_operation(args, config))
            return _EXIT_CODES[outcome.state]
        asyncio.run(run_config_command(args, config))
        return 0
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 3
    except (BuildToolsError, OperationBusyError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 4
    except Exception as exc:  # pragma: no cover
        print(f"error: {exc}", file=sys.stderr)
        return 1


__all__ = ["main"]
