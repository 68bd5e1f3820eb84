"""CLI argument parser construction."""

from __future__ import annotations

import argparse
from importlib.metadata import PackageNotFoundError, version

from buildrelay.contracts.operation import TransportKind
from buildrelay.tools import SHOW_TARGETS


def _package_version() -> str:
    try:
        return version("buildrelay")
    except PackageNotFoundError:
        return "0.0.0"


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Path to buildrelay.json")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="buildrelay")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_package_version()}")

    subparsers = parser.add_subparsers(dest="command", required=True)
    transports = [kind.value for kind in TransportKind]

    build_parser_ = subparsers.add_parser("build", help="Build with live progress")
    build_parser_.add_argument("target", nargs="?", default=None, help="Build target (defaults to the config's)")
    build_parser_.add_argument("--transport", choices=transports, default=None, help="How output is captured")
    _add_common_args(build_parser_)

    sync_parser = subparsers.add_parser("sync", help="Sync checkouts with live progress")
    sync_parser.add_argument("--transport", choices=transports, default=None, help="How output is captured")
    _add_common_args(sync_parser)

    configs_parser = subparsers.add_parser("configs", help="List build configs")
    _add_common_args(configs_parser)

    for name, help_text in (
        ("use", "Switch the active build config"),
        ("remove", "Remove a build config"),
        ("sanitize", "Sanitize a build config"),
    ):
        config_parser = subparsers.add_parser(name, help=help_text)
        config_parser.add_argument("name", help="Config name")
        _add_common_args(config_parser)

    show_parser = subparsers.add_parser("show", help="Show build-tools information")
    show_parser.add_argument("what", choices=SHOW_TARGETS)
    _add_common_args(show_parser)

    return parser
