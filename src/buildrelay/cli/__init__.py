"""Command-line interface for buildrelay."""

from __future__ import annotations

from buildrelay.cli.app import main as main
from buildrelay.cli.parser import build_parser as build_parser

__all__ = ["build_parser", "main"]
