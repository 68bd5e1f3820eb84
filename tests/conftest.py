"""Shared test fixtures for buildrelay tests."""

from __future__ import annotations

import pytest

from buildrelay.contracts.operation import Operation, OperationKind, TransportKind
from buildrelay.engine.registry import OperationRegistry


@pytest.fixture
def build_operation() -> Operation:
    """A build operation that never touches a real executable."""
    return Operation(
        name="Electron Build Tools - Building",
        command="electron-build-tools build",
        kind=OperationKind.BUILD,
        transport=TransportKind.PIPE,
    )


@pytest.fixture
def sync_operation() -> Operation:
    return Operation(
        name="Electron Build Tools - Syncing",
        command="electron-build-tools sync",
        kind=OperationKind.SYNC,
        transport=TransportKind.PIPE,
    )


@pytest.fixture
def registry() -> OperationRegistry:
    """A private registry so tests never share busy state."""
    return OperationRegistry()
