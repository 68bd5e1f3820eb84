"""SDK composition root for buildrelay."""

from __future__ import annotations

import json
import shlex
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from buildrelay.contracts.config import BuildRelayConfig
from buildrelay.contracts.exceptions import ConfigError
from buildrelay.contracts.operation import Operation, OperationKind, OperationOutcome, TransportKind
from buildrelay.contracts.progress import ProgressSink
from buildrelay.engine.cancellation import CancellationToken
from buildrelay.engine.invoker import OperationInvoker
from buildrelay.engine.registry import OperationRegistry, default_registry
from buildrelay.engine.runner import OperationRunner
from buildrelay.tools import BuildToolsClient

BUILD_OPERATION = "Electron Build Tools - Building"
SYNC_OPERATION = "Electron Build Tools - Syncing"


def load_config(path: str | Path) -> BuildRelayConfig:
    """Load and validate config from JSON, resolving a relative ``cwd`` against the config directory."""
    config_path = Path(path).expanduser().resolve()

    try:
        raw_payload: Any = json.loads(config_path.read_text(encoding="utf-8"))
        parsed = BuildRelayConfig.model_validate(raw_payload)
    except OSError as exc:
        raise ConfigError(f"failed reading config file: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in config file: {config_path}") from exc
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc

    if parsed.cwd is not None and not parsed.cwd.is_absolute():
        parsed = parsed.model_copy(update={"cwd": (config_path.parent / parsed.cwd).resolve()})
    return parsed


class BuildRelay:
    """buildrelay SDK public API."""

    def __init__(
        self,
        config: BuildRelayConfig | None = None,
        *,
        sink: ProgressSink | None = None,
        registry: OperationRegistry | None = None,
        invoker: OperationInvoker | None = None,
    ) -> None:
        self._config = config or BuildRelayConfig()
        self._sink = sink
        self._registry = registry if registry is not None else default_registry
        self._invoker = invoker

    @classmethod
    def from_config_file(cls, path: str | Path, *, sink: ProgressSink | None = None) -> BuildRelay:
        return cls(load_config(path), sink=sink)

    @property
    def config(self) -> BuildRelayConfig:
        return self._config

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    @property
    def tools(self) -> BuildToolsClient:
        return BuildToolsClient(self._config.executable, registry=self._registry)

    def build_operation(self, target: str | None = None, *, transport: TransportKind | None = None) -> Operation:
        command = f"{shlex.quote(self._config.executable)} build"
        if target:
            command = f"{command} {shlex.quote(target)}"
        return self._operation(BUILD_OPERATION, command, OperationKind.BUILD, transport)

    def sync_operation(self, *, transport: TransportKind | None = None) -> Operation:
        command = f"{shlex.quote(self._config.executable)} sync"
        return self._operation(SYNC_OPERATION, command, OperationKind.SYNC, transport)

    async def build(
        self,
        target: str | None = None,
        *,
        transport: TransportKind | None = None,
        cancellation: CancellationToken | None = None,
        on_result: Callable[[OperationOutcome], None] | None = None,
    ) -> OperationOutcome:
        return await self.run(
            self.build_operation(target, transport=transport),
            cancellation=cancellation,
            on_result=on_result,
        )

    async def sync(
        self,
        *,
        transport: TransportKind | None = None,
        cancellation: CancellationToken | None = None,
        on_result: Callable[[OperationOutcome], None] | None = None,
    ) -> OperationOutcome:
        return await self.run(
            self.sync_operation(transport=transport),
            cancellation=cancellation,
            on_result=on_result,
        )

    async def run(
        self,
        operation: Operation,
        *,
        cancellation: CancellationToken | None = None,
        on_result: Callable[[OperationOutcome], None] | None = None,
    ) -> OperationOutcome:
        runner = OperationRunner(
            operation,
            sink=self._sink,
            invoker=self._invoker,
            registry=self._registry,
            cancellation=cancellation,
            on_result=on_result,
            ninja_status=self._config.ninja_status,
            newline=self._config.newline,
            drain_timeout=self._config.drain_timeout,
            terminate_timeout=self._config.terminate_timeout,
        )
        return await runner.run()

    def _operation(
        self,
        name: str,
        command: str,
        kind: OperationKind,
        transport: TransportKind | None,
    ) -> Operation:
        return Operation(
            name=name,
            command=command,
            kind=kind,
            env=dict(self._config.env),
            transport=transport or self._config.transport_for(kind),
            cwd=self._config.cwd,
        )
