"""Thin client for the build tools' short-lived helper commands."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from buildrelay.contracts.exceptions import BuildToolsError
from buildrelay.contracts.operation import Operation, OperationKind
from buildrelay.engine.registry import OperationRegistry, default_registry

logger = logging.getLogger(__name__)

SHOW_TARGETS = ("exe", "outdir", "root", "goma")
CHANGE_CONFIG_OPERATION = "Electron Build Tools - Changing Config"


@dataclass(frozen=True)
class ConfigListing:
    configs: list[str] = field(default_factory=list)
    active: str | None = None


def parse_configs_output(output: str) -> ConfigListing:
    """Parse ``show configs`` output; a leading ``*`` marks the active config."""
    configs: list[str] = []
    active: str | None = None
    for raw in output.strip().splitlines():
        name = raw.replace("*", "").strip()
        if not name:
            continue
        configs.append(name)
        if raw.strip().startswith("*"):
            active = name
    return ConfigListing(configs=configs, active=active)


def configs_dir() -> Path:
    return Path.home() / ".electron_build_tools" / "configs"


class BuildToolsClient:
    def __init__(self, executable: str = "electron-build-tools", *, registry: OperationRegistry | None = None) -> None:
        self._executable = executable
        self._registry = registry if registry is not None else default_registry

    @property
    def executable(self) -> str:
        return self._executable

    def is_installed(self) -> bool:
        return shutil.which(self._executable) is not None

    async def list_configs(self) -> ConfigListing:
        return parse_configs_output(await self._run("show", "configs"))

    async def show(self, what: str) -> str:
        if what not in SHOW_TARGETS:
            raise BuildToolsError(f"Unknown show target: {what}")
        return (await self._run("show", what)).strip()

    async def use_config(self, name: str) -> None:
        await self._change_config(("use", name), expected=f"Now using config {name}")

    async def remove_config(self, name: str) -> None:
        await self._change_config(("remove", name), expected=f"Removed config {name}")

    async def sanitize_config(self, name: str) -> None:
        await self._change_config(("sanitize-config", name), expected=f"SUCCESS Sanitized contents of {name}")

    async def _change_config(self, args: tuple[str, ...], *, expected: str) -> None:
        operation = Operation(
            name=CHANGE_CONFIG_OPERATION,
            command=" ".join((self._executable, *args)),
            kind=OperationKind.CHANGE_CONFIG,
        )
        with self._registry.track(operation):
            stdout = await self._run(*args)
        if stdout.strip() != expected:
            raise BuildToolsError(f"'{operation.command}' returned unexpected output: {stdout.strip()}")

    async def _run(self, *args: str) -> str:
        logger.debug("Running %s %s", self._executable, " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                self._executable,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise BuildToolsError(f"Failed to execute {self._executable}: {exc}") from exc

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            details = stderr.decode(errors="replace").strip()
            message = f"{self._executable} {' '.join(args)} failed with exit code {process.returncode}"
            if details:
                message = f"{message}: {details}"
            raise BuildToolsError(message)
        return stdout.decode(errors="replace")
