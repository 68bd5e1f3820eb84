"""Starting external commands as child processes."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
import subprocess
import sys
from collections.abc import Mapping
from typing import Any

from buildrelay.contracts.exceptions import SpawnError
from buildrelay.contracts.operation import Operation, OperationKind

logger = logging.getLogger(__name__)

DEFAULT_NINJA_STATUS = "%p %f/%t "


def build_environment(
    kind: OperationKind,
    overrides: Mapping[str, str] | None = None,
    *,
    base: Mapping[str, str] | None = None,
    ninja_status: str = DEFAULT_NINJA_STATUS,
) -> dict[str, str]:
    """Child environment: *base* (default ``os.environ``) plus *overrides*.

    Builds additionally force ``NINJA_STATUS`` so ninja prints
    ``"<percent>% <done>/<total>"`` status lines.
    """
    env = dict(os.environ if base is None else base)
    if overrides:
        env.update(overrides)
    if kind is OperationKind.BUILD:
        env["NINJA_STATUS"] = ninja_status
    return env


def _quote(value: str) -> str:
    if sys.platform == "win32":
        return subprocess.list2cmdline([value])
    return shlex.quote(value)


def relay_pipeline(command: str, endpoint: str, *, python: str | None = None) -> str:
    """Shell pipeline piping *command* through the forwarding helper."""
    interpreter = python or sys.executable
    return f"{command} | {_quote(interpreter)} -m buildrelay.tee {_quote(endpoint)}"


def _isolation_kwargs() -> dict[str, Any]:
    # A fresh process group/session keeps terminal signals away from the tree
    # and lets termination address every descendant.
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class OperationInvoker:
    """Spawns an operation's command, directly or through the forwarding helper."""

    def __init__(self, *, python: str | None = None) -> None:
        self._python = python

    async def spawn(
        self,
        operation: Operation,
        *,
        env: Mapping[str, str],
        relay_endpoint: str | None = None,
    ) -> asyncio.subprocess.Process:
        kwargs: dict[str, Any] = {
            "stdin": asyncio.subprocess.DEVNULL,
            "cwd": operation.cwd,
            "env": dict(env),
            **_isolation_kwargs(),
        }
        try:
            if relay_endpoint is None:
                process = await asyncio.create_subprocess_shell(
                    operation.command,
                    stdout=asyncio.subprocess.PIPE,
                    **kwargs,
                )
            else:
                process = await self._spawn_relayed(operation.command, relay_endpoint, kwargs)
        except OSError as exc:
            raise SpawnError(
                f"'{operation.name}' had an error occur: {exc}",
                operation_name=operation.name,
            ) from exc

        logger.debug("Started '%s' (pid %s)", operation.command, process.pid)
        return process

    async def _spawn_relayed(
        self,
        command: str,
        endpoint: str,
        kwargs: dict[str, Any],
    ) -> asyncio.subprocess.Process:
        pipeline = relay_pipeline(command, endpoint, python=self._python)
        bash = shutil.which("bash") if sys.platform != "win32" else None
        if bash is not None:
            # pipefail keeps the command's exit status instead of the helper's.
            return await asyncio.create_subprocess_exec(bash, "-o", "pipefail", "-c", pipeline, **kwargs)
        logger.warning("bash not found; exit status of '%s' will come from the relay helper", command)
        return await asyncio.create_subprocess_shell(pipeline, **kwargs)
