"""Terminating a process together with every descendant it spawned."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from contextlib import suppress

import psutil

logger = logging.getLogger(__name__)


def _descendants(pid: int) -> list[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.NoSuchProcess:
        return []


def _signal_all(processes: list[psutil.Process], *, kill: bool) -> None:
    for proc in processes:
        with suppress(psutil.NoSuchProcess):
            if kill:
                proc.kill()
            else:
                proc.terminate()


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    """Signal the process group *process* leads, reaching children forked after any snapshot."""
    if sys.platform == "win32" or process.returncode is not None:
        return
    with suppress(ProcessLookupError, PermissionError):
        if os.getpgid(process.pid) == process.pid:
            os.killpg(process.pid, sig)


async def terminate_process_tree(process: asyncio.subprocess.Process, *, timeout: float = 3.0) -> None:
    """Terminate *process* and its descendants, escalating to kill after *timeout*.

    Descendants are snapshotted before the root is signalled so they cannot
    escape by being reparented. The root itself is signalled and reaped
    through asyncio so its exit status still reaches ``process.wait()``. When
    the root leads its own process group the whole group is signalled too.
    """
    descendants = _descendants(process.pid) if process.returncode is None else []
    logger.debug("Terminating pid %s and %d descendant(s)", process.pid, len(descendants))

    _signal_all(descendants, kill=False)
    _signal_group(process, signal.SIGTERM)
    if process.returncode is None:
        with suppress(ProcessLookupError):
            process.terminate()

    _, alive = await asyncio.to_thread(psutil.wait_procs, descendants, timeout=timeout)
    try:
        await asyncio.wait_for(process.wait(), timeout)
    except TimeoutError:
        logger.debug("pid %s ignored terminate, killing", process.pid)
        _signal_group(process, signal.SIGKILL)
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()

    if alive:
        logger.debug("Killing %d descendant(s) that ignored terminate", len(alive))
        _signal_all(alive, kill=True)
        await asyncio.to_thread(psutil.wait_procs, alive, timeout=timeout)
