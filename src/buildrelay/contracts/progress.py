"""Progress events and the sink protocol that receives them.

The engine translates external-tool output into :data:`ProgressEvent` values;
consumers (e.g. the CLI's Rich progress bar) implement ``ProgressSink`` to
render feedback.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PhaseChanged:
    """The operation entered a named phase.

    ``increment`` is ``None`` when the phase carries no percentage at all and
    ``0`` when it is reported alongside an unchanged percentage.
    """

    message: str
    increment: int | None = None


@dataclass(frozen=True)
class PercentAdvanced:
    """Cumulative progress moved forward by ``increment`` points."""

    message: str
    increment: int


@dataclass(frozen=True)
class NoOp:
    """A line that matched no rule, or a suppressed percentage report."""


NO_OP = NoOp()

ProgressEvent = PhaseChanged | PercentAdvanced | NoOp


class ProgressSink(ABC):
    """Observer interface for operation progress.

    Mirrors a host progress widget: each report may change the phase label
    and may advance the bar by ``increment`` points out of 100.
    """

    @abstractmethod
    def report(self, message: str, increment: int | None = None) -> None:
        """Show *message* and advance cumulative progress by *increment*."""
        ...  # pragma: no cover


class NullProgressSink(ProgressSink):
    """No-op implementation used when no progress display is requested."""

    def report(self, message: str, increment: int | None = None) -> None:
        pass


def deliver(sink: ProgressSink, event: ProgressEvent) -> bool:
    """Forward *event* to *sink*; returns ``False`` for events with no payload."""
    if isinstance(event, PercentAdvanced):
        sink.report(event.message, event.increment)
        return True
    if isinstance(event, PhaseChanged):
        sink.report(event.message, event.increment)
        return True
    return False
