"""Rich-based operation progress display."""

from __future__ import annotations

from types import TracebackType

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.progress import TaskID as RichTaskID

from buildrelay.contracts.operation import OperationOutcome
from buildrelay.contracts.progress import ProgressSink


class RichProgressSink(ProgressSink):
    """Live terminal progress bar powered by Rich.

    Use as a context manager so the live display is properly started/stopped::

        with RichProgressSink("Building") as sink:
            outcome = await BuildRelay(sink=sink).build()
    """

    TOTAL = 100

    def __init__(self, title: str, *, console: Console | None = None) -> None:
        self._title = title
        self._console = console or Console(stderr=True)
        self._progress = Progress(
            SpinnerColumn(finished_text="[green]✓[/green]"),
            TextColumn("{task.description}"),
            BarColumn(bar_width=30),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=self._console,
            transient=False,
        )
        self._task_id: RichTaskID | None = None
        self._phase: str | None = None

    @property
    def phase(self) -> str | None:
        return self._phase

    @property
    def completed(self) -> float:
        if self._task_id is None:
            return 0.0
        return self._progress.tasks[self._task_id].completed

    def __enter__(self) -> RichProgressSink:
        self._progress.start()
        self._task_id = self._progress.add_task(f"[cyan]{self._title}[/]", total=self.TOTAL)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._progress.stop()

    def report(self, message: str, increment: int | None = None) -> None:
        if self._task_id is None:
            return
        self._phase = message
        self._progress.update(self._task_id, description=f"[cyan]{self._title}[/] {message}")
        if increment:
            self._progress.advance(self._task_id, increment)

    def finish(self, outcome: OperationOutcome) -> None:
        if self._task_id is None:
            return
        if outcome.succeeded:
            self._progress.update(self._task_id, description=f"[green]{self._title}[/]", completed=self.TOTAL)
        elif outcome.canceled:
            self._progress.update(self._task_id, description=f"[yellow]{self._title} canceled[/]")
        else:
            self._progress.update(self._task_id, description=f"[red]✗[/red] {self._title}")
