"""Rule-table parser turning external-tool output lines into progress events.

Each operation kind owns an ordered tuple of :class:`ProgressRule`. The first
rule whose predicate matches a line builds the event; a line no rule matches
yields :data:`NO_OP`, which keeps the parser tolerant of tool output it has
never seen.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from buildrelay.contracts.operation import OperationKind
from buildrelay.contracts.progress import NO_OP, PercentAdvanced, PhaseChanged, ProgressEvent

_REGENERATING = re.compile(r"regenerating ninja files", re.IGNORECASE)
_LEADING_PERCENT = re.compile(r"^\s*(\d+)%")
_STARTING_GOMA = re.compile(r"Running.*goma")
_STARTING_NINJA = re.compile(r"Running.*ninja")
_APPLYING_PATCHES = re.compile(r"running.*apply_all_patches\.py")
_PATCHES_HOOK_DONE = re.compile(r"Hook.*apply_all_patches\.py.*took")

MAX_PERCENT = 100


@dataclass
class ParserState:
    """Per-operation parser memory, created fresh at operation start."""

    last_percent: int = 0
    dependencies_reported: bool = False


@dataclass(frozen=True)
class ProgressRule:
    name: str
    predicate: Callable[[str, ParserState], bool]
    build: Callable[[str, ParserState], ProgressEvent]


def leading_percent(line: str) -> int | None:
    """Integer immediately preceding a ``%`` at the start of *line*, if any."""
    match = _LEADING_PERCENT.match(line)
    if match is None:
        return None
    return min(int(match.group(1)), MAX_PERCENT)


def _advance(line: str, state: ParserState) -> ProgressEvent:
    value = leading_percent(line)
    if value is None or value <= state.last_percent:
        return NO_OP
    increment = value - state.last_percent
    state.last_percent = value
    return PercentAdvanced("Compiling", increment)


def _phase(message: str, increment: int | None = None) -> Callable[[str, ParserState], ProgressEvent]:
    event = PhaseChanged(message, increment)
    return lambda line, state: event


def _matches(pattern: re.Pattern[str]) -> Callable[[str, ParserState], bool]:
    return lambda line, state: pattern.search(line) is not None


def _first_unmatched(line: str, state: ParserState) -> ProgressEvent:
    state.dependencies_reported = True
    return PhaseChanged("Dependencies")


BUILD_RULES: tuple[ProgressRule, ...] = (
    ProgressRule("regenerating", _matches(_REGENERATING), _phase("Regenerating Ninja Files", 0)),
    ProgressRule("percent", lambda line, state: leading_percent(line) is not None, _advance),
    ProgressRule("starting-goma", _matches(_STARTING_GOMA), _phase("Starting Goma")),
    ProgressRule("starting-ninja", _matches(_STARTING_NINJA), _phase("Starting")),
)

SYNC_RULES: tuple[ProgressRule, ...] = (
    ProgressRule("applying-patches", _matches(_APPLYING_PATCHES), _phase("Applying Patches")),
    ProgressRule("finishing-up", _matches(_PATCHES_HOOK_DONE), _phase("Finishing Up")),
    ProgressRule("dependencies", lambda line, state: not state.dependencies_reported, _first_unmatched),
)

RULES_BY_KIND: dict[OperationKind, tuple[ProgressRule, ...]] = {
    OperationKind.BUILD: BUILD_RULES,
    OperationKind.SYNC: SYNC_RULES,
}


class ProgressParser:
    """Evaluates one operation's rule table line by line.

    The baseline only ever moves up, so percentage events are non-decreasing
    for the lifetime of the parser; a new parser is created per operation.
    """

    def __init__(self, kind: OperationKind, rules: Sequence[ProgressRule] | None = None) -> None:
        self._kind = kind
        self._rules = tuple(rules) if rules is not None else RULES_BY_KIND.get(kind, ())
        self._state = ParserState()

    @property
    def kind(self) -> OperationKind:
        return self._kind

    @property
    def baseline(self) -> int:
        return self._state.last_percent

    def parse(self, line: str) -> ProgressEvent:
        for rule in self._rules:
            if rule.predicate(line, self._state):
                return rule.build(line, self._state)
        return NO_OP
