"""Per-criteria pagination state and its lifecycle."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import StrEnum

from catalog_engine.models import Criteria, Record
from catalog_engine.query import QueryPlan
from catalog_engine.search.errors import SessionBusyError


class SessionState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"


class SessionEvent(StrEnum):
    BEGIN = "begin"
    COMPLETE = "complete"
    EXHAUST = "exhaust"
    ABORT = "abort"


_TRANSITIONS: dict[tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.IDLE, SessionEvent.BEGIN): SessionState.FETCHING,
    (SessionState.FETCHING, SessionEvent.COMPLETE): SessionState.IDLE,
    (SessionState.FETCHING, SessionEvent.EXHAUST): SessionState.EXHAUSTED,
    (SessionState.FETCHING, SessionEvent.ABORT): SessionState.IDLE,
}


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state reached from *state* on *event*.

    Raises:
        SessionBusyError: If a fetch is begun while one is in flight.
        ValueError: For any other transition the lifecycle does not allow.
    """
    if state == SessionState.FETCHING and event == SessionEvent.BEGIN:
        raise SessionBusyError()
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise ValueError(f"Illegal session transition: {state} on {event}") from None


@dataclass(slots=True)
class Progress:
    """Mutable pagination progress; staged per call and committed once."""

    seen_ids: set[str] = field(default_factory=set)
    cursors: dict[str, str] = field(default_factory=dict)
    exhausted_keys: set[str] = field(default_factory=set)
    pending: list[Record] = field(default_factory=list)
    pages_fetched: int = 0
    truncated: bool = False

    def copy(self) -> Progress:
        return Progress(
            seen_ids=set(self.seen_ids),
            cursors=dict(self.cursors),
            exhausted_keys=set(self.exhausted_keys),
            pending=list(self.pending),
            pages_fetched=self.pages_fetched,
            truncated=self.truncated,
        )


@dataclass(slots=True)
class SearchSession:
    """Caller-owned pagination state for one ``Criteria``.

    Replaced, never reused, when the criteria change.
    """

    criteria: Criteria
    plan: QueryPlan
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    records: list[Record] = field(default_factory=list)
    progress: Progress = field(default_factory=Progress)
    invalidated: bool = False
    task: asyncio.Task | None = None

    @property
    def exhausted(self) -> bool:
        """True once every descriptor is exhausted and nothing is pending."""
        keys = {d.key for d in self.plan.descriptors}
        return keys <= self.progress.exhausted_keys and not self.progress.pending

    @property
    def truncated(self) -> bool:
        return self.progress.truncated
