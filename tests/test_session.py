"""Tests for the search session lifecycle."""

import pytest
from conftest import make_record

from catalog_engine.models import Criteria
from catalog_engine.query import QueryDescriptor, QueryPlan
from catalog_engine.search.errors import SessionBusyError
from catalog_engine.search.session import Progress, SearchSession, SessionEvent, SessionState, transition


def _session(*keys: str) -> SearchSession:
    plan = QueryPlan(descriptors=tuple(QueryDescriptor(key=k) for k in keys))
    return SearchSession(criteria=Criteria(), plan=plan)


class TestTransition:
    """State machine idle → fetching → (idle | exhausted)."""

    def test_begin_from_idle(self):
        """Beginning a fetch moves idle to fetching."""
        assert transition(SessionState.IDLE, SessionEvent.BEGIN) == SessionState.FETCHING

    def test_complete_and_exhaust(self):
        """A finished fetch settles to idle or exhausted."""
        assert transition(SessionState.FETCHING, SessionEvent.COMPLETE) == SessionState.IDLE
        assert transition(SessionState.FETCHING, SessionEvent.EXHAUST) == SessionState.EXHAUSTED

    def test_abort_returns_to_idle(self):
        """An aborted fetch returns to idle."""
        assert transition(SessionState.FETCHING, SessionEvent.ABORT) == SessionState.IDLE

    def test_begin_while_fetching_is_busy(self):
        """A second fetch while one is in flight is rejected as busy."""
        with pytest.raises(SessionBusyError):
            transition(SessionState.FETCHING, SessionEvent.BEGIN)

    def test_exhausted_is_terminal(self):
        """Nothing leaves the exhausted state."""
        with pytest.raises(ValueError):
            transition(SessionState.EXHAUSTED, SessionEvent.BEGIN)


class TestProgress:
    """Staged progress copies."""

    def test_copy_is_independent(self):
        """Mutating a copy leaves the original unchanged."""
        original = Progress(seen_ids={"a"}, cursors={"primary": "c1"}, pending=[make_record("a")])
        staged = original.copy()
        staged.seen_ids.add("b")
        staged.cursors["primary"] = "c2"
        staged.pending.clear()
        staged.pages_fetched = 3
        assert original.seen_ids == {"a"}
        assert original.cursors == {"primary": "c1"}
        assert len(original.pending) == 1
        assert original.pages_fetched == 0


class TestSearchSession:
    """Session-level flags."""

    def test_new_session_not_exhausted(self):
        """A fresh session has live descriptors."""
        session = _session("primary")
        assert session.exhausted is False
        assert session.state == SessionState.IDLE

    def test_exhausted_when_all_descriptors_done(self):
        """Every descriptor exhausted and nothing pending means exhausted."""
        session = _session("a", "b")
        session.progress.exhausted_keys.update({"a", "b"})
        assert session.exhausted is True

    def test_pending_keeps_session_alive(self):
        """Buffered matches keep the session from being exhausted."""
        session = _session("a")
        session.progress.exhausted_keys.add("a")
        session.progress.pending.append(make_record("r1"))
        assert session.exhausted is False

    def test_ids_unique(self):
        """Each session gets its own id."""
        assert _session("a").id != _session("a").id
