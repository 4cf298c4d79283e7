"""Pagination accumulator: the search engine facade.

``CatalogSearchEngine`` owns the current ``SearchSession`` and drives the
fetch → merge → post-filter loop across backend pages until the caller's
requested number of *matching* records is produced or every descriptor is
exhausted.

Guarantees per session:

* no record id is ever returned twice;
* once exhausted, later calls return nothing and stay exhausted;
* a call either commits all of its progress at the end or none of it
  (cancellation, invalidation and total backend failure leave the session
  as it was before the call);
* at most one ``load_more`` is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from catalog_engine.config import Settings, get_settings
from catalog_engine.constants import PlanningAdvisory
from catalog_engine.gateway.base import DocumentStore
from catalog_engine.models import Criteria, Record
from catalog_engine.query import PageResult, QueryDescriptor
from catalog_engine.search import post_filter
from catalog_engine.search.categories import CategoryHierarchy
from catalog_engine.search.errors import BackendUnavailableError, InvalidCriteriaError, SessionInvalidatedError
from catalog_engine.search.executor import FetchExecutor
from catalog_engine.search.merge import merge
from catalog_engine.search.planner import QueryPlanner
from catalog_engine.search.session import Progress, SearchSession, SessionEvent, SessionState, transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LoadMoreResult:
    """Outcome of one ``load_more`` call.

    Attributes:
        records: New matching records, at most the requested count.
        exhausted: No further results exist for the session.
        truncated: A full scan stopped at the configured page cap.
        advisories: Lossy-planning notes for the session's plan.
        failed_descriptors: Keys whose fetch failed in this call; they are
            retried on the next call.
    """

    records: list[Record]
    exhausted: bool
    truncated: bool = False
    advisories: tuple[PlanningAdvisory, ...] = ()
    failed_descriptors: tuple[str, ...] = ()


class CatalogSearchEngine:
    """Submits criteria and pages through matching catalog records.

    Args:
        store: Document store to query.
        settings: Engine limits; defaults to ``get_settings()``.
        hierarchy: Faculty → label expansion shared by planner and post filter.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        hierarchy: CategoryHierarchy | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._hierarchy = hierarchy or CategoryHierarchy()
        self._executor = FetchExecutor(store, timeout=self._settings.SEARCH_FETCH_TIMEOUT)
        self._planner = QueryPlanner(
            hierarchy=self._hierarchy,
            max_in_values=self._settings.SEARCH_MAX_IN_VALUES,
            max_tokens=self._settings.SEARCH_MAX_TOKENS,
            full_scan_page_size=self._settings.FULL_SCAN_PAGE_SIZE,
        )
        self._current: SearchSession | None = None

    @property
    def current(self) -> SearchSession | None:
        return self._current

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    def submit(self, criteria: Criteria) -> SearchSession:
        """Plan *criteria* and start a new session, invalidating the previous one.

        Raises:
            InvalidCriteriaError: Before any backend call, if the criteria
                cannot be planned. The previous session stays valid.
        """
        plan = self._planner.plan(criteria)
        if self._current is not None:
            self._current.invalidated = True
            logger.info("Search session %s replaced", self._current.id)
        session = SearchSession(criteria=criteria, plan=plan)
        self._current = session
        logger.info(
            "Search session %s started: %d descriptor(s), full_scan=%s, advisories=%s",
            session.id,
            len(plan.descriptors),
            plan.full_scan,
            [a.value for a in plan.advisories],
        )
        return session

    async def load_more(self, session: SearchSession, n: int | None = None) -> LoadMoreResult:
        """Return up to *n* new matching records for *session*.

        *n* defaults to the criteria's page size. Fewer than *n* records are
        returned only when the session is exhausted, the per-call round bound
        was hit, auto-refill is disabled, or some descriptors failed.

        Raises:
            SessionInvalidatedError: If *session* was replaced, including
                while this call was in flight.
            SessionBusyError: If another call is in flight for *session*.
            BackendUnavailableError: If every fetch failed and there is
                nothing to return.
            InvalidCriteriaError: If *n* is not positive.
            asyncio.CancelledError: If the call was cancelled.
        """
        if session.invalidated:
            raise SessionInvalidatedError()
        count = session.criteria.page_size if n is None else n
        if count < 1:
            raise InvalidCriteriaError("n", f"must be positive, got {count}")
        if session.state == SessionState.EXHAUSTED or (
            session.state == SessionState.IDLE and session.exhausted
        ):
            return self._exhausted_result(session)

        session.state = transition(session.state, SessionEvent.BEGIN)
        outcome = SessionEvent.ABORT
        task = asyncio.ensure_future(self._load(session, count))
        session.task = task
        try:
            result = await task
            outcome = SessionEvent.EXHAUST if result.exhausted else SessionEvent.COMPLETE
            return result
        finally:
            session.task = None
            session.state = transition(session.state, outcome)

    def cancel(self, session: SearchSession) -> bool:
        """Abandon the in-flight ``load_more`` of *session*, if any.

        The session keeps the state it had before the cancelled call.
        Returns whether a call was cancelled.
        """
        task = session.task
        if task is None or task.done():
            return False
        logger.info("Cancelling load_more for session %s", session.id)
        return task.cancel()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _exhausted_result(session: SearchSession) -> LoadMoreResult:
        return LoadMoreResult(
            records=[],
            exhausted=True,
            truncated=session.truncated,
            advisories=session.plan.advisories,
        )

    async def _fetch_round(
        self, descriptors: list[QueryDescriptor], staged: Progress
    ) -> list[PageResult | BaseException]:
        return await asyncio.gather(
            *(self._executor.execute(d, staged.cursors.get(d.key)) for d in descriptors),
            return_exceptions=True,
        )

    async def _load(self, session: SearchSession, n: int) -> LoadMoreResult:
        settings = self._settings
        plan = session.plan
        staged = session.progress.copy()
        failed: list[str] = []
        fetched_any = False
        rounds = 0

        while len(staged.pending) < n:
            active = [
                d for d in plan.descriptors if d.key not in staged.exhausted_keys and d.key not in failed
            ]
            if not active:
                break
            if rounds >= settings.SEARCH_MAX_ROUNDS_PER_CALL:
                logger.info("Session %s hit the round bound (%d) for this call", session.id, rounds)
                break
            rounds += 1

            results = await self._fetch_round(active, staged)
            batches: list[PageResult] = []
            for descriptor, result in zip(active, results):
                if isinstance(result, BackendUnavailableError):
                    failed.append(descriptor.key)
                    continue
                if isinstance(result, BaseException):
                    raise result
                fetched_any = True
                batches.append(result)
                if result.next_cursor is None or len(result.records) < descriptor.page_size:
                    staged.exhausted_keys.add(descriptor.key)
                else:
                    staged.cursors[descriptor.key] = result.next_cursor
                if plan.full_scan:
                    staged.pages_fetched += 1

            fresh = merge(batches, exclude=staged.seen_ids)
            staged.seen_ids.update(r.id for batch in batches for r in batch.records)
            matched = post_filter.apply(fresh, session.criteria, self._hierarchy)
            staged.pending.extend(matched)
            logger.debug(
                "Session %s round %d: %d fetched, %d new, %d matched",
                session.id,
                rounds,
                sum(len(b.records) for b in batches),
                len(fresh),
                len(matched),
            )

            if plan.full_scan and staged.pages_fetched >= settings.FULL_SCAN_MAX_PAGES:
                live = {d.key for d in plan.descriptors} - staged.exhausted_keys
                if live:
                    logger.warning(
                        "Full scan for session %s stopped after %d pages; results truncated",
                        session.id,
                        staged.pages_fetched,
                    )
                    staged.truncated = True
                    staged.exhausted_keys.update(live)

            if not settings.SEARCH_AUTO_REFILL:
                break

        if session.invalidated:
            raise SessionInvalidatedError()

        if failed and not fetched_any and not staged.pending:
            # No descriptor answered; leave the session untouched so the next call retries
            raise BackendUnavailableError(failed[0], f"All fetches failed for {', '.join(failed)}")

        delivered = staged.pending[:n]
        staged.pending = staged.pending[n:]
        session.progress = staged
        session.records.extend(delivered)

        return LoadMoreResult(
            records=delivered,
            exhausted=session.exhausted,
            truncated=staged.truncated,
            advisories=plan.advisories,
            failed_descriptors=tuple(failed),
        )
