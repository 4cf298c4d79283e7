"""Fetch executor: runs one descriptor page against the document store."""

from __future__ import annotations

import asyncio
import logging

import httpx

from catalog_engine.gateway.base import DocumentStore, DocumentStoreError, UnsupportedQueryError
from catalog_engine.query import PageResult, QueryDescriptor
from catalog_engine.search.errors import BackendUnavailableError

logger = logging.getLogger(__name__)


class FetchExecutor:
    """Stateless wrapper around ``DocumentStore.run_query``.

    Transport faults, store errors and timeouts surface uniformly as
    ``BackendUnavailableError`` so the accumulator can retry the descriptor
    on a later call. ``UnsupportedQueryError`` means the planner produced an
    illegal descriptor and is re-raised unchanged.

    Args:
        store: Backend to query.
        timeout: Per-fetch timeout in seconds; ``None`` disables it.
    """

    def __init__(self, store: DocumentStore, timeout: float | None = None) -> None:
        self._store = store
        self._timeout = timeout

    async def execute(self, descriptor: QueryDescriptor, cursor: str | None = None) -> PageResult:
        """Fetch one page of *descriptor*, resuming after *cursor*.

        Raises:
            BackendUnavailableError: If the fetch failed or timed out.
            UnsupportedQueryError: If the store rejected the descriptor.
        """
        try:
            if self._timeout:
                return await asyncio.wait_for(self._store.run_query(descriptor, cursor), self._timeout)
            return await self._store.run_query(descriptor, cursor)
        except UnsupportedQueryError:
            raise
        except TimeoutError as exc:
            logger.warning("Fetch for %s timed out after %.1fs", descriptor.key, self._timeout)
            raise BackendUnavailableError(descriptor.key, f"Fetch timed out after {self._timeout}s") from exc
        except (DocumentStoreError, httpx.HTTPError) as exc:
            logger.warning("Fetch for %s failed: %s", descriptor.key, exc)
            raise BackendUnavailableError(descriptor.key, str(exc)) from exc
