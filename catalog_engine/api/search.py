"""Catalog search API.

Provides:
- ``POST /search/sessions`` -- Submit criteria and start a search session.
- ``POST /search/sessions/{session_id}/more`` -- Load the next matching records.
- ``DELETE /search/sessions/{session_id}`` -- Cancel in-flight loading and drop the session.

Each client (``X-Client-Id`` header) owns one search engine, so a new
submission replaces only that client's previous session. Loading from a
replaced session answers 410, and a load cancelled by ``DELETE`` answers
409 with detail ``"cancelled"``. Deleting a client's current session also
releases that client's engine.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field, ValidationError

from catalog_engine.config import Settings, get_settings
from catalog_engine.constants import DeliveryMode
from catalog_engine.gateway import DocumentStore, FirestoreDocumentStore, InMemoryDocumentStore
from catalog_engine.models import Criteria, Record
from catalog_engine.search import (
    BackendUnavailableError,
    CatalogSearchEngine,
    InvalidCriteriaError,
    SearchSession,
    SessionBusyError,
    SessionInvalidatedError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

DEFAULT_CLIENT_ID = "anonymous"


# ---------------------------------------------------------------------------
# Request & Response schemas
# ---------------------------------------------------------------------------


class DaySlot(BaseModel):
    day: str
    period: int


class SearchSessionRequest(BaseModel):
    """Search criteria as submitted by the browser form."""

    keyword: str | None = None
    category_coarse: str | None = None
    category_fine: str | None = None
    campus: str | None = None
    delivery_mode: DeliveryMode | None = None
    grade: str | None = None
    day_slots: list[DaySlot] = []
    term: str | None = None
    undecided: bool = False
    page_size: int | None = Field(None, ge=1, le=200)
    cursor: str | None = None

    def to_criteria(self) -> Criteria:
        data = self.model_dump(exclude_none=True)
        data["day_slots"] = [(slot.day, slot.period) for slot in self.day_slots]
        return Criteria(**data)


class SearchSessionResponse(BaseModel):
    session_id: str
    descriptors: list[str]
    full_scan: bool
    advisories: list[str] = []


class LoadMoreResponse(BaseModel):
    session_id: str
    records: list[Record]
    exhausted: bool
    truncated: bool = False
    advisories: list[str] = []
    failed_descriptors: list[str] = []


class CancelResponse(BaseModel):
    session_id: str
    cancelled: bool


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------


class SessionRegistry:
    """One ``CatalogSearchEngine`` per client, plus a session id index.

    A replaced session stays registered until its client submits again, so
    late requests against it can be told apart from unknown ids. Engines are
    kept for at most ``SEARCH_MAX_CLIENTS`` clients; the least recently used
    client is forgotten first.
    """

    def __init__(self, store: DocumentStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._engines: OrderedDict[str, CatalogSearchEngine] = OrderedDict()
        self._sessions: dict[str, tuple[str, SearchSession]] = {}

    @property
    def client_count(self) -> int:
        return len(self._engines)

    def engine_for(self, client_id: str) -> CatalogSearchEngine:
        engine = self._engines.get(client_id)
        if engine is None:
            engine = CatalogSearchEngine(self._store, settings=self._settings)
            self._engines[client_id] = engine
            while len(self._engines) > self._settings.SEARCH_MAX_CLIENTS:
                oldest, _ = next(iter(self._engines.items()))
                logger.info("Dropping search engine of idle client=%s", oldest)
                self._forget_client(oldest)
        else:
            self._engines.move_to_end(client_id)
        return engine

    def submit(self, client_id: str, criteria: Criteria) -> SearchSession:
        engine = self.engine_for(client_id)
        previous = engine.current
        session = engine.submit(criteria)
        stale = [
            sid
            for sid, (owner, s) in self._sessions.items()
            if owner == client_id and s.invalidated and s is not previous
        ]
        for sid in stale:
            del self._sessions[sid]
        self._sessions[session.id] = (client_id, session)
        return session

    def get(self, session_id: str) -> tuple[CatalogSearchEngine, SearchSession]:
        """Raises ``KeyError`` for unknown session ids."""
        client_id, session = self._sessions[session_id]
        engine = self._engines[client_id]
        self._engines.move_to_end(client_id)
        return engine, session

    def remove(self, session_id: str) -> None:
        """Forget *session_id*; removing a client's current session releases its engine."""
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return
        client_id, session = entry
        engine = self._engines.get(client_id)
        if engine is not None and engine.current is session:
            self._forget_client(client_id)

    def _forget_client(self, client_id: str) -> None:
        self._engines.pop(client_id, None)
        for sid in [sid for sid, (owner, _) in self._sessions.items() if owner == client_id]:
            del self._sessions[sid]

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self) -> None:
        await self._store.close()


def build_store(settings: Settings) -> DocumentStore:
    """Create the document store selected by ``CATALOG_BACKEND``.

    Extracted as a function to allow easy mocking in tests.
    """
    if settings.CATALOG_BACKEND == "firestore":
        return FirestoreDocumentStore(
            settings.firestore_documents_url,
            settings.FIRESTORE_COLLECTION,
            access_token=settings.FIRESTORE_ACCESS_TOKEN,
            timeout=settings.FIRESTORE_TIMEOUT,
            max_set_width=settings.SEARCH_MAX_IN_VALUES,
        )
    if settings.CATALOG_BACKEND != "memory":
        raise ValueError(f"Unknown CATALOG_BACKEND: {settings.CATALOG_BACKEND!r}")
    if settings.CATALOG_SNAPSHOT_PATH:
        return InMemoryDocumentStore.load_json(
            settings.CATALOG_SNAPSHOT_PATH, max_set_width=settings.SEARCH_MAX_IN_VALUES
        )
    logger.warning("No CATALOG_SNAPSHOT_PATH configured; serving an empty catalog")
    return InMemoryDocumentStore({}, max_set_width=settings.SEARCH_MAX_IN_VALUES)


_registry: SessionRegistry | None = None


def get_registry() -> SessionRegistry:
    """Return the process-wide session registry, building it on first use."""
    global _registry
    if _registry is None:
        settings = get_settings()
        _registry = SessionRegistry(build_store(settings), settings=settings)
    return _registry


async def close_registry() -> None:
    global _registry
    if _registry is not None:
        await _registry.close()
        _registry = None


def _lookup(registry: SessionRegistry, session_id: str) -> tuple[CatalogSearchEngine, SearchSession]:
    try:
        return registry.get(session_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown search session: {session_id}",
        ) from None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/sessions", response_model=SearchSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SearchSessionRequest,
    x_client_id: str = Header(DEFAULT_CLIENT_ID),  # noqa: B008
    registry: SessionRegistry = Depends(get_registry),  # noqa: B008
) -> SearchSessionResponse:
    """Submit search criteria, replacing the client's previous session."""
    try:
        criteria = body.to_criteria()
        session = registry.submit(x_client_id, criteria)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    except InvalidCriteriaError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": exc.field, "message": exc.message},
        ) from exc

    logger.info("Search session %s created for client=%s", session.id, x_client_id)
    return SearchSessionResponse(
        session_id=session.id,
        descriptors=[d.key for d in session.plan.descriptors],
        full_scan=session.plan.full_scan,
        advisories=[a.value for a in session.plan.advisories],
    )


@router.post("/sessions/{session_id}/more", response_model=LoadMoreResponse)
async def load_more(
    session_id: str,
    n: int | None = Query(None, ge=1, le=200, description="Number of matching records to load"),  # noqa: B008
    registry: SessionRegistry = Depends(get_registry),  # noqa: B008
) -> LoadMoreResponse:
    """Load up to ``n`` new matching records for a session."""
    engine, session = _lookup(registry, session_id)
    try:
        result = await engine.load_more(session, n)
    except SessionInvalidatedError as exc:
        registry.remove(session_id)
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc)) from exc
    except SessionBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except BackendUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message) from exc
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            # The request itself is being torn down
            raise
        # Cancelled through DELETE /sessions/{session_id}
        logger.info("Load for search session %s was cancelled", session_id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="cancelled") from None

    return LoadMoreResponse(
        session_id=session.id,
        records=result.records,
        exhausted=result.exhausted,
        truncated=result.truncated,
        advisories=[a.value for a in result.advisories],
        failed_descriptors=list(result.failed_descriptors),
    )


@router.delete("/sessions/{session_id}", response_model=CancelResponse)
async def delete_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),  # noqa: B008
) -> CancelResponse:
    """Cancel any in-flight load for the session and forget it."""
    engine, session = _lookup(registry, session_id)
    cancelled = engine.cancel(session)
    registry.remove(session_id)
    return CancelResponse(session_id=session_id, cancelled=cancelled)
