"""Catalog search package: planning, fetching, filtering and pagination."""

from catalog_engine.search.accumulator import CatalogSearchEngine, LoadMoreResult
from catalog_engine.search.categories import CategoryHierarchy
from catalog_engine.search.errors import (
    BackendUnavailableError,
    CatalogSearchError,
    InvalidCriteriaError,
    SessionBusyError,
    SessionInvalidatedError,
)
from catalog_engine.search.planner import QueryPlanner
from catalog_engine.search.session import SearchSession, SessionState

__all__ = [
    "BackendUnavailableError",
    "CatalogSearchEngine",
    "CatalogSearchError",
    "CategoryHierarchy",
    "InvalidCriteriaError",
    "LoadMoreResult",
    "QueryPlanner",
    "SearchSession",
    "SessionBusyError",
    "SessionInvalidatedError",
    "SessionState",
]
