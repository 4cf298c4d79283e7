"""Backend-neutral query values shared by the planner, executor and stores."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any

from catalog_engine.constants import FIELD_DOC_ID, FilterOp, PlanningAdvisory, SortDirection
from catalog_engine.models import Record


@dataclass(frozen=True, slots=True)
class FieldFilter:
    """One (field, operator, value) triple the backend executes natively."""

    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True, slots=True)
class QueryDescriptor:
    """One backend-legal query.

    Attributes:
        key: Stable name of the descriptor within its plan.
        filters: Conjunction of native field filters.
        order_by: Sort field; stores break ties by document id.
        direction: Sort direction.
        page_size: Maximum documents per page.
        start_after: Optional cursor to resume after.
    """

    key: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: str = FIELD_DOC_ID
    direction: SortDirection = SortDirection.ASC
    page_size: int = 20
    start_after: str | None = None


@dataclass(slots=True)
class PageResult:
    """Ordered raw records of one fetch and the cursor for the next page.

    ``next_cursor`` is None once the backend is exhausted for the descriptor.
    """

    records: list[Record] = field(default_factory=list)
    next_cursor: str | None = None


@dataclass(frozen=True, slots=True)
class QueryPlan:
    """Planner output: descriptors in fixed order plus lossy-planning advisories."""

    descriptors: tuple[QueryDescriptor, ...]
    advisories: tuple[PlanningAdvisory, ...] = ()
    full_scan: bool = False


def encode_cursor(values: list[Any]) -> str:
    """Encode sort-key values of the last document into an opaque cursor."""
    raw = json.dumps(values, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> list[Any]:
    """Inverse of ``encode_cursor``.

    Raises:
        ValueError: If *cursor* was not produced by ``encode_cursor``.
    """
    try:
        values = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
    except (UnicodeError, ValueError) as exc:
        raise ValueError(f"Malformed cursor: {cursor!r}") from exc
    if not isinstance(values, list):
        raise ValueError(f"Malformed cursor: {cursor!r}")
    return values
