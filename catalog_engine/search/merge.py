"""Merge fetched batches into one ordered, duplicate-free stream."""

from __future__ import annotations

from collections.abc import Iterable, Set

from catalog_engine.models import Record
from catalog_engine.query import PageResult


def merge(batches: Iterable[PageResult], exclude: Set[str] = frozenset()) -> list[Record]:
    """Concatenate *batches* in order, keeping the first record per id.

    Records whose id is in *exclude* (already seen by the session) are
    dropped. Order within a batch is never changed.
    """
    seen = set(exclude)
    merged: list[Record] = []
    for batch in batches:
        for record in batch.records:
            if record.id in seen:
                continue
            seen.add(record.id)
            merged.append(record)
    return merged
