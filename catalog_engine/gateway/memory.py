"""In-memory document store over a local catalog snapshot.

Evaluates descriptors the way the remote store would, including its limits:
illegal descriptors are rejected with ``UnsupportedQueryError`` rather than
silently answered. Used for offline browsing of an exported catalog and as
the backend in tests.

Snapshot files are JSON: either a list of documents carrying an ``id`` key,
or an object mapping document id to document. Documents without an
``ngrams`` array get one built at load time.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from catalog_engine.constants import (
    FIELD_DOC_ID,
    FIELD_INSTRUCTOR,
    FIELD_TITLE,
    FIELD_TOKENS,
    FilterOp,
    SortDirection,
)
from catalog_engine.gateway.base import DocumentStore, DocumentStoreError, check_contract
from catalog_engine.models import Record
from catalog_engine.query import FieldFilter, PageResult, QueryDescriptor, decode_cursor, encode_cursor
from catalog_engine.search.tokenizer import document_tokens

logger = logging.getLogger(__name__)

_MISSING = object()


def _lookup(doc_id: str, data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted field path; ``__name__`` is the document id."""
    if path == FIELD_DOC_ID:
        return doc_id
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _comparable(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    numbers = (int, float)
    return (isinstance(left, numbers) and isinstance(right, numbers)) or type(left) is type(right)


def _matches(doc_id: str, data: Mapping[str, Any], f: FieldFilter) -> bool:
    value = _lookup(doc_id, data, f.field)
    if value is _MISSING:
        return False
    if f.op == FilterOp.EQ:
        return value == f.value
    if f.op == FilterOp.IN:
        return value in f.value
    if f.op == FilterOp.ARRAY_CONTAINS:
        return isinstance(value, list) and f.value in value
    if f.op == FilterOp.ARRAY_CONTAINS_ANY:
        return isinstance(value, list) and any(v in value for v in f.value)
    if not _comparable(value, f.value):
        return False
    if f.op == FilterOp.GTE:
        return value >= f.value
    if f.op == FilterOp.LT:
        return value < f.value
    raise DocumentStoreError(f"Unknown filter operator: {f.op!r}")


class InMemoryDocumentStore(DocumentStore):
    """Document store backed by a dict of ``{doc_id: document}``.

    Args:
        documents: Catalog documents keyed by document id.
        max_set_width: Width limit enforced for "in" / array-contains-any.
    """

    def __init__(self, documents: Mapping[str, Mapping[str, Any]], max_set_width: int = 10) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._max_set_width = max_set_width
        for doc_id, data in documents.items():
            doc = dict(data)
            if not doc.get(FIELD_TOKENS):
                doc[FIELD_TOKENS] = document_tokens(str(doc.get(FIELD_TITLE, "")), str(doc.get(FIELD_INSTRUCTOR, "")))
            self._documents[str(doc_id)] = doc
        self.queries_run = 0

    @classmethod
    def from_records(cls, records: Iterable[Record], max_set_width: int = 10) -> InMemoryDocumentStore:
        return cls({r.id: r.to_document() for r in records}, max_set_width=max_set_width)

    @classmethod
    def load_json(cls, path: str | Path, max_set_width: int = 10) -> InMemoryDocumentStore:
        """Load a catalog snapshot file.

        Raises:
            DocumentStoreError: If the file is missing or not a valid snapshot.
        """
        snapshot_path = Path(path)
        try:
            raw = json.loads(snapshot_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise DocumentStoreError(f"Cannot read catalog snapshot {snapshot_path}: {exc}") from exc

        if isinstance(raw, dict):
            documents = {str(k): v for k, v in raw.items() if isinstance(v, dict)}
        elif isinstance(raw, list):
            documents = {}
            for entry in raw:
                if isinstance(entry, dict) and entry.get("id") is not None:
                    doc = {k: v for k, v in entry.items() if k != "id"}
                    documents[str(entry["id"])] = doc
        else:
            raise DocumentStoreError(f"Catalog snapshot {snapshot_path} is neither a list nor an object")

        logger.info("Loaded %d catalog documents from %s", len(documents), snapshot_path)
        return cls(documents, max_set_width=max_set_width)

    def __len__(self) -> int:
        return len(self._documents)

    async def run_query(self, descriptor: QueryDescriptor, start_after: str | None = None) -> PageResult:
        check_contract(descriptor, self._max_set_width)
        self.queries_run += 1

        rows: list[tuple[tuple[Any, ...], str, dict[str, Any]]] = []
        for doc_id, data in self._documents.items():
            if not all(_matches(doc_id, data, f) for f in descriptor.filters):
                continue
            sort_value = _lookup(doc_id, data, descriptor.order_by)
            if sort_value is _MISSING:
                # Documents without the ordering field never appear in ordered results
                continue
            key = (doc_id,) if descriptor.order_by == FIELD_DOC_ID else (sort_value, doc_id)
            rows.append((key, doc_id, data))

        reverse = descriptor.direction == SortDirection.DESC
        rows.sort(key=lambda row: row[0], reverse=reverse)

        cursor = start_after if start_after is not None else descriptor.start_after
        if cursor is not None:
            try:
                after = tuple(decode_cursor(cursor))
            except ValueError as exc:
                raise DocumentStoreError(str(exc)) from exc
            if reverse:
                rows = [row for row in rows if row[0] < after]
            else:
                rows = [row for row in rows if row[0] > after]

        page = rows[: descriptor.page_size]
        records = [Record.from_document(doc_id, data) for _, doc_id, data in page]
        next_cursor = encode_cursor(list(page[-1][0])) if len(page) == descriptor.page_size else None
        return PageResult(records=records, next_cursor=next_cursor)
