"""Firestore REST client for the course catalog collection.

Translates ``QueryDescriptor`` objects into Firestore ``structuredQuery``
bodies and posts them to the ``documents:runQuery`` endpoint. Typed
Firestore values in the response are decoded into plain documents and
mapped onto ``Record`` objects.

Usage::

    async with FirestoreDocumentStore(settings.firestore_documents_url, "classes", token) as store:
        page = await store.run_query(descriptor)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from catalog_engine.constants import FIELD_DOC_ID, FilterOp, SortDirection
from catalog_engine.gateway.base import DocumentStore, DocumentStoreError, check_contract
from catalog_engine.models import Record
from catalog_engine.query import PageResult, QueryDescriptor, decode_cursor, encode_cursor

logger = logging.getLogger(__name__)

_OPERATORS: dict[FilterOp, str] = {
    FilterOp.EQ: "EQUAL",
    FilterOp.IN: "IN",
    FilterOp.ARRAY_CONTAINS: "ARRAY_CONTAINS",
    FilterOp.ARRAY_CONTAINS_ANY: "ARRAY_CONTAINS_ANY",
    FilterOp.GTE: "GREATER_THAN_OR_EQUAL",
    FilterOp.LT: "LESS_THAN",
}

_DIRECTIONS: dict[SortDirection, str] = {
    SortDirection.ASC: "ASCENDING",
    SortDirection.DESC: "DESCENDING",
}


class FirestoreApiError(DocumentStoreError):
    """Raised when the Firestore REST API returns an error.

    Attributes:
        status_code: HTTP status code of the failed call.
        message: A human-readable description.
    """

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        self.message = message or f"Firestore API error (status: {status_code})"
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Value codec
# ---------------------------------------------------------------------------


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore ``Value`` object."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple, set, frozenset)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {str(k): encode_value(v) for k, v in value.items()}}}
    raise DocumentStoreError(f"Cannot encode {type(value).__name__} as a Firestore value")


def decode_value(value: dict[str, Any]) -> Any:
    """Decode a Firestore ``Value`` object into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    for key in ("stringValue", "timestampValue", "referenceValue", "bytesValue"):
        if key in value:
            return value[key]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: decode_value(v) for name, v in fields.items()}


class FirestoreDocumentStore(DocumentStore):
    """Async ``DocumentStore`` over the Firestore REST API.

    Args:
        documents_url: ``.../v1/projects/{project}/databases/{db}/documents``.
        collection: Collection id holding the catalog documents.
        access_token: OAuth bearer token; omitted when empty (emulator).
        timeout: HTTP timeout in seconds.
        max_set_width: Width limit checked before sending a query.
        client: Optional pre-built ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        documents_url: str,
        collection: str,
        access_token: str = "",
        timeout: float = 10.0,
        max_set_width: int = 10,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._documents_url: str = documents_url.rstrip("/")
        self._collection: str = collection
        self._max_set_width: int = max_set_width
        # Resource name used by reference values: projects/{p}/databases/{d}/documents
        self._documents_name: str = self._documents_url.split("/v1/", 1)[-1]
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self._client: httpx.AsyncClient = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    # ------------------------------------------------------------------
    # Query translation
    # ------------------------------------------------------------------

    def _reference(self, doc_id: str) -> dict[str, Any]:
        return {"referenceValue": f"{self._documents_name}/{self._collection}/{doc_id}"}

    def _where(self, descriptor: QueryDescriptor) -> dict[str, Any] | None:
        clauses = []
        for f in descriptor.filters:
            value = self._reference(f.value) if f.field == FIELD_DOC_ID else encode_value(f.value)
            clauses.append(
                {
                    "fieldFilter": {
                        "field": {"fieldPath": f.field},
                        "op": _OPERATORS[f.op],
                        "value": value,
                    }
                }
            )
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"compositeFilter": {"op": "AND", "filters": clauses}}

    def build_query(self, descriptor: QueryDescriptor, start_after: str | None = None) -> dict[str, Any]:
        """Build the ``runQuery`` request body for one page of *descriptor*."""
        direction = _DIRECTIONS[descriptor.direction]
        order_by = [{"field": {"fieldPath": descriptor.order_by}, "direction": direction}]
        if descriptor.order_by != FIELD_DOC_ID:
            order_by.append({"field": {"fieldPath": FIELD_DOC_ID}, "direction": direction})

        query: dict[str, Any] = {
            "from": [{"collectionId": self._collection}],
            "orderBy": order_by,
            "limit": descriptor.page_size,
        }
        where = self._where(descriptor)
        if where is not None:
            query["where"] = where

        cursor = start_after if start_after is not None else descriptor.start_after
        if cursor is not None:
            try:
                values = decode_cursor(cursor)
            except ValueError as exc:
                raise DocumentStoreError(str(exc)) from exc
            if not values:
                raise DocumentStoreError(f"Empty cursor for descriptor {descriptor.key!r}")
            *sort_values, doc_id = values
            encoded = [encode_value(v) for v in sort_values] + [self._reference(str(doc_id))]
            query["startAt"] = {"values": encoded, "before": False}

        return {"structuredQuery": query}

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def run_query(self, descriptor: QueryDescriptor, start_after: str | None = None) -> PageResult:
        """Run one page of *descriptor* against Firestore.

        Raises:
            UnsupportedQueryError: If the descriptor violates the query contract.
            FirestoreApiError: On a non-2xx response or an error payload.
            httpx.HTTPError: On transport failures.
        """
        check_contract(descriptor, self._max_set_width)
        body = self.build_query(descriptor, start_after)

        response = await self._client.post(f"{self._documents_url}:runQuery", json=body)
        if response.status_code >= 400:
            message = None
            try:
                message = response.json()[0]["error"]["message"]
            except (ValueError, LookupError, TypeError):
                message = response.text or None
            logger.warning("Firestore runQuery failed for %s (status=%d)", descriptor.key, response.status_code)
            raise FirestoreApiError(response.status_code, message)

        entries = response.json()
        if not isinstance(entries, list):
            raise FirestoreApiError(response.status_code, "Unexpected runQuery response shape")

        records: list[Record] = []
        last_values: list[Any] | None = None
        for entry in entries:
            if "error" in entry:
                raise FirestoreApiError(response.status_code, entry["error"].get("message"))
            document = entry.get("document")
            if not document:
                continue
            doc_id = document["name"].rsplit("/", 1)[-1]
            data = decode_fields(document.get("fields", {}))
            records.append(Record.from_document(doc_id, data))
            if descriptor.order_by == FIELD_DOC_ID:
                last_values = [doc_id]
            else:
                sort_value: Any = data
                for part in descriptor.order_by.split("."):
                    sort_value = sort_value.get(part) if isinstance(sort_value, dict) else None
                last_values = [sort_value, doc_id]

        logger.debug("Firestore %s returned %d documents", descriptor.key, len(records))
        next_cursor = None
        if last_values is not None and len(records) == descriptor.page_size:
            next_cursor = encode_cursor(last_values)
        return PageResult(records=records, next_cursor=next_cursor)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> FirestoreDocumentStore:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
