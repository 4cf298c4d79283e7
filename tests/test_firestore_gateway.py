"""Tests for the Firestore REST document store.

Verifies query translation, value decoding and error handling without a
real Firestore project.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from catalog_engine.constants import FIELD_CATEGORY, FIELD_DAY, FIELD_TITLE, FilterOp
from catalog_engine.gateway.base import UnsupportedQueryError
from catalog_engine.gateway.firestore import (
    FirestoreApiError,
    FirestoreDocumentStore,
    decode_value,
    encode_value,
)
from catalog_engine.query import FieldFilter, QueryDescriptor, decode_cursor, encode_cursor

_DOC_PREFIX = "projects/test-project/databases/(default)/documents/classes"


def _make_response(json_data, status_code: int = 200) -> httpx.Response:
    """Helper: build a fake httpx.Response with the given JSON body."""
    return httpx.Response(
        status_code=status_code,
        json=json_data,
        request=httpx.Request("POST", "http://fake"),
    )


def _document(doc_id: str, title: str) -> dict:
    return {
        "document": {
            "name": f"{_DOC_PREFIX}/{doc_id}",
            "fields": {
                "class_name": {"stringValue": title},
                "teacher_name": {"stringValue": "山田太郎"},
                "campus": {"arrayValue": {"values": [{"stringValue": "青山"}]}},
                "credit": {"integerValue": "2"},
                "time": {
                    "mapValue": {
                        "fields": {
                            "day": {"stringValue": "月"},
                            "periods": {"arrayValue": {"values": [{"integerValue": "3"}]}},
                        }
                    }
                },
            },
        },
        "readTime": "2026-04-01T00:00:00Z",
    }


# ---------------------------------------------------------------------------
# 1. Value codec
# ---------------------------------------------------------------------------


class TestValueCodec:
    """Typed Firestore values."""

    def test_encode_scalars(self):
        """Scalars map to their Firestore value types."""
        assert encode_value("月") == {"stringValue": "月"}
        assert encode_value(3) == {"integerValue": "3"}
        assert encode_value(True) == {"booleanValue": True}
        assert encode_value(None) == {"nullValue": None}

    def test_encode_tuple_as_array(self):
        """Tuples (set filter values) encode as arrays."""
        assert encode_value(("a", "b")) == {"arrayValue": {"values": [{"stringValue": "a"}, {"stringValue": "b"}]}}

    def test_decode_nested(self):
        """Maps and arrays decode recursively; integers arrive as strings."""
        value = {"mapValue": {"fields": {"periods": {"arrayValue": {"values": [{"integerValue": "4"}]}}}}}
        assert decode_value(value) == {"periods": [4]}

    def test_decode_empty_array(self):
        """An empty arrayValue has no 'values' key."""
        assert decode_value({"arrayValue": {}}) == []


# ---------------------------------------------------------------------------
# 2. Query translation
# ---------------------------------------------------------------------------


class TestBuildQuery:
    """Descriptor → structuredQuery."""

    def test_single_filter(self, firestore_store: FirestoreDocumentStore):
        """One filter is sent as a plain fieldFilter ordered by document name."""
        body = firestore_store.build_query(
            QueryDescriptor(key="primary", filters=(FieldFilter(FIELD_DAY, FilterOp.EQ, "月"),), page_size=10)
        )
        query = body["structuredQuery"]
        assert query["from"] == [{"collectionId": "classes"}]
        assert query["where"] == {
            "fieldFilter": {"field": {"fieldPath": "time.day"}, "op": "EQUAL", "value": {"stringValue": "月"}}
        }
        assert query["orderBy"] == [{"field": {"fieldPath": "__name__"}, "direction": "ASCENDING"}]
        assert query["limit"] == 10
        assert "startAt" not in query

    def test_composite_filter(self, firestore_store: FirestoreDocumentStore):
        """Several filters are ANDed in a compositeFilter."""
        body = firestore_store.build_query(
            QueryDescriptor(
                key="primary",
                filters=(
                    FieldFilter(FIELD_DAY, FilterOp.EQ, "月"),
                    FieldFilter(FIELD_CATEGORY, FilterOp.IN, ("a", "b")),
                ),
            )
        )
        where = body["structuredQuery"]["where"]["compositeFilter"]
        assert where["op"] == "AND"
        assert [f["fieldFilter"]["op"] for f in where["filters"]] == ["EQUAL", "IN"]

    def test_no_filters_omits_where(self, firestore_store: FirestoreDocumentStore):
        """An unfiltered descriptor sends no where clause."""
        body = firestore_store.build_query(QueryDescriptor(key="full-scan", page_size=100))
        assert "where" not in body["structuredQuery"]

    def test_field_ordering_adds_name_tiebreak(self, firestore_store: FirestoreDocumentStore):
        """Ordering by a field adds the document name as tiebreaker."""
        body = firestore_store.build_query(
            QueryDescriptor(
                key="title-prefix",
                filters=(FieldFilter(FIELD_TITLE, FilterOp.GTE, "統"),),
                order_by=FIELD_TITLE,
            )
        )
        order = [o["field"]["fieldPath"] for o in body["structuredQuery"]["orderBy"]]
        assert order == ["class_name", "__name__"]

    def test_cursor_becomes_start_after(self, firestore_store: FirestoreDocumentStore):
        """Cursors resume strictly after the last document."""
        body = firestore_store.build_query(QueryDescriptor(key="primary"), encode_cursor(["c10"]))
        start = body["structuredQuery"]["startAt"]
        assert start["before"] is False
        assert start["values"] == [{"referenceValue": f"{_DOC_PREFIX}/c10"}]


# ---------------------------------------------------------------------------
# 3. run_query
# ---------------------------------------------------------------------------


class TestRunQuery:
    """HTTP round trips against a mocked client."""

    @pytest.mark.asyncio
    async def test_decodes_documents_and_cursor(self, firestore_store: FirestoreDocumentStore):
        """Documents map onto Records and a full page yields a cursor."""
        mock_response = _make_response([_document("c01", "統計学"), _document("c02", "経済学")])

        with patch.object(
            firestore_store._client, "post", new_callable=AsyncMock, return_value=mock_response
        ) as mock_post:
            page = await firestore_store.run_query(QueryDescriptor(key="primary", page_size=2))

        assert [r.id for r in page.records] == ["c01", "c02"]
        assert page.records[0].title == "統計学"
        assert page.records[0].schedule.periods == [3]
        assert page.records[0].credits == 2
        assert decode_cursor(page.next_cursor) == ["c02"]
        url = mock_post.call_args.args[0]
        assert url.endswith("/documents:runQuery")

    @pytest.mark.asyncio
    async def test_short_page_has_no_cursor(self, firestore_store: FirestoreDocumentStore):
        """Fewer documents than the page size means exhausted."""
        mock_response = _make_response([_document("c01", "統計学"), {"readTime": "2026-04-01T00:00:00Z"}])

        with patch.object(firestore_store._client, "post", new_callable=AsyncMock, return_value=mock_response):
            page = await firestore_store.run_query(QueryDescriptor(key="primary", page_size=5))

        assert len(page.records) == 1
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_http_error_raises(self, firestore_store: FirestoreDocumentStore):
        """A non-2xx response raises FirestoreApiError with the server message."""
        mock_response = _make_response([{"error": {"code": 403, "message": "Missing permissions"}}], 403)

        with patch.object(firestore_store._client, "post", new_callable=AsyncMock, return_value=mock_response):
            with pytest.raises(FirestoreApiError) as exc_info:
                await firestore_store.run_query(QueryDescriptor(key="primary"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Missing permissions"

    @pytest.mark.asyncio
    async def test_illegal_descriptor_not_sent(self, firestore_store: FirestoreDocumentStore):
        """Contract violations are rejected before any HTTP call."""
        descriptor = QueryDescriptor(
            key="bad",
            filters=(FieldFilter(FIELD_CATEGORY, FilterOp.IN, tuple(str(i) for i in range(11))),),
        )

        with patch.object(firestore_store._client, "post", new_callable=AsyncMock) as mock_post:
            with pytest.raises(UnsupportedQueryError):
                await firestore_store.run_query(descriptor)

        mock_post.assert_not_awaited()


# ---------------------------------------------------------------------------
# 4. Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """Client construction and cleanup."""

    def test_bearer_token_header(self, firestore_store: FirestoreDocumentStore):
        """The access token is sent as a bearer token."""
        assert firestore_store._client.headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self):
        """Leaving the async context closes the HTTP client."""
        async with FirestoreDocumentStore("http://localhost:8080/v1/projects/p/databases/d/documents", "classes") as store:
            assert "Authorization" not in store._client.headers
        assert store._client.is_closed
