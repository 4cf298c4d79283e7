"""Document store contract consumed by the fetch executor.

Any document-oriented store is acceptable as long as it executes a
``QueryDescriptor`` natively: equality and small "in" filters on scalar
fields, at most one array-contains / array-contains-any filter, at most one
disjunctive filter, at most one inequality field (which must lead the
ordering), one sort field with a start-after cursor, and full documents.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from catalog_engine.constants import ARRAY_OPS, DISJUNCTIVE_OPS, RANGE_OPS
from catalog_engine.query import PageResult, QueryDescriptor


class DocumentStoreError(Exception):
    """Raised when a document store call fails."""


class UnsupportedQueryError(DocumentStoreError):
    """Raised when a descriptor falls outside the backend query contract.

    Attributes:
        descriptor_key: Key of the rejected descriptor.
        reason: Which limit was violated.
    """

    def __init__(self, descriptor_key: str, reason: str) -> None:
        self.descriptor_key = descriptor_key
        self.reason = reason
        super().__init__(f"Unsupported query {descriptor_key!r}: {reason}")


def check_contract(descriptor: QueryDescriptor, max_set_width: int = 10) -> None:
    """Validate *descriptor* against the backend query contract.

    Raises:
        UnsupportedQueryError: On the first violated limit.
    """
    array_filters = [f for f in descriptor.filters if f.op in ARRAY_OPS]
    if len(array_filters) > 1:
        raise UnsupportedQueryError(descriptor.key, "more than one array filter")

    disjunctive = [f for f in descriptor.filters if f.op in DISJUNCTIVE_OPS]
    if len(disjunctive) > 1:
        raise UnsupportedQueryError(descriptor.key, "more than one disjunctive filter")
    for f in disjunctive:
        if len(f.value) > max_set_width:
            raise UnsupportedQueryError(
                descriptor.key, f"{f.op} on {f.field!r} has {len(f.value)} values (limit {max_set_width})"
            )

    range_fields = {f.field for f in descriptor.filters if f.op in RANGE_OPS}
    if len(range_fields) > 1:
        raise UnsupportedQueryError(descriptor.key, "inequality filters on more than one field")
    if range_fields and descriptor.order_by not in range_fields:
        raise UnsupportedQueryError(descriptor.key, "ordering must start with the inequality field")


class DocumentStore(ABC):
    """Port for the remote catalog collection."""

    @abstractmethod
    async def run_query(self, descriptor: QueryDescriptor, start_after: str | None = None) -> PageResult:
        """Execute one page of *descriptor*, resuming after *start_after*.

        ``next_cursor`` on the result is None when fewer than
        ``descriptor.page_size`` documents were returned.
        """
        ...

    async def close(self) -> None:
        """Release network resources; no-op by default."""
