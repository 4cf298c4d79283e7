from catalog_engine.gateway.base import DocumentStore, DocumentStoreError, UnsupportedQueryError, check_contract
from catalog_engine.gateway.firestore import FirestoreApiError, FirestoreDocumentStore
from catalog_engine.gateway.memory import InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "DocumentStoreError",
    "FirestoreApiError",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "UnsupportedQueryError",
    "check_contract",
]
