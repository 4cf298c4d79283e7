import os

import pytest

# Set test environment variables before importing catalog_engine modules
os.environ.setdefault("CATALOG_BACKEND", "memory")
os.environ.setdefault("CATALOG_SNAPSHOT_PATH", "")
os.environ.setdefault("FIRESTORE_PROJECT_ID", "test-project")

from catalog_engine.config import Settings  # noqa: E402
from catalog_engine.gateway.firestore import FirestoreDocumentStore  # noqa: E402
from catalog_engine.gateway.memory import InMemoryDocumentStore  # noqa: E402
from catalog_engine.models import Record, Schedule  # noqa: E402


def make_record(doc_id: str, **overrides) -> Record:
    """Build a catalog Record with neutral defaults."""
    data = {
        "id": doc_id,
        "title": f"Course {doc_id}",
        "instructor": "山田太郎",
        "category": "経済学部",
        "campus": ["青山"],
        "grade": "1",
        "term": "前期",
        "schedule": Schedule(day="月", periods=[3]),
    }
    data.update(overrides)
    return Record(**data)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    """Settings with small, deterministic limits for tests."""
    return Settings(
        SEARCH_PAGE_SIZE=10,
        SEARCH_FETCH_TIMEOUT=2.0,
        FULL_SCAN_PAGE_SIZE=5,
        FULL_SCAN_MAX_PAGES=50,
    )


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    """A small catalog spanning days, campuses and delivery modes."""
    return InMemoryDocumentStore.from_records(
        [
            make_record("c01", title="統計学入門", schedule=Schedule(day="月", periods=[1])),
            make_record("c02", title="統計学演習 [オンライン]", schedule=Schedule(day="月", periods=[2])),
            make_record("c03", title="経済史", campus=["相模原"], schedule=Schedule(day="火", periods=[3])),
            make_record("c04", title="データサイエンス", instructor="佐藤花子", category="社会情報学部"),
            make_record("c05", title="不定 集中講義", term="集中", schedule=Schedule()),
        ]
    )


@pytest.fixture
def firestore_store() -> FirestoreDocumentStore:
    """Provide a FirestoreDocumentStore pointed at a fake project.

    It is NOT connected to a real Firestore -- tests should mock httpx calls.
    """
    return FirestoreDocumentStore(
        "https://firestore.test/v1/projects/test-project/databases/(default)/documents",
        "classes",
        access_token="test-token",
    )
