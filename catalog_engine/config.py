"""pydantic-settings based application settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Catalog engine settings.

    All values are loaded from environment variables.
    A .env file in the working directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Backend selection ---
    CATALOG_BACKEND: str = "memory"  # "memory" | "firestore"
    CATALOG_SNAPSHOT_PATH: str = ""  # JSON snapshot for the memory backend

    # --- Firestore REST ---
    FIRESTORE_BASE_URL: str = "https://firestore.googleapis.com"
    FIRESTORE_PROJECT_ID: str = ""
    FIRESTORE_DATABASE: str = "(default)"
    FIRESTORE_COLLECTION: str = "classes"
    FIRESTORE_ACCESS_TOKEN: str = ""
    FIRESTORE_TIMEOUT: float = 10.0

    # --- Query planning (backend contract limits) ---
    SEARCH_PAGE_SIZE: int = 20
    SEARCH_MAX_IN_VALUES: int = 10
    SEARCH_MAX_TOKENS: int = 10

    # --- Pagination ---
    SEARCH_FETCH_TIMEOUT: float = 8.0
    SEARCH_AUTO_REFILL: bool = True
    SEARCH_MAX_ROUNDS_PER_CALL: int = 25

    # --- Full scan ---
    FULL_SCAN_PAGE_SIZE: int = 100
    FULL_SCAN_MAX_PAGES: int = 50

    # --- API ---
    SEARCH_MAX_CLIENTS: int = 1000  # engines kept per process, least recently used dropped first
    CORS_ORIGINS: list[str] = []  # JSON list, e.g. '["https://catalog.example.edu"]'

    @property
    def firestore_documents_url(self) -> str:
        """Base ``.../documents`` URL for the configured project and database."""
        base = self.FIRESTORE_BASE_URL.rstrip("/")
        return f"{base}/v1/projects/{self.FIRESTORE_PROJECT_ID}/databases/{self.FIRESTORE_DATABASE}/documents"


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
