"""Exceptions raised by the catalog query engine.

Every failure is scoped to one session and one ``load_more`` call; none of
these are fatal to the process.
"""

from __future__ import annotations


class CatalogSearchError(Exception):
    """Base class for catalog search failures."""


class InvalidCriteriaError(CatalogSearchError):
    """Raised before any backend call when criteria cannot be planned.

    Attributes:
        field: Name of the offending criteria field.
        message: A human-readable description.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class BackendUnavailableError(CatalogSearchError):
    """Raised when one descriptor fetch fails (network fault, timeout).

    Attributes:
        descriptor_key: Key of the descriptor whose fetch failed.
    """

    def __init__(self, descriptor_key: str, message: str | None = None) -> None:
        self.descriptor_key = descriptor_key
        self.message = message or f"Backend unavailable for descriptor {descriptor_key!r}"
        super().__init__(self.message)


class SessionBusyError(CatalogSearchError):
    """Raised when ``load_more`` is called while another is in flight."""

    def __init__(self) -> None:
        super().__init__("A load_more call is already in flight for this session")


class SessionInvalidatedError(CatalogSearchError):
    """Raised for a session that was replaced by a newer ``submit``."""

    def __init__(self) -> None:
        super().__init__("Search session was replaced by a newer submission")
