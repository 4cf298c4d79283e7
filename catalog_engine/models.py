"""Catalog record and search criteria models.

``Record`` is one course offering as rendered by the browser; ``Criteria``
is one immutable search request. Both are pydantic models so that the HTTP
layer can accept and return them directly.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from catalog_engine.config import get_settings
from catalog_engine.constants import (
    FIELD_CAMPUS,
    FIELD_CATEGORY,
    FIELD_CODE,
    FIELD_GRADE,
    FIELD_INSTRUCTOR,
    FIELD_TERM,
    FIELD_TITLE,
    FIELD_TOKENS,
    DeliveryMode,
    Weekday,
)

_WEEKDAY_ALIASES: dict[str, Weekday] = {
    "mon": Weekday.MON,
    "monday": Weekday.MON,
    "tue": Weekday.TUE,
    "tues": Weekday.TUE,
    "tuesday": Weekday.TUE,
    "wed": Weekday.WED,
    "wednesday": Weekday.WED,
    "thu": Weekday.THU,
    "thur": Weekday.THU,
    "thurs": Weekday.THU,
    "thursday": Weekday.THU,
    "fri": Weekday.FRI,
    "friday": Weekday.FRI,
    "sat": Weekday.SAT,
    "saturday": Weekday.SAT,
    "sun": Weekday.SUN,
    "sunday": Weekday.SUN,
}

_WHITESPACE_RE = re.compile(r"\s+")

# Form value meaning "no preference"; treated as unset
_NO_PREFERENCE = "指定なし"


def parse_weekday(label: str | None) -> Weekday | None:
    """Parse a day label (``Mon``, ``monday``, ``月``, ``月曜``, ``月曜日``).

    Returns None for empty or unrecognized labels.
    """
    if not label:
        return None
    text = label.strip()
    if not text:
        return None
    lowered = text.lower()
    if lowered in _WEEKDAY_ALIASES:
        return _WEEKDAY_ALIASES[lowered]
    # 月 / 月曜 / 月曜日
    head = text[0]
    if text in (head, head + "曜", head + "曜日"):
        try:
            return Weekday(head)
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Lenient document field readers
# ---------------------------------------------------------------------------


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value))
    return None


def _as_str_or_first(value: Any) -> str | None:
    text = _as_str(value)
    if text is not None:
        return text
    if isinstance(value, list) and value:
        return _as_str(value[0])
    return None


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [s for s in (_as_str(v) for v in value) if s]
    text = _as_str(value)
    return [text] if text else []


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class Schedule(BaseModel):
    """Weekly slot of a course: a day label and the periods it occupies."""

    model_config = ConfigDict(frozen=True)

    day: str = ""
    periods: list[int] = Field(default_factory=list)

    @property
    def weekday(self) -> Weekday | None:
        return parse_weekday(self.day)

    def label(self) -> str:
        """Compact display form, e.g. ``月3`` or ``月3-4``."""
        ps = sorted(self.periods)
        if not ps:
            return self.day
        if len(ps) == 1:
            return f"{self.day}{ps[0]}"
        return f"{self.day}{ps[0]}-{ps[-1]}"

    @classmethod
    def from_document(cls, time: Any) -> Schedule:
        if not isinstance(time, dict):
            return cls()
        day = _as_str(time.get("day")) or ""
        raw_periods = time.get("periods")
        if isinstance(raw_periods, list):
            periods = [p for p in (_as_int(v) for v in raw_periods) if p is not None]
        else:
            single = _as_int(time.get("period"))
            periods = [single] if single is not None else []
        return cls(day=day, periods=periods)


class Record(BaseModel):
    """One catalog entry (course offering).

    ``id`` is the backend document id: stable across fetches of the same
    logical record and the only deduplication key.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    instructor: str = ""
    category: str = ""
    campus: list[str] = Field(default_factory=list)
    grade: str = ""
    term: str = ""
    schedule: Schedule = Field(default_factory=Schedule)
    tokens: list[str] = Field(default_factory=list)
    code: str | None = None
    room: str | None = None
    credits: int | None = None
    url: str | None = None
    eval_method: str | None = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Record:
        """Map a stored catalog document onto a Record.

        Stored values are accepted leniently: numbers where strings are
        expected, a string or list for campus/room/instructor, and periods as
        ints or numeric strings.
        """
        return cls(
            id=doc_id,
            title=_as_str(data.get(FIELD_TITLE)) or _as_str(data.get("title")) or "",
            instructor=_as_str_or_first(data.get(FIELD_INSTRUCTOR)) or "",
            category=_as_str_or_first(data.get(FIELD_CATEGORY)) or "",
            campus=_as_str_list(data.get(FIELD_CAMPUS)),
            grade=_as_str(data.get(FIELD_GRADE)) or "",
            term=_as_str(data.get(FIELD_TERM)) or "",
            schedule=Schedule.from_document(data.get("time")),
            tokens=_as_str_list(data.get(FIELD_TOKENS)),
            code=_as_str(data.get(FIELD_CODE)),
            room=_as_str_or_first(data.get("room")),
            credits=_as_int(data.get("credit")),
            url=_as_str(data.get("url")),
            eval_method=_as_str(data.get("eval_method")),
        )

    def to_document(self) -> dict[str, Any]:
        """Inverse of ``from_document`` (without the id)."""
        doc: dict[str, Any] = {
            FIELD_TITLE: self.title,
            FIELD_INSTRUCTOR: self.instructor,
            FIELD_CATEGORY: self.category,
            FIELD_CAMPUS: list(self.campus),
            FIELD_GRADE: self.grade,
            FIELD_TERM: self.term,
            "time": {"day": self.schedule.day, "periods": list(self.schedule.periods)},
            FIELD_TOKENS: list(self.tokens),
        }
        optional = {
            FIELD_CODE: self.code,
            "room": self.room,
            "credit": self.credits,
            "url": self.url,
            "eval_method": self.eval_method,
        }
        doc.update({k: v for k, v in optional.items() if v is not None})
        return doc

    def stable_key(self) -> str:
        """Normalized composite key identifying the same course across catalog refreshes."""
        # Local imports: the search package depends on this module.
        from catalog_engine.search.categories import canonical_campus
        from catalog_engine.search.post_filter import normalize_term
        from catalog_engine.search.tokenizer import normalize_for_search

        campus = ",".join(sorted({canonical_campus(c) for c in self.campus if c.strip()}))
        return "|".join(
            [
                normalize_for_search(self.title),
                normalize_for_search(self.instructor),
                _WHITESPACE_RE.sub("", self.schedule.label()),
                _WHITESPACE_RE.sub("", campus).lower(),
                self.grade.lower(),
                normalize_for_search(self.category),
                normalize_term(self.term),
            ]
        )


class Criteria(BaseModel):
    """One immutable search request.

    Attributes:
        keyword: Free text matched against title and instructor.
        category_coarse: Faculty; widened through the category hierarchy.
        category_fine: Stored category label; overrides ``category_coarse``.
        campus: Campus name or alias.
        delivery_mode: In person / online; unset means either.
        grade: Grade label, matched exactly or as a substring.
        day_slots: (day, period) pairs treated as alternatives; empty means
            unconstrained.
        term: Term label or alias.
        undecided: Only courses without a fixed slot (title carries ``不定``).
        page_size: Backend page size for narrow descriptors.
        cursor: Opaque backend cursor to resume from.
    """

    model_config = ConfigDict(frozen=True)

    keyword: str | None = None
    category_coarse: str | None = None
    category_fine: str | None = None
    campus: str | None = None
    delivery_mode: DeliveryMode | None = None
    grade: str | None = None
    day_slots: frozenset[tuple[Weekday, int]] = frozenset()
    term: str | None = None
    undecided: bool = False
    page_size: int = Field(default_factory=lambda: get_settings().SEARCH_PAGE_SIZE)
    cursor: str | None = None

    @field_validator("keyword", "category_coarse", "category_fine", "campus", "grade", "term", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value or value == _NO_PREFERENCE:
                return None
        return value

    @field_validator("day_slots", mode="before")
    @classmethod
    def _parse_day_slots(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, dict):
            value = [(day, period) for day, periods in value.items() for period in periods]
        slots = set()
        for item in value:
            if isinstance(item, dict):
                day, period = item.get("day"), item.get("period")
            else:
                day, period = item
            weekday = day if isinstance(day, Weekday) else parse_weekday(str(day))
            if weekday is None:
                raise ValueError(f"unknown day label: {day!r}")
            slots.add((weekday, period))
        return frozenset(slots)

    @property
    def days(self) -> set[Weekday]:
        return {day for day, _ in self.day_slots}

    def periods_for(self, day: Weekday) -> set[int]:
        return {period for d, period in self.day_slots if d == day}
