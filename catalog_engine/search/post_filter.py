"""Client-side re-validation of search criteria.

The planner only pushes a subset of the criteria to the backend, and some of
what it pushes is deliberately lossy (truncated category sets, capped token
lists, split disjunctions). ``matches`` therefore re-checks *every*
criterion on every fetched record, whether or not it was applied
server-side.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

from catalog_engine.constants import UNDECIDED_MARKER, DeliveryMode
from catalog_engine.models import Criteria, Record, parse_weekday
from catalog_engine.search.categories import CategoryHierarchy, canonical_campus
from catalog_engine.search.tokenizer import normalize_for_search

# Trailing bracketed online marker: 「… [オンライン]」, 「…（online）」, ...
_ONLINE_MARKER_RE = re.compile(r"[\[［(（【]\s*(?:オンライン|online)\s*[\]］)）】]\s*$", re.IGNORECASE)

_TERM_STRIP_RE = re.compile(r"[()\s]")

_TERM_ALIASES: dict[str, str] = {
    "前期": "前期",
    "春学期": "前期",
    "spring": "前期",
    "後期": "後期",
    "秋学期": "後期",
    "autumn": "後期",
    "fall": "後期",
    "通年": "通年",
    "年間": "通年",
    "fullyear": "通年",
    "yearlong": "通年",
}

# Season families that also match their variants (前期隔1, 前期集中, ...)
_TERM_FAMILIES = ("通年", "前期", "後期")
_INTENSIVE = "集中"

_default_hierarchy = CategoryHierarchy()


def normalize_term(raw: str) -> str:
    """Collapse a term label and its aliases into one canonical value.

    Width is folded, brackets and whitespace removed, ``隔週第N週`` shortened
    to ``隔N``, and seasonal synonyms mapped onto ``前期``/``後期``/``通年``.
    """
    text = unicodedata.normalize("NFKC", raw or "")
    text = _TERM_STRIP_RE.sub("", text)
    text = text.replace("隔週第1週", "隔1").replace("隔週第2週", "隔2")
    return _TERM_ALIASES.get(text.lower(), text)


def term_matches(record_term: str, wanted: str) -> bool:
    """Compare canonical term values.

    A bare season family matches its variants by prefix and ``集中`` matches
    any intensive variant; everything else requires equality.
    """
    doc = normalize_term(record_term)
    want = normalize_term(wanted)
    if want == _INTENSIVE:
        return _INTENSIVE in doc
    if want in _TERM_FAMILIES:
        return doc.startswith(want)
    return doc == want


def is_online_title(title: str) -> bool:
    """Online courses carry a trailing bracketed marker in their title."""
    return bool(_ONLINE_MARKER_RE.search(title.strip()))


def _matches_category(record: Record, criteria: Criteria, hierarchy: CategoryHierarchy) -> bool:
    if criteria.category_fine:
        return record.category == criteria.category_fine
    if criteria.category_coarse:
        return record.category in hierarchy.expand(criteria.category_coarse)
    return True


def _matches_keyword(record: Record, criteria: Criteria) -> bool:
    if not criteria.keyword:
        return True
    needle = normalize_for_search(criteria.keyword)
    if not needle:
        return True
    return needle in normalize_for_search(record.title + record.instructor)


def _matches_campus(record: Record, criteria: Criteria) -> bool:
    if not criteria.campus:
        return True
    want = canonical_campus(criteria.campus)
    return any(canonical_campus(label) == want for label in record.campus)


def _matches_delivery(record: Record, criteria: Criteria) -> bool:
    if criteria.delivery_mode is None:
        return True
    online = is_online_title(record.title)
    if criteria.delivery_mode == DeliveryMode.ONLINE:
        return online
    return not online


def _matches_grade(record: Record, criteria: Criteria) -> bool:
    if not criteria.grade:
        return True
    return record.grade == criteria.grade or criteria.grade in record.grade


def _matches_slots(record: Record, criteria: Criteria) -> bool:
    if criteria.undecided:
        # Unscheduled courses have no meaningful day/period
        return UNDECIDED_MARKER in record.title
    if not criteria.day_slots:
        return True
    day = parse_weekday(record.schedule.day)
    if day is None:
        return False
    periods = set(record.schedule.periods)
    # Requested slots are alternatives: any intersection is enough
    return any(d == day and p in periods for d, p in criteria.day_slots)


def _matches_term(record: Record, criteria: Criteria) -> bool:
    if not criteria.term:
        return True
    return term_matches(record.term, criteria.term)


def matches(record: Record, criteria: Criteria, hierarchy: CategoryHierarchy | None = None) -> bool:
    """Whether *record* satisfies every criterion in *criteria*."""
    hierarchy = hierarchy or _default_hierarchy
    return (
        _matches_category(record, criteria, hierarchy)
        and _matches_keyword(record, criteria)
        and _matches_campus(record, criteria)
        and _matches_delivery(record, criteria)
        and _matches_grade(record, criteria)
        and _matches_slots(record, criteria)
        and _matches_term(record, criteria)
    )


def apply(records: Iterable[Record], criteria: Criteria, hierarchy: CategoryHierarchy | None = None) -> list[Record]:
    """Keep the records that match, preserving order."""
    return [r for r in records if matches(r, criteria, hierarchy)]
