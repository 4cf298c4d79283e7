"""Query planner: criteria → backend-legal query descriptors.

The document store only executes a narrow query shape: equality and small
"in" filters, a single array filter, a single disjunctive filter and a
single inequality field per query, with no substring search. The planner
pushes down what fits, in this order:

1. Category: fine label by equality; otherwise the faculty expansion as an
   "in" filter, or equality on its first label when the expansion is wider
   than the backend's set limit (``category_truncated`` advisory).
2. Grade by equality.
3. A single requested day by equality, plus array-contains on the period
   when exactly one period is requested and the array slot is still free.
4. Keyword: array-contains-any over its 2-gram tokens (capped, with a
   ``tokens_capped`` advisory), or, for a single character, two prefix
   range queries over title and instructor.
5. More than one disjunctive filter is split into one descriptor per
   filter; merging unions them and the post filter restores the AND.

Whatever is left (campus, delivery mode, term, multi-day slots, ...) is
enforced by the post filter. When nothing at all can be pushed down but
post-only constraints remain, the plan degrades to a full scan.
"""

from __future__ import annotations

import logging

from catalog_engine.constants import (
    DISJUNCTIVE_OPS,
    FIELD_CATEGORY,
    FIELD_DAY,
    FIELD_GRADE,
    FIELD_INSTRUCTOR,
    FIELD_PERIODS,
    FIELD_TITLE,
    FIELD_TOKENS,
    MAX_PERIOD,
    MIN_PERIOD,
    PREFIX_RANGE_END,
    FilterOp,
    PlanningAdvisory,
)
from catalog_engine.models import Criteria
from catalog_engine.query import FieldFilter, QueryDescriptor, QueryPlan, decode_cursor
from catalog_engine.search.categories import CategoryHierarchy
from catalog_engine.search.errors import InvalidCriteriaError
from catalog_engine.search.tokenizer import (
    is_single_character,
    normalize_for_search,
    prefix_key,
    query_tokens,
)

logger = logging.getLogger(__name__)

PRIMARY_KEY = "primary"
FULL_SCAN_KEY = "full-scan"


def validate_criteria(criteria: Criteria) -> None:
    """Reject criteria that cannot be planned, before any backend call.

    Raises:
        InvalidCriteriaError: On a non-positive page size, a period outside
            the timetable, an unscheduled-only search combined with slots, or
            a resume cursor the stores cannot decode.
    """
    if criteria.page_size < 1:
        raise InvalidCriteriaError("page_size", f"must be positive, got {criteria.page_size}")
    for day, period in sorted(criteria.day_slots):
        if not MIN_PERIOD <= period <= MAX_PERIOD:
            raise InvalidCriteriaError(
                "day_slots", f"period {period} on {day.name} is outside {MIN_PERIOD}..{MAX_PERIOD}"
            )
    if criteria.undecided and criteria.day_slots:
        raise InvalidCriteriaError("day_slots", "unscheduled courses cannot be combined with day/period slots")
    if criteria.cursor is not None:
        try:
            values = decode_cursor(criteria.cursor)
        except ValueError as exc:
            raise InvalidCriteriaError("cursor", str(exc)) from exc
        # Resume cursors address documents ordered by id: the id comes last
        if not values or not isinstance(values[-1], str):
            raise InvalidCriteriaError("cursor", f"Malformed cursor: {criteria.cursor!r}")


def _has_post_only_constraints(criteria: Criteria) -> bool:
    return bool(
        criteria.campus
        or criteria.delivery_mode
        or criteria.term
        or criteria.undecided
        or criteria.day_slots
        or (criteria.keyword and normalize_for_search(criteria.keyword))
    )


class QueryPlanner:
    """Builds a ``QueryPlan`` for one ``Criteria``.

    Args:
        hierarchy: Faculty → stored label expansion.
        max_in_values: Backend width limit for "in" filters.
        max_tokens: Backend width limit for array-contains-any filters.
        full_scan_page_size: Page size used when the plan degrades to a full scan.
    """

    def __init__(
        self,
        hierarchy: CategoryHierarchy | None = None,
        max_in_values: int = 10,
        max_tokens: int = 10,
        full_scan_page_size: int = 100,
    ) -> None:
        self._hierarchy = hierarchy or CategoryHierarchy()
        self._max_in_values = max_in_values
        self._max_tokens = max_tokens
        self._full_scan_page_size = full_scan_page_size

    def plan(self, criteria: Criteria) -> QueryPlan:
        """Return the descriptors for *criteria*, in deterministic order.

        Raises:
            InvalidCriteriaError: See ``validate_criteria``.
        """
        validate_criteria(criteria)

        advisories: list[PlanningAdvisory] = []
        conjunctive: list[FieldFilter] = []
        disjunctive: list[FieldFilter] = []

        category = self._category_filter(criteria, advisories)
        if category is not None:
            (disjunctive if category.op in DISJUNCTIVE_OPS else conjunctive).append(category)

        if criteria.grade:
            conjunctive.append(FieldFilter(FIELD_GRADE, FilterOp.EQ, criteria.grade))

        prefix_keyword: str | None = None
        if criteria.keyword:
            if is_single_character(criteria.keyword):
                prefix_keyword = prefix_key(criteria.keyword)
            else:
                tokens, capped = query_tokens(criteria.keyword, self._max_tokens)
                if capped:
                    logger.warning(
                        "Keyword %r produced more than %d tokens; extra tokens dropped",
                        criteria.keyword,
                        self._max_tokens,
                    )
                    advisories.append(PlanningAdvisory.TOKENS_CAPPED)
                if tokens:
                    disjunctive.append(FieldFilter(FIELD_TOKENS, FilterOp.ARRAY_CONTAINS_ANY, tuple(tokens)))

        array_slot_free = not any(f.op == FilterOp.ARRAY_CONTAINS_ANY for f in disjunctive)
        conjunctive.extend(self._slot_filters(criteria, array_slot_free))

        if prefix_keyword is not None:
            descriptors = self._prefix_descriptors(prefix_keyword, conjunctive, disjunctive, criteria)
        elif not conjunctive and not disjunctive:
            if _has_post_only_constraints(criteria):
                logger.info("No narrow backend filter for criteria; planning a full scan")
                return QueryPlan(
                    descriptors=(
                        QueryDescriptor(
                            key=FULL_SCAN_KEY,
                            page_size=self._full_scan_page_size,
                            start_after=criteria.cursor,
                        ),
                    ),
                    advisories=tuple(advisories),
                    full_scan=True,
                )
            descriptors = [QueryDescriptor(key=PRIMARY_KEY, page_size=criteria.page_size, start_after=criteria.cursor)]
        elif len(disjunctive) <= 1:
            descriptors = [
                QueryDescriptor(
                    key=PRIMARY_KEY,
                    filters=tuple(conjunctive + disjunctive),
                    page_size=criteria.page_size,
                    start_after=criteria.cursor,
                )
            ]
        else:
            # One disjunctive filter per query: issue each separately
            descriptors = [
                QueryDescriptor(
                    key=f"split-{f.field}",
                    filters=tuple(conjunctive + [f]),
                    page_size=criteria.page_size,
                    start_after=criteria.cursor,
                )
                for f in disjunctive
            ]

        logger.debug("Planned %d descriptor(s): %s", len(descriptors), [d.key for d in descriptors])
        return QueryPlan(descriptors=tuple(descriptors), advisories=tuple(advisories))

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _category_filter(self, criteria: Criteria, advisories: list[PlanningAdvisory]) -> FieldFilter | None:
        if criteria.category_fine:
            return FieldFilter(FIELD_CATEGORY, FilterOp.EQ, criteria.category_fine)
        if not criteria.category_coarse:
            return None
        labels = self._hierarchy.expand(criteria.category_coarse)
        if len(labels) <= self._max_in_values:
            return FieldFilter(FIELD_CATEGORY, FilterOp.IN, tuple(labels))
        logger.warning(
            "Category %r expands to %d labels (limit %d); filtering on %r only",
            criteria.category_coarse,
            len(labels),
            self._max_in_values,
            labels[0],
        )
        advisories.append(PlanningAdvisory.CATEGORY_TRUNCATED)
        return FieldFilter(FIELD_CATEGORY, FilterOp.EQ, labels[0])

    @staticmethod
    def _slot_filters(criteria: Criteria, array_slot_free: bool) -> list[FieldFilter]:
        if criteria.undecided or len(criteria.days) != 1:
            return []
        (day,) = criteria.days
        filters = [FieldFilter(FIELD_DAY, FilterOp.EQ, day.value)]
        periods = criteria.periods_for(day)
        if len(periods) == 1 and array_slot_free:
            (period,) = periods
            filters.append(FieldFilter(FIELD_PERIODS, FilterOp.ARRAY_CONTAINS, period))
        return filters

    @staticmethod
    def _prefix_descriptors(
        prefix: str,
        conjunctive: list[FieldFilter],
        disjunctive: list[FieldFilter],
        criteria: Criteria,
    ) -> list[QueryDescriptor]:
        """A single character cannot form a 2-gram: prefix-range title and instructor instead."""
        descriptors = []
        for field_name, key in ((FIELD_TITLE, "title-prefix"), (FIELD_INSTRUCTOR, "instructor-prefix")):
            descriptors.append(
                QueryDescriptor(
                    key=key,
                    filters=tuple(
                        conjunctive
                        + disjunctive
                        + [
                            FieldFilter(field_name, FilterOp.GTE, prefix),
                            FieldFilter(field_name, FilterOp.LT, prefix + PREFIX_RANGE_END),
                        ]
                    ),
                    order_by=field_name,
                    page_size=criteria.page_size,
                )
            )
        return descriptors
