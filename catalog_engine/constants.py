from enum import StrEnum


class Weekday(StrEnum):
    """Day labels as stored in ``time.day`` on catalog documents."""

    MON = "月"
    TUE = "火"
    WED = "水"
    THU = "木"
    FRI = "金"
    SAT = "土"
    SUN = "日"


class DeliveryMode(StrEnum):
    IN_PERSON = "inPerson"
    ONLINE = "online"


class FilterOp(StrEnum):
    EQ = "=="
    IN = "in"
    ARRAY_CONTAINS = "array-contains"
    ARRAY_CONTAINS_ANY = "array-contains-any"
    GTE = ">="
    LT = "<"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


class PlanningAdvisory(StrEnum):
    """Non-fatal notes returned with results when the planner was lossy."""

    CATEGORY_TRUNCATED = "category_truncated"
    TOKENS_CAPPED = "tokens_capped"


# Operators that carry a list of alternatives; the backend allows one per query.
DISJUNCTIVE_OPS: frozenset[FilterOp] = frozenset({FilterOp.IN, FilterOp.ARRAY_CONTAINS_ANY})
ARRAY_OPS: frozenset[FilterOp] = frozenset({FilterOp.ARRAY_CONTAINS, FilterOp.ARRAY_CONTAINS_ANY})
RANGE_OPS: frozenset[FilterOp] = frozenset({FilterOp.GTE, FilterOp.LT})

# Stored document field names
FIELD_DOC_ID = "__name__"
FIELD_CODE = "code"
FIELD_TITLE = "class_name"
FIELD_INSTRUCTOR = "teacher_name"
FIELD_CATEGORY = "category"
FIELD_CAMPUS = "campus"
FIELD_GRADE = "grade"
FIELD_TERM = "term"
FIELD_DAY = "time.day"
FIELD_PERIODS = "time.periods"
FIELD_TOKENS = "ngrams"

# Upper bound for prefix-range queries (sorts after any real character)
PREFIX_RANGE_END = "\uf8ff"

MIN_PERIOD = 1
MAX_PERIOD = 7

# Marker carried in the title of courses without a fixed slot
UNDECIDED_MARKER = "不定"
