"""
过滤模型：条件、排序、分页
Filter model shared by the parameter parser and the SQL compiler.

There is one canonical filter shape (conditions + sort + limit/offset).
Page/page_size only exists at the request boundary and is converted through
`Page.to_limit_offset()`.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, AbstractSet, Iterable, Optional, Tuple

from ..errors import (
    InvalidField,
    InvalidLikeValue,
    InvalidOperator,
    InvalidPagination,
    InvalidSort,
    InvalidValue,
)

MAX_FIELD_LEN = 64
MAX_LIKE_LEN = 100
MAX_LIKE_WILDCARDS = 2
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10

ALLOWED_OPERATORS = frozenset({"=", ">", ">=", "<", "<=", "LIKE"})
SORT_ORDERS = ("ASC", "DESC")

# characters never allowed in a LIKE value; '%' is counted separately
LIKE_FORBIDDEN = frozenset("_\\'\"`;")

SCALAR_TYPES = (str, int, float, bool, bytes, type(None))


# ---------------- validators (used by both parser and compiler) ----------------

def validate_field(name: Any, allowed: Optional[AbstractSet[str]] = None) -> str:
    if not isinstance(name, str) or not name:
        raise InvalidField("field cannot be empty")
    if len(name) > MAX_FIELD_LEN:
        raise InvalidField(f"field name too long: {len(name)} > {MAX_FIELD_LEN}")
    if allowed is not None and name not in allowed:
        raise InvalidField(f"field not allowed: {name}")
    return name


def validate_operator(op: Any) -> str:
    if not isinstance(op, str) or not op.strip():
        raise InvalidOperator("operator cannot be empty")
    upper = op.strip().upper()
    if upper not in ALLOWED_OPERATORS:
        raise InvalidOperator(f"unsupported operator: {op}")
    return upper


def validate_like_value(value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidLikeValue("LIKE operator only supports string values")
    if len(value) > MAX_LIKE_LEN:
        raise InvalidLikeValue(f"LIKE value too long: {len(value)} > {MAX_LIKE_LEN}")
    bad = sorted(LIKE_FORBIDDEN.intersection(value))
    if bad:
        raise InvalidLikeValue(f"invalid characters in LIKE value: {''.join(bad)}")
    if value.count("%") > MAX_LIKE_WILDCARDS:
        raise InvalidLikeValue("too many wildcards in LIKE pattern")
    return value


def validate_value(value: Any) -> Any:
    if not isinstance(value, SCALAR_TYPES):
        raise InvalidValue(f"condition value must be a scalar, got {type(value).__name__}")
    return value


def normalize_order(order: Any) -> str:
    if not isinstance(order, str):
        raise InvalidSort("sort order must be ASC or DESC")
    upper = order.strip().upper()
    if upper not in SORT_ORDERS:
        raise InvalidSort(f"invalid sort order: {order}")
    return upper


def _non_negative_int(name: str, v: Any) -> int:
    # bool is an int subclass; True as a limit is a client bug
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidPagination(f"{name} must be an integer")
    if v < 0:
        raise InvalidPagination(f"{name} must be >= 0")
    return v


# ---------------- value objects ----------------

@dataclass(frozen=True)
class Condition:
    field: str
    operator: str
    value: Any

    def validated(self, allowed: Optional[AbstractSet[str]] = None) -> "Condition":
        """Return a normalized copy (operator upper-cased) or raise."""
        name = validate_field(self.field, allowed)
        op = validate_operator(self.operator)
        if op == "LIKE":
            value = validate_like_value(self.value)
        else:
            value = validate_value(self.value)
        return Condition(name, op, value)


@dataclass(frozen=True)
class Sort:
    field: str
    order: str = "ASC"

    def validated(self, allowed: Optional[AbstractSet[str]] = None) -> "Sort":
        try:
            name = validate_field(self.field, allowed)
        except InvalidField as e:
            raise InvalidSort(f"invalid sort field: {self.field}") from e
        return Sort(name, normalize_order(self.order))


@dataclass(frozen=True)
class Page:
    page: int
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        for name, v in (("page", self.page), ("page_size", self.page_size)):
            if isinstance(v, bool) or not isinstance(v, int):
                raise InvalidPagination(f"{name} must be an integer")
        if self.page <= 0:
            raise InvalidPagination("page must be greater than 0")
        if self.page_size <= 0 or self.page_size > MAX_PAGE_SIZE:
            raise InvalidPagination(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    def to_limit_offset(self) -> Tuple[int, int]:
        return self.page_size, (self.page - 1) * self.page_size


@dataclass(frozen=True)
class Filter:
    conditions: Tuple[Condition, ...] = ()
    sort: Optional[Sort] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    def __post_init__(self):
        # accept any iterable of conditions but store an immutable tuple
        object.__setattr__(self, "conditions", tuple(self.conditions))

    @classmethod
    def where(cls, *conditions: Condition, **kw) -> "Filter":
        return cls(conditions=conditions, **kw)

    def paginate(self, page: int, page_size: int = DEFAULT_PAGE_SIZE) -> "Filter":
        limit, offset = Page(page, page_size).to_limit_offset()
        return replace(self, limit=limit, offset=offset)

    def with_limit(self, limit: Optional[int]) -> "Filter":
        return replace(self, limit=limit)

    def without_paging(self) -> "Filter":
        return replace(self, sort=None, limit=None, offset=None)

    def checked_limits(self) -> Tuple[Optional[int], Optional[int]]:
        limit = None if self.limit is None else _non_negative_int("limit", self.limit)
        offset = None if self.offset is None else _non_negative_int("offset", self.offset)
        return limit, offset

    def is_empty(self) -> bool:
        return not self.conditions and self.sort is None and self.limit is None and self.offset is None


@dataclass(frozen=True)
class FieldProjection:
    """Column projection from `atts_require` / `atts_omit`."""

    required: Tuple[str, ...] = ()
    omitted: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "required", _clean_names(self.required))
        object.__setattr__(self, "omitted", _clean_names(self.omitted))

    def select(self, columns: Iterable[str]) -> list[str]:
        cols = list(columns)
        if self.required:
            wanted = set(self.required)
            cols = [c for c in cols if c in wanted]
        if self.omitted:
            drop = set(self.omitted)
            cols = [c for c in cols if c not in drop]
        return cols


def _clean_names(names: Iterable[str]) -> Tuple[str, ...]:
    return tuple(n.strip() for n in names if n and n.strip())
