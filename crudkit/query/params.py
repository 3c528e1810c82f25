"""
URL 查询参数解析
Turns raw query parameters (``name -> [values]``) into a Filter.

Supported condition formats:
    field=value        -> `field` = value
    field_gt=value     -> `field` > value
    field_gte=value    -> `field` >= value
    field_lt=value     -> `field` < value
    field_lte=value    -> `field` <= value
    field_like=value   -> `field` LIKE value

The operator suffix is taken from the LAST underscore, so columns containing
underscores work with operators (``created_at_gte``). Equality on such a
column needs ``allowed_fields`` so the full name can be recognised.

Reserved keys: page, page_size, sort_field, sort_order, atts_require, atts_omit.
"""
from __future__ import annotations

from typing import Any, AbstractSet, Iterator, List, Mapping, Optional, Tuple

from ..errors import InvalidField, InvalidOperator, InvalidPagination, InvalidValue, ValidationError
from .filter import (
    DEFAULT_PAGE_SIZE,
    MAX_FIELD_LEN,
    Condition,
    FieldProjection,
    Filter,
    Page,
    Sort,
    validate_field,
    validate_like_value,
)

OPERATOR_SUFFIXES = {
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "like": "LIKE",
}

PAGE_KEY = "page"
PAGE_SIZE_KEY = "page_size"
SORT_FIELD_KEY = "sort_field"
SORT_ORDER_KEY = "sort_order"
REQUIRED_FIELDS_KEY = "atts_require"
OMITTED_FIELDS_KEY = "atts_omit"

RESERVED_KEYS = frozenset({
    PAGE_KEY,
    PAGE_SIZE_KEY,
    SORT_FIELD_KEY,
    SORT_ORDER_KEY,
    REQUIRED_FIELDS_KEY,
    OMITTED_FIELDS_KEY,
})

Params = Mapping[str, Any]


def _iter_params(params: Params) -> Iterator[Tuple[str, List[str]]]:
    # starlette QueryParams and similar multi-dicts expose getlist()
    getlist = getattr(params, "getlist", None)
    for key in params.keys():
        if getlist is not None:
            values = list(getlist(key))
        else:
            raw = params[key]
            if raw is None:
                values = []
            elif isinstance(raw, (str, bytes)):
                values = [raw]
            else:
                values = list(raw)
        yield key, values


def _first(params: Params, key: str) -> Optional[str]:
    for k, values in _iter_params(params):
        if k == key:
            return values[0] if values else None
    return None


def _to_int(name: str, raw: str) -> int:
    try:
        return int(str(raw).strip(), 10)
    except ValueError as e:
        raise InvalidPagination(f"{name} must be an integer: {raw!r}") from e


def parse_condition(
    field: str,
    value: Any,
    allowed_fields: Optional[AbstractSet[str]] = None,
) -> Condition:
    """Parse one ``field[_op]=value`` pair.

    Raises InvalidField / InvalidOperator / InvalidValue / InvalidLikeValue.
    LIKE values are checked here already so a bad pattern never becomes a
    Condition.
    """
    if not field:
        raise InvalidField("field cannot be empty")
    if value is None or value == "":
        raise InvalidValue(f"value cannot be empty: {field}")
    if len(field) > MAX_FIELD_LEN:
        raise InvalidField(f"field name too long: {len(field)} > {MAX_FIELD_LEN}")

    if allowed_fields is not None and field in allowed_fields:
        return Condition(field, "=", value)

    base, sep, suffix = field.rpartition("_")
    if not sep:
        name, op = field, "="
    else:
        op = OPERATOR_SUFFIXES.get(suffix)
        if op is None and allowed_fields is not None and base not in allowed_fields:
            raise InvalidField(f"field not allowed: {field}")
        if op is None:
            raise InvalidOperator(f"unsupported operator: {suffix}")
        if not base:
            raise InvalidField(f"missing field before operator: {field}")
        _, inner_sep, inner = base.rpartition("_")
        if inner_sep and inner in OPERATOR_SUFFIXES:
            raise InvalidOperator(f"unsupported operator: {inner}_{suffix}")
        name = base

    validate_field(name, allowed_fields)
    if op == "LIKE":
        validate_like_value(value)
    return Condition(name, op, value)


def parse_conditions(
    params: Params,
    allowed_fields: Optional[AbstractSet[str]] = None,
) -> List[Condition]:
    """Parse every non-reserved parameter; all or nothing.

    Only the first value of a repeated key is used. Keys with no value (or an
    empty first value) are skipped.
    """
    conditions: List[Condition] = []
    for key, values in _iter_params(params):
        if key in RESERVED_KEYS:
            continue
        if not values or values[0] == "":
            continue
        try:
            conditions.append(parse_condition(key, values[0], allowed_fields))
        except ValidationError as e:
            raise type(e)(f"failed to parse condition {key}: {e.message}") from e
    return conditions


def parse_filter(
    params: Params,
    allowed_fields: Optional[AbstractSet[str]] = None,
) -> Optional[Filter]:
    """Build a Filter from query parameters; None when nothing was asked for.

    page_size defaults to 10 and is ignored without page. sort_order defaults
    to ASC and is ignored without sort_field.
    """
    conditions = parse_conditions(params, allowed_fields)

    limit = offset = None
    raw_page = _first(params, PAGE_KEY)
    if raw_page:
        page = _to_int(PAGE_KEY, raw_page)
        raw_size = _first(params, PAGE_SIZE_KEY)
        size = _to_int(PAGE_SIZE_KEY, raw_size) if raw_size else DEFAULT_PAGE_SIZE
        limit, offset = Page(page, size).to_limit_offset()

    sort = None
    sort_field = _first(params, SORT_FIELD_KEY)
    if sort_field:
        sort = Sort(sort_field, _first(params, SORT_ORDER_KEY) or "ASC").validated(allowed_fields)

    flt = Filter(conditions=conditions, sort=sort, limit=limit, offset=offset)
    return None if flt.is_empty() else flt


def parse_field_projection(params: Params) -> Optional[FieldProjection]:
    """Collect `atts_require` / `atts_omit` (comma separated, repeatable)."""
    required: List[str] = []
    omitted: List[str] = []
    seen = False
    for key, values in _iter_params(params):
        if key == REQUIRED_FIELDS_KEY:
            target = required
        elif key == OMITTED_FIELDS_KEY:
            target = omitted
        else:
            continue
        seen = True
        for v in values:
            target.extend(str(v).split(","))
    if not seen:
        return None
    return FieldProjection(required=tuple(required), omitted=tuple(omitted))
