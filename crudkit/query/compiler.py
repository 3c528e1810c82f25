"""
SQL 编译器
Compiles a Filter against a table descriptor into ``(sql, args)``.

Rules that hold on every path:
  * identifiers (table and column names) are backtick-quoted and must come
    from the table descriptor or its allowed-filter-field set;
  * values are always bound through ``?`` placeholders, in clause order;
  * every condition/sort is re-validated here, even if the parser already
    did it against some table.

Compilation never mutates its inputs, so compiling the same Filter twice
gives the same SQL and args.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..errors import (
    InvalidField,
    InvalidPagination,
    InvalidSort,
    InvalidValue,
    NoSelectableColumns,
    NoUpdatableColumns,
)
from ..table import TableDescriptor
from .filter import FieldProjection, Filter

Compiled = Tuple[str, List[Any]]


def quote_ident(name: str) -> str:
    if not isinstance(name, str) or not name:
        raise InvalidField("identifier cannot be empty")
    # '?' is reserved for placeholders (Database.expand_in splits on it)
    if "`" in name or "\x00" in name or "?" in name:
        raise InvalidField(f"invalid identifier: {name!r}")
    return f"`{name}`"


def _table(table: TableDescriptor) -> str:
    return quote_ident(table.table_name())


def pk_clause(table: TableDescriptor, many: bool = False) -> str:
    """`` WHERE `id` = ?`` or `` WHERE `id` IN (?)`` (expand with Database.expand_in)."""
    pk = quote_ident(table.primary_key())
    return f" WHERE {pk} IN (?)" if many else f" WHERE {pk} = ?"


def _append_conditions(table: TableDescriptor, parts: List[str], args: List[Any], flt: Filter) -> None:
    allowed = table.allowed_filter_fields()
    first = True
    for cond in flt.conditions:
        if cond is None:
            continue
        c = cond.validated(allowed)
        parts.append(" WHERE " if first else " AND ")
        parts.append(f"{quote_ident(c.field)} {c.operator} ?")
        args.append(c.value)
        first = False


def _append_sort_and_limits(table: TableDescriptor, parts: List[str], args: List[Any], flt: Filter) -> None:
    if flt.sort is not None:
        s = flt.sort.validated(table.allowed_filter_fields())
        parts.append(f" ORDER BY {quote_ident(s.field)} {s.order}")

    limit, offset = flt.checked_limits()
    if limit is not None:
        parts.append(" LIMIT ?")
        args.append(limit)
    if offset is not None:
        if limit is None:
            # SQLite only accepts OFFSET after a LIMIT; -1 means unbounded
            parts.append(" LIMIT ?")
            args.append(-1)
        parts.append(" OFFSET ?")
        args.append(offset)


def _reject_paging(flt: Filter, verb: str) -> None:
    if flt.sort is not None:
        raise InvalidSort(f"sort is not supported for {verb}")
    if flt.limit is not None or flt.offset is not None:
        raise InvalidPagination(f"limit/offset is not supported for {verb}")


def _combine(
    table: TableDescriptor,
    base: str,
    args: Optional[Sequence[Any]],
    flt: Optional[Filter],
    verb: str = "SELECT",
) -> Compiled:
    parts = [base]
    out = list(args or [])
    if flt is None:
        return base, out
    if verb != "SELECT":
        _reject_paging(flt, verb)
    _append_conditions(table, parts, out, flt)
    if verb == "SELECT":
        _append_sort_and_limits(table, parts, out, flt)
    return "".join(parts), out


def compile_select(table: TableDescriptor, flt: Optional[Filter] = None) -> Compiled:
    return _combine(table, f"SELECT * FROM {_table(table)}", None, flt)


def compile_select_fields(
    table: TableDescriptor,
    projection: Optional[FieldProjection],
    flt: Optional[Filter] = None,
) -> Compiled:
    """SELECT with an explicit column list from ``atts_require`` / ``atts_omit``.

    Unknown names are dropped; an empty result is an error rather than a
    silent ``SELECT *``.
    """
    columns = list(table.columns())
    selected = projection.select(columns) if projection is not None else columns
    if not selected:
        raise NoSelectableColumns("no valid fields selected")
    cols = ", ".join(quote_ident(c) for c in selected)
    return _combine(table, f"SELECT {cols} FROM {_table(table)}", None, flt)


def compile_count(table: TableDescriptor, flt: Optional[Filter] = None) -> Compiled:
    base = f"SELECT COUNT(1) AS `cnt` FROM {_table(table)}"
    return _combine(table, base, None, flt.without_paging() if flt is not None else None)


def _assigned(payload: Any) -> Mapping[str, Any]:
    assigned = getattr(payload, "assigned_values", None)
    if callable(assigned):
        return assigned()
    if isinstance(payload, Mapping):
        return payload
    raise InvalidValue(f"unsupported update payload: {type(payload).__name__}")


def _column_values(entity: Any, columns: Sequence[str]) -> List[Any]:
    if isinstance(entity, Mapping):
        return [entity.get(c) for c in columns]
    return [getattr(entity, c, None) for c in columns]


def compile_insert(table: TableDescriptor, entity: Any) -> Compiled:
    columns = list(table.columns())
    if not columns:
        raise NoSelectableColumns(f"table {table.table_name()} declares no columns")
    cols = ", ".join(quote_ident(c) for c in columns)
    marks = ", ".join("?" for _ in columns)
    sql = f"INSERT INTO {_table(table)} ({cols}) VALUES ({marks})"
    return sql, _column_values(entity, columns)


def build_update_base(table: TableDescriptor, payload: Any) -> Compiled:
    """``UPDATE `t` SET ...`` over the columns the payload explicitly assigns.

    Column order follows the table; the primary key is never assigned.
    """
    values = _assigned(payload)
    pk = table.primary_key()
    sets: List[str] = []
    args: List[Any] = []
    for col in table.columns():
        if col == pk or col not in values:
            continue
        sets.append(f"{quote_ident(col)} = ?")
        args.append(values[col])
    if not sets:
        raise NoUpdatableColumns("no updatable columns")
    return f"UPDATE {_table(table)} SET {', '.join(sets)}", args


def compile_update(table: TableDescriptor, payload: Any, flt: Optional[Filter] = None) -> Compiled:
    sql, args = build_update_base(table, payload)
    return _combine(table, sql, args, flt, verb="UPDATE")


def compile_delete(table: TableDescriptor, flt: Optional[Filter] = None) -> Compiled:
    return _combine(table, f"DELETE FROM {_table(table)}", None, flt, verb="DELETE")
