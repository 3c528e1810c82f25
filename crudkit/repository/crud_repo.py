"""
通用 CRUD 数据访问层
Generic table operations over any TableModel subclass.

Each method compiles one statement, runs it once through the injected
Database and returns typed rows (or an affected-row count). Validation
errors are raised before anything reaches the store; store failures come
back as StoreError with the statement attached.
"""
from __future__ import annotations

from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar

from ..db import Database, QueryContext
from ..errors import EmptyIdList, InvalidValue, MissingFilter
from ..query import compiler
from ..query.filter import FieldProjection, Filter
from ..table import TableModel

T = TypeVar("T", bound=TableModel)


def _require_ids(ids: Sequence[Any]) -> List[Any]:
    if ids is None or len(ids) == 0:
        raise EmptyIdList("ids is empty")
    return list(ids)


class CrudRepository(Generic[T]):
    def __init__(self, model: Type[T], db: Database):
        self.model = model
        self.db = db

    def __repr__(self) -> str:
        return f"CrudRepository({self.model.__name__}, {self.db!r})"

    # ---------------- read ----------------

    def find_all(self, ctx: Optional[QueryContext] = None) -> List[T]:
        sql, args = compiler.compile_select(self.model)
        return self.db.query(sql, args, self.model, ctx, op="select rows")

    def find_by_id(self, id: Any, ctx: Optional[QueryContext] = None) -> Optional[T]:
        sql, _ = compiler.compile_select(self.model)
        sql += compiler.pk_clause(self.model)
        rows = self.db.query(sql, [id], self.model, ctx, op="get row by id")
        return rows[0] if rows else None

    def find_by_ids(self, ids: Sequence[Any], ctx: Optional[QueryContext] = None) -> List[T]:
        ids = _require_ids(ids)
        base, _ = compiler.compile_select(self.model)
        sql, args = self.db.expand_in(base + compiler.pk_clause(self.model, many=True), [ids])
        return self.db.query(sql, args, self.model, ctx, op="select rows by ids")

    def find_by_filter(self, flt: Optional[Filter], ctx: Optional[QueryContext] = None) -> List[T]:
        if flt is None:
            return self.find_all(ctx)
        sql, args = compiler.compile_select(self.model, flt)
        return self.db.query(sql, args, self.model, ctx, op="select rows with filter")

    def find_one_by_filter(self, flt: Optional[Filter], ctx: Optional[QueryContext] = None) -> Optional[T]:
        """First matching row, or None when nothing matches (not an error)."""
        flt = (flt or Filter()).with_limit(1)
        sql, args = compiler.compile_select(self.model, flt)
        rows = self.db.query(sql, args, self.model, ctx, op="get row with filter")
        return rows[0] if rows else None

    def find_fields(
        self,
        projection: Optional[FieldProjection],
        flt: Optional[Filter] = None,
        ctx: Optional[QueryContext] = None,
    ) -> List[dict]:
        sql, args = compiler.compile_select_fields(self.model, projection, flt)
        return self.db.query_dicts(sql, args, ctx, op="select fields with filter")

    def count_by_filter(self, flt: Optional[Filter] = None, ctx: Optional[QueryContext] = None) -> int:
        sql, args = compiler.compile_count(self.model, flt)
        rows = self.db.query_dicts(sql, args, ctx, op="count rows")
        return int(rows[0]["cnt"]) if rows else 0

    # ---------------- write ----------------

    def create_one(self, entity: T, ctx: Optional[QueryContext] = None) -> Optional[int]:
        """INSERT over every column; returns the new rowid."""
        sql, args = compiler.compile_insert(self.model, entity)
        res = self.db.execute(sql, args, ctx, op="create row")
        return res.lastrowid

    def update_one(self, payload: Any, id: Any = None, ctx: Optional[QueryContext] = None) -> int:
        if id is None:
            id = payload.get_id() if hasattr(payload, "get_id") else None
        if id is None:
            raise InvalidValue(f"{self.model.primary_key()} is required for update")
        sql, args = compiler.compile_update(self.model, payload)
        sql += compiler.pk_clause(self.model)
        args.append(id)
        return self.db.execute(sql, args, ctx, op="update row").rowcount

    def update_by_ids(self, payload: Any, ids: Sequence[Any], ctx: Optional[QueryContext] = None) -> int:
        ids = _require_ids(ids)
        base, args = compiler.compile_update(self.model, payload)
        sql, args = self.db.expand_in(base + compiler.pk_clause(self.model, many=True), args + [ids])
        return self.db.execute(sql, args, ctx, op="update rows by ids").rowcount

    def update_by_filter(self, payload: Any, flt: Optional[Filter], ctx: Optional[QueryContext] = None) -> int:
        sql, args = compiler.compile_update(self.model, payload, flt)
        return self.db.execute(sql, args, ctx, op="update rows with filter").rowcount

    def delete_by_id(self, id: Any, ctx: Optional[QueryContext] = None) -> int:
        sql, _ = compiler.compile_delete(self.model)
        sql += compiler.pk_clause(self.model)
        return self.db.execute(sql, [id], ctx, op="delete row by id").rowcount

    def delete_by_ids(self, ids: Sequence[Any], ctx: Optional[QueryContext] = None) -> int:
        ids = _require_ids(ids)
        base, _ = compiler.compile_delete(self.model)
        sql, args = self.db.expand_in(base + compiler.pk_clause(self.model, many=True), [ids])
        return self.db.execute(sql, args, ctx, op="delete rows by ids").rowcount

    def delete_by_filter(self, flt: Optional[Filter], ctx: Optional[QueryContext] = None) -> int:
        # an unconditional bulk delete is never allowed
        if flt is None or not any(c is not None for c in flt.conditions):
            raise MissingFilter("delete requires a filter with at least one condition")
        sql, args = compiler.compile_delete(self.model, flt)
        return self.db.execute(sql, args, ctx, op="delete rows with filter").rowcount
