from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Type

from ..db import Database, QueryContext
from ..errors import MissingFilter, NotFound
from ..logs import OperationLogContext
from ..query.params import parse_field_projection, parse_filter
from ..repository.crud_repo import CrudRepository
from ..response import public_message
from ..table import TableModel, UpdateModel

logger = logging.getLogger(__name__)


class CrudService:
    """Request-level operations for one table: parse query params, call the
    repository, record writes in operation_log."""

    def __init__(
        self,
        model: Type[TableModel],
        update_model: Type[UpdateModel],
        db: Database,
        resource: Optional[str] = None,
    ):
        self.model = model
        self.update_model = update_model
        self.db = db
        self.resource = resource or model.table_name()
        self.repo = CrudRepository(model, db)

    def _filter(self, params: Mapping[str, Any]):
        return parse_filter(params, self.model.allowed_filter_fields())

    def _log(self, action: str) -> OperationLogContext:
        return OperationLogContext(self.db, f"{action}_{self.resource.upper()}")

    # ---------------- read ----------------

    def list(self, params: Mapping[str, Any], ctx: Optional[QueryContext] = None) -> List[Any]:
        flt = self._filter(params)
        projection = parse_field_projection(params)
        if projection is not None:
            return self.repo.find_fields(projection, flt, ctx)
        return self.repo.find_by_filter(flt, ctx)

    def first(self, params: Mapping[str, Any], ctx: Optional[QueryContext] = None) -> TableModel:
        item = self.repo.find_one_by_filter(self._filter(params), ctx)
        if item is None:
            raise NotFound(f"{self.resource} not found")
        return item

    def count(self, params: Mapping[str, Any], ctx: Optional[QueryContext] = None) -> int:
        return self.repo.count_by_filter(self._filter(params), ctx)

    def get(self, id: Any, ctx: Optional[QueryContext] = None) -> TableModel:
        item = self.repo.find_by_id(id, ctx)
        if item is None:
            raise NotFound(f"{self.resource} {id} not found")
        return item

    def get_many(self, ids: Sequence[Any], ctx: Optional[QueryContext] = None) -> List[TableModel]:
        return self.repo.find_by_ids(ids, ctx)

    # ---------------- write ----------------

    def create(self, entity: TableModel, ctx: Optional[QueryContext] = None) -> TableModel:
        log = self._log("CREATE")
        log.set_payload(entity)
        try:
            new_id = self.repo.create_one(entity, ctx)
            pk = self.model.primary_key()
            if entity.get_id() is None and new_id is not None:
                entity = entity.model_copy(update={pk: new_id})
            log.set_entity(self.resource, entity.get_id())
            log.set_after(entity)
            log.write("OK")
            return entity
        except Exception as e:
            log.write("ERROR", public_message(e))
            raise

    def update(self, id: Any, payload: UpdateModel, ctx: Optional[QueryContext] = None) -> int:
        log = self._log("UPDATE")
        log.set_entity(self.resource, id)
        log.set_payload(payload.assigned_values())
        try:
            affected = self.repo.update_one(payload, id, ctx)
            if affected == 0:
                raise NotFound(f"{self.resource} {id} not found")
            log.write("OK")
            return affected
        except Exception as e:
            log.write("ERROR", public_message(e))
            raise

    def update_many(self, ids: Sequence[Any], payload: UpdateModel, ctx: Optional[QueryContext] = None) -> int:
        log = self._log("BATCH_UPDATE")
        log.set_payload({"ids": list(ids), "data": payload.assigned_values()})
        try:
            affected = self.repo.update_by_ids(payload, ids, ctx)
            log.write("OK")
            return affected
        except Exception as e:
            log.write("ERROR", public_message(e))
            raise

    def update_where(self, params: Mapping[str, Any], payload: UpdateModel,
                     ctx: Optional[QueryContext] = None) -> int:
        """Update by query-string filter. Over HTTP a filter is mandatory."""
        log = self._log("FILTER_UPDATE")
        log.set_payload({"query": dict(params), "data": payload.assigned_values()})
        try:
            flt = self._filter(params)
            if flt is None:
                raise MissingFilter("update requires a filter")
            affected = self.repo.update_by_filter(payload, flt, ctx)
            log.write("OK")
            return affected
        except Exception as e:
            log.write("ERROR", public_message(e))
            raise

    def delete(self, id: Any, ctx: Optional[QueryContext] = None) -> int:
        log = self._log("DELETE")
        log.set_entity(self.resource, id)
        try:
            affected = self.repo.delete_by_id(id, ctx)
            log.write("OK")
            return affected
        except Exception as e:
            log.write("ERROR", public_message(e))
            raise

    def delete_many(self, ids: Sequence[Any], ctx: Optional[QueryContext] = None) -> int:
        log = self._log("BATCH_DELETE")
        log.set_payload({"ids": list(ids)})
        try:
            affected = self.repo.delete_by_ids(ids, ctx)
            log.write("OK")
            return affected
        except Exception as e:
            log.write("ERROR", public_message(e))
            raise

    def delete_where(self, params: Mapping[str, Any], ctx: Optional[QueryContext] = None) -> int:
        log = self._log("FILTER_DELETE")
        log.set_payload({"query": dict(params)})
        try:
            affected = self.repo.delete_by_filter(self._filter(params), ctx)
            logger.info("deleted %d %s rows by filter", affected, self.resource)
            log.write("OK")
            return affected
        except Exception as e:
            log.write("ERROR", public_message(e))
            raise
