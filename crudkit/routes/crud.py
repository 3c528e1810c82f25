# NOTE: no `from __future__ import annotations` here; FastAPI needs the real
# body model classes in the endpoint signatures built inside the factory.
from typing import List, Type

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, create_model

from ..db import Database
from ..response import success
from ..services.crud_svc import CrudService
from ..table import TableModel, UpdateModel


class GroupIds(BaseModel):
    ids: List[int]


def get_db(request: Request) -> Database:
    return request.app.state.db


def build_crud_router(
    prefix: str,
    model: Type[TableModel],
    update_model: Type[UpdateModel],
    resource: str,
) -> APIRouter:
    """Standard list/get/create/update/delete endpoints for one table.

    Filters come from the query string (see query.params); bodies are the
    table's row model (create) or its partial update model.
    """
    router = APIRouter(prefix=prefix, tags=[resource])
    BatchUpdate = create_model(
        f"{model.__name__}BatchUpdate",
        ids=(List[int], ...),
        data=(update_model, ...),
    )

    def svc(db: Database = Depends(get_db)) -> CrudService:
        return CrudService(model, update_model, db, resource)

    @router.get("")
    def list_rows(request: Request, s: CrudService = Depends(svc)):
        return success(s.list(request.query_params))

    @router.get("/one")
    def first_row(request: Request, s: CrudService = Depends(svc)):
        return success(s.first(request.query_params))

    @router.get("/count")
    def count_rows(request: Request, s: CrudService = Depends(svc)):
        return success({"total": s.count(request.query_params)})

    @router.post("/batch-get")
    def get_rows(body: GroupIds, s: CrudService = Depends(svc)):
        return success(s.get_many(body.ids))

    @router.post("/batch-update")
    def update_rows(body: BatchUpdate, s: CrudService = Depends(svc)):
        return success({"affected": s.update_many(body.ids, body.data)})

    @router.post("/batch-delete")
    def delete_rows(body: GroupIds, s: CrudService = Depends(svc)):
        return success({"affected": s.delete_many(body.ids)})

    @router.get("/{id}")
    def get_row(id: int, s: CrudService = Depends(svc)):
        return success(s.get(id))

    @router.post("", status_code=201)
    def create_row(body: model, s: CrudService = Depends(svc)):
        return success(s.create(body))

    @router.put("/{id}")
    def update_row(id: int, body: update_model, s: CrudService = Depends(svc)):
        return success({"id": id, "affected": s.update(id, body)})

    @router.put("")
    def update_where(request: Request, body: update_model, s: CrudService = Depends(svc)):
        return success({"affected": s.update_where(request.query_params, body)})

    @router.delete("/{id}")
    def delete_row(id: int, s: CrudService = Depends(svc)):
        return success({"affected": s.delete(id)})

    @router.delete("")
    def delete_where(request: Request, s: CrudService = Depends(svc)):
        return success({"affected": s.delete_where(request.query_params)})

    return router
