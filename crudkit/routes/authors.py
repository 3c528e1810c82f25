from __future__ import annotations

from fastapi import APIRouter, Depends

from ..db import Database
from ..repository.tables import Author, AuthorUpdate
from ..response import success
from ..services.author_svc import get_author_with_books
from .crud import build_crud_router, get_db

router = APIRouter()


@router.get("/authors/{id}/books")
def api_author_books(id: int, db: Database = Depends(get_db)):
    return success(get_author_with_books(db, id))


router.include_router(build_crud_router("/authors", Author, AuthorUpdate, "authors"))
