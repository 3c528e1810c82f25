from __future__ import annotations

from ..repository.tables import Book, BookUpdate
from .crud import build_crud_router

router = build_crud_router("/books", Book, BookUpdate, "books")
