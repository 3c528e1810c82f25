from __future__ import annotations

from typing import Any, Dict, Optional

from ..db import Database, QueryContext
from ..errors import NotFound
from ..query.filter import Condition, Filter, Sort
from ..repository.crud_repo import CrudRepository
from ..repository.tables import Author, Book


def get_author_with_books(db: Database, author_id: int, ctx: Optional[QueryContext] = None) -> Dict[str, Any]:
    """作者及其书籍（按 id 升序）"""
    author = CrudRepository(Author, db).find_by_id(author_id, ctx)
    if author is None:
        raise NotFound(f"author {author_id} not found")
    flt = Filter.where(Condition("author_id", "=", author_id), sort=Sort("id", "ASC"))
    books = CrudRepository(Book, db).find_by_filter(flt, ctx)
    return {"author": author, "books": books}
