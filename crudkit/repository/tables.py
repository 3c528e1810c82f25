"""Table models served by the API (schema in schema.sql)."""
from __future__ import annotations

from typing import Dict, Optional, Tuple, Type

from ..table import TableModel, UpdateModel


class Author(TableModel):
    __tablename__ = "authors"
    # bio is a column but not filterable
    __filter_fields__ = frozenset({"id", "name"})

    id: Optional[int] = None
    name: str
    bio: Optional[str] = None


class AuthorUpdate(UpdateModel):
    id: Optional[int] = None
    name: Optional[str] = None
    bio: Optional[str] = None


class Book(TableModel):
    __tablename__ = "books"
    __filter_fields__ = frozenset({"id", "title", "author_id"})

    id: Optional[int] = None
    title: str
    author_id: int


class BookUpdate(UpdateModel):
    id: Optional[int] = None
    title: Optional[str] = None
    author_id: Optional[int] = None


# table name -> (row model, update payload model)
TABLES: Dict[str, Tuple[Type[TableModel], Type[UpdateModel]]] = {
    Author.table_name(): (Author, AuthorUpdate),
    Book.table_name(): (Book, BookUpdate),
}
