"""Table descriptor contract shared by the query compiler and the CRUD engine.

A table type declares its name, its ordered column list, the subset of
columns that user input may filter/sort on, and its primary key. The
compiler only ever talks to this interface, never to concrete entity types.
"""
from __future__ import annotations

from typing import Any, AbstractSet, ClassVar, Dict, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel


@runtime_checkable
class TableDescriptor(Protocol):
    def table_name(self) -> str: ...

    def columns(self) -> Sequence[str]: ...

    def allowed_filter_fields(self) -> AbstractSet[str]: ...

    def primary_key(self) -> str: ...


class TableModel(BaseModel):
    """Row model bound to a table.

    Subclasses set ``__tablename__`` and ``__filter_fields__``. Columns default
    to the model fields in declaration order, which is also the INSERT order.
    """

    __tablename__: ClassVar[str] = ""
    __columns__: ClassVar[Sequence[str]] = ()
    __filter_fields__: ClassVar[AbstractSet[str]] = frozenset()
    __primary_key__: ClassVar[str] = "id"

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        if not cls.__tablename__:
            return
        cols = set(cls.columns())
        unknown = set(cls.__filter_fields__) - cols
        if unknown:
            raise TypeError(f"{cls.__name__}: filter fields not in columns: {sorted(unknown)}")
        if cls.__primary_key__ not in cols:
            raise TypeError(f"{cls.__name__}: primary key {cls.__primary_key__!r} not in columns")

    @classmethod
    def table_name(cls) -> str:
        return cls.__tablename__

    @classmethod
    def columns(cls) -> tuple[str, ...]:
        return tuple(cls.__columns__) or tuple(cls.model_fields)

    @classmethod
    def allowed_filter_fields(cls) -> frozenset[str]:
        return frozenset(cls.__filter_fields__)

    @classmethod
    def primary_key(cls) -> str:
        return cls.__primary_key__

    def get_id(self) -> Any:
        return getattr(self, self.primary_key(), None)

    def assigned_values(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in type(self).model_fields if k in self.model_fields_set}


class UpdateModel(BaseModel):
    """Partial update payload.

    Declare every updatable column as Optional with a None default. Only the
    fields the caller actually sent end up in SET, so an explicit 0, "" or
    null is an update while an omitted field is left alone.
    """

    __primary_key__: ClassVar[str] = "id"

    def get_id(self) -> Optional[Any]:
        if self.__primary_key__ not in self.model_fields_set:
            return None
        return getattr(self, self.__primary_key__, None)

    def assigned_values(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in type(self).model_fields if k in self.model_fields_set}
