"""Error kinds raised by the query compiler, the CRUD engine and the HTTP layer.

Codes follow the numbering used by the API envelope:
0 success, 1000-1999 system, 2000-2999 business, 3000-3999 auth.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional, Sequence


class ErrorCode(IntEnum):
    SUCCESS = 0

    SYSTEM = 1000
    DATABASE = 1001
    CACHE = 1002
    NETWORK = 1003
    SERVICE_UNAVAILABLE = 1004
    TIMEOUT = 1005

    INVALID_PARAMS = 2000
    VALIDATION = 2001
    BUSINESS = 2002
    NOT_FOUND = 2003
    DUPLICATE = 2004
    CONFLICT = 2005

    UNAUTHORIZED = 3000
    FORBIDDEN = 3001
    EXPIRED = 3002
    INVALID_TOKEN = 3003


_MESSAGES = {
    ErrorCode.SUCCESS: "success",
    ErrorCode.SYSTEM: "system error",
    ErrorCode.DATABASE: "database error",
    ErrorCode.CACHE: "cache error",
    ErrorCode.NETWORK: "network error",
    ErrorCode.SERVICE_UNAVAILABLE: "service unavailable",
    ErrorCode.TIMEOUT: "query timed out",
    ErrorCode.INVALID_PARAMS: "invalid parameters",
    ErrorCode.VALIDATION: "validation error",
    ErrorCode.BUSINESS: "business error",
    ErrorCode.NOT_FOUND: "not found",
    ErrorCode.DUPLICATE: "duplicate",
    ErrorCode.CONFLICT: "conflict",
    ErrorCode.UNAUTHORIZED: "unauthorized",
    ErrorCode.FORBIDDEN: "forbidden",
    ErrorCode.EXPIRED: "expired",
    ErrorCode.INVALID_TOKEN: "invalid token",
}

_HTTP_STATUS = {
    ErrorCode.SUCCESS: 200,
    ErrorCode.SYSTEM: 500,
    ErrorCode.DATABASE: 500,
    ErrorCode.CACHE: 503,
    ErrorCode.NETWORK: 502,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.INVALID_PARAMS: 400,
    ErrorCode.VALIDATION: 422,
    ErrorCode.BUSINESS: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DUPLICATE: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.EXPIRED: 401,
    ErrorCode.INVALID_TOKEN: 401,
}


def get_message(code: int) -> str:
    try:
        return _MESSAGES[ErrorCode(code)]
    except ValueError:
        return "unknown error"


def http_status(code: int) -> int:
    try:
        return _HTTP_STATUS[ErrorCode(code)]
    except ValueError:
        return 500


class CrudError(Exception):
    """Base class; carries an ErrorCode and an optional underlying cause."""

    code: ErrorCode = ErrorCode.SYSTEM

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        self.message = message or get_message(self.code)
        self.cause = cause
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


# ---------------- validation (raised before any statement runs) ----------------

class ValidationError(CrudError, ValueError):
    code = ErrorCode.INVALID_PARAMS


class InvalidField(ValidationError):
    pass


class InvalidOperator(ValidationError):
    pass


class InvalidValue(ValidationError):
    pass


class InvalidLikeValue(ValidationError):
    pass


class InvalidSort(ValidationError):
    pass


class InvalidPagination(ValidationError):
    pass


class NoUpdatableColumns(ValidationError):
    pass


class NoSelectableColumns(ValidationError):
    pass


class EmptyIdList(ValidationError):
    pass


class MissingFilter(ValidationError):
    pass


# ---------------- lookup / store ----------------

class NotFound(CrudError):
    code = ErrorCode.NOT_FOUND


class StoreError(CrudError):
    """Execution failure, keeping the attempted statement for diagnostics.

    `sql` and `params` are meant for logs; the HTTP layer only shows `message`.
    """

    code = ErrorCode.DATABASE

    def __init__(
        self,
        message: str = "",
        cause: Optional[BaseException] = None,
        sql: Optional[str] = None,
        params: Optional[Sequence[Any]] = None,
    ):
        super().__init__(message, cause)
        self.sql = sql
        self.params = list(params) if params is not None else []


class QueryTimeout(StoreError):
    code = ErrorCode.TIMEOUT
