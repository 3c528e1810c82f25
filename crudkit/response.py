"""Uniform JSON envelope: {code, code_desc, message, data, timestamp}."""
from __future__ import annotations

import time
from typing import Any, Optional

from fastapi.responses import JSONResponse

from .errors import CrudError, ErrorCode, StoreError, get_message, http_status


def success(data: Any = None, message: str = "ok") -> dict:
    return {
        "code": int(ErrorCode.SUCCESS),
        "code_desc": get_message(ErrorCode.SUCCESS),
        "message": message,
        "data": data,
        "timestamp": int(time.time()),
    }


def error_body(code: int, message: str, data: Any = None) -> dict:
    body = {
        "code": int(code),
        "code_desc": get_message(code),
        "message": message,
        "timestamp": int(time.time()),
    }
    if data is not None:
        body["data"] = data
    return body


def public_message(exc: BaseException) -> str:
    # statement and driver error stay in the server log
    if isinstance(exc, StoreError):
        return exc.message
    return str(exc)


def error_response(exc: CrudError, status: Optional[int] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status or http_status(exc.code),
        content=error_body(exc.code, public_message(exc)),
    )
