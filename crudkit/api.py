"""
FastAPI app entry point aggregating per-resource routers under crudkit/routes.
Keep as `uvicorn crudkit.api:app`.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import Database, init_db, load_config
from .errors import CrudError, ErrorCode
from .logs import ensure_log_schema, setup_logging
from .response import error_body, error_response

logger = logging.getLogger(__name__)


def create_app(db: Optional[Database] = None) -> FastAPI:
    """Build the app. With `db` given (tests), startup does not touch config."""
    app = FastAPI(title="crudkit-api", version="0.1.0")
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        logger.debug("started %s %s", request.method, request.url.path)
        response = await call_next(request)
        logger.info(
            "%s %s -> %d in %.1f ms",
            request.method, request.url.path, response.status_code, (time.perf_counter() - start) * 1000,
        )
        return response

    @app.on_event("startup")
    def on_startup():
        if app.state.db is None:
            cfg = load_config()
            setup_logging(cfg.get("log_level"))
            app.state.db = init_db()
        ensure_log_schema(app.state.db)

    @app.exception_handler(CrudError)
    async def crud_error_handler(request: Request, exc: CrudError):
        if exc.code >= ErrorCode.INVALID_PARAMS:
            logger.info("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_body(ErrorCode.INVALID_PARAMS, "invalid request", data=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body(ErrorCode.SYSTEM, "Internal Server Error"),
        )

    # Include routers (split by resource)
    from .routes import base as base_routes
    from .routes import authors as authors_routes
    from .routes import books as books_routes
    from .routes import logs as logs_routes

    app.include_router(base_routes.router)
    app.include_router(authors_routes.router)
    app.include_router(books_routes.router)
    app.include_router(logs_routes.router)
    return app


app = create_app()
