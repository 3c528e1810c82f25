from __future__ import annotations

# crudkit/db.py
import logging
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, NamedTuple, Optional, Sequence, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError as ModelValidationError

from .errors import EmptyIdList, InvalidValue, QueryTimeout, StoreError

logger = logging.getLogger(__name__)

# DB 路径解析顺序：
# 1) 环境变量 CRUDKIT_DB_PATH（最高优先级）
# 2) config.yaml 的 test_db_path（当检测到测试环境时）
# 3) config.yaml 的 db_path（生产默认）
# 4) 兜底：项目根 crudkit.db
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_ROOT_DB = os.path.join(_PROJECT_ROOT, "crudkit.db")
SCHEMA_PATH = os.path.join(_PROJECT_ROOT, "schema.sql")

# progress handler granularity (SQLite VM instructions between checks)
PROGRESS_STEPS = 1000

M = TypeVar("M", bound=BaseModel)


def _config_path() -> str:
    return os.environ.get("CRUDKIT_CONFIG") or os.path.join(_PROJECT_ROOT, "config.yaml")


def load_config() -> dict:
    """Read config.yaml; unknown keys are ignored, a missing file means defaults."""
    cfg_path = _config_path()
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("failed to read %s, using defaults: %s", cfg_path, e)
        return {}
    out: dict = {}
    for k in ("db_path", "test_db_path", "log_level"):
        v = cfg.get(k)
        if isinstance(v, str) and v.strip():
            out[k] = v.strip()
    timeout = cfg.get("query_timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
        out["query_timeout"] = float(timeout)
    return out


def get_db_path(cfg: Optional[dict] = None) -> str:
    env_path = os.environ.get("CRUDKIT_DB_PATH")
    cfg = load_config() if cfg is None else cfg
    cfg_db = cfg.get("db_path")
    cfg_test = cfg.get("test_db_path")
    is_test = (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)

    if env_path:
        path = env_path
    elif is_test and cfg_test:
        path = cfg_test
    elif cfg_db:
        path = cfg_db
    else:
        path = _ROOT_DB

    # 确保目录存在
    dirn = os.path.dirname(path) or "."
    os.makedirs(dirn, exist_ok=True)
    return path


@contextmanager
def get_conn(db_path: str | None = None) -> Iterator[sqlite3.Connection]:
    """
    获取 SQLite 连接。优先使用显式传入的 db_path，否则走 get_db_path()。
    打开 foreign_keys，设置 row_factory 为 Row；autocommit（isolation_level=None）。
    """
    path = db_path or get_db_path()
    conn = sqlite3.connect(
        path,
        detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        check_same_thread=False,
        isolation_level=None,
    )
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.row_factory = sqlite3.Row
        yield conn
    finally:
        conn.close()


class QueryContext:
    """Cancellation / deadline token for one call.

    ``cancel()`` may be called from another thread; the running statement is
    interrupted at the next progress-handler check.
    """

    def __init__(self, timeout: Optional[float] = None, deadline: Optional[float] = None):
        if deadline is None and timeout is not None:
            deadline = time.monotonic() + timeout
        self.deadline = deadline
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def done(self) -> bool:
        return self.cancelled or self.expired()

    def reason(self) -> str:
        return "cancelled" if self.cancelled else "deadline exceeded"


class ExecResult(NamedTuple):
    rowcount: int
    lastrowid: Optional[int]


def expand_in(sql: str, args: Sequence[Any]) -> tuple[str, List[Any]]:
    """Rewrite ``IN (?)`` placeholders bound to a sequence into ``IN (?, ?, ...)``.

    Non-sequence args keep their single placeholder. Identifiers never contain
    '?' (see compiler.quote_ident), so splitting on it is exact.
    """
    pieces = sql.split("?")
    if len(pieces) - 1 != len(args):
        raise InvalidValue(f"placeholder count mismatch: {len(pieces) - 1} != {len(args)}")
    out_sql = [pieces[0]]
    out_args: List[Any] = []
    for arg, tail in zip(args, pieces[1:]):
        if isinstance(arg, (list, tuple, set, frozenset)):
            items = list(arg)
            if not items:
                raise EmptyIdList("empty list passed to IN (?)")
            out_sql.append(", ".join("?" * len(items)))
            out_args.extend(items)
        else:
            out_sql.append("?")
            out_args.append(arg)
        out_sql.append(tail)
    return "".join(out_sql), out_args


class Database:
    """Execution primitive over SQLite.

    Construct once at startup (``init_db``) and hand it to repositories.
    Each call opens a short-lived connection; there is no shared cursor state.
    """

    def __init__(self, path: Optional[str] = None, default_timeout: Optional[float] = None):
        self.path = path or get_db_path()
        self.default_timeout = default_timeout

    def __repr__(self) -> str:
        return f"Database(path={self.path!r})"

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        with get_conn(self.path) as conn:
            yield conn

    def _context(self, ctx: Optional[QueryContext]) -> Optional[QueryContext]:
        if ctx is None and self.default_timeout:
            return QueryContext(timeout=self.default_timeout)
        return ctx

    def _run(
        self,
        op: str,
        sql: str,
        args: Sequence[Any],
        ctx: Optional[QueryContext],
        fn: Callable[[sqlite3.Connection], Any],
    ) -> Any:
        ctx = self._context(ctx)
        if ctx is not None and ctx.done():
            raise QueryTimeout(f"failed to {op}: {ctx.reason()}", sql=sql, params=args)
        with self.connect() as conn:
            if ctx is not None:
                conn.set_progress_handler(lambda: 1 if ctx.done() else 0, PROGRESS_STEPS)
            try:
                return fn(conn)
            except sqlite3.Error as e:
                if ctx is not None and ctx.done():
                    logger.warning("%s aborted (%s), sql: %s, args: %r", op, ctx.reason(), sql, list(args))
                    raise QueryTimeout(f"failed to {op}: {ctx.reason()}", e, sql, args) from e
                logger.error("failed to %s, sql: %s, args: %r, error: %s", op, sql, list(args), e)
                raise StoreError(f"failed to {op}", e, sql, args) from e

    def query(
        self,
        sql: str,
        args: Sequence[Any] = (),
        model: Optional[Type[M]] = None,
        ctx: Optional[QueryContext] = None,
        op: str = "select rows",
    ) -> List[Any]:
        """Run a SELECT; rows come back as ``model`` instances (or dicts)."""
        rows = self._run(op, sql, args, ctx, lambda conn: conn.execute(sql, list(args)).fetchall())
        if model is None:
            return [dict(r) for r in rows]
        try:
            return [model.model_validate(dict(r)) for r in rows]
        except ModelValidationError as e:
            logger.error("failed to bind rows to %s, sql: %s, error: %s", model.__name__, sql, e)
            raise StoreError(f"failed to {op}: row does not match {model.__name__}", e, sql, args) from e

    def query_dicts(
        self,
        sql: str,
        args: Sequence[Any] = (),
        ctx: Optional[QueryContext] = None,
        op: str = "select rows",
    ) -> List[dict]:
        return self.query(sql, args, None, ctx, op)

    def execute(
        self,
        sql: str,
        args: Sequence[Any] = (),
        ctx: Optional[QueryContext] = None,
        op: str = "execute statement",
    ) -> ExecResult:
        def _exec(conn: sqlite3.Connection) -> ExecResult:
            cur = conn.execute(sql, list(args))
            return ExecResult(cur.rowcount, cur.lastrowid)

        return self._run(op, sql, args, ctx, _exec)

    def executescript(self, script: str) -> None:
        with self.connect() as conn:
            conn.executescript(script)

    expand_in = staticmethod(expand_in)


def ensure_schema(db: Database, schema_path: str = SCHEMA_PATH) -> None:
    with open(schema_path, "r", encoding="utf-8") as f:
        db.executescript(f.read())


def init_db(db_path: Optional[str] = None, apply_schema: bool = True) -> Database:
    """One-time startup initialisation; call before serving requests."""
    cfg = load_config()
    db = Database(db_path or get_db_path(cfg), default_timeout=cfg.get("query_timeout"))
    if apply_schema:
        ensure_schema(db)
    logger.info("database ready: %s", db.path)
    return db
