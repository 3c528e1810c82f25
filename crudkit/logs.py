"""
日志：进程日志格式 + operation_log 审计表
Process logging setup and the operation_log audit table.

Each write request through the services leaves one operation_log row
(action, entity, payload, result, latency). Rows are written through
CrudRepository; free-text search is a bound query with an escaped LIKE.
"""
from __future__ import annotations

import datetime as dt
import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from .db import Database
from .query.filter import Page
from .repository.crud_repo import CrudRepository
from .table import TableModel

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

DDL = """
CREATE TABLE IF NOT EXISTS operation_log (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  user TEXT NOT NULL,
  action TEXT NOT NULL,
  entity_type TEXT,
  entity_id TEXT,
  request_id TEXT,
  payload_json TEXT,
  after_json TEXT,
  result TEXT,
  err_msg TEXT,
  latency_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_log_ts ON operation_log(ts);
CREATE INDEX IF NOT EXISTS idx_log_action ON operation_log(action);
"""


def setup_logging(level: Optional[str] = None):
    """Configure root logging once (no-op if handlers already exist)."""
    logging.basicConfig(level=(level or "INFO").upper(), format=LOG_FORMAT)


def ensure_log_schema(db: Database):
    db.executescript(DDL)


class OperationLog(TableModel):
    __tablename__ = "operation_log"
    __filter_fields__ = frozenset({"id", "ts", "user", "action", "entity_type", "entity_id", "result"})

    id: Optional[int] = None
    ts: str
    user: str
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    request_id: Optional[str] = None
    payload_json: Optional[str] = None
    after_json: Optional[str] = None
    result: Optional[str] = None
    err_msg: Optional[str] = None
    latency_ms: Optional[int] = None


def _dumps(obj: Any) -> Optional[str]:
    if obj is None:
        return None
    if hasattr(obj, "model_dump"):
        obj = obj.model_dump()
    return json.dumps(obj, ensure_ascii=False, default=str)


class OperationLogContext:
    """Collects one audit entry; ``write()`` stores it with the elapsed time."""

    def __init__(self, db: Database, action: str, user: str = "api"):
        self.repo = CrudRepository(OperationLog, db)
        self.action = action
        self.user = user
        self.request_id = uuid.uuid4().hex
        self.started = time.perf_counter()
        self.entity_type: Optional[str] = None
        self.entity_id: Optional[str] = None
        self.payload: Any = None
        self.after: Any = None

    def set_entity(self, etype: str, eid: Any):
        self.entity_type = etype
        self.entity_id = None if eid is None else str(eid)

    def set_payload(self, obj: Any):
        self.payload = obj

    def set_after(self, obj: Any):
        self.after = obj

    def write(self, result: str = "OK", err: Optional[str] = None) -> Optional[int]:
        entry = OperationLog(
            ts=dt.datetime.now(dt.timezone.utc).isoformat(),
            user=self.user,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            request_id=self.request_id,
            payload_json=_dumps(self.payload),
            after_json=_dumps(self.after),
            result=result,
            err_msg=err,
            latency_ms=int((time.perf_counter() - self.started) * 1000),
        )
        return self.repo.create_one(entry)


def escape_like(text: str) -> str:
    """Literal substring for ``LIKE ... ESCAPE '\\'``."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# free-text search spans these columns; the text is escaped, not validated
_SEARCH_COLUMNS = ("action", "payload_json", "after_json", "err_msg")


def search_operation_logs(
    db: Database,
    q: Optional[str] = None,
    action: Optional[str] = None,
    ts_from: Optional[str] = None,
    ts_to: Optional[str] = None,
    page: int = 1,
    size: int = 20,
) -> Tuple[int, List[Dict[str, Any]]]:
    """Newest first. ``q`` matches any substring of action, payload, result or error."""
    where: List[str] = []
    args: List[Any] = []
    if q:
        pattern = f"%{escape_like(q)}%"
        where.append("(" + " OR ".join(f"`{c}` LIKE ? ESCAPE '\\'" for c in _SEARCH_COLUMNS) + ")")
        args.extend([pattern] * len(_SEARCH_COLUMNS))
    if action:
        where.append("`action` = ?")
        args.append(action)
    if ts_from:
        where.append("`ts` >= ?")
        args.append(ts_from)
    if ts_to:
        where.append("`ts` <= ?")
        args.append(ts_to)
    wh = " WHERE " + " AND ".join(where) if where else ""
    limit, offset = Page(page, size).to_limit_offset()

    total = db.query_dicts(f"SELECT COUNT(1) AS `cnt` FROM `operation_log`{wh}", args, op="count operation logs")
    rows = db.query(
        f"SELECT * FROM `operation_log`{wh} ORDER BY `ts` DESC LIMIT ? OFFSET ?",
        args + [limit, offset],
        OperationLog,
        op="search operation logs",
    )
    return int(total[0]["cnt"]), [r.model_dump() for r in rows]
