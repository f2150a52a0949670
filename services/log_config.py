"""Logging for the workspace: console output plus a persistent log table.

Records are also written to ``app_logs`` in the local embedded store, never
the remote one, so a remote outage is still recorded. A record logged with
``extra={"project_id": ...}`` is tagged with that project and can be
filtered on in get_logs(). Any other ``extra={"log_metadata": {...}}`` is
kept as JSON. Call setup_logging() once at startup.
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone

from db import local_store
from shared.exceptions import LocalStoreError

_BATCH_SIZE = 10

_INSERT_SQL = (
    "INSERT INTO app_logs (timestamp, level, project_id, module, function, message, metadata)"
    " VALUES (?, ?, ?, ?, ?, ?, ?)"
)

_QUIET_LOGGERS = (
    "httpx", "httpcore", "gradio", "uvicorn", "uvicorn.access",
    "watchfiles", "markdown_it", "multipart",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class SQLiteLogHandler(logging.Handler):
    """Handler that stores records in the local store's app_logs table.

    Records are queued and written together once _BATCH_SIZE are waiting;
    a WARNING or worse writes the queue at once. The connection is opened
    per write, so a relocated store path is picked up.
    """

    def __init__(self):
        super().__init__()
        self._pending: list[tuple] = []
        self._lock = threading.Lock()

    def _row(self, record: logging.LogRecord) -> tuple:
        return (
            _now(),
            record.levelname,
            getattr(record, "project_id", None),
            record.module,
            record.funcName or "",
            self.format(record),
            json.dumps(getattr(record, "log_metadata", None) or {}, default=str),
        )

    def emit(self, record: logging.LogRecord):
        try:
            row = self._row(record)
        except Exception:
            self.handleError(record)
            return
        with self._lock:
            self._pending.append(row)
            urgent = record.levelno >= logging.WARNING
            if urgent or len(self._pending) >= _BATCH_SIZE:
                self._write_pending()

    def _write_pending(self):
        # caller holds self._lock
        if not self._pending:
            return
        rows, self._pending = self._pending, []
        try:
            with local_store.get_connection() as conn:
                conn.executemany(_INSERT_SQL, rows)
                conn.commit()
        except LocalStoreError:
            # console handler still has them
            pass

    def flush(self):
        with self._lock:
            self._write_pending()

    def close(self):
        self.flush()
        super().close()


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str = logging.INFO):
    """Install the console and app_logs handlers on the root logger.

    Calling it again is a no-op once an SQLiteLogHandler is installed.

    Args:
        level: Level as int or name ('INFO', 'debug', ...); unknown names
            fall back to INFO.
    """
    root = logging.getLogger()
    if any(isinstance(h, SQLiteLogHandler) for h in root.handlers):
        return

    level = _resolve_level(level)
    root.setLevel(level)
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    for handler in (logging.StreamHandler(), SQLiteLogHandler()):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logs(
    level: str = "",
    module: str = "",
    limit: int = 100,
    since: str = "",
    project_id: str = "",
) -> list[dict]:
    """Recent app_logs rows, newest first.

    Args:
        level: Exact level name, case-insensitive. Empty means any.
        module: Substring of the module name. Empty means any.
        limit: Max rows.
        since: ISO timestamp; older rows are skipped.
        project_id: Only rows tagged with this project.

    Returns:
        List of row dicts (empty when the local store is unavailable).
    """
    for handler in logging.getLogger().handlers:
        if isinstance(handler, SQLiteLogHandler):
            handler.flush()

    filters = {
        "level = ?": level.upper() if level else "",
        "module LIKE ?": f"%{module}%" if module else "",
        "timestamp >= ?": since,
        "project_id = ?": project_id,
    }
    conditions = [cond for cond, value in filters.items() if value]
    params = [value for value in filters.values() if value]

    sql = "SELECT * FROM app_logs"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    sql += " ORDER BY id DESC LIMIT ?"

    try:
        with local_store.get_connection() as conn:
            rows = conn.execute(sql, (*params, limit)).fetchall()
    except LocalStoreError:
        return []
    return [dict(row) for row in rows]


def cleanup_old_logs(days: int = 30) -> int:
    """Delete app_logs rows older than ``days`` days and return how many went."""
    cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat(timespec="seconds")
    try:
        with local_store.get_connection() as conn:
            deleted = conn.execute("DELETE FROM app_logs WHERE timestamp < ?", (cutoff,)).rowcount
            conn.commit()
    except LocalStoreError:
        return 0
    return deleted
