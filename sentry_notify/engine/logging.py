"""
Sentry Notify Logging — stdlib logging setup plus structured JSONL delivery logs.

Implements:
- configure_logging: Root level/format for the CLI
- LogEntry / FileLogger: Per-category JSON line files (daily rotation)
- Log entry builders for alert delivery and failure

Files: {directory}/{category}/{YYYY-MM-DD}.jsonl
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sentry_notify.engine.config import LoggingConfig

logger = logging.getLogger("sentry_notify.engine.logging")

CATEGORIES = ("delivery", "failure")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure the root logger from *config* (defaults to INFO)."""
    config = config or LoggingConfig()
    logging.basicConfig(level=getattr(logging, config.level), format=LOG_FORMAT)
    logging.getLogger("sentry_notify").setLevel(getattr(logging, config.level))


class LogEntry:
    """A structured log entry destined for a category file."""

    __slots__ = ("category", "data")

    def __init__(self, category: str, data: Dict[str, Any]):
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-category files.
    Files rotate daily: {log_dir}/{category}/{YYYY-MM-DD}.jsonl

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        for cat in CATEGORIES:
            (self._log_dir / cat).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def write(self, entry: LogEntry) -> None:
        """Append a single entry to today's file for its category."""
        file_path = self._resolve_path(entry.category)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with self._file_locks[str(file_path)]:
            with open(file_path, "a", encoding="utf-8") as f:
                f.write(entry.to_json())
                f.write("\n")

    def read(self, category: str, day: Optional[date] = None) -> List[Dict[str, Any]]:
        """Read all entries of *category* for *day* (default today)."""
        file_path = self._resolve_path(category, day)
        if not file_path.exists():
            return []

        entries: List[Dict[str, Any]] = []
        with open(file_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed log line in %s", file_path)
        return entries

    def _resolve_path(self, category: str, day: Optional[date] = None) -> Path:
        day = day or date.today()
        return self._log_dir / category / f"{day.isoformat()}.jsonl"


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    task_type: str,
    event_id: Optional[str] = None,
    execution_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build a base log entry with common fields."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "task_type": task_type,
    }
    if event_id:
        entry["event_id"] = event_id
    if execution_id:
        entry["execution_id"] = execution_id
    entry.update(extra)
    return entry


def log_alert_delivery(
    task_type: str,
    url: str,
    status_code: int,
    duration_ms: float,
    event_id: Optional[str] = None,
    execution_id: Optional[str] = None,
    request_size_bytes: Optional[int] = None,
    response_size_bytes: Optional[int] = None,
    log_payload: bool = False,
    request_body: Optional[str] = None,
) -> LogEntry:
    """Build a successful delivery log entry."""
    data = _base_entry(
        event="alert_delivered",
        level="INFO",
        task_type=task_type,
        event_id=event_id,
        execution_id=execution_id,
        url=url,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
    )
    if request_size_bytes is not None:
        data["request_size_bytes"] = request_size_bytes
    if response_size_bytes is not None:
        data["response_size_bytes"] = response_size_bytes
    if log_payload and request_body is not None:
        data["request_body"] = request_body
    return LogEntry("delivery", data)


def log_alert_failure(
    task_type: str,
    error: Any,
    event_id: Optional[str] = None,
    execution_id: Optional[str] = None,
) -> LogEntry:
    """Build a failure log entry from a SentryNotifyError (or any exception)."""
    details = error.to_dict() if hasattr(error, "to_dict") else {"error_type": type(error).__name__}
    data = _base_entry(
        event="alert_failed",
        level="ERROR",
        task_type=task_type,
        event_id=event_id,
        execution_id=execution_id,
        error=str(error),
        error_type=details.get("error_type"),
    )
    if details.get("status_code") is not None:
        data["status_code"] = details["status_code"]
    return LogEntry("failure", data)
