"""
Sync logging - console logging plus persisted sync_log rows

Context (integration, queue item, job) is passed explicitly: each invocation
builds its own SyncLogger instead of mutating a shared logger.
"""
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from app.models.base import as_uuid
from app.models.sync_log import SyncLogEntry

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "INFO"):
    """Configure root logging once at startup"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@dataclass(frozen=True)
class SyncContext:
    """Per-invocation identifiers attached to every log line"""
    function_name: str
    integration_id: Optional[str] = None
    queue_id: Optional[str] = None
    job_id: Optional[str] = None

    def with_job(self, job_id: Optional[str]) -> "SyncContext":
        return replace(self, job_id=job_id)

    def prefix(self) -> str:
        parts = [self.function_name]
        if self.integration_id:
            parts.append(f"integration={self.integration_id}")
        if self.queue_id:
            parts.append(f"queue={self.queue_id}")
        if self.job_id:
            parts.append(f"job={self.job_id}")
        return "[" + " ".join(parts) + "]"


class SyncLogger:
    """
    Writes to the module logger and to the sync_log table.
    Rows are only persisted when the context names an integration or queue item.
    """

    def __init__(self, db: Session, context: SyncContext, name: str = "app.sync"):
        self.db = db
        self.context = context
        self._logger = logging.getLogger(name)

    def bind(self, **changes) -> "SyncLogger":
        return SyncLogger(self.db, replace(self.context, **changes), self._logger.name)

    def debug(self, message: str, **details):
        self._log("debug", message, details)

    def info(self, message: str, **details):
        self._log("info", message, details)

    def warn(self, message: str, **details):
        self._log("warn", message, details)

    def error(self, message: str, **details):
        self._log("error", message, details)

    def _log(self, level: str, message: str, details: Dict[str, Any]):
        suffix = f" {details}" if details else ""
        self._logger.log(_LEVELS[level], f"{self.context.prefix()} {message}{suffix}")

        if not (self.context.integration_id or self.context.queue_id):
            return

        try:
            self.db.add(SyncLogEntry(
                queue_id=as_uuid(self.context.queue_id),
                integration_id=as_uuid(self.context.integration_id),
                job_id=as_uuid(self.context.job_id),
                function_name=self.context.function_name,
                level=level,
                message=message[:2000],
                details=_jsonable(details) or None,
            ))
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to persist sync log entry: {e}")


def _jsonable(details: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in details.items():
        if value is None or isinstance(value, (str, int, float, bool, list, dict)):
            out[key] = value
        else:
            out[key] = str(value)
    return out
