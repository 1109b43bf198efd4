"""
Logging for the image generation service.

Records go to Python logging as ``message key=value ...`` lines and into an
in-memory ring buffer. Entries that mention a job keep its id, so the admin
API can replay what happened to one job without external log aggregation.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Deque, Dict, List, Optional


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def is_error(self) -> bool:
        return self in (LogLevel.ERROR, LogLevel.CRITICAL)


@dataclass(frozen=True)
class LogEntry:
    level: LogLevel
    message: str
    source: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def job_id(self) -> Optional[int]:
        return self.metadata.get("job_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
            "job_id": self.job_id,
            "metadata": self.metadata
        }


class LogBuffer:
    """
    Bounded buffer of the most recent log entries.

    The worker logs from the event loop while uvicorn may log from other
    threads, so every access goes through one lock.
    """

    def __init__(self, max_size: int = 1000):
        self._entries: Deque[LogEntry] = deque(maxlen=max_size)
        self._lock = Lock()

    def resize(self, max_size: int):
        """Change capacity, keeping the newest entries."""
        with self._lock:
            self._entries = deque(self._entries, maxlen=max_size)

    def add(self, entry: LogEntry):
        with self._lock:
            self._entries.append(entry)

    def _snapshot(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def get_recent(
        self,
        limit: int = 100,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        job_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Newest entries first, optionally filtered by level, source or job."""
        matches = [
            e for e in reversed(self._snapshot())
            if (level is None or e.level == level)
            and (source is None or e.source == source)
            and (job_id is None or e.job_id == job_id)
        ]
        return [e.to_dict() for e in matches[:limit]]

    def get_errors(self, limit: int = 50) -> List[Dict[str, Any]]:
        errors = [e for e in reversed(self._snapshot()) if e.level.is_error]
        return [e.to_dict() for e in errors[:limit]]

    def get_job_trail(self, job_id: int) -> List[Dict[str, Any]]:
        """Every buffered entry for one job, oldest first."""
        return [e.to_dict() for e in self._snapshot() if e.job_id == job_id]

    def get_stats(self) -> Dict[str, Any]:
        entries = self._snapshot()
        by_level = Counter(e.level.value for e in entries)
        return {
            "total": len(entries),
            "by_level": dict(by_level),
            "by_source": dict(Counter(e.source for e in entries)),
            "error_count": by_level[LogLevel.ERROR.value] + by_level[LogLevel.CRITICAL.value],
            "warning_count": by_level[LogLevel.WARNING.value]
        }

    def clear(self):
        with self._lock:
            self._entries.clear()


_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    """Get the global log buffer instance."""
    return _log_buffer


def _format_fields(metadata: Dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in metadata.items())


class AppLogger:
    """
    Logger that writes to both Python logging and the in-memory buffer.

    Keyword arguments become structured metadata on the buffered entry and
    ``key=value`` pairs on the plain log line.
    """

    def __init__(self, source: str):
        self.source = source
        self._logger = logging.getLogger(f"imagegen.{source}")

    def _log(self, level: LogLevel, message: str, metadata: Dict[str, Any]):
        _log_buffer.add(LogEntry(level, message, self.source, metadata))
        line = f"{message} {_format_fields(metadata)}" if metadata else message
        self._logger.log(getattr(logging, level.name), line)

    def debug(self, message: str, **metadata):
        self._log(LogLevel.DEBUG, message, metadata)

    def info(self, message: str, **metadata):
        self._log(LogLevel.INFO, message, metadata)

    def warning(self, message: str, **metadata):
        self._log(LogLevel.WARNING, message, metadata)

    def error(self, message: str, **metadata):
        self._log(LogLevel.ERROR, message, metadata)

    def critical(self, message: str, **metadata):
        self._log(LogLevel.CRITICAL, message, metadata)


def configure_logging(level: str = "INFO", buffer_size: Optional[int] = None):
    """Set the root log level and format for standalone processes."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if buffer_size:
        _log_buffer.resize(buffer_size)


store_logger = AppLogger("store")
job_logger = AppLogger("job_queue")
worker_logger = AppLogger("worker")
api_logger = AppLogger("api")
