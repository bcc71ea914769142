"""
Structured logging for quotawatch.

Every record produced by the limiter, the recorder, the aggregator and the
report script goes through one queue so that handler I/O never runs on the
event loop. Records carry the accounting context they were emitted under:

- rate_key       rate-limit key being checked (`rate:{class}:{subject}`)
- traffic_class  traffic class name
- report_date    telemetry day being aggregated, cleared or reported
- command        operator command (`report`, `range`, `clear`)
- correlation_id short id shared by every line of one unit of work

Fields passed explicitly through `extra=` always win over the bound context,
so a store failure logged with `extra={"operation": "INCR"}` keeps `INCR`.

Console output is colored text in development and JSON in production; an
optional daily-rotating JSON file handler is enabled by `LOG_TO_FILE`.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from quotawatch.core.config.config import Config

CONTEXT_FIELDS = (
    "rate_key",
    "traffic_class",
    "report_date",
    "command",
    "component",
    "operation",
    "correlation_id",
)

_log_context: ContextVar[Dict[str, Any]] = ContextVar("quotawatch_log_context", default={})

# Attributes every LogRecord has; anything else on a record came from `extra=`.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True, slots=True)
class LogSettings:
    level: int = logging.INFO
    json_console: bool = False
    colors: bool = False
    file_path: Optional[Path] = None
    file_backups: int = 1
    queue_size: int = 10_000

    @classmethod
    def from_config(cls) -> "LogSettings":
        production = Config.is_production()
        json_console = production if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        level = logging.getLevelName(str(Config.LOG_LEVEL).upper())

        return cls(
            level=level if isinstance(level, int) else logging.INFO,
            json_console=json_console,
            colors=not json_console and sys.stdout.isatty(),
            file_path=(
                Path(Config.LOGS_DIR).resolve() / "quotawatch.json.log"
                if Config.LOG_TO_FILE
                else None
            ),
        )


@dataclass(slots=True)
class _Counters:
    enqueued: int = 0
    dropped: int = 0
    handler_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    handler_errors: int


_counters = _Counters()
_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_listener: Optional[QueueListener] = None


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the bound context onto a record without clobbering `extra=` fields."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for field in CONTEXT_FIELDS:
            if getattr(record, field, None) is None:
                setattr(record, field, context.get(field))
        return True


def _bound_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_")
    }


class ConsoleFormatter(logging.Formatter):
    """`time | LEVEL | logger | message [rate_key=... traffic_class=...]`."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[94m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[1;91m",
    }
    RESET = "\033[0m"

    def __init__(self, colors: bool = False) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        level = f"{record.levelname:<8}"
        if self.colors and record.levelno in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelno]}{level}{self.RESET}"

        line = f"{self.formatTime(record, self.datefmt)} | {level} | {record.name} | {record.getMessage()}"

        tags = {**_bound_fields(record), **_extra_fields(record)}
        tags.pop("correlation_id", None)
        if tags:
            line += " [" + " ".join(f"{k}={v}" for k, v in tags.items()) + "]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JSONFormatter(logging.Formatter):
    """One JSON document per record; context fields top-level, the rest under `extra`."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        document: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_bound_fields(record),
        }

        extra = _extra_fields(record)
        if extra:
            document["extra"] = extra
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        return json.dumps(document, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class _CountingQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _counters.dropped += 1
            return
        _counters.enqueued += 1


class _CountingQueueListener(QueueListener):
    def handle(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            super().handle(record)
        except Exception:
            _counters.handler_errors += 1


def _build_handlers(settings: LogSettings) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JSONFormatter() if settings.json_console else ConsoleFormatter(settings.colors))
    handlers: List[logging.Handler] = [console]

    if settings.file_path is not None:
        settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=str(settings.file_path),
            when="midnight",
            backupCount=settings.file_backups,
            encoding="utf-8",
            utc=True,
        )
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(settings.level)
    return handlers


# ============================================================================
# Lifecycle
# ============================================================================


def setup_logging(settings: Optional[LogSettings] = None) -> None:
    """Install the queue handler on the root logger. Idempotent."""
    global _queue, _listener

    if _listener is not None:
        return

    settings = settings or LogSettings.from_config()
    _counters.enqueued = _counters.dropped = _counters.handler_errors = 0

    _queue = queue.Queue(settings.queue_size)
    _listener = _CountingQueueListener(_queue, *_build_handlers(settings), respect_handler_level=True)
    _listener.start()

    handler = _CountingQueueHandler(_queue)
    handler.setLevel(settings.level)
    # Context is read on the emitting task, before the record crosses threads.
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(settings.level)
    root.addHandler(handler)

    for noisy in ("redis", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized",
        extra={
            "level": logging.getLevelName(settings.level),
            "json_console": settings.json_console,
            "log_file": str(settings.file_path) if settings.file_path else None,
        },
    )


def shutdown_logging() -> None:
    """Flush the queue and close every handler."""
    global _queue, _listener

    if _listener is None:
        return

    _listener.stop()
    for handler in _listener.handlers:
        handler.close()

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, _CountingQueueHandler):
            root.removeHandler(handler)

    _listener = None
    _queue = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=_listener is not None,
        queue_size=_queue.qsize() if _queue is not None else 0,
        queue_max_size=_queue.maxsize if _queue is not None else 0,
        records_enqueued=_counters.enqueued,
        records_dropped=_counters.dropped,
        handler_errors=_counters.handler_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind accounting context to every log line emitted inside the block.

    Nested blocks inherit the outer fields and may override them. The
    correlation id is inherited from the enclosing block, or generated.

    Example
    -------
    >>> async with LogContext(command="report", report_date="2024-01-01"):
    ...     await aggregator.generate_daily_report("2024-01-01")
    """

    def __init__(self, correlation_id: Optional[str] = None, **fields: Any) -> None:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")

        self.fields = {k: v for k, v in fields.items() if v is not None}
        self.correlation_id = correlation_id
        self.context: Dict[str, Any] = {}
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        outer = _log_context.get()
        self.context = {
            **outer,
            **self.fields,
            "correlation_id": (
                self.correlation_id or outer.get("correlation_id") or uuid.uuid4().hex[:8]
            ),
        }
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Merge fields into the current context (outside any LogContext block)."""
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
    _log_context.set({**_log_context.get(), **{k: v for k, v in fields.items() if v is not None}})


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


setup_logging()
