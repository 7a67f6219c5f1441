"""
Centralized logging configuration.

Every module logs through ``get_logger(__name__)``, which returns a
``StructuredLogger`` taking keyword context::

    logger.info("Dataset fetched", dataset_id=dataset_id, items=12)

The console shows ``message | key=value ...``; the optional rotating file
handler writes one JSON object per line with the context merged in. Pipeline
audit rows are mirrored to the ``app.audit`` logger and timings to
``app.performance``.
"""
import logging
import logging.config
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

# Third-party loggers kept quieter than the application itself.
THIRD_PARTY_LEVELS: Dict[str, str] = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "aiohttp": "WARNING",
}

# Operations slower than this are reported at WARNING.
SLOW_OPERATION_MS = 30_000

_RESERVED_EVENT_KEYS = frozenset({"message", "event_type", "model_id", "workspace_id", "request_id", "exc_info"})


class JSONFormatter(logging.Formatter):
    """One JSON object per line; structured context is merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        context = getattr(record, "context", None)
        if context:
            entry.update(context)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ContextFormatter(logging.Formatter):
    """Console formatter appending ``key=value`` context after the message."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = getattr(record, "context", None)
        if not context:
            return base
        return base + " | " + " ".join(f"{k}={v}" for k, v in context.items())


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger.

    ``exc_info`` is forwarded to the stdlib call; every other keyword with a
    non-``None`` value lands in the record's ``context``.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, message: str, kwargs: Dict[str, Any]) -> None:
        if not self.logger.isEnabledFor(level):
            return
        exc_info = kwargs.pop("exc_info", False)
        context = {k: v for k, v in kwargs.items() if v is not None}
        self.logger.log(level, message, exc_info=exc_info, extra={"context": context})

    def debug(self, message: str, **kwargs):
        self._emit(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._emit(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._emit(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._emit(logging.ERROR, message, kwargs)


def _handlers(log_level: str, log_file: Optional[str], enable_console: bool) -> Dict[str, Dict[str, Any]]:
    handlers: Dict[str, Dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "console",
            "level": log_level,
        }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "level": log_level,
        }
    return handlers


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True
) -> None:
    """
    Configure the ``app`` logger tree, root and noisy third-party loggers.

    Args:
        log_level: Level for application loggers and handlers
        log_file: Optional path of the rotating JSON log
        enable_console: Whether to log to stdout
    """
    handlers = _handlers(log_level.upper(), log_file, enable_console)
    names = list(handlers)

    loggers: Dict[str, Dict[str, Any]] = {
        "app": {"level": log_level.upper(), "handlers": names, "propagate": False},
    }
    for name, level in THIRD_PARTY_LEVELS.items():
        loggers[name] = {"level": level, "handlers": names, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "console": {
                "()": ContextFormatter,
                "fmt": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level.upper(), "handlers": names},
    })


def get_logger(name: str) -> StructuredLogger:
    """Structured logger under the ``app`` hierarchy."""
    if name == "app" or name.startswith("app."):
        return StructuredLogger(name)
    return StructuredLogger(f"app.{name}")


def log_business_event(
    event_type: str,
    details: Dict[str, Any],
    model_id: Optional[str] = None,
    workspace_id: Optional[str] = None,
    request_id: Optional[str] = None
) -> None:
    """
    Mirror an audit event (``model:enabled``, ``cron:process_inbox_completed``...)
    to the ``app.audit`` logger.

    Keys of ``details`` that collide with the explicit arguments are dropped.
    """
    get_logger("audit").info(
        f"Business event: {event_type}",
        event_type=event_type,
        model_id=model_id,
        workspace_id=workspace_id,
        request_id=request_id,
        **{k: v for k, v in details.items() if k not in _RESERVED_EVENT_KEYS}
    )


def log_performance(
    operation: str,
    duration_ms: float,
    additional_data: Optional[Dict[str, Any]] = None
) -> None:
    """Log the duration of ``operation``; slow operations are logged at WARNING."""
    data: Dict[str, Any] = dict(additional_data or {})
    data.pop("operation", None)
    data["duration_ms"] = round(duration_ms, 2)
    perf_logger = get_logger("performance")
    if duration_ms >= SLOW_OPERATION_MS:
        perf_logger.warning(f"Slow operation: {operation}", operation=operation, **data)
    else:
        perf_logger.info(f"Performance: {operation}", operation=operation, **data)
