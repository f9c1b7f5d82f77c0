"""Logging for import runs.

Two sinks hang off the ``catalog_import`` logger:

* console: short human-readable lines, level coloured on a TTY; structured
  events get their fields appended as ``key=value``
* JSONL file (``logs/import_YYYYMMDD.jsonl``): one object per record with the
  event fields and the current run context (run id, source) merged in, so a
  single day's file can be split back into runs
"""

import json
import logging
import sys
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "LOG_DIR",
    "setup_logging",
    "get_logger",
    "log_import_event",
    "start_run_context",
    "clear_run_context",
    "get_run_context",
]

LOG_DIR = Path(__file__).parent.parent / "logs"

ROOT_LOGGER = "catalog_import"

_run_context: Dict[str, Any] = {}
_context_lock = threading.Lock()


def start_run_context(**fields: Any) -> str:
    """Begin a new run context; every later log record carries these fields.

    Returns:
        The generated run id
    """
    run_id = uuid.uuid4().hex[:12]
    with _context_lock:
        _run_context.clear()
        _run_context["run_id"] = run_id
        _run_context.update(fields)
    return run_id


def clear_run_context() -> None:
    with _context_lock:
        _run_context.clear()


def get_run_context() -> Dict[str, Any]:
    with _context_lock:
        return dict(_run_context)


class RunContextFilter(logging.Filter):
    """Stamp the active run context onto each record as ``run_context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_context = get_run_context()
        return True


class JSONLFileHandler(logging.Handler):
    """Append records as JSON lines to a per-day file."""

    def __init__(self, log_dir: Path, prefix: str = "import"):
        super().__init__()
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self.addFilter(RunContextFilter())

    def log_file(self, when: Optional[datetime] = None) -> Path:
        day = (when or datetime.now()).strftime("%Y%m%d")
        return self.log_dir / f"{self.prefix}_{day}.jsonl"

    def to_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "run_context", None) or {})
        event_type = getattr(record, "event_type", None)
        if event_type:
            entry["event_type"] = event_type
            entry.update(getattr(record, "extra_data", None) or {})
        if record.exc_info:
            entry["exception"] = logging.Formatter().formatException(record.exc_info)
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(self.to_entry(record), ensure_ascii=False, default=str)
            # Worker threads share the handler lock, so lines never interleave
            with open(self.log_file(), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class ColoredConsoleHandler(logging.StreamHandler):
    """Console output; level names coloured when writing to a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extra = getattr(record, "extra_data", None)
        if getattr(record, "event_type", None) and extra:
            message += " " + " ".join(f"{k}={v}" for k, v in extra.items())

        if hasattr(self.stream, "isatty") and self.stream.isatty():
            color = self.COLORS.get(record.levelname)
            if color:
                tag = f"[{record.levelname}]"
                message = message.replace(tag, f"[{color}{record.levelname}{self.RESET}]", 1)
        return message


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``catalog_import`` logger for a CLI run.

    Args:
        level: Console level; the JSONL file always records DEBUG and up
        log_to_file: Write ``<log_dir>/import_YYYYMMDD.jsonl``
        log_to_console: Write to stdout
        log_dir: Directory for JSONL files (default: ``logs/`` next to the package)

    Returns:
        The package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if log_to_file else level)

    if log_to_console:
        console_handler = ColoredConsoleHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        ))
        logger.addHandler(console_handler)

    if log_to_file:
        file_handler = JSONLFileHandler(log_dir or LOG_DIR)
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger under the package namespace (``catalog_import.<name>``)."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_import_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = ROOT_LOGGER,
) -> None:
    """Emit a structured event (``run_start``, ``stage_complete``, ``record_error``, ...).

    ``data["message"]`` becomes the log message when present; every other
    key is written as a field of the JSONL entry.
    """
    logger = get_logger(logger_name)
    if not logger.isEnabledFor(level):
        return

    fields = {k: v for k, v in data.items() if k != "message"}
    logger.log(
        level,
        data.get("message", event_type),
        extra={"event_type": event_type, "extra_data": fields},
    )
