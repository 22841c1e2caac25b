import json
import sys
from datetime import datetime
from typing import Any, Literal

from watchlog.config import settings

LogLevel = Literal["DEBUG", "INFO", "WARN", "ERROR"]

_LEVEL_ORDER = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def is_enabled(level: LogLevel) -> bool:
    """True when *level* passes the configured ``log_level`` threshold."""
    threshold = _LEVEL_ORDER.get(settings.log_level.upper(), _LEVEL_ORDER["WARN"])
    return _LEVEL_ORDER[level] >= threshold


def log(level: LogLevel, message: str, data: dict[str, Any] | None = None) -> None:
    """Log a message with optional structured data.

    Everything goes to stderr so that command output on stdout (tables,
    ``--json`` dumps) stays clean.

    Args:
        level: Log level (DEBUG, INFO, WARN, ERROR)
        message: Log message
        data: Optional structured data to include
    """
    if not is_enabled(level):
        return

    timestamp = datetime.now().isoformat(timespec="seconds")
    log_message = f"[{timestamp}] [{level}] {message}"

    # Format data as JSON if present
    data_str = ""
    if data:
        try:
            data_str = " " + json.dumps(data, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            data_str = f" {data}"

    output = log_message + data_str

    stream = sys.stderr
    try:
        print(output, file=stream)
    except UnicodeEncodeError:
        # Windows cp1252 console can't encode some titles
        encoding = getattr(stream, "encoding", "utf-8") or "utf-8"
        safe = output.encode(encoding, errors="replace").decode(encoding, errors="replace")
        print(safe, file=stream)
