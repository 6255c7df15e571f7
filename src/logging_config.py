"""
Logging Configuration — Console and optional log-file output.

Interactive runs get short colored lines on stderr. Unattended runs
(systemd timers, pacman hooks) can switch stderr to JSON and/or add a
log file that always receives JSON lines.

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)
- LOG_FILE: append JSON log lines to this file as well (default: unset)

## Usage

    from src.logging_config import setup_logging

    setup_logging()  # Call once at startup

Modules attach context with `extra`, which the JSON output keeps:

    logger.warning("Probe failed", extra={"mirror_url": url})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

# Record attributes copied into JSON output when a caller passed them in `extra`
EXTRA_FIELDS = ("method", "mirror_url", "backup_id")

# Third-party loggers that chatter at INFO on every request
QUIET_LOGGERS = ("httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"ts": "...", "level": "...", "logger": "...", "message": "...", "method": "manual"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            {name: getattr(record, name) for name in EXTRA_FIELDS if hasattr(record, name)}
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    Short console lines, colored when stderr is a terminal.

    14:03:22 WARNING [ranker         ] Delegate ranking failed: ...
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[2m",     # Dim
        "INFO": "\033[34m",     # Blue
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, color: Optional[bool] = None):
        super().__init__()
        self.color = sys.stderr.isatty() if color is None else color

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:7}"
        if self.color:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"

        source = record.name.rsplit(".", 1)[-1][:15]
        line = f"{stamp} {level} [{source:15}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _console_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JSONFormatter()
    return HumanFormatter()


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    log_file: str | Path | None = None,
) -> None:
    """
    (Re)configure the root logger.

    Safe to call more than once; previous handlers are replaced.

    Args:
        level: DEBUG, INFO, WARNING or ERROR (default: LOG_LEVEL or INFO)
        format_type: json or text for stderr (default: LOG_FORMAT or text)
        log_file: Extra JSON log file (default: LOG_FILE, none if unset)
    """
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    console_format = (format_type or os.environ.get("LOG_FORMAT") or "text").lower()
    file_path = log_file or os.environ.get("LOG_FILE") or None
    numeric_level = getattr(logging, level_name, logging.INFO)

    handlers: List[logging.Handler] = []
    file_error: Optional[str] = None

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_console_formatter(console_format))
    handlers.append(console)

    if file_path:
        try:
            Path(file_path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(file_path, encoding="utf-8")
        except OSError as e:
            file_error = f"Cannot open log file {file_path}: {e}"
        else:
            file_handler.setFormatter(JSONFormatter())
            handlers.append(file_handler)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    for handler in handlers:
        handler.setLevel(numeric_level)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={level_name}, format={console_format}, file={file_path}"
    )
    if file_error:
        logging.getLogger(__name__).warning(file_error)
