"""
core/logging_config.py
Logging setup for the CLI and the gateway process.

Console shows warnings and above (the CLI prints its own rich output);
the file log under <home>/logs/ keeps everything at the configured level.
HAUBA_LOG_JSON=1 switches the file log to one JSON object per line.
"""

from __future__ import annotations

import json
import logging
import os
import time


class StructuredFormatter(logging.Formatter):
    """
    JSON log formatter for machine-parseable logs.
    Fields: ts, level, logger, msg, pid, extra, exception
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "pid": record.process,
        }
        if hasattr(record, "extra_data"):
            entry["extra"] = record.extra_data
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "", structured: bool | None = None,
                  log_dir: str | None = None, console_level: str = "WARNING",
                  filename: str = "cli.log") -> logging.Logger:
    """
    Configure the root logger.
    Args:
        level: file log level (default HAUBA_LOG_LEVEL or INFO)
        structured: JSON file format (default HAUBA_LOG_JSON)
        log_dir: directory for the file log; None disables it
        console_level: threshold for the stderr handler
    """
    level = (level or os.environ.get("HAUBA_LOG_LEVEL", "INFO")).upper()
    if structured is None:
        structured = os.environ.get("HAUBA_LOG_JSON", "") in ("1", "true")

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    for h in root.handlers[:]:
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(
        "[%(asctime)s][%(name)s][%(levelname)s] %(message)s", datefmt="%H:%M:%S"))
    console.setLevel(getattr(logging, console_level.upper(), logging.WARNING))
    root.addHandler(console)

    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(os.path.join(log_dir, filename),
                                               encoding="utf-8")
        except OSError as e:
            root.warning("File logging disabled: %s", e)
        else:
            file_handler.setFormatter(StructuredFormatter() if structured else
                                      logging.Formatter(
                                          "[%(asctime)s][%(name)s][%(levelname)s] %(message)s",
                                          datefmt="%H:%M:%S"))
            file_handler.setLevel(getattr(logging, level, logging.INFO))
            root.addHandler(file_handler)

    return root
