"""
core/log_viewer.py
Service log files — tail, follow, clear, and per-line level detection for
colouring in `hauba daemon logs` / `hauba gateway logs`.
"""

from __future__ import annotations

import os
import re
import time
from collections import deque
from typing import Iterator

POLL_INTERVAL = 0.5  # seconds between size checks in follow mode

_LEVEL_PATTERNS = [
    ("ERROR", re.compile(r"\[ERROR\]|error", re.IGNORECASE)),
    ("WARNING", re.compile(r"\[WARN(?:ING)?\]|warn", re.IGNORECASE)),
    ("INFO", re.compile(r"\[INFO\]")),
    ("DEBUG", re.compile(r"\[DEBUG\]")),
]


def classify(line: str) -> str:
    """Best-effort level of a free-form log line ("" when unknown)."""
    for level, pattern in _LEVEL_PATTERNS:
        if pattern.search(line):
            return level
    return ""


def tail(path: str, n: int = 50) -> list[str]:
    """Last *n* non-empty lines of *path*. Raises FileNotFoundError."""
    if n <= 0:
        return []
    with open(path, encoding="utf-8", errors="replace") as f:
        return list(deque((line.rstrip("\n") for line in f if line.strip()), maxlen=n))


def recent(path: str, n: int = 10) -> list[str]:
    """Like tail() but an unreadable or missing file yields []."""
    try:
        return tail(path, n)
    except OSError:
        return []


def clear(path: str):
    with open(path, "w", encoding="utf-8"):
        pass


def follow(path: str, interval: float = POLL_INTERVAL,
           sleep=time.sleep) -> Iterator[str]:
    """Yield lines appended to *path* from now on. Truncation restarts at 0."""
    position = os.path.getsize(path)
    buffer = ""
    while True:
        try:
            size = os.path.getsize(path)
        except OSError:
            sleep(interval)
            continue

        if size < position:
            position, buffer = 0, ""
        if size > position:
            with open(path, encoding="utf-8", errors="replace") as f:
                f.seek(position)
                buffer += f.read()
                position = f.tell()
            *complete, buffer = buffer.split("\n")
            yield from complete
        sleep(interval)
