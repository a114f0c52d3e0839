"""Human-readable durations and sizes for health payload fields."""
from __future__ import annotations


def format_uptime(seconds) -> str:
    try:
        seconds = max(0, int(float(seconds)))
    except (TypeError, ValueError):
        return "Unknown"
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    if seconds < 86400:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
    return f"{seconds // 86400}d {(seconds % 86400) // 3600}h"


def format_bytes(size) -> str:
    try:
        size = int(size)
    except (TypeError, ValueError):
        return "Unknown"
    if size < 1024:
        return f"{size} B"
    if size < 1024 ** 2:
        return f"{size / 1024:.1f} KB"
    if size < 1024 ** 3:
        return f"{size / 1024 ** 2:.1f} MB"
    return f"{size / 1024 ** 3:.2f} GB"
