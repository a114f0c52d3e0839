"""Shared utilities for CLI modules."""
from __future__ import annotations

import os
import tomllib
from importlib import metadata

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from core.config import Paths
from core.log_viewer import classify, recent
from core.registry import PidRegistry
from core.supervisor import Supervisor
from core.theme import theme as _theme

DIST_NAME = "hauba-cli"

_LEVEL_STYLES = {"ERROR": "error", "WARNING": "warning", "INFO": "accent_light",
                 "DEBUG": "muted"}


def get_version() -> str:
    """Installed distribution version, else pyproject.toml, else '0.1.0'."""
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        pass

    pyproject = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                             "pyproject.toml")
    try:
        with open(pyproject, "rb") as f:
            return tomllib.load(f).get("project", {}).get("version", "0.1.0")
    except (OSError, tomllib.TOMLDecodeError):
        return "0.1.0"


def build_supervisor(paths: Paths) -> Supervisor:
    paths.ensure()
    return Supervisor(PidRegistry(paths.pid_dir), paths.log_dir)


def kv_table() -> Table:
    tbl = Table(show_header=False, show_edge=False, box=None,
                padding=(0, 1), expand=False)
    tbl.add_column("key", style=_theme.heading, min_width=12)
    tbl.add_column("val")
    return tbl


def panel(body, title: str, style: str = "accent") -> Panel:
    color = getattr(_theme, style, "")
    return Panel(body, title=_theme.style(style, title),
                 border_style=color or "none", box=box.ROUNDED, expand=False)


def styled_log_line(line: str) -> str:
    """Escape *line* for rich and colour it by detected level."""
    from rich.markup import escape

    style = _LEVEL_STYLES.get(classify(line))
    text = escape(line)
    return _theme.style(style, text) if style else text


def print_recent_logs(console: Console, path: str, n: int = 10):
    lines = recent(path, n)
    if not lines:
        return
    console.print(f"\n  [{_theme.heading}]RECENT LOGS[/{_theme.heading}]")
    for line in lines:
        console.print("  " + styled_log_line(line))
    console.print(f"\n  [{_theme.muted}]Check full logs:[/{_theme.muted}] {path}")


def ok(console: Console, message: str):
    console.print(f"  {_theme.style('success', '✓')} {message}")


def warn(console: Console, message: str):
    console.print(f"  {_theme.style('warning', '!')} {message}")


def hint(console: Console, message: str):
    console.print(f"  {_theme.style('muted', message)}")
