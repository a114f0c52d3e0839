"""Version subcommand — extended version info beyond -V flag."""
from __future__ import annotations

import json
import os
import platform
import subprocess
import sys
from importlib import metadata

from rich.console import Console
from rich.table import Table

from cli.helpers import get_version
from cli.options import VersionOptions
from core.config import get_config
from core.theme import theme as _theme

DEPENDENCIES = ("rich", "httpx", "pyyaml")


def _git_info(root: str) -> tuple[str, str]:
    """(branch, short hash) of a source checkout, or ('unknown', 'unknown')."""
    info = []
    for args in (["git", "branch", "--show-current"], ["git", "rev-parse", "--short", "HEAD"]):
        try:
            result = subprocess.run(args, cwd=root, capture_output=True,
                                    text=True, timeout=5)
        except (OSError, subprocess.SubprocessError):
            return "unknown", "unknown"
        info.append(result.stdout.strip() if result.returncode == 0 else "unknown")
    return info[0] or "unknown", info[1] or "unknown"


def _dependency_versions() -> dict[str, str]:
    deps = {}
    for pkg in DEPENDENCIES:
        try:
            deps[pkg] = metadata.version(pkg)
        except metadata.PackageNotFoundError:
            deps[pkg] = "not installed"
    return deps


def cmd_version(opts: VersionOptions, console: Console | None = None) -> int:
    """Show version, git hash, Python version, environment and dependency versions."""
    version = get_version()
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    git_branch, git_hash = _git_info(project_root)
    py_version = platform.python_version()
    config = get_config()
    deps = _dependency_versions()

    if opts.json:
        print(json.dumps({
            "version": version,
            "git_hash": git_hash,
            "git_branch": git_branch,
            "python": py_version,
            "platform": f"{platform.system()} {platform.machine()}",
            "environment": config.environment,
            "api_url": config.api_url,
            "home": config.paths.home,
            "dependencies": deps,
            "install_path": project_root,
        }, indent=2))
        return 0

    console = console or Console()
    console.print(f"\n  [{_theme.heading}]Hauba CLI[/{_theme.heading}]  v{version}")
    console.print(f"  [{_theme.muted}]Git:[/{_theme.muted}]     {git_branch}@{git_hash}")
    console.print(f"  [{_theme.muted}]Python:[/{_theme.muted}]  {py_version} ({sys.executable})")
    console.print(f"  [{_theme.muted}]Mode:[/{_theme.muted}]    {config.environment_display()}")
    console.print(f"  [{_theme.muted}]Home:[/{_theme.muted}]    {config.paths.home}")

    table = Table(show_header=True, header_style=_theme.heading,
                  box=None, padding=(0, 2))
    table.add_column("Package", style=_theme.muted)
    table.add_column("Version")
    for pkg, ver in deps.items():
        style = "success" if ver != "not installed" else "error"
        table.add_row(pkg, _theme.style(style, ver))
    console.print()
    console.print(table)
    console.print()
    return 0
