"""
core/launcher.py
Process launcher — spawn a service detached from the CLI, or attached in the
foreground.

launch_detached() is "spawn, record handle, release ownership": the child
gets its own session, stdout/stderr appended to a log file, and the CLI
process may exit immediately afterwards. No retries.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys

from core.errors import ExecutableNotFound, ProcessSpawnFailure

logger = logging.getLogger(__name__)

_INTERPRETERS = {
    ".js": ["node"],
    ".mjs": ["node"],
    ".cjs": ["node"],
    ".ts": ["npx", "tsx"],
}


def find_executable(candidates: list[str], cwd: str | None = None) -> str | None:
    """Return the first candidate path that exists (relative to *cwd*)."""
    base = cwd or os.getcwd()
    for candidate in candidates:
        if not candidate:
            continue
        path = os.path.expanduser(candidate)
        if not os.path.isabs(path):
            path = os.path.join(base, path)
        if os.path.isfile(path):
            return path
    return None


def resolve_command(path: str) -> list[str]:
    """Build the argv needed to run *path*, picking an interpreter by suffix."""
    if not os.path.isfile(path):
        raise ExecutableNotFound(f"Executable not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    if ext == ".py":
        return [sys.executable, path]

    interpreter = _INTERPRETERS.get(ext)
    if interpreter is None:
        if not os.access(path, os.X_OK):
            raise ExecutableNotFound(f"Not executable: {path}")
        return [path]

    if shutil.which(interpreter[0]) is None:
        raise ExecutableNotFound(
            f"'{interpreter[0]}' is required to run {path} but is not on PATH")
    return [*interpreter, path]


def _detach_kwargs() -> dict:
    if os.name == "nt":
        flags = (getattr(subprocess, "DETACHED_PROCESS", 0)
                 | getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0))
        return {"creationflags": flags}
    return {"start_new_session": True}


def launch_detached(command: list[str], env: dict[str, str], log_path: str,
                    cwd: str | None = None) -> int:
    """Start *command* detached, appending its output to *log_path*.

    Returns the child's pid. The caller owns recording it; this process
    keeps no handle on the child.
    """
    os.makedirs(os.path.dirname(os.path.abspath(log_path)), exist_ok=True)
    try:
        with open(log_path, "ab") as log:
            proc = subprocess.Popen(
                command,
                env=env,
                cwd=cwd or os.getcwd(),
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                close_fds=True,
                **_detach_kwargs(),
            )
    except FileNotFoundError as e:
        raise ExecutableNotFound(f"Executable not found: {e.filename or command[0]}")
    except OSError as e:
        raise ProcessSpawnFailure(str(e))

    logger.info("launched %s (pid=%d, log=%s)", command[0], proc.pid, log_path)
    return proc.pid


def run_foreground(command: list[str], env: dict[str, str],
                   cwd: str | None = None) -> int:
    """Run *command* attached to this terminal and return its exit code.

    SIGTERM received by the CLI is forwarded; Ctrl+C already reaches the
    child through the shared process group.
    """
    try:
        proc = subprocess.Popen(command, env=env, cwd=cwd or os.getcwd())
    except FileNotFoundError as e:
        raise ExecutableNotFound(f"Executable not found: {e.filename or command[0]}")
    except OSError as e:
        raise ProcessSpawnFailure(str(e))

    previous = signal.signal(signal.SIGTERM,
                             lambda signum, frame: proc.send_signal(signum))
    try:
        while True:
            try:
                return proc.wait()
            except KeyboardInterrupt:
                proc.send_signal(signal.SIGINT)
    finally:
        signal.signal(signal.SIGTERM, previous)
