"""
core/errors.py
Failure taxonomy for service supervision.

Raised from core/, caught once at the command boundary in main.py and turned
into a coloured message plus exit code 1.
"""

from __future__ import annotations


class SupervisorError(Exception):
    """Base class for every supervision failure surfaced to the user."""

    hint: str = ""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        if hint:
            self.hint = hint


class ExecutableNotFound(SupervisorError):
    """The service executable (or the interpreter it needs) does not exist."""


class ProcessSpawnFailure(SupervisorError):
    """The OS refused to start the process. Message is the OS error verbatim."""


class HealthCheckTimeout(SupervisorError):
    """The service did not report healthy before the poll deadline."""

    def __init__(self, service: str, timeout: float, log_path: str = ""):
        self.service = service
        self.timeout = timeout
        self.log_path = log_path
        hint = f"Check logs: {log_path}" if log_path else ""
        super().__init__(
            f"{service} did not become healthy within {timeout:g}s", hint)


class StopTimeout(SupervisorError):
    """The process survived SIGKILL."""

    def __init__(self, service: str, pid: int):
        self.service = service
        self.pid = pid
        super().__init__(f"{service} (PID {pid}) is still running after SIGKILL")


class StaleRecord(SupervisorError):
    """A PID record points at a process that no longer exists.

    Never shown to the user: the supervisor deletes the record and carries on.
    """

    def __init__(self, service: str, pid: int):
        self.service = service
        self.pid = pid
        super().__init__(f"stale PID record for {service} (PID {pid})")
