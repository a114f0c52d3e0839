"""
core/supervisor.py
Start / stop / status for a long-running local service.

Composes the PID registry, the launcher, the liveness prober and the health
poller:

  start   live record? -> already running (no spawn)
          else resolve executable -> launch detached -> write record
               -> poll /health until ready or timeout
  stop    no record -> not running; stale record -> clean up
          else SIGTERM -> wait grace period -> SIGKILL
  status  record + signal 0 + /health

A stale record (pid no longer alive) is expected: it is deleted and the
operation carries on as if the service were stopped.
"""

from __future__ import annotations

import logging
import os
import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from core.errors import (
    ExecutableNotFound, HealthCheckTimeout, ProcessSpawnFailure,
    StaleRecord, StopTimeout,
)
from core.launcher import find_executable, launch_detached, resolve_command
from core.poller import POLL_INTERVAL, wait_until
from core.probe import fetch_health, is_process_running
from core.probe import is_ready as probe_ready
from core.registry import PidRegistry, ServiceRecord, utc_now_iso

logger = logging.getLogger(__name__)

KILL_WAIT = 2.0  # seconds to confirm death after SIGKILL
_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


class ServiceState(str, Enum):
    RUNNING = "running"
    STALE = "stale"
    STOPPED = "stopped"


@dataclass
class ServiceSpec:
    """Static description of a supervised service."""
    name: str
    default_port: int
    candidates: list[str] = field(default_factory=list)
    command: list[str] | None = None      # fixed argv, skips executable search
    expect_status: str | None = None      # required body["status"], if any
    health_timeout: float = 5.0           # per-request timeout
    version: str = "0.1.0"
    not_found_hint: str = ""


@dataclass
class StartOptions:
    port: int
    timeout: float = 15.0                 # total readiness budget
    env: dict[str, str] = field(default_factory=dict)
    executable: str = ""                  # explicit path, overrides candidates
    cwd: str = ""


@dataclass
class ServiceStatus:
    state: ServiceState
    record: ServiceRecord | None = None
    health: dict | None = None
    stale_pid: int | None = None

    @property
    def running(self) -> bool:
        return self.state == ServiceState.RUNNING


@dataclass
class StartResult:
    outcome: str                          # "started" | "already_running"
    record: ServiceRecord
    health: dict | None
    log_path: str


@dataclass
class StopResult:
    outcome: str                          # "stopped" | "killed" | "not_running" | "already_stopped"
    pid: int | None = None


def _reap(pid: int):
    """Collect an exited child of this process so it stops looking alive."""
    if not hasattr(os, "WNOHANG"):
        return
    try:
        os.waitpid(pid, os.WNOHANG)
    except ChildProcessError:
        pass


def _gone(pid: int) -> bool:
    _reap(pid)
    return not is_process_running(pid)


class Supervisor:
    """Lifecycle operations for services described by ServiceSpec."""

    def __init__(self, registry: PidRegistry, log_dir: str,
                 launch: Callable[..., int] = launch_detached,
                 poll_interval: float = POLL_INTERVAL):
        self.registry = registry
        self.log_dir = log_dir
        self._launch = launch
        self.poll_interval = poll_interval

    def log_path(self, spec: ServiceSpec) -> str:
        return os.path.join(self.log_dir, f"{spec.name}.log")

    # ── status ───────────────────────────────────────────────────────────

    def _live_record(self, spec: ServiceSpec) -> ServiceRecord | None:
        record = self.registry.read(spec.name)
        if record is None:
            return None
        if not is_process_running(record.pid):
            raise StaleRecord(spec.name, record.pid)
        return record

    def _port(self, spec: ServiceSpec, record: ServiceRecord | None) -> int:
        return (record.port if record and record.port else spec.default_port)

    def status(self, spec: ServiceSpec, probe_health: bool = True) -> ServiceStatus:
        try:
            record = self._live_record(spec)
        except StaleRecord as e:
            self.registry.delete(spec.name)
            logger.info("cleaned up %s", e)
            return ServiceStatus(ServiceState.STALE, stale_pid=e.pid)

        if record is None:
            return ServiceStatus(ServiceState.STOPPED)

        health = None
        if probe_health:
            health = fetch_health(self._port(spec, record),
                                  timeout=spec.health_timeout)
        return ServiceStatus(ServiceState.RUNNING, record=record, health=health)

    @staticmethod
    def healthy(spec: ServiceSpec, health: dict | None) -> bool:
        if health is None:
            return False
        return spec.expect_status is None or health.get("status") == spec.expect_status

    def is_ready(self, spec: ServiceSpec, port: int) -> bool:
        return probe_ready(port, spec.expect_status, timeout=spec.health_timeout)

    # ── start ────────────────────────────────────────────────────────────

    def resolve(self, spec: ServiceSpec, options: StartOptions) -> list[str]:
        if spec.command and not options.executable:
            return list(spec.command)

        candidates = [options.executable] if options.executable else spec.candidates
        path = find_executable(candidates, cwd=options.cwd or None)
        if path is None:
            raise ExecutableNotFound(
                f"Could not locate the {spec.name} executable",
                hint=spec.not_found_hint)
        return resolve_command(path)

    def start(self, spec: ServiceSpec, options: StartOptions) -> StartResult:
        log_path = self.log_path(spec)

        st = self.status(spec, probe_health=True)
        if st.running:
            logger.info("%s already running (pid=%d)", spec.name, st.record.pid)
            return StartResult("already_running", st.record, st.health, log_path)

        command = self.resolve(spec, options)
        cwd = options.cwd or os.getcwd()
        env = {**os.environ, **options.env}

        pid = self._launch(command, env, log_path, cwd)
        record = ServiceRecord(pid=pid, started_at=utc_now_iso(), port=options.port,
                               version=spec.version, work_dir=cwd)
        try:
            self.registry.write(spec.name, record)
        except OSError as e:
            # never leave a child running without a record
            self._signal(pid, _SIGKILL)
            wait_until(lambda: _gone(pid), KILL_WAIT, interval=self.poll_interval)
            raise ProcessSpawnFailure(
                f"could not record {spec.name} PID {pid}: {e}",
                hint=f"Check that {self.registry.base_dir} is writable") from e

        def _settled() -> bool:
            return _gone(pid) or self.is_ready(spec, options.port)

        wait_until(_settled, options.timeout, interval=self.poll_interval)

        if _gone(pid):
            self.registry.delete(spec.name)
            raise ProcessSpawnFailure(
                f"{spec.name} exited during start-up",
                hint=f"Check logs: {log_path}")

        health = fetch_health(options.port, timeout=spec.health_timeout)
        if not self.healthy(spec, health):
            # Record kept: the process is alive and `stop` can still reach it.
            raise HealthCheckTimeout(spec.name, options.timeout, log_path)

        logger.info("%s started (pid=%d, port=%d)", spec.name, pid, options.port)
        return StartResult("started", record, health, log_path)

    # ── stop ─────────────────────────────────────────────────────────────

    def stop(self, spec: ServiceSpec, force: bool = False,
             grace: float = 10.0) -> StopResult:
        try:
            record = self._live_record(spec)
        except StaleRecord as e:
            self.registry.delete(spec.name)
            logger.info("cleaned up %s", e)
            return StopResult("already_stopped", e.pid)

        if record is None:
            return StopResult("not_running")

        pid = record.pid
        outcome = "stopped"
        if force:
            self._signal(pid, _SIGKILL)
            outcome = "killed"
        else:
            self._signal(pid, signal.SIGTERM)
            if not wait_until(lambda: _gone(pid), grace, interval=self.poll_interval):
                logger.warning("%s ignored SIGTERM for %gs, sending SIGKILL",
                               spec.name, grace)
                self._signal(pid, _SIGKILL)
                outcome = "killed"

        if outcome == "killed" and not wait_until(
                lambda: _gone(pid), KILL_WAIT, interval=self.poll_interval):
            raise StopTimeout(spec.name, pid)

        self.registry.delete(spec.name)
        logger.info("%s %s (pid=%d)", spec.name, outcome, pid)
        return StopResult(outcome, pid)

    @staticmethod
    def _signal(pid: int, sig: int):
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            pass
