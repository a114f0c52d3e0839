"""
core/doctor.py
Health check for the local service setup — interpreter, home directory,
env files, daemon, gateway, ports and the Hauba API.

Used by:
  - `hauba doctor` CLI command

Each check returns a CheckResult. Checks that know how to repair their own
problem carry a `fix` callable; `run_doctor(..., fix=True)` applies those
and re-runs the check to report the state after the repair.
"""

from __future__ import annotations

import logging
import os
import shutil
import socket
import sys
from dataclasses import dataclass, field
from typing import Callable

import httpx

from core.config import DAEMON_PORT, GATEWAY_PORT, HaubaConfig
from core.formatting import format_bytes, format_uptime
from core.probe import fetch_health, is_process_running
from core.registry import PidRegistry

logger = logging.getLogger(__name__)

PASS, WARN, FAIL, SKIP = "pass", "warn", "fail", "skip"

ENV_FILES = (".env", ".env.local", ".env.development")

WATCHED_PORTS = [
    (3000, "Web UI"),
    (3001, "API Server"),
    (DAEMON_PORT, "Daemon Health"),
    (GATEWAY_PORT, "Gateway"),
    (6379, "Redis"),
    (5432, "PostgreSQL"),
]

ENV_TEMPLATE = """\
# HAUBA Environment Configuration
# Generated by hauba doctor

NODE_ENV=development

# Redis
REDIS_URL=redis://localhost:6379

# Services
DAEMON_PORT={daemon_port}
GATEWAY_PORT={gateway_port}

# Add your API keys below
# ANTHROPIC_API_KEY=
# OPENAI_API_KEY=
"""


@dataclass
class CheckResult:
    name: str
    status: str
    message: str
    details: str = ""
    fix: Callable[[], bool] | None = field(default=None, repr=False, compare=False)
    fix_description: str = ""
    fixed: bool = False

    @property
    def ok(self) -> bool:
        return self.status in (PASS, SKIP)

    def to_dict(self) -> dict:
        data = {"name": self.name, "status": self.status, "message": self.message}
        if self.details:
            data["details"] = self.details
        if self.fix_description:
            data["fixDescription"] = self.fix_description
        if self.fixed:
            data["fixed"] = True
        return data


@dataclass
class DoctorContext:
    """Everything a check may look at. Tests build one around a tmp home."""
    config: HaubaConfig
    cwd: str = field(default_factory=os.getcwd)
    port_timeout: float = 0.5
    api_timeout: float = 5.0

    @property
    def registry(self) -> PidRegistry:
        return PidRegistry(self.config.paths.pid_dir)


@dataclass
class DoctorReport:
    results: list[CheckResult]

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def summary(self) -> dict[str, int]:
        return {s: self.count(s) for s in (PASS, WARN, FAIL, SKIP)}

    @property
    def ok(self) -> bool:
        return self.count(FAIL) == 0

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "summary": {"total": len(self.results), **self.summary},
            "results": [r.to_dict() for r in self.results],
        }


# ══════════════════════════════════════════════════════════════════════════════
#  CHECKS: each takes the DoctorContext and returns a CheckResult
# ══════════════════════════════════════════════════════════════════════════════

def check_python(ctx: DoctorContext) -> CheckResult:
    version = ".".join(str(v) for v in sys.version_info[:3])
    if sys.version_info >= (3, 11):
        return CheckResult("Python Version", PASS, f"Python {version} installed")
    return CheckResult("Python Version", FAIL, f"Python {version} is too old",
                       details="Python 3.11+ is required")


def check_home(ctx: DoctorContext) -> CheckResult:
    home = ctx.config.paths.home
    if not os.path.isdir(home):
        return CheckResult(
            "Hauba Home", FAIL, f"{home} does not exist",
            fix=lambda: _make_dir(home),
            fix_description=f"Create {home}")
    if not os.access(home, os.W_OK):
        return CheckResult("Hauba Home", FAIL, f"{home} is not writable",
                           details="PID and log files are written here")
    return CheckResult("Hauba Home", PASS, home)


def _make_dir(path: str) -> bool:
    os.makedirs(path, exist_ok=True)
    return True


def check_env(ctx: DoctorContext) -> CheckResult:
    found = [f for f in ENV_FILES if os.path.isfile(os.path.join(ctx.cwd, f))]
    if found:
        return CheckResult("Environment Files", PASS,
                           f"Found {len(found)} env file(s)", details=", ".join(found))
    return CheckResult(
        "Environment Files", WARN, "No .env files found",
        fix=lambda: _write_env(ctx.cwd),
        fix_description="Create .env file from template")


def _write_env(cwd: str) -> bool:
    example = os.path.join(cwd, ".env.example")
    target = os.path.join(cwd, ".env")
    if os.path.isfile(example):
        shutil.copyfile(example, target)
    else:
        with open(target, "w", encoding="utf-8") as f:
            f.write(ENV_TEMPLATE.format(daemon_port=DAEMON_PORT,
                                        gateway_port=GATEWAY_PORT))
    return True


def _check_service(ctx: DoctorContext, service: str, label: str,
                   expect_status: str | None) -> CheckResult:
    registry = ctx.registry
    record = registry.read(service)
    if record is None:
        return CheckResult(
            label, WARN, f"{service.capitalize()} not running",
            fix_description=f"Run `hauba {service} start` to start")

    if not is_process_running(record.pid):
        return CheckResult(
            label, FAIL,
            f"{service.capitalize()} PID file exists but process not running",
            details=f"PID {record.pid}",
            fix=lambda: _delete_record(registry, service),
            fix_description="Clean up stale PID file")

    health = fetch_health(record.port or _default_port(service))
    if health is None:
        return CheckResult(label, WARN,
                           f"{service.capitalize()} running but health check failed",
                           details=f"PID {record.pid}, port {record.port}")

    healthy = expect_status is None or health.get("status") == expect_status
    details = f"Uptime: {format_uptime(health.get('uptime', 0))}"
    memory = health.get("memory")
    if isinstance(memory, dict):
        details += f", Memory: {format_bytes(memory.get('used', 0))}"
    return CheckResult(label, PASS if healthy else WARN,
                       f"{service.capitalize()} running (PID: {record.pid})",
                       details=details)


def _delete_record(registry: PidRegistry, service: str) -> bool:
    registry.delete(service)
    return True


def _default_port(service: str) -> int:
    return DAEMON_PORT if service == "daemon" else GATEWAY_PORT


def check_daemon(ctx: DoctorContext) -> CheckResult:
    return _check_service(ctx, "daemon", "Daemon Status", "healthy")


def check_gateway(ctx: DoctorContext) -> CheckResult:
    return _check_service(ctx, "gateway", "Gateway Status", None)


def port_in_use(port: int, host: str = "localhost", timeout: float = 0.5) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def check_ports(ctx: DoctorContext) -> CheckResult:
    parts = []
    for port, name in WATCHED_PORTS:
        state = "in use" if port_in_use(port, timeout=ctx.port_timeout) else "available"
        parts.append(f"{name} ({port}): {state}")
    return CheckResult("Port Availability", PASS,
                       f"Checked {len(WATCHED_PORTS)} ports", details=", ".join(parts))


def check_api(ctx: DoctorContext) -> CheckResult:
    url = ctx.config.api_url.rstrip("/") + "/health"
    try:
        resp = httpx.get(url, timeout=ctx.api_timeout)
    except httpx.HTTPError as e:
        return CheckResult("Hauba API", WARN, "API not reachable",
                           details=f"{url}: {type(e).__name__}")
    if resp.is_success:
        return CheckResult("Hauba API", PASS, f"API reachable ({ctx.config.environment})",
                           details=url)
    return CheckResult("Hauba API", WARN, f"API returned HTTP {resp.status_code}",
                       details=url)


CHECKS: dict[str, Callable[[DoctorContext], CheckResult]] = {
    "python": check_python,
    "home": check_home,
    "env": check_env,
    "daemon": check_daemon,
    "gateway": check_gateway,
    "ports": check_ports,
    "api": check_api,
}


def _run_check(check_id: str, ctx: DoctorContext) -> CheckResult:
    try:
        return CHECKS[check_id](ctx)
    except Exception as e:
        logger.exception("doctor check %s crashed", check_id)
        return CheckResult(check_id, FAIL, f"Error: {e}")


def run_doctor(ctx: DoctorContext, only: list[str] | None = None,
               fix: bool = False) -> DoctorReport:
    """
    Run health checks (all, or the ids in *only*, in canonical order).
    With fix=True, apply each failing check's fix and re-run it.
    """
    selected = [c for c in CHECKS if not only or c in only]
    results = []
    for check_id in selected:
        result = _run_check(check_id, ctx)
        if fix and result.fix and result.status in (WARN, FAIL):
            try:
                repaired = result.fix()
            except OSError as e:
                logger.warning("fix for %s failed: %s", check_id, e)
                repaired = False
            if repaired:
                logger.info("applied fix: %s", result.fix_description)
                result = _run_check(check_id, ctx)
                result.fixed = True
        results.append(result)
    return DoctorReport(results)
