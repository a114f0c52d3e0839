"""
core/probe.py
Liveness prober — two independent checks, never merged into one state.

  OS level:          signal 0 to the recorded pid
  Application level: GET http://localhost:<port>/health with a short timeout
"""

from __future__ import annotations

import logging
import os

import httpx

logger = logging.getLogger(__name__)

HEALTH_HOST = "localhost"
HEALTH_TIMEOUT = 5.0


def _is_zombie(pid: int) -> bool:
    """Linux only: an exited-but-unreaped child still answers signal 0."""
    try:
        with open(f"/proc/{pid}/stat", encoding="ascii", errors="replace") as f:
            stat = f.read()
    except OSError:
        return False
    # Format: pid (comm) state ...; comm may contain spaces or parens
    return stat.rpartition(")")[2].split()[:1] == ["Z"]


def is_process_running(pid: int) -> bool:
    """True if an OS process with *pid* exists.

    ESRCH means not running. Any other error (EPERM included, or a pid too
    large for the platform) is also treated as not running.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except (OSError, OverflowError) as e:
        logger.debug("signal 0 to %d failed: %s", pid, e)
        return False
    return not _is_zombie(pid)


def health_url(port: int, host: str = HEALTH_HOST) -> str:
    return f"http://{host}:{port}/health"


def fetch_health(port: int, timeout: float = HEALTH_TIMEOUT,
                 host: str = HEALTH_HOST) -> dict | None:
    """Return the /health JSON body, or None if the service is not ready.

    Non-2xx, connection failures and timeouts are "not ready", not errors.
    A 2xx with a body that is not a JSON object yields {}.
    """
    try:
        resp = httpx.get(health_url(port, host), timeout=timeout)
    except httpx.HTTPError as e:
        logger.debug("health probe on port %d failed: %s", port, e)
        return None

    if not resp.is_success:
        logger.debug("health probe on port %d: HTTP %d", port, resp.status_code)
        return None
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def is_ready(port: int, expect_status: str | None = None,
             timeout: float = HEALTH_TIMEOUT, host: str = HEALTH_HOST) -> bool:
    """Application-level readiness, optionally requiring body["status"]."""
    health = fetch_health(port, timeout=timeout, host=host)
    if health is None:
        return False
    if expect_status is None:
        return True
    return health.get("status") == expect_status
