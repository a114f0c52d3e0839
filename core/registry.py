"""
core/registry.py
PID registry — one JSON file per supervised service.

  <base_dir>/{service}.pid = {
    "pid": 12345,
    "startedAt": "2026-02-04T00:00:00+00:00",
    "port": 18790,
    "version": "0.1.0",
    "workDir": "/home/me/project"
  }

A missing or unreadable file means "not running". A file holding only an
integer (older gateway format) is accepted with port 0.

There is no locking: two CLI invocations on the same service can race.
Writes are atomic (temp file + rename) so readers never see half a record.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_JSON_KEYS = {
    "pid": "pid",
    "started_at": "startedAt",
    "port": "port",
    "version": "version",
    "work_dir": "workDir",
}


MAX_PID = 2**31 - 1  # pid_t is a signed 32-bit int


def _checked_pid(pid) -> int:
    if isinstance(pid, bool) or not isinstance(pid, int) or not 0 < pid <= MAX_PID:
        raise ValueError(f"invalid pid: {pid!r}")
    return pid


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class ServiceRecord:
    pid: int
    started_at: str
    port: int
    version: str = ""
    work_dir: str = ""

    def to_json(self) -> dict:
        return {_JSON_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_json(cls, data: dict) -> "ServiceRecord":
        """Build a record from the on-disk dict. Raises on a bad shape."""
        return cls(
            pid=_checked_pid(data["pid"]),
            started_at=str(data.get("startedAt", "")),
            port=int(data.get("port") or 0),
            version=str(data.get("version", "")),
            work_dir=str(data.get("workDir", "")),
        )


class PidRegistry:
    """Read/write/delete ServiceRecords under an injected base directory."""

    def __init__(self, base_dir: str):
        self.base_dir = base_dir

    def path_for(self, service: str) -> str:
        return os.path.join(self.base_dir, f"{service}.pid")

    def write(self, service: str, record: ServiceRecord) -> str:
        os.makedirs(self.base_dir, exist_ok=True)
        path = self.path_for(service)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(record.to_json(), f, indent=2)
        os.replace(tmp, path)
        logger.debug("wrote PID record %s -> %d", service, record.pid)
        return path

    def read(self, service: str) -> ServiceRecord | None:
        path = self.path_for(service)
        try:
            with open(path, encoding="utf-8") as f:
                raw = f.read().strip()
        except (OSError, UnicodeDecodeError):
            return None

        try:
            if raw.isascii() and raw.isdigit():
                return ServiceRecord(pid=_checked_pid(int(raw)), started_at="", port=0)
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("record is not an object")
            return ServiceRecord.from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.debug("unreadable PID record %s: %s", path, e)
            return None

    def delete(self, service: str) -> bool:
        """Remove the record. Returns False if there was nothing to remove."""
        try:
            os.remove(self.path_for(service))
        except FileNotFoundError:
            return False
        logger.debug("deleted PID record %s", service)
        return True
