"""Typed option sets for each subcommand, built from argparse in cli/__init__.py."""
from __future__ import annotations

from dataclasses import dataclass, field

from core.daemon import DaemonStartConfig

DaemonStartOptions = DaemonStartConfig


@dataclass
class StopOptions:
    force: bool = False         # SIGKILL immediately
    timeout: float = 10.0       # grace period after SIGTERM


@dataclass
class StatusOptions:
    json: bool = False
    watch: bool = False
    interval: float = 1.0       # refresh period in watch mode


@dataclass
class LogsOptions:
    lines: int = 50
    follow: bool = False
    clear: bool = False


@dataclass
class InstallOptions:
    name: str = "hauba-daemon"
    user: str = ""              # default: current user
    print_only: bool = False    # emit the raw unit file only
    path: str = ""              # daemon entry file override


@dataclass
class GatewayStartOptions:
    port: int = 0               # 0 → configured port
    foreground: bool = False
    websocket: bool = True
    timeout: float = 10.0


@dataclass
class GatewayConfigOptions:
    port: int | None = None
    host: str | None = None
    cors: bool | None = None
    rate_limit: int | None = None
    regenerate_token: bool = False
    show: bool = False

    @property
    def has_changes(self) -> bool:
        return (self.regenerate_token or any(
            v is not None for v in (self.port, self.host, self.cors, self.rate_limit)))


@dataclass
class DoctorOptions:
    fix: bool = False
    verbose: bool = False
    json: bool = False
    checks: list[str] = field(default_factory=list)


@dataclass
class VersionOptions:
    json: bool = False
