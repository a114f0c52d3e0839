"""
core/daemon.py
The Hauba daemon — background worker with a health endpoint on port 18790.

The daemon itself is a separate program (Node build or a Python script);
this module only knows where to find it, what environment it needs, and how
to describe it to a system service manager (systemd / launchd).

Health payload (external and unversioned; every field is read with a default):
  {"status": "healthy", "uptime": 12.3,
   "memory": {"used": ..., "rss": ...},
   "workers": {"message": n, "skill": n, "browser": n},
   "queues": {"pending": n, "active": n, "completed": n, "failed": n}}
"""

from __future__ import annotations

import getpass
import os
import platform
from dataclasses import dataclass

from core.config import DAEMON_PORT
from core.supervisor import ServiceSpec, StartOptions

SERVICE_NAME = "daemon"
SERVICE_LABEL = "tech.hauba.daemon"
DAEMON_VERSION = "0.1.0"
DEFAULT_CONCURRENCY = 10
DEFAULT_REDIS_URL = "redis://localhost:6379"

DAEMON_CANDIDATES = [
    os.path.join("apps", "daemon", "dist", "index.js"),
    os.path.join("apps", "daemon", "src", "index.ts"),
    os.path.join("~", ".hauba", "daemon", "index.js"),
    os.path.join("node_modules", "@hauba", "daemon", "dist", "index.js"),
]

NOT_FOUND_HINT = (
    "Build it with: cd apps/daemon && pnpm build\n"
    "Or install it globally: pnpm add -g @hauba/daemon\n"
    "Or point HAUBA_DAEMON_PATH (or --path) at the entry file"
)


@dataclass
class DaemonStartConfig:
    """Flags accepted by `hauba daemon start`."""
    port: int = DAEMON_PORT
    concurrency: int = DEFAULT_CONCURRENCY
    redis_url: str = DEFAULT_REDIS_URL
    dev: bool = False
    foreground: bool = False
    timeout: float = 15.0
    path: str = ""

    @property
    def mode(self) -> str:
        return "development" if self.dev else "production"

    def environment(self) -> dict[str, str]:
        return {
            "DAEMON_PORT": str(self.port),
            "DAEMON_CONCURRENCY": str(self.concurrency),
            "REDIS_URL": self.redis_url,
            "NODE_ENV": self.mode,
        }

    def start_options(self) -> StartOptions:
        return StartOptions(
            port=self.port,
            timeout=self.timeout,
            env=self.environment(),
            executable=self.path or os.environ.get("HAUBA_DAEMON_PATH", ""),
        )


def daemon_spec() -> ServiceSpec:
    return ServiceSpec(
        name=SERVICE_NAME,
        default_port=DAEMON_PORT,
        candidates=list(DAEMON_CANDIDATES),
        expect_status="healthy",
        health_timeout=5.0,
        version=DAEMON_VERSION,
        not_found_hint=NOT_FOUND_HINT,
    )


# ══════════════════════════════════════════════════════════════════════════════
#  SERVICE MANAGER FILES (`hauba daemon install` prints these)
# ══════════════════════════════════════════════════════════════════════════════

def systemd_unit(command: list[str], name: str = "hauba-daemon",
                 user: str = "", workdir: str = "",
                 port: int = DAEMON_PORT,
                 redis_url: str = DEFAULT_REDIS_URL) -> str:
    user = user or getpass.getuser()
    workdir = workdir or os.getcwd()
    return f"""[Unit]
Description=Hauba Daemon - AI Agent Background Service
After=network.target redis.service

[Service]
Type=simple
User={user}
WorkingDirectory={workdir}
ExecStart={" ".join(command)}
Restart=always
RestartSec=10
StandardOutput=journal
StandardError=journal
SyslogIdentifier={name}
Environment=NODE_ENV=production
Environment=REDIS_URL={redis_url}
Environment=DAEMON_PORT={port}

[Install]
WantedBy=multi-user.target
"""


def launchd_plist(command: list[str], log_path: str, workdir: str = "",
                  port: int = DAEMON_PORT) -> str:
    workdir = workdir or os.getcwd()
    args = "\n".join(f"        <string>{a}</string>" for a in command)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN"
  "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{SERVICE_LABEL}</string>

    <key>ProgramArguments</key>
    <array>
{args}
    </array>

    <key>WorkingDirectory</key>
    <string>{workdir}</string>

    <key>RunAtLoad</key>
    <true/>

    <key>KeepAlive</key>
    <true/>

    <key>StandardOutPath</key>
    <string>{log_path}</string>
    <key>StandardErrorPath</key>
    <string>{log_path}</string>

    <key>EnvironmentVariables</key>
    <dict>
        <key>DAEMON_PORT</key>
        <string>{port}</string>
        <key>NODE_ENV</key>
        <string>production</string>
    </dict>
</dict>
</plist>
"""


def install_instructions(name: str) -> tuple[str, list[str]]:
    """Return (service-manager kind, shell steps) for the current OS."""
    system = platform.system()
    if system == "Linux":
        path = f"/etc/systemd/system/{name}.service"
        return "systemd", [
            f"hauba daemon install --print --name {name} | sudo tee {path}",
            "sudo systemctl daemon-reload",
            f"sudo systemctl enable {name}",
            f"sudo systemctl start {name}",
        ]
    if system == "Darwin":
        path = f"~/Library/LaunchAgents/{SERVICE_LABEL}.plist"
        return "launchd", [
            f"hauba daemon install --print > {path}",
            f"launchctl load {path}",
        ]
    return "other", [
        "Download NSSM: https://nssm.cc/",
        f"nssm install {name}",
    ]
