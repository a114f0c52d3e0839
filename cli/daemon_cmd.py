"""`hauba daemon` subcommands: start, stop, status, logs, install."""
from __future__ import annotations

import json
import os
import time

from rich.console import Console
from rich.live import Live

from cli.helpers import (
    build_supervisor, hint, kv_table, ok, panel, print_recent_logs,
    styled_log_line, warn,
)
from cli.options import (
    DaemonStartOptions, InstallOptions, LogsOptions, StatusOptions, StopOptions,
)
from core import log_viewer
from core.config import Paths
from core.daemon import (
    daemon_spec, install_instructions, launchd_plist, systemd_unit,
)
from core.errors import HealthCheckTimeout
from core.formatting import format_bytes, format_uptime
from core.launcher import run_foreground
from core.probe import fetch_health, health_url
from core.supervisor import ServiceState, StartOptions
from core.theme import theme as _theme


def _field(health: dict | None, *keys, default=0):
    """Nested lookup into the external health payload."""
    value = health or {}
    for key in keys:
        if not isinstance(value, dict):
            return default
        value = value.get(key, default)
    return value


# ── start ────────────────────────────────────────────────────────────────────

def cmd_daemon_start(opts: DaemonStartOptions, console: Console | None = None,
                     paths: Paths | None = None) -> int:
    console = console or Console()
    paths = paths or Paths.default()
    sup = build_supervisor(paths)
    spec = daemon_spec()
    start = opts.start_options()

    if opts.foreground:
        if sup.status(spec, probe_health=False).running:
            warn(console, "Daemon is already running in the background")
            hint(console, "Stop it first: hauba daemon stop")
            return 1
        command = sup.resolve(spec, start)
        console.print(f"  [{_theme.muted}]Running daemon in foreground "
                      f"(Ctrl+C to stop)...[/{_theme.muted}]")
        return run_foreground(command, {**os.environ, **start.env},
                              cwd=start.cwd or None)

    try:
        with console.status(f"Starting daemon on port {opts.port}..."):
            result = sup.start(spec, start)
    except HealthCheckTimeout as e:
        warn(console, str(e))
        hint(console, "The process may still be starting up. Check status with: "
                      "hauba daemon status")
        print_recent_logs(console, e.log_path)
        return 1

    if result.outcome == "already_running":
        tbl = kv_table()
        tbl.add_row("PID", str(result.record.pid))
        tbl.add_row("Port", str(result.record.port))
        console.print(panel(tbl, "DAEMON ALREADY RUNNING", style="warning"))
        hint(console, "Run `hauba daemon status` for details")
        return 0

    tbl = kv_table()
    tbl.add_row("PID", str(result.record.pid))
    tbl.add_row("Port", str(result.record.port))
    tbl.add_row("Mode", opts.mode)
    tbl.add_row("Concurrency", str(opts.concurrency))
    tbl.add_row("Logs", result.log_path)
    tbl.add_row("Health", health_url(result.record.port))
    console.print(panel(tbl, "DAEMON RUNNING", style="success"))
    hint(console, "Check status: hauba daemon status")
    hint(console, "View logs:    hauba daemon logs -f")
    hint(console, "Stop daemon:  hauba daemon stop")
    return 0


# ── stop ─────────────────────────────────────────────────────────────────────

def cmd_daemon_stop(opts: StopOptions, console: Console | None = None,
                    paths: Paths | None = None) -> int:
    console = console or Console()
    sup = build_supervisor(paths or Paths.default())

    with console.status("Stopping daemon..."):
        result = sup.stop(daemon_spec(), force=opts.force, grace=opts.timeout)

    if result.outcome == "not_running":
        warn(console, "No daemon found (no PID file)")
        return 0
    if result.outcome == "already_stopped":
        ok(console, f"Daemon was not running (PID {result.pid}); cleaned up stale PID file")
        return 0
    if result.outcome == "killed":
        ok(console, f"Daemon killed (PID {result.pid})")
    else:
        ok(console, f"Daemon stopped (PID {result.pid})")
    return 0


# ── status ───────────────────────────────────────────────────────────────────

def _status_icon(health: dict | None) -> tuple[str, str]:
    status = _field(health, "status", default=None)
    if status == "healthy":
        return _theme.style("success", "●"), _theme.style("success", "Healthy")
    if status == "unhealthy":
        return _theme.style("error", "●"), _theme.style("error", "Unhealthy")
    return _theme.style("warning", "●"), _theme.style("warning", "Unknown")


def _watch_line(health: dict | None) -> str:
    icon, _ = _status_icon(health)
    if health is None:
        return f"{icon} Health endpoint not responding"
    return (f"{icon} Uptime: {format_uptime(_field(health, 'uptime'))} | "
            f"Memory: {format_bytes(_field(health, 'memory', 'used'))} | "
            f"Queued: {_field(health, 'queues', 'pending')} | "
            f"Active: {_field(health, 'queues', 'active')}")


def cmd_daemon_status(opts: StatusOptions, console: Console | None = None,
                      paths: Paths | None = None) -> int:
    console = console or Console()
    sup = build_supervisor(paths or Paths.default())
    st = sup.status(daemon_spec())

    if opts.json:
        if st.state == ServiceState.STOPPED:
            print(json.dumps({"running": False}))
        elif st.state == ServiceState.STALE:
            print(json.dumps({"running": False, "stalePid": st.stale_pid}))
        else:
            print(json.dumps({
                "running": True,
                "pid": st.record.pid,
                "port": st.record.port,
                "startedAt": st.record.started_at,
                "health": st.health,
            }))
        return 0

    if st.state == ServiceState.STALE:
        warn(console, f"Daemon process not running (stale PID {st.stale_pid} cleaned up)")
        hint(console, "To start: hauba daemon start")
        return 0
    if st.state == ServiceState.STOPPED:
        console.print(panel("The Hauba daemon is not currently running.\n\n"
                            "To start: hauba daemon start",
                            "DAEMON NOT RUNNING", style="warning"))
        return 0

    health = st.health
    icon, text = _status_icon(health)
    tbl = kv_table()
    tbl.add_row("Status", f"{icon} {text}")
    tbl.add_row("PID", str(st.record.pid))
    tbl.add_row("Port", str(st.record.port))
    tbl.add_row("Started", st.record.started_at)
    tbl.add_row("Uptime", format_uptime(_field(health, "uptime")) if health else "Unknown")
    if health:
        tbl.add_row("", "")
        tbl.add_row("Memory", f"{format_bytes(_field(health, 'memory', 'used'))} used, "
                              f"{format_bytes(_field(health, 'memory', 'rss'))} RSS")
        tbl.add_row("Workers", "  ".join(
            f"{k}: {_field(health, 'workers', k)}" for k in ("message", "skill", "browser")))
        failed = _field(health, "queues", "failed")
        failed_text = _theme.style("error", str(failed)) if failed else str(failed)
        tbl.add_row("Queues",
                    f"pending {_field(health, 'queues', 'pending')}  "
                    f"active {_field(health, 'queues', 'active')}  "
                    f"completed {_field(health, 'queues', 'completed')}  "
                    f"failed {failed_text}")
    console.print(panel(tbl, "DAEMON STATUS"))
    hint(console, f"Health endpoint: {health_url(st.record.port)}")

    if opts.watch:
        hint(console, "Watching... (Ctrl+C to stop)")
        try:
            with Live(_watch_line(health), console=console, auto_refresh=False) as live:
                while True:
                    time.sleep(opts.interval)
                    live.update(_watch_line(fetch_health(st.record.port)), refresh=True)
        except KeyboardInterrupt:
            console.print()
    return 0


# ── logs ─────────────────────────────────────────────────────────────────────

def show_logs(service: str, opts: LogsOptions, console: Console,
              paths: Paths) -> int:
    path = paths.log_file(service)

    if opts.clear:
        if os.path.exists(path):
            log_viewer.clear(path)
        ok(console, f"{service.capitalize()} logs cleared")
        return 0

    if not os.path.exists(path):
        warn(console, f"No {service} logs found at {path}")
        hint(console, f"Start the {service} first: hauba {service} start")
        return 0

    for line in log_viewer.tail(path, opts.lines):
        console.print(styled_log_line(line))

    if opts.follow:
        hint(console, "Following logs (Ctrl+C to stop)...")
        try:
            for line in log_viewer.follow(path):
                console.print(styled_log_line(line))
        except KeyboardInterrupt:
            hint(console, "Stopped.")
    return 0


def cmd_daemon_logs(opts: LogsOptions, console: Console | None = None,
                    paths: Paths | None = None) -> int:
    return show_logs("daemon", opts, console or Console(), paths or Paths.default())


# ── install ──────────────────────────────────────────────────────────────────

def cmd_daemon_install(opts: InstallOptions, console: Console | None = None,
                       paths: Paths | None = None) -> int:
    console = console or Console()
    paths = paths or Paths.default()
    sup = build_supervisor(paths)
    spec = daemon_spec()
    command = sup.resolve(spec, StartOptions(
        port=spec.default_port,
        executable=opts.path or os.environ.get("HAUBA_DAEMON_PATH", "")))

    kind, steps = install_instructions(opts.name)
    if kind == "launchd":
        content = launchd_plist(command, paths.log_file("daemon"))
    else:
        content = systemd_unit(command, name=opts.name, user=opts.user)

    if opts.print_only:
        print(content, end="")
        return 0

    if kind == "other":
        console.print(f"  [{_theme.heading}]On Windows, use Windows Services or NSSM:"
                      f"[/{_theme.heading}]")
    else:
        title = "SYSTEMD SERVICE FILE" if kind == "systemd" else "LAUNCHD PLIST"
        from rich.markup import escape
        console.print(panel(_theme.style("muted", escape(content)), title))
        console.print("  To install this service, run:")
    for step in steps:
        console.print(f"    • {_theme.style('accent', step)}")
    console.print()
    return 0
