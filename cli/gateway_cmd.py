"""`hauba gateway` subcommands: start, stop, status, config, logs."""
from __future__ import annotations

import json
from dataclasses import replace

from rich.console import Console

from cli.daemon_cmd import show_logs
from cli.helpers import (
    build_supervisor, hint, kv_table, ok, panel, print_recent_logs, warn,
)
from cli.options import (
    GatewayConfigOptions, GatewayStartOptions, LogsOptions, StatusOptions, StopOptions,
)
from core.config import Paths
from core.errors import HealthCheckTimeout
from core.formatting import format_uptime
from core.gateway import (
    gateway_spec, gateway_start_options, generate_token, load_gateway_config,
    save_gateway_config, serve,
)
from core.probe import HEALTH_HOST
from core.supervisor import ServiceState
from core.theme import theme as _theme


def cmd_gateway_start(opts: GatewayStartOptions, console: Console | None = None,
                      paths: Paths | None = None) -> int:
    console = console or Console()
    paths = paths or Paths.default()
    sup = build_supervisor(paths)
    spec = gateway_spec()

    st = sup.status(spec, probe_health=False)
    if st.running:
        warn(console, f"Gateway already running on port {st.record.port} "
                      f"(PID: {st.record.pid})")
        hint(console, "Stop it with: hauba gateway stop")
        return 0

    config = load_gateway_config(paths.gateway_config)
    if not config.auth_token:
        config.auth_token = generate_token()
        save_gateway_config(paths.gateway_config, config)
        console.print(f"  Generated auth token: "
                      f"{_theme.style('muted', config.masked_token())}")
    # start flags apply to this run only; gateway.yaml changes via `gateway config`
    config = replace(config, port=opts.port or config.port,
                     websocket=config.websocket and opts.websocket)

    if opts.foreground:
        from core.logging_config import setup_logging

        setup_logging(log_dir=paths.cli_log_dir, console_level="INFO")
        console.print(f"  Starting gateway on {config.host}:{config.port} "
                      f"(Ctrl+C to stop)...")
        serve(config)
        return 0

    try:
        with console.status("Starting gateway..."):
            result = sup.start(spec, gateway_start_options(config, paths, opts.timeout))
    except HealthCheckTimeout as e:
        warn(console, str(e))
        print_recent_logs(console, e.log_path)
        return 1

    ok(console, f"Gateway started on port {config.port}")
    tbl = kv_table()
    tbl.add_row("Gateway URL", f"http://{HEALTH_HOST}:{config.port}")
    tbl.add_row("Auth Token", config.masked_token(keep=20))
    tbl.add_row("PID", str(result.record.pid))
    tbl.add_row("Logs", result.log_path)
    console.print(panel(tbl, "GATEWAY RUNNING", style="success"))
    hint(console, "Stop with: hauba gateway stop")
    return 0


def cmd_gateway_stop(opts: StopOptions, console: Console | None = None,
                     paths: Paths | None = None) -> int:
    console = console or Console()
    sup = build_supervisor(paths or Paths.default())

    with console.status("Stopping gateway..."):
        result = sup.stop(gateway_spec(), force=opts.force, grace=opts.timeout)

    if result.outcome == "not_running":
        hint(console, "Gateway is not running")
    elif result.outcome == "already_stopped":
        ok(console, f"Gateway was not running (PID {result.pid}); cleaned up stale PID file")
    else:
        ok(console, f"Gateway stopped (PID {result.pid})")
    return 0


def cmd_gateway_status(opts: StatusOptions, console: Console | None = None,
                       paths: Paths | None = None) -> int:
    console = console or Console()
    sup = build_supervisor(paths or Paths.default())
    st = sup.status(gateway_spec())

    if opts.json:
        payload = {"running": st.running}
        if st.state == ServiceState.STALE:
            payload["stalePid"] = st.stale_pid
        elif st.running:
            payload.update(pid=st.record.pid, port=st.record.port,
                           startedAt=st.record.started_at, health=st.health)
        print(json.dumps(payload))
        return 0

    if not st.running:
        body = (f"{_theme.style('error', '●')} Gateway is {_theme.style('error', 'stopped')}"
                f"\n\nStart with: hauba gateway start")
        if st.state == ServiceState.STALE:
            body += f"\n{_theme.style('muted', f'(stale PID {st.stale_pid} cleaned up)')}"
        console.print(panel(body, "GATEWAY STATUS", style="muted"))
        return 0

    health = st.health or {}
    tbl = kv_table()
    tbl.add_row("PID", str(st.record.pid))
    tbl.add_row("Port", str(st.record.port))
    tbl.add_row("Uptime", format_uptime(health["uptime"]) if "uptime" in health else "N/A")
    tbl.add_row("Connections", str(health.get("connections", 0)))
    tbl.add_row("Messages", str(health.get("messagesProcessed", 0)))
    tbl.add_row("URL", f"http://{HEALTH_HOST}:{st.record.port}")
    if st.health is None:
        tbl.add_row("Health", _theme.style("warning", "not responding"))
    console.print(panel(tbl, "GATEWAY RUNNING", style="success"))
    return 0


def cmd_gateway_config(opts: GatewayConfigOptions, console: Console | None = None,
                       paths: Paths | None = None) -> int:
    console = console or Console()
    paths = paths or Paths.default()
    config = load_gateway_config(paths.gateway_config)

    if opts.show or not opts.has_changes:
        tbl = kv_table()
        tbl.add_row("Port", str(config.port))
        tbl.add_row("Host", config.host)
        tbl.add_row("CORS", "Enabled" if config.cors else "Disabled")
        tbl.add_row("Rate Limit", f"{config.rate_limit}/min")
        tbl.add_row("WebSocket", "Enabled" if config.websocket else "Disabled")
        tbl.add_row("Auth Token", config.masked_token(keep=16))
        console.print(panel(tbl, "GATEWAY CONFIGURATION"))
        if not opts.show:
            hint(console, "No changes made. Use --port, --host, --cors/--no-cors, "
                          "--rate-limit or --regenerate-token to change settings.")
        return 0

    if opts.port is not None:
        config.port = opts.port
    if opts.host is not None:
        config.host = opts.host
    if opts.cors is not None:
        config.cors = opts.cors
    if opts.rate_limit is not None:
        config.rate_limit = opts.rate_limit
    if opts.regenerate_token:
        config.auth_token = generate_token()
        ok(console, f"New auth token: {_theme.style('muted', config.auth_token)}")

    paths.ensure()
    save_gateway_config(paths.gateway_config, config)
    ok(console, "Configuration updated")
    hint(console, "Restart gateway to apply: hauba gateway stop && hauba gateway start")
    return 0


def cmd_gateway_logs(opts: LogsOptions, console: Console | None = None,
                     paths: Paths | None = None) -> int:
    return show_logs("gateway", opts, console or Console(), paths or Paths.default())
