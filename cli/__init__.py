"""CLI dispatcher — lazy-loads command modules on demand."""
from __future__ import annotations


def dispatch_command(args) -> int:
    """Route args.cmd / args.action to a cli module, importing only on use.

    Returns the process exit code.
    """
    cmd = getattr(args, "cmd", None)
    action = getattr(args, "action", None)

    if cmd == "version":
        from cli.options import VersionOptions
        from cli.version_cmd import cmd_version
        return cmd_version(VersionOptions(json=args.json))

    if cmd == "doctor":
        from cli.doctor_cmd import cmd_doctor
        from cli.options import DoctorOptions
        return cmd_doctor(DoctorOptions(fix=args.fix, verbose=args.verbose,
                                        json=args.json, checks=args.check or []))

    if cmd == "daemon":
        from cli import daemon_cmd
        from cli.options import (
            DaemonStartOptions, InstallOptions, LogsOptions, StatusOptions, StopOptions,
        )
        if action == "start":
            return daemon_cmd.cmd_daemon_start(DaemonStartOptions(
                port=args.port, concurrency=args.concurrency,
                redis_url=args.redis_url, dev=args.dev,
                foreground=args.foreground, timeout=args.timeout,
                path=args.path))
        if action == "stop":
            return daemon_cmd.cmd_daemon_stop(
                StopOptions(force=args.force, timeout=args.timeout))
        if action == "status":
            return daemon_cmd.cmd_daemon_status(
                StatusOptions(json=args.json, watch=args.watch))
        if action == "logs":
            return daemon_cmd.cmd_daemon_logs(
                LogsOptions(lines=args.lines, follow=args.follow, clear=args.clear))
        if action == "install":
            return daemon_cmd.cmd_daemon_install(InstallOptions(
                name=args.name, user=args.user, print_only=args.print_only,
                path=args.path))

    if cmd == "gateway":
        from cli import gateway_cmd
        from cli.options import (
            GatewayConfigOptions, GatewayStartOptions, LogsOptions, StatusOptions,
            StopOptions,
        )
        if action == "start":
            return gateway_cmd.cmd_gateway_start(GatewayStartOptions(
                port=args.port, foreground=args.foreground,
                websocket=args.websocket, timeout=args.timeout))
        if action == "stop":
            return gateway_cmd.cmd_gateway_stop(
                StopOptions(force=args.force, timeout=args.timeout))
        if action == "status":
            return gateway_cmd.cmd_gateway_status(StatusOptions(json=args.json))
        if action == "config":
            return gateway_cmd.cmd_gateway_config(GatewayConfigOptions(
                port=args.port, host=args.host, cors=args.cors,
                rate_limit=args.rate_limit,
                regenerate_token=args.regenerate_token, show=args.show))
        if action == "logs":
            return gateway_cmd.cmd_gateway_logs(
                LogsOptions(lines=args.lines, follow=args.follow))

    raise ValueError(f"unknown command: {cmd} {action or ''}".strip())
