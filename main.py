#!/usr/bin/env python3
"""
main.py  —  Hauba CLI
Usage:
  hauba daemon start          # start the background daemon (detached)
  hauba daemon stop           # SIGTERM, then SIGKILL after --timeout
  hauba daemon status         # PID record + /health (--json, --watch)
  hauba daemon logs           # tail the daemon log (-n, -f, --clear)
  hauba daemon install        # print a systemd unit / launchd plist
  hauba gateway start         # start the HTTP gateway (--foreground)
  hauba gateway stop          # stop the gateway
  hauba gateway status        # gateway PID + /health
  hauba gateway config        # show or change gateway.yaml
  hauba gateway logs          # tail the gateway log
  hauba doctor                # health checks (--fix, --json, -c CHECK)
  hauba version               # version, environment, dependencies

State lives in $HAUBA_HOME (default ~/.hauba): <service>.pid, <service>.log,
gateway.yaml, config.yaml and logs/cli.log.
"""

from __future__ import annotations

import argparse
import logging
import sys

from core.config import DAEMON_PORT, Paths, load_dotenv
from core.daemon import DEFAULT_CONCURRENCY, DEFAULT_REDIS_URL
from core.doctor import CHECKS
from core.errors import SupervisorError

logger = logging.getLogger("hauba")


def _add_stop_args(p: argparse.ArgumentParser):
    p.add_argument("-f", "--force", action="store_true",
                   help="Send SIGKILL immediately")
    p.add_argument("--timeout", type=float, default=10.0,
                   help="Seconds to wait after SIGTERM before SIGKILL (default: 10)")


def _add_logs_args(p: argparse.ArgumentParser):
    p.add_argument("-n", "--lines", type=int, default=50,
                   help="Number of lines to show (default: 50)")
    p.add_argument("-f", "--follow", action="store_true", help="Follow log output")


def build_parser() -> argparse.ArgumentParser:
    from cli.helpers import get_version

    parser = argparse.ArgumentParser(prog="hauba",
                                     description="Manage local Hauba services")
    parser.add_argument("-V", "--version", action="version",
                        version=f"%(prog)s {get_version()}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    # ── daemon ──
    p_daemon = sub.add_parser("daemon", help="Manage the Hauba background daemon")
    d_sub = p_daemon.add_subparsers(dest="action", required=True)

    p_start = d_sub.add_parser("start", help="Start the daemon")
    p_start.add_argument("-p", "--port", type=int, default=DAEMON_PORT,
                         help=f"Health check port (default: {DAEMON_PORT})")
    p_start.add_argument("-c", "--concurrency", type=int, default=DEFAULT_CONCURRENCY,
                         help=f"Worker concurrency (default: {DEFAULT_CONCURRENCY})")
    p_start.add_argument("--dev", action="store_true", help="Run in development mode")
    p_start.add_argument("--foreground", action="store_true",
                         help="Run attached to this terminal")
    p_start.add_argument("--redis-url", default=DEFAULT_REDIS_URL,
                         help=f"Redis URL (default: {DEFAULT_REDIS_URL})")
    p_start.add_argument("--timeout", type=float, default=15.0,
                         help="Seconds to wait for a healthy /health (default: 15)")
    p_start.add_argument("--path", default="",
                         help="Daemon entry file (default: HAUBA_DAEMON_PATH or search)")

    _add_stop_args(d_sub.add_parser("stop", help="Stop the daemon"))

    p_dstatus = d_sub.add_parser("status", help="Show daemon health and status")
    p_dstatus.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    p_dstatus.add_argument("-w", "--watch", action="store_true",
                           help="Watch mode with live updates")

    p_dlogs = d_sub.add_parser("logs", help="View daemon logs")
    _add_logs_args(p_dlogs)
    p_dlogs.add_argument("--clear", action="store_true", help="Clear log file")

    p_install = d_sub.add_parser("install", help="Print a system service definition")
    p_install.add_argument("--name", default="hauba-daemon", help="Service name")
    p_install.add_argument("--user", default="", help="User to run as (default: current)")
    p_install.add_argument("--print", dest="print_only", action="store_true",
                           help="Print only the service file")
    p_install.add_argument("--path", default="", help="Daemon entry file")

    # ── gateway ──
    p_gw = sub.add_parser("gateway", help="Manage the Hauba gateway")
    g_sub = p_gw.add_subparsers(dest="action", required=True)

    p_gstart = g_sub.add_parser("start", help="Start the gateway server")
    p_gstart.add_argument("-p", "--port", type=int, default=0,
                          help="Port to listen on (default: from gateway.yaml, 18789)")
    p_gstart.add_argument("--foreground", action="store_true",
                          help="Run in foreground (don't daemonize)")
    p_gstart.add_argument("--no-websocket", dest="websocket", action="store_false",
                          help="Disable WebSocket support")
    p_gstart.add_argument("--timeout", type=float, default=10.0,
                          help="Seconds to wait for /health (default: 10)")

    _add_stop_args(g_sub.add_parser("stop", help="Stop the gateway server"))

    p_gstatus = g_sub.add_parser("status", help="Check gateway status")
    p_gstatus.add_argument("-j", "--json", action="store_true", help="Output as JSON")

    p_gconf = g_sub.add_parser("config", help="Configure gateway settings")
    p_gconf.add_argument("-p", "--port", type=int, default=None, help="Set port number")
    p_gconf.add_argument("--host", default=None, help="Set host address")
    p_gconf.add_argument("--cors", dest="cors", action="store_true", default=None,
                         help="Enable CORS")
    p_gconf.add_argument("--no-cors", dest="cors", action="store_false",
                         help="Disable CORS")
    p_gconf.add_argument("--rate-limit", type=int, default=None,
                         help="Set rate limit (requests/minute)")
    p_gconf.add_argument("--regenerate-token", action="store_true",
                         help="Generate new auth token")
    p_gconf.add_argument("--show", action="store_true", help="Show current configuration")

    _add_logs_args(g_sub.add_parser("logs", help="View gateway logs"))

    # ── doctor / version ──
    p_doc = sub.add_parser("doctor", help="Run health checks and diagnose issues")
    p_doc.add_argument("--fix", action="store_true", help="Attempt to auto-fix issues")
    p_doc.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")
    p_doc.add_argument("-j", "--json", action="store_true", help="Output results as JSON")
    p_doc.add_argument("-c", "--check", nargs="+", choices=list(CHECKS),
                       help="Run specific checks only")

    p_ver = sub.add_parser("version", help="Show version information")
    p_ver.add_argument("--json", action="store_true", help="Output as JSON")

    return parser


def _report_failure(args, message: str, hint: str = ""):
    from rich.console import Console
    from rich.markup import escape
    from core.theme import theme as _theme

    logger.info("%s %s failed: %s", args.cmd, getattr(args, "action", ""), message)
    console = Console(stderr=True)
    console.print(f"  {_theme.style('error', '✗ ' + escape(message))}")
    for line in hint.splitlines():
        console.print(f"    {_theme.style('muted', escape(line))}")


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()

    from core.logging_config import setup_logging
    setup_logging(log_dir=Paths.default().cli_log_dir)

    from cli import dispatch_command
    try:
        code = dispatch_command(args)
    except SupervisorError as e:
        _report_failure(args, str(e), e.hint)
        sys.exit(1)
    except OSError as e:
        path = e.filename or Paths.default().home
        _report_failure(args, str(e), f"Check permissions on {path} (or set HAUBA_HOME)")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(code or 0)


if __name__ == "__main__":
    main()
