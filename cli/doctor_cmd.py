"""Doctor and diagnostics CLI commands."""
from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape

from cli.helpers import hint, panel
from cli.options import DoctorOptions
from core.config import get_config
from core.doctor import FAIL, PASS, SKIP, WARN, DoctorContext, run_doctor
from core.theme import theme as _theme

_ICONS = {PASS: ("success", "✓"), WARN: ("warning", "!"),
          FAIL: ("error", "✗"), SKIP: ("muted", "○")}


def cmd_doctor(opts: DoctorOptions, console: Console | None = None,
               ctx: DoctorContext | None = None) -> int:
    ctx = ctx or DoctorContext(config=get_config())

    if opts.json:
        report = run_doctor(ctx, only=opts.checks or None, fix=opts.fix)
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.ok else 1

    console = console or Console()
    with console.status("Running checks..."):
        report = run_doctor(ctx, only=opts.checks or None, fix=opts.fix)

    lines = []
    for r in report.results:
        style, icon = _ICONS.get(r.status, ("muted", "?"))
        line = f"  {_theme.style(style, icon)} [{_theme.heading}]{r.name:20}" \
               f"[/{_theme.heading}] {escape(r.message)}"
        if r.fixed:
            line += f" {_theme.style('success', '(fixed)')}"
        lines.append(line)
        if opts.verbose and r.details:
            lines.append(f"      {_theme.style('muted', escape(r.details))}")
        if r.status in (WARN, FAIL) and r.fix_description and not r.fixed:
            lines.append(f"      {_theme.style('muted', '→ ' + escape(r.fix_description))}")

    s = report.summary
    summary = (f"{_theme.style('success', str(s[PASS]) + ' passed')}, "
               f"{_theme.style('warning', str(s[WARN]) + ' warnings')}, "
               f"{_theme.style('error', str(s[FAIL]) + ' failed')}, "
               f"{s[SKIP]} skipped")

    console.print()
    console.print(panel("\n".join(lines) + f"\n\n  {summary}", "HAUBA Health Check"))

    fixable = [r for r in report.results if r.fix and r.status in (WARN, FAIL)]
    if fixable and not opts.fix:
        hint(console, f"{len(fixable)} issue(s) can be fixed automatically: hauba doctor --fix")
    console.print()
    return 0 if report.ok else 1
