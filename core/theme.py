"""
core/theme.py
Semantic color theme — keeps color strings out of command modules.

Supports:
  - NO_COLOR=1 → disable all colors
  - FORCE_COLOR=1 → force colors in pipes
  - HAUBA_THEME=minimal → alternative theme

Usage:
    from core.theme import theme
    console.print(f"[{theme.accent}]Hello[/{theme.accent}]")
"""

from __future__ import annotations

import os
import sys

_STYLES = ("accent", "accent_light", "success", "warning", "error",
           "muted", "info", "heading", "link")


class Theme:
    """Semantic color definitions for consistent CLI appearance."""

    def __init__(self, environ=None):
        environ = os.environ if environ is None else environ
        self._no_color = bool(environ.get("NO_COLOR"))
        self._force_color = bool(environ.get("FORCE_COLOR"))
        self.name = environ.get("HAUBA_THEME", "default")

        if self._no_color:
            self._apply_no_color()
        elif self.name == "minimal":
            self._apply_minimal()
        else:
            self._apply_default()

    def _apply_default(self):
        """Neon magenta / cyan palette."""
        self.accent = "bold #E040FB"
        self.accent_light = "#EA80FC"
        self.success = "#76FF03"
        self.warning = "#FFAB00"
        self.error = "#FF5252"
        self.muted = "#78909C"
        self.info = "#00E5FF"
        self.heading = "bold"
        self.link = "underline #00B0FF"

    def _apply_minimal(self):
        self.accent = "bold"
        self.accent_light = ""
        self.success = "green"
        self.warning = "yellow"
        self.error = "red"
        self.muted = "dim"
        self.info = ""
        self.heading = "bold"
        self.link = "underline"

    def _apply_no_color(self):
        for attr in _STYLES:
            setattr(self, attr, "")

    def style(self, name: str, text: str) -> str:
        """Wrap *text* in rich markup for semantic style *name* (no-op if empty)."""
        value = getattr(self, name, "")
        if not value:
            return text
        return f"[{value}]{text}[/{value}]"

    @property
    def is_color_enabled(self) -> bool:
        if self._no_color:
            return False
        if self._force_color:
            return True
        return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


# Singleton instance
theme = Theme()
