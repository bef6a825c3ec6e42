# Copyright (c) 2024 Fortis Contributors
# MIT License

"""
Terminal colour for fleet reports.

Whether to colour is decided once by the CLI (``supports_color``) and then
carried in an explicit ``StatusPainter``; renderers never look at the
environment themselves.
"""

import os
from typing import Optional, TextIO

from . import IS_WINDOWS

RESET = "\033[0m"
BOLD = "\033[1m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"

# Health scores at or above these thresholds are painted green / yellow.
HEALTH_GOOD = 70
HEALTH_FAIR = 40


def supports_color(stream: Optional[TextIO]) -> bool:
    """
    Guess whether ANSI colour codes should be written to ``stream``.

    ``NO_COLOR`` always wins, then ``FORCE_COLOR``. Otherwise the stream
    must be a terminal that is not ``dumb``.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True

    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False

    if IS_WINDOWS:
        return bool(os.environ.get("WT_SESSION") or os.environ.get("TERM_PROGRAM") == "vscode")
    return os.environ.get("TERM", "") != "dumb"


class StatusPainter:
    """Colours host status words and health scores, or passes text through."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled

    def _paint(self, text: str, code: str) -> str:
        if not self.enabled:
            return text
        return f"{code}{text}{RESET}"

    def ok(self, text: str = "OK") -> str:
        return self._paint(text, GREEN)

    def failed(self, text: str = "ERROR") -> str:
        return self._paint(text, BOLD + RED)

    def heading(self, text: str) -> str:
        return self._paint(text, BOLD)

    def health(self, score: int) -> str:
        """Render ``score`` green, yellow or red by threshold."""
        if score >= HEALTH_GOOD:
            code = GREEN
        elif score >= HEALTH_FAIR:
            code = YELLOW
        else:
            code = RED
        return self._paint(str(score), code)
