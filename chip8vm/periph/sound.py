"""
CHIP-8 Virtual Machine - Beeper

The sound timer's alert is a terminal bell rung through a Rich console.
Failures (closed stream, no terminal) are logged and swallowed.
"""

import logging
from typing import Optional

from rich.console import Console

log = logging.getLogger(__name__)


class Beeper:
    """Fire-and-forget audio alert."""

    def __init__(self, console: Optional[Console] = None, enabled: bool = True):
        self.console = console or Console(stderr=True)
        self.enabled = enabled
        self.count = 0

    def __call__(self):
        self.beep()

    def beep(self):
        self.count += 1
        if not self.enabled:
            return
        try:
            self.console.bell()
        except Exception as e:
            log.warning("Beep failed: %s", e)
