"""
CHIP-8 Virtual Machine - Delay / Sound Timers

Two independent 8-bit countdown counters. One tick:
  delay  decrements while > 0
  sound  when exactly 1 at the start of the tick the audio alert fires,
         then decrements while > 0

Neither goes below zero. The alert is fire-and-forget: an exception from
the callback is logged and dropped, never raised into the stepping loop.
"""

import logging
from typing import Callable, Optional

log = logging.getLogger(__name__)


class TimerPeripheral:
    """Delay and sound countdown timers."""

    def __init__(self, on_sound: Optional[Callable[[], None]] = None):
        self._delay = 0
        self._sound = 0
        self.on_sound = on_sound
        self.ticks = 0

    @property
    def delay(self) -> int:
        return self._delay

    @delay.setter
    def delay(self, value: int):
        self._delay = self._byte(value, "delay")

    @property
    def sound(self) -> int:
        return self._sound

    @sound.setter
    def sound(self, value: int):
        self._sound = self._byte(value, "sound")

    @staticmethod
    def _byte(value: int, name: str) -> int:
        if not 0 <= value <= 0xFF:
            raise ValueError(f"{name} timer value {value} is not a byte")
        return value

    def tick(self):
        """Apply one timer tick."""
        self.ticks += 1
        if self._delay > 0:
            self._delay -= 1

        if self._sound > 0:
            if self._sound == 1:
                self._fire_alert()
            self._sound -= 1

    def _fire_alert(self):
        if self.on_sound is None:
            return
        try:
            self.on_sound()
        except Exception as e:
            log.warning("Audio alert failed: %s", e)

    def reset(self):
        self._delay = 0
        self._sound = 0
        self.ticks = 0
