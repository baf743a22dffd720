"""
CHIP-8 Virtual Machine - Fixed-Rate Scheduler

Drives an emulator in real time instead of spinning unthrottled. Work is
grouped in frames of 1/timer_hz seconds (60 Hz by default):

  frame mode  run instructions_per_second / timer_hz instructions without
              ticking, tick the timers once, present the display
  step mode   run the same number of full steps (one tick per instruction,
              the interpreter's own contract), present the display

then sleep until the frame's deadline. A frame that overruns is not
made up; the next deadline is rebased on the current time so the machine
slows down rather than bursting.

An optional input source is polled at the start of every frame (the
window front end feeds host key events through it); a False return from
its poll() ends the run with STOPPED.

Clock and sleep are injectable so tests can run without real time.
"""

import logging
import time
from typing import Callable, Optional

from .emu import Chip8Emulator, StopReason

log = logging.getLogger(__name__)


class FixedRateScheduler:
    """Frame-paced run loop for one Chip8Emulator."""

    def __init__(self, emulator: Chip8Emulator,
                 display=None,
                 input_source=None,
                 clock: Callable[[], float] = time.perf_counter,
                 sleep: Callable[[float], None] = time.sleep):
        self.emulator = emulator
        self.display = display
        self.input_source = input_source
        self.clock = clock
        self.sleep = sleep
        self.frames = 0
        self.overruns = 0
        self._stop_requested = False

    @property
    def frame_period(self) -> float:
        return 1.0 / self.emulator.config.timer_hz

    def stop(self):
        """Ask the loop to stop at the end of the current frame."""
        self._stop_requested = True

    def run_frame(self) -> Optional[StopReason]:
        """Execute one frame worth of work (no sleeping)."""
        emu = self.emulator
        config = emu.config
        per_frame = config.instructions_per_frame
        frame_mode = config.timer_mode == "frame"

        if self.input_source is not None and not self.input_source.poll():
            self._stop_requested = True

        reason = None
        for _ in range(per_frame):
            reason = emu.step(tick_timers=not frame_mode)
            if reason is not None:
                break
        if frame_mode and reason is None:
            emu.tick_timers()

        if self.display is not None:
            self.display.present(emu.state)
        self.frames += 1
        return reason

    def run(self, max_frames: Optional[int] = None,
            duration: Optional[float] = None,
            on_frame: Optional[Callable[[int], None]] = None) -> StopReason:
        """Run frames until a stop condition.

        Returns TIMEOUT when ``max_frames`` or ``duration`` (seconds) is
        used up, STOPPED after stop(), or the emulator's own StopReason.
        """
        self._stop_requested = False
        period = self.frame_period
        start = self.clock()
        deadline = start + period
        frames_run = 0

        log.info("Scheduler: %d instr/s, %d Hz timers, %s mode",
                 self.emulator.config.instructions_per_second,
                 self.emulator.config.timer_hz,
                 self.emulator.config.timer_mode)

        while True:
            if max_frames is not None and frames_run >= max_frames:
                return StopReason.TIMEOUT
            if duration is not None and self.clock() - start >= duration:
                return StopReason.TIMEOUT

            reason = self.run_frame()
            frames_run += 1
            if on_frame is not None:
                on_frame(frames_run)
            if reason is not None:
                return reason
            if self._stop_requested:
                return StopReason.STOPPED

            now = self.clock()
            remaining = deadline - now
            if remaining > 0:
                self.sleep(remaining)
                deadline += period
            else:
                self.overruns += 1
                deadline = now + period
