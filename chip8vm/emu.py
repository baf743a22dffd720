"""
CHIP-8 Virtual Machine - Emulator Session Host

Owns one MachineState and the Interpreter bound to it, and is the single
writer of that state. Integrates:
  - Machine state (machine.py)
  - Interpreter (cpu/interpreter.py)
  - Loader (ROM images, save states)
  - Beeper (sound timer alert)

Execution model:
  1. Check breakpoints
  2. Interpreter executes one instruction (+ timer tick unless the
     scheduler runs timers separately)
  3. Faults become a StopReason; the fault is kept in ``last_fault``

Termination reasons:
  - TIMEOUT:  step budget used up
  - BREAK:    breakpoint address hit
  - ILLEGAL:  undefined opcode (strict decode)
  - FAULT:    stack overflow/underflow, memory or register out of range
  - STOPPED:  the host asked to stop
"""

import logging
import random
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from . import loader
from .config import EmulatorConfig
from .cpu.decoder import disassemble
from .cpu.interpreter import Interpreter
from .errors import IllegalOpcode, MachineFault
from .machine import MachineState
from .periph.sound import Beeper

log = logging.getLogger(__name__)


class StopReason(Enum):
    TIMEOUT = 'TIMEOUT'
    BREAK = 'BREAK'
    ILLEGAL = 'ILLEGAL'
    FAULT = 'FAULT'
    STOPPED = 'STOPPED'


class Chip8Emulator:
    """CHIP-8 session: state + interpreter + run loop.

    Usage:
        emu = Chip8Emulator()
        emu.load_rom('pong.ch8')
        reason = emu.run(max_steps=10_000)
        print(emu.dump_state())
    """

    DEFAULT_MAX_STEPS = 1_000_000

    def __init__(self, config: Optional[EmulatorConfig] = None,
                 beeper: Optional[Beeper] = None):
        self.config = config or EmulatorConfig()
        self.beeper = beeper or Beeper(enabled=self.config.beep)
        self.rng = random.Random(self.config.seed)
        self.state = MachineState()
        self.interpreter = self._bind(self.state)
        self.last_fault: Optional[MachineFault] = None
        self.rom_size = 0

        # Breakpoints: set of PC addresses that trigger BREAK
        self._breakpoints: Set[int] = set()
        # A BREAK is reported once; stepping again continues past it
        self._break_acknowledged: Optional[int] = None

        self._trace = False
        self._trace_output: List[str] = []

    def _bind(self, state: MachineState) -> Interpreter:
        state.timers.on_sound = self.beeper
        return Interpreter(state, self.config, rng=self.rng)

    # ══════════════════════════════════════════════
    # Loading / saving
    # ══════════════════════════════════════════════

    def load_rom(self, path_or_data) -> int:
        """Reset and load a ROM image (path or bytes) at $200.

        Raises RomLoadError; the session is unchanged in that case.
        """
        self.rom_size = loader.load_rom(self.state, path_or_data)
        self._after_replace()
        return self.rom_size

    def save_state(self, path) -> Path:
        return loader.save_state(self.state, path)

    def load_state(self, path):
        """Replace the whole machine with a saved one.

        Raises StateFileError; the running machine is kept in that case.
        """
        state = loader.load_state(path)
        self.state = state
        self.interpreter = self._bind(state)
        self._after_replace()

    def _after_replace(self):
        self.last_fault = None
        self._break_acknowledged = None
        self.interpreter.history.clear()

    def reset(self):
        """Power-on reset (memory cleared, font reloaded, breakpoints and trace dropped)."""
        self.state.reset()
        self._after_replace()
        self._breakpoints.clear()
        self._trace_output.clear()

    # ══════════════════════════════════════════════
    # Input / display hooks
    # ══════════════════════════════════════════════

    def set_key(self, index: int, pressed):
        self.state.set_key(index, 1 if pressed else 0)

    @property
    def needs_redraw(self) -> bool:
        return self.state.needs_redraw

    @needs_redraw.setter
    def needs_redraw(self, value: bool):
        self.state.needs_redraw = value

    def window(self):
        return self.state.window()

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self, tick_timers: bool = True) -> Optional[StopReason]:
        """Execute one instruction. Returns StopReason if stopped, else None."""
        if self.last_fault is not None:
            return self._fault_reason(self.last_fault)

        pc = self.state.program_counter
        if pc in self._breakpoints and self._break_acknowledged != pc:
            self._break_acknowledged = pc
            return StopReason.BREAK
        self._break_acknowledged = None

        if self._trace:
            self._trace_output.append(self._trace_line(pc))

        try:
            if tick_timers:
                self.interpreter.step()
            else:
                self.interpreter.execute()
        except MachineFault as e:
            self.last_fault = e
            log.error("Machine fault: %s", e)
            log.debug("State at fault:\n%s", self.state.dump())
            return self._fault_reason(e)
        return None

    def tick_timers(self):
        self.interpreter.tick_timers()

    @staticmethod
    def _fault_reason(fault: MachineFault) -> StopReason:
        return StopReason.ILLEGAL if isinstance(fault, IllegalOpcode) else StopReason.FAULT

    def run(self, max_steps: Optional[int] = None) -> StopReason:
        """Run until a stop condition. Unthrottled; see scheduler.py for
        real-time pacing."""
        if max_steps is None:
            max_steps = self.DEFAULT_MAX_STEPS
        for _ in range(max_steps):
            reason = self.step()
            if reason is not None:
                return reason
        return StopReason.TIMEOUT

    # ══════════════════════════════════════════════
    # Breakpoint API
    # ══════════════════════════════════════════════

    def add_breakpoint(self, addr: int):
        """Execution stops (BREAK) before the instruction at ``addr``."""
        self._breakpoints.add(addr & 0xFFF)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr & 0xFFF)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def _trace_line(self, pc: int) -> str:
        try:
            opcode = self.state.fetch_opcode()
        except MachineFault:
            return f"${pc:03X}: ----"
        return f"${pc:03X}: {opcode:04X}  {disassemble(opcode):18s} {self.state.regs.display()}"

    def enable_trace(self, enable: bool = True):
        """Record one line per executed instruction."""
        self._trace = enable

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def clear_trace(self):
        self._trace_output.clear()

    @property
    def opcode_history(self) -> List[int]:
        return list(self.interpreter.history)

    def dump_state(self) -> str:
        return self.state.dump()
