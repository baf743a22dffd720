"""
CHIP-8 Virtual Machine - Machine State

The single mutable aggregate holding all emulated hardware state:

  memory        4096 bytes, font at $000-$04F, program from $200
  regs          V0-VF, I, PC, call stack + SP
  timers        delay / sound countdown
  keypad        16-slot input latch
  framebuffer   64 x 32 monochrome grid
  needs_redraw  set when the framebuffer changes, cleared by the display

It owns no behavior beyond accessors and reset(). Validation is
fail-fast everywhere: an out-of-range address, index or value raises a
MachineFault subclass rather than wrapping.
"""

from typing import List, Optional

from .config import ADDRESS_MASK, MEMORY_SIZE
from .cpu.regs import Registers
from .errors import MemoryAccessError
from .mem.memory import Memory
from .periph.display import Framebuffer
from .periph.keypad import Keypad
from .periph.timer import TimerPeripheral


class MachineState:
    """Memory, registers, stack, timers, keypad and framebuffer."""

    def __init__(self):
        self.memory = Memory()
        self.regs = Registers()
        self.timers = TimerPeripheral()
        self.keypad = Keypad()
        self.framebuffer = Framebuffer()
        self.needs_redraw = True

    def reset(self):
        """Return to the power-on configuration.

        PC=$200, registers/stack/timers/keys zeroed, memory zeroed with the
        font reloaded, screen cleared, redraw forced. Idempotent.
        """
        self.memory.reset()
        self.regs.reset()
        self.timers.reset()
        self.keypad.reset()
        self.framebuffer.clear()
        self.needs_redraw = True

    # --- Registers ---

    def get_v(self, x: int) -> int:
        return self.regs.get_v(x)

    def set_v(self, x: int, value: int):
        self.regs.set_v(x, value)

    @property
    def index_register(self) -> int:
        return self.regs.I

    @index_register.setter
    def index_register(self, value: int):
        if not 0 <= value <= 0xFFFF:
            raise MemoryAccessError(f"Index register value {value:#x} out of range")
        self.regs.I = value

    @property
    def program_counter(self) -> int:
        return self.regs.PC

    @program_counter.setter
    def program_counter(self, value: int):
        # PC may be parked anywhere; fetch_opcode() enforces the fetch range
        if not 0 <= value <= 0xFFFF:
            raise MemoryAccessError(f"Program counter {value:#x} out of range")
        self.regs.PC = value

    def advance(self, count: int = 2):
        self.program_counter = self.regs.PC + count

    # --- Stack ---

    def push(self, address: int):
        self.regs.push(address)

    def pop(self) -> int:
        return self.regs.pop()

    @property
    def stack_pointer(self) -> int:
        return self.regs.SP

    def stack(self) -> List[int]:
        """Live return addresses, oldest first."""
        return self.regs.stack[:self.regs.SP]

    # --- Memory ---

    def read8(self, addr: int) -> int:
        return self.memory.read8(addr)

    def write8(self, addr: int, value: int):
        self.memory.write8(addr, value)

    def index_address(self, offset: int = 0) -> int:
        """Memory address I + offset (low 12 bits of I)."""
        return (self.regs.I & ADDRESS_MASK) + offset

    def fetch_opcode(self) -> int:
        """Big-endian word at PC, PC+1."""
        pc = self.regs.PC
        if not 0 <= pc <= MEMORY_SIZE - 2:
            raise MemoryAccessError(f"Program counter ${pc:X} outside memory", pc)
        return self.memory.read16(pc)

    # --- Timers ---

    @property
    def delay_timer(self) -> int:
        return self.timers.delay

    @delay_timer.setter
    def delay_timer(self, value: int):
        self.timers.delay = value

    @property
    def sound_timer(self) -> int:
        return self.timers.sound

    @sound_timer.setter
    def sound_timer(self, value: int):
        self.timers.sound = value

    # --- Input latch ---

    def get_key(self, index: int) -> int:
        return self.keypad.get(index)

    def set_key(self, index: int, value: int):
        self.keypad.set(index, value)

    # --- Framebuffer ---

    def get_pixel(self, x: int, y: int) -> bool:
        return self.framebuffer.get(x, y)

    def set_pixel(self, x: int, y: int, value: bool):
        self.framebuffer.set(x, y, value)

    def clear_screen(self):
        self.framebuffer.clear()

    def window(self) -> List[List[bool]]:
        """Copy of the framebuffer, ``window()[y][x]``."""
        return self.framebuffer.rows()

    # --- Debug ---

    def dump(self, memory_start: Optional[int] = None, memory_length: int = 256) -> str:
        """Human-readable state dump (registers, stack, keys, timers, memory)."""
        regs = self.regs
        try:
            next_op = f"{self.fetch_opcode():04X}"
        except MemoryAccessError:
            next_op = "----"
        stack = ' '.join(f'{a:03X}' for a in self.stack()) or '(empty)'
        keys = ''.join(str(self.keypad.get(i)) for i in range(16))
        lines = [
            regs.display(),
            f"stack: {stack}",
            f"keys:  {keys}",
            f"delay={self.delay_timer} sound={self.sound_timer} "
            f"redraw={self.needs_redraw} next opcode={next_op}",
        ]
        start = regs.PC & 0xFF0 if memory_start is None else memory_start
        lines.append(self.memory.hexdump(start, memory_length))
        return '\n'.join(lines)
