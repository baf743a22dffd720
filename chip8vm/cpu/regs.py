"""
CHIP-8 Virtual Machine - CPU Register Set + Call Stack

Register model:
  V0-VE  8-bit general purpose registers
  VF     8-bit, doubles as carry / borrow / collision flag
  I      index register, 16 bits stored, low 12 bits address memory
  PC     program counter, byte address, advanced in units of 2
  stack  16 return addresses, SP points at the next free slot

The stack is not part of addressable memory. Pushing a 17th return
address raises StackOverflow, popping an empty stack StackUnderflow.
"""

from ..config import NUM_REGISTERS, PROGRAM_START, STACK_DEPTH
from ..errors import RegisterAccessError, StackOverflow, StackUnderflow

VF = 0xF


class Registers:
    """V0-VF, I, PC and the call stack."""

    __slots__ = ('V', 'I', 'PC', 'stack', 'SP')

    def __init__(self):
        self.V = bytearray(NUM_REGISTERS)
        self.I: int = 0
        self.PC: int = PROGRAM_START
        self.stack = [0] * STACK_DEPTH
        self.SP: int = 0

    # --- V register access ---

    def get_v(self, x: int) -> int:
        if not 0 <= x < NUM_REGISTERS:
            raise RegisterAccessError(f"No register V{x}")
        return self.V[x]

    def set_v(self, x: int, value: int):
        if not 0 <= x < NUM_REGISTERS:
            raise RegisterAccessError(f"No register V{x}")
        if not 0 <= value <= 0xFF:
            raise RegisterAccessError(f"V{x:X} value {value} is not a byte")
        self.V[x] = value

    # --- Stack operations ---

    def push(self, address: int):
        """Push a return address (SP increments after write)."""
        if self.SP >= STACK_DEPTH:
            raise StackOverflow(f"Call stack full ({STACK_DEPTH} return addresses)")
        self.stack[self.SP] = address
        self.SP += 1

    def pop(self) -> int:
        """Pop a return address (SP decrements before read)."""
        if self.SP <= 0:
            raise StackUnderflow("Return with an empty call stack")
        self.SP -= 1
        return self.stack[self.SP]

    # --- Display ---

    def display(self) -> str:
        """Format register state for debugging / trace lines."""
        v = ' '.join(f'V{i:X}={self.V[i]:02X}' for i in range(NUM_REGISTERS))
        return f"PC={self.PC:03X} I={self.I:03X} SP={self.SP:X} {v}"

    def reset(self):
        """Reset to power-on state."""
        self.V[:] = bytes(NUM_REGISTERS)
        self.I = 0
        self.PC = PROGRAM_START
        self.stack = [0] * STACK_DEPTH
        self.SP = 0
