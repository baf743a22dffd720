"""
CHIP-8 Virtual Machine - Exception Hierarchy

Load errors are recoverable: the host reports them and the session keeps its
last-known-good state. Machine faults are fatal for the current run: they
propagate out of Interpreter.step() and the Emulator turns them into a
StopReason.

  Chip8Error
    LoadError
      RomLoadError       - oversized / unreadable program image
      StateFileError     - missing, truncated or corrupt save-state
    ConfigError          - bad configuration file or value
    MachineFault
      IllegalOpcode      - opcode matches no known pattern
      StackOverflow      - call with 16 return addresses already pushed
      StackUnderflow     - return with an empty stack
      MemoryAccessError  - address outside 0x000-0xFFF
      RegisterAccessError - bad register / key / pixel index or value
"""

from typing import Optional


class Chip8Error(Exception):
    """Base class for every error raised by chip8vm."""


class LoadError(Chip8Error):
    pass


class RomLoadError(LoadError):
    pass


class StateFileError(LoadError):
    pass


class ConfigError(Chip8Error, ValueError):
    pass


class MachineFault(Chip8Error):
    """Fatal condition inside the emulated machine.

    ``pc`` is the program counter of the instruction being executed when
    the fault was raised, filled in by the interpreter if known.
    """

    def __init__(self, message: str, pc: Optional[int] = None):
        super().__init__(message)
        self.pc = pc


class IllegalOpcode(MachineFault):
    def __init__(self, opcode: int, pc: Optional[int] = None):
        super().__init__(f"Unknown opcode ${opcode:04X}", pc)
        self.opcode = opcode

    def __str__(self):
        where = f" at ${self.pc:03X}" if self.pc is not None else ""
        return f"Unknown opcode ${self.opcode:04X}{where}"


class StackOverflow(MachineFault):
    pass


class StackUnderflow(MachineFault):
    pass


class MemoryAccessError(MachineFault, IndexError):
    pass


class RegisterAccessError(MachineFault, IndexError):
    pass
