from .decoder import Instruction, decode, disassemble, disassemble_program
from .interpreter import Interpreter
from .regs import Registers

__all__ = [
    "Instruction",
    "Interpreter",
    "Registers",
    "decode",
    "disassemble",
    "disassemble_program",
]
