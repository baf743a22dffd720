"""
CHIP-8 Virtual Machine - Opcode Decoder / Disassembler

Every instruction is one big-endian 16-bit word. The high nibble selects
the group; groups 0, 8, E and F sub-dispatch on the low nibble or the
low byte. Operand fields:

  X    (opcode >> 8) & 0xF   register index
  Y    (opcode >> 4) & 0xF   register index
  N    opcode & 0xF          4-bit constant (sprite height)
  NN   opcode & 0xFF         8-bit constant
  NNN  opcode & 0xFFF        12-bit address

Group 0 looks only at the low nibble (0 -> CLS, E -> RET), so 0x0000
decodes as CLS. 5XYn and 9XYn ignore their low nibble.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

from ..config import PROGRAM_START
from ..errors import IllegalOpcode


# ──────────────────────────────────────────────
# Instruction table
# ──────────────────────────────────────────────
# Format: key -> (mnemonic, operand template)
# Templates are str.format()ed with the Instruction fields.

OPCODES = {
    '00E0': ('CLS',  ''),
    '00EE': ('RET',  ''),
    '1NNN': ('JP',   '0x{nnn:03X}'),
    '2NNN': ('CALL', '0x{nnn:03X}'),
    '3XNN': ('SE',   'V{x:X}, 0x{nn:02X}'),
    '4XNN': ('SNE',  'V{x:X}, 0x{nn:02X}'),
    '5XY0': ('SE',   'V{x:X}, V{y:X}'),
    '6XNN': ('LD',   'V{x:X}, 0x{nn:02X}'),
    '7XNN': ('ADD',  'V{x:X}, 0x{nn:02X}'),
    '8XY0': ('LD',   'V{x:X}, V{y:X}'),
    '8XY1': ('OR',   'V{x:X}, V{y:X}'),
    '8XY2': ('AND',  'V{x:X}, V{y:X}'),
    '8XY3': ('XOR',  'V{x:X}, V{y:X}'),
    '8XY4': ('ADD',  'V{x:X}, V{y:X}'),
    '8XY5': ('SUB',  'V{x:X}, V{y:X}'),
    '8XY6': ('SHR',  'V{x:X}'),
    '8XY7': ('SUBN', 'V{x:X}, V{y:X}'),
    '8XYE': ('SHL',  'V{x:X}'),
    '9XY0': ('SNE',  'V{x:X}, V{y:X}'),
    'ANNN': ('LD',   'I, 0x{nnn:03X}'),
    'BNNN': ('JP',   'V0, 0x{nnn:03X}'),
    'CXNN': ('RND',  'V{x:X}, 0x{nn:02X}'),
    'DXYN': ('DRW',  'V{x:X}, V{y:X}, {n}'),
    'EX9E': ('SKP',  'V{x:X}'),
    'EXA1': ('SKNP', 'V{x:X}'),
    'FX07': ('LD',   'V{x:X}, DT'),
    'FX0A': ('LD',   'V{x:X}, K'),
    'FX15': ('LD',   'DT, V{x:X}'),
    'FX18': ('LD',   'ST, V{x:X}'),
    'FX1E': ('ADD',  'I, V{x:X}'),
    'FX29': ('LD',   'F, V{x:X}'),
    'FX33': ('LD',   'B, V{x:X}'),
    'FX55': ('LD',   '[I], V{x:X}'),
    'FX65': ('LD',   'V{x:X}, [I]'),
}

# Groups with a single instruction, keyed by high nibble
_SINGLE = {
    0x1: '1NNN', 0x2: '2NNN', 0x3: '3XNN', 0x4: '4XNN', 0x5: '5XY0',
    0x6: '6XNN', 0x7: '7XNN', 0x9: '9XY0', 0xA: 'ANNN', 0xB: 'BNNN',
    0xC: 'CXNN', 0xD: 'DXYN',
}

_GROUP_0 = {0x0: '00E0', 0xE: '00EE'}

_GROUP_8 = {
    0x0: '8XY0', 0x1: '8XY1', 0x2: '8XY2', 0x3: '8XY3', 0x4: '8XY4',
    0x5: '8XY5', 0x6: '8XY6', 0x7: '8XY7', 0xE: '8XYE',
}

_GROUP_E = {0x9E: 'EX9E', 0xA1: 'EXA1'}

_GROUP_F = {
    0x07: 'FX07', 0x0A: 'FX0A', 0x15: 'FX15', 0x18: 'FX18', 0x1E: 'FX1E',
    0x29: 'FX29', 0x33: 'FX33', 0x55: 'FX55', 0x65: 'FX65',
}


@dataclass(frozen=True)
class Instruction:
    """One decoded opcode word."""
    key: str
    opcode: int
    x: int
    y: int
    n: int
    nn: int
    nnn: int

    def __str__(self) -> str:
        mnem, template = OPCODES[self.key]
        operands = template.format(x=self.x, y=self.y, n=self.n,
                                   nn=self.nn, nnn=self.nnn)
        return f"{mnem:4s} {operands}".rstrip()


def instruction_key(opcode: int) -> str:
    """Return the table key for ``opcode`` or raise IllegalOpcode."""
    group = (opcode & 0xF000) >> 12
    if group in _SINGLE:
        return _SINGLE[group]

    if group == 0x0:
        table, selector = _GROUP_0, opcode & 0x000F
    elif group == 0x8:
        table, selector = _GROUP_8, opcode & 0x000F
    elif group == 0xE:
        table, selector = _GROUP_E, opcode & 0x00FF
    else:
        table, selector = _GROUP_F, opcode & 0x00FF

    key = table.get(selector)
    if key is None:
        raise IllegalOpcode(opcode)
    return key


def decode(opcode: int) -> Instruction:
    """Decode a 16-bit opcode word.

    Raises IllegalOpcode when the word matches no known pattern.
    """
    if not 0 <= opcode <= 0xFFFF:
        raise ValueError(f"Opcode {opcode:#x} is not a 16-bit word")
    return Instruction(
        key=instruction_key(opcode),
        opcode=opcode,
        x=(opcode & 0x0F00) >> 8,
        y=(opcode & 0x00F0) >> 4,
        n=opcode & 0x000F,
        nn=opcode & 0x00FF,
        nnn=opcode & 0x0FFF,
    )


def disassemble(opcode: int) -> str:
    """Mnemonic text for one opcode, ``???  0xNNNN`` when unknown."""
    try:
        return str(decode(opcode))
    except IllegalOpcode:
        return f"???  0x{opcode:04X}"


def disassemble_program(data: bytes, base: int = PROGRAM_START) -> Iterator[Tuple[int, int, str]]:
    """Yield (address, opcode, text) for every word of ``data``.

    A trailing odd byte is reported as a one-byte ``DB`` entry.
    """
    data = bytes(data)
    for offset in range(0, len(data) - 1, 2):
        opcode = (data[offset] << 8) | data[offset + 1]
        yield base + offset, opcode, disassemble(opcode)
    if len(data) % 2:
        last = data[-1]
        yield base + len(data) - 1, last, f"DB   0x{last:02X}"
