"""
CHIP-8 Virtual Machine - 8-bit ALU Operations

Each function takes the operand values read before any register is
written and returns ``(result, vf)``: the masked 8-bit result and the
value the instruction leaves in VF. The caller writes VF first and the
result second.

Flag conventions:
  add  VF = 1 on carry (y > 0xFF - x)
  sub  VF = 0 on borrow, 1 otherwise (inverted carry)
  shr  VF = bit 0 shifted out
  shl  VF = bit 7 shifted out
"""


def add8(x: int, y: int) -> tuple:
    """VX + VY. VF=1 when VY > (0xFF - VX)."""
    carry = 1 if y > (0xFF - x) else 0
    return ((x + y) & 0xFF, carry)


def sub8(x: int, y: int) -> tuple:
    """VX - VY. VF=0 when VY > VX (borrow), else 1."""
    no_borrow = 0 if y > x else 1
    return ((x - y) & 0xFF, no_borrow)


def subn8(x: int, y: int) -> tuple:
    """VY - VX. VF=0 when VX > VY (borrow), else 1."""
    no_borrow = 0 if x > y else 1
    return ((y - x) & 0xFF, no_borrow)


def shr8(x: int) -> tuple:
    return (x >> 1, x & 0x01)


def shl8(x: int) -> tuple:
    return ((x << 1) & 0xFF, x >> 7)


def add_immediate(x: int, nn: int) -> int:
    """7XNN: VX + NN, wraps, VF untouched."""
    return (x + nn) & 0xFF


def bcd(value: int) -> tuple:
    """Hundreds, tens, ones digits of an 8-bit value."""
    return (value // 100, (value // 10) % 10, value % 10)
