"""
CHIP-8 Virtual Machine - 4K Memory Map

Memory map:
  $000-$04F  Built-in hex font (16 glyphs x 5 bytes)
  $050-$1FF  Reserved for the interpreter (zero)
  $200-$FFF  Program image + working RAM

Every access is bounds-checked: an address outside $000-$FFF raises
MemoryAccessError instead of wrapping. Values must be bytes (0-255).
"""

from typing import Iterable

from ..config import FONTSET, FONT_START, MEMORY_SIZE
from ..errors import MemoryAccessError


class Memory:
    """Flat 4096-byte memory with the font preloaded by reset()."""

    def __init__(self):
        self._mem = bytearray(MEMORY_SIZE)
        self.reset()

    def __len__(self) -> int:
        return len(self._mem)

    def reset(self):
        """Zero all memory, then load the font at $000."""
        self._mem[:] = bytes(MEMORY_SIZE)
        self._mem[FONT_START:FONT_START + len(FONTSET)] = FONTSET

    # --- Core read/write ---

    def _check(self, addr: int, length: int = 1):
        if addr < 0 or addr + length > MEMORY_SIZE:
            if length == 1:
                raise MemoryAccessError(f"Address ${addr:X} outside memory")
            raise MemoryAccessError(
                f"Range ${addr:X}-${addr + length - 1:X} outside memory")

    def read8(self, addr: int) -> int:
        self._check(addr)
        return self._mem[addr]

    def write8(self, addr: int, value: int):
        self._check(addr)
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Memory value {value} is not a byte")
        self._mem[addr] = value

    def read16(self, addr: int) -> int:
        """Read a big-endian word (the opcode byte order)."""
        self._check(addr, 2)
        return (self._mem[addr] << 8) | self._mem[addr + 1]

    def read_block(self, addr: int, length: int) -> bytes:
        self._check(addr, length)
        return bytes(self._mem[addr:addr + length])

    # --- Bulk load ---

    def load_binary(self, data: Iterable[int], base_addr: int):
        """Copy ``data`` into memory starting at ``base_addr``."""
        data = bytes(data)
        self._check(base_addr, max(len(data), 1))
        self._mem[base_addr:base_addr + len(data)] = data

    # --- Snapshot ---

    def snapshot(self, start: int = 0, end: int = MEMORY_SIZE - 1) -> bytes:
        """Bytes copy of $start-$end (inclusive)."""
        return self.read_block(start, end - start + 1)

    # --- Hex dump ---

    def hexdump(self, start: int, length: int = 256) -> str:
        """Hex dump of ``length`` bytes from ``start`` (clipped to memory)."""
        lines = []
        end = min(start + length, MEMORY_SIZE)
        for addr in range(start, end, 16):
            row = self._mem[addr:min(addr + 16, end)]
            hex_bytes = ' '.join(f'{b:02X}' for b in row)
            lines.append(f'{addr:03X}  {hex_bytes}')
        return '\n'.join(lines)
