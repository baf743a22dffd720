"""
CHIP-8 Virtual Machine - Monochrome Framebuffer + Terminal Display

Framebuffer: 64 x 32 cells, each on/off, addressed (x, y) with (0, 0) at
the top left. Sprite drawing XORs cells in; toggle() reports whether a
lit cell was switched off (the collision condition).

ConsoleDisplay is the display driver: when the machine's redraw flag is
set it renders the framebuffer with a fixed two-colour palette through a
Rich console and clears the flag.
"""

from typing import Iterable, List, Optional

from rich.console import Console
from rich.live import Live
from rich.text import Text

from ..config import SCREEN_HEIGHT, SCREEN_WIDTH
from ..errors import RegisterAccessError

PACKED_SIZE = SCREEN_WIDTH * SCREEN_HEIGHT // 8


class Framebuffer:
    """2-D on/off grid."""

    width = SCREEN_WIDTH
    height = SCREEN_HEIGHT

    def __init__(self):
        self._cells: List[List[bool]] = [
            [False] * SCREEN_WIDTH for _ in range(SCREEN_HEIGHT)]

    def _check(self, x: int, y: int):
        if not (0 <= x < SCREEN_WIDTH and 0 <= y < SCREEN_HEIGHT):
            raise RegisterAccessError(f"Pixel ({x}, {y}) outside the screen")

    def get(self, x: int, y: int) -> bool:
        self._check(x, y)
        return self._cells[y][x]

    def set(self, x: int, y: int, value: bool):
        self._check(x, y)
        self._cells[y][x] = bool(value)

    def toggle(self, x: int, y: int) -> bool:
        """XOR one cell on. Returns True if it was lit before (collision)."""
        self._check(x, y)
        was_on = self._cells[y][x]
        self._cells[y][x] = not was_on
        return was_on

    def clear(self):
        for row in self._cells:
            row[:] = [False] * SCREEN_WIDTH

    def rows(self) -> List[List[bool]]:
        """Copy of the grid, row-major (``rows()[y][x]``)."""
        return [list(row) for row in self._cells]

    def lit_count(self) -> int:
        return sum(sum(row) for row in self._cells)

    # --- Packing (8 cells per byte, MSB = leftmost) ---

    def pack(self) -> bytes:
        out = bytearray()
        for row in self._cells:
            for col in range(0, SCREEN_WIDTH, 8):
                byte = 0
                for bit in range(8):
                    if row[col + bit]:
                        byte |= 0x80 >> bit
                out.append(byte)
        return bytes(out)

    def unpack(self, data: Iterable[int]):
        data = bytes(data)
        if len(data) != PACKED_SIZE:
            raise ValueError(f"Packed framebuffer must be {PACKED_SIZE} bytes")
        per_row = SCREEN_WIDTH // 8
        for y in range(SCREEN_HEIGHT):
            chunk = data[y * per_row:(y + 1) * per_row]
            self._cells[y] = [
                bool(chunk[col // 8] & (0x80 >> (col % 8)))
                for col in range(SCREEN_WIDTH)]


class ConsoleDisplay:
    """Terminal display driver.

    Each cell is drawn two characters wide so the 2:1 aspect of the
    screen survives the terminal's tall character cells.
    """

    ON_STYLE = "bright_white on bright_white"
    OFF_STYLE = "black on black"

    def __init__(self, console: Optional[Console] = None, live: bool = False,
                 on_char: str = "█", off_char: str = " "):
        self.console = console or Console()
        self.on_char = on_char
        self.off_char = off_char
        self.frames = 0
        self._live: Optional[Live] = None
        self._use_live = live

    def render(self, framebuffer: Framebuffer) -> Text:
        text = Text()
        on_cell = self.on_char * 2
        off_cell = self.off_char * 2
        for y, row in enumerate(framebuffer.rows()):
            if y:
                text.append("\n")
            for cell in row:
                if cell:
                    text.append(on_cell, style=self.ON_STYLE)
                else:
                    text.append(off_cell, style=self.OFF_STYLE)
        return text

    def present(self, state) -> bool:
        """Draw a frame if ``state`` needs one. Returns True when drawn."""
        if not state.needs_redraw:
            return False
        frame = self.render(state.framebuffer)
        if self._use_live:
            if self._live is None:
                self._live = Live(frame, console=self.console, auto_refresh=False)
                self._live.start()
            else:
                self._live.update(frame, refresh=True)
        else:
            self.console.print(frame)
        state.needs_redraw = False
        self.frames += 1
        return True

    def close(self):
        if self._live is not None:
            self._live.stop()
            self._live = None
