"""
CHIP-8 Virtual Machine - Keypad Latch + Host Key Binding

The hex keypad:          bound to the host keys:
  1 2 3 C                  1 2 3 4
  4 5 6 D                  Q W E R
  7 8 9 E                  A S D F
  A 0 B F                  Z X C V

Keypad holds only the current level of each of the 16 keys (1 = pressed).
No debouncing, no queue. Only InputBinder (or a host acting through the
emulator's set_key) writes it; the interpreter only reads it.
"""

from typing import Dict, Iterable, Optional

from ..config import NUM_KEYS
from ..errors import RegisterAccessError

KEY_MAP: Dict[str, int] = {
    '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
    'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
    'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
    'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF,
}


class Keypad:
    """16-slot input latch."""

    def __init__(self):
        self._keys = bytearray(NUM_KEYS)

    @staticmethod
    def _check(index: int):
        if not 0 <= index < NUM_KEYS:
            raise RegisterAccessError(f"No key {index}")

    def get(self, index: int) -> int:
        self._check(index)
        return self._keys[index]

    def set(self, index: int, value: int):
        self._check(index)
        self._keys[index] = 1 if value else 0

    def press(self, index: int):
        self.set(index, 1)

    def release(self, index: int):
        self.set(index, 0)

    def is_pressed(self, index: int) -> bool:
        return self.get(index) != 0

    def pressed(self) -> list:
        return [i for i in range(NUM_KEYS) if self._keys[i]]

    def last_pressed(self) -> Optional[int]:
        """Highest pressed index, scanning 0..15 (FX0A's winner)."""
        found = None
        for i in range(NUM_KEYS):
            if self._keys[i]:
                found = i
        return found

    def snapshot(self) -> bytes:
        return bytes(self._keys)

    def load(self, data: Iterable[int]):
        data = bytes(data)
        if len(data) != NUM_KEYS:
            raise ValueError(f"Keypad snapshot must be {NUM_KEYS} bytes")
        self._keys[:] = bytes(1 if b else 0 for b in data)

    def reset(self):
        self._keys[:] = bytes(NUM_KEYS)


class InputBinder:
    """Maps host key characters onto keypad slots.

    Characters outside KEY_MAP are ignored and reported as ``None``.
    """

    def __init__(self, keypad: Keypad, key_map: Optional[Dict[str, int]] = None):
        self.keypad = keypad
        self.key_map = dict(KEY_MAP if key_map is None else key_map)

    def resolve(self, char: str) -> Optional[int]:
        return self.key_map.get(char.lower())

    def key_down(self, char: str) -> Optional[int]:
        index = self.resolve(char)
        if index is not None:
            self.keypad.press(index)
        return index

    def key_up(self, char: str) -> Optional[int]:
        index = self.resolve(char)
        if index is not None:
            self.keypad.release(index)
        return index
