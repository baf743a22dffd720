from .display import ConsoleDisplay, Framebuffer
from .keypad import KEY_MAP, InputBinder, Keypad
from .sound import Beeper
from .timer import TimerPeripheral

__all__ = [
    "Beeper",
    "ConsoleDisplay",
    "Framebuffer",
    "InputBinder",
    "KEY_MAP",
    "Keypad",
    "TimerPeripheral",
]
