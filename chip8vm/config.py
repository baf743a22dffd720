"""
CHIP-8 Virtual Machine - Machine Constants and Runtime Configuration

Hardware constants are fixed by the instruction set and live at module level.
Runtime knobs (instruction rate, timer cadence, quirks) are an
EmulatorConfig, optionally read from the [chip8vm] table of a TOML file:

    [chip8vm]
    instructions_per_second = 700
    timer_hz = 60
    timer_mode = "frame"        # "frame" = 60 Hz ticks, "step" = tick per instruction
    seed = 1234                 # CXNN random source; omit for OS entropy
    strict_decode = true        # unknown opcode halts the run
    load_store_increments_index = true
    history_size = 64
    beep = true
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import tomllib

from .errors import ConfigError


# =============================================================================
#  MEMORY MAP
# =============================================================================
MEMORY_SIZE = 4096
PROGRAM_START = 0x200          # programs are loaded (and PC starts) here
ROM_SIZE = MEMORY_SIZE - PROGRAM_START
ADDRESS_MASK = 0x0FFF          # I is 16 bits wide, only 12 address memory
FONT_START = 0x000
FONT_GLYPH_SIZE = 5            # bytes per hex digit glyph


# =============================================================================
#  REGISTERS / STACK
# =============================================================================
NUM_REGISTERS = 16
STACK_DEPTH = 16
NUM_KEYS = 16


# =============================================================================
#  DISPLAY
# =============================================================================
SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
SPRITE_WIDTH = 8


# =============================================================================
#  TIMERS
# =============================================================================
TIMER_HZ = 60                  # delay/sound countdown cadence
DEFAULT_IPS = 700              # instructions per second
TIMER_MODES = ("frame", "step")


# =============================================================================
#  BUILT-IN FONT (16 glyphs x 5 bytes, hex digits 0-F)
# =============================================================================
FONTSET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


@dataclass(frozen=True)
class EmulatorConfig:
    """Runtime settings for one emulator session."""

    instructions_per_second: int = DEFAULT_IPS
    timer_hz: int = TIMER_HZ
    timer_mode: str = "frame"
    seed: Optional[int] = None
    strict_decode: bool = True
    load_store_increments_index: bool = True
    history_size: int = 64
    beep: bool = True

    def __post_init__(self) -> None:
        if self.instructions_per_second <= 0:
            raise ConfigError("instructions_per_second must be positive")
        if self.timer_hz <= 0:
            raise ConfigError("timer_hz must be positive")
        if self.timer_mode not in TIMER_MODES:
            raise ConfigError(
                f"timer_mode must be one of {', '.join(TIMER_MODES)}, "
                f"got {self.timer_mode!r}")
        if self.history_size < 0:
            raise ConfigError("history_size must not be negative")

    @property
    def instructions_per_frame(self) -> int:
        """Instructions executed between two timer ticks (at least one)."""
        return max(1, round(self.instructions_per_second / self.timer_hz))

    def with_overrides(self, **overrides: Any) -> "EmulatorConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


_FIELD_TYPES = {
    "instructions_per_second": int,
    "timer_hz": int,
    "timer_mode": str,
    "seed": int,
    "strict_decode": bool,
    "load_store_increments_index": bool,
    "history_size": int,
    "beep": bool,
}


def config_from_mapping(data: Mapping[str, Any]) -> EmulatorConfig:
    """Build an EmulatorConfig from a parsed [chip8vm] table."""
    known = {f.name for f in fields(EmulatorConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")

    values = {}
    for key, value in data.items():
        expected = _FIELD_TYPES[key]
        # bool is an int subclass; reject true/false where a number is wanted
        if (expected is int and isinstance(value, bool)) or not isinstance(value, expected):
            raise ConfigError(
                f"{key} must be {expected.__name__}, got {type(value).__name__}")
        values[key] = value
    return EmulatorConfig(**values)


def load_config(config_path: Path) -> EmulatorConfig:
    """Parse and validate the TOML configuration at ``config_path``."""
    try:
        with Path(config_path).open("rb") as stream:
            raw_data = tomllib.load(stream)
    except OSError as e:
        raise ConfigError(f"cannot read config {config_path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {config_path}: {e}") from e

    section = raw_data.get("chip8vm", {})
    if not isinstance(section, dict):
        raise ConfigError("[chip8vm] must be a table")
    return config_from_mapping(section)
