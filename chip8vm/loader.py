"""
CHIP-8 Virtual Machine - ROM Loader + Save States

ROM images are plain bytes with no header. They are copied to $200 after
a reset; anything longer than 4096 - $200 = 3584 bytes is rejected before
the machine is touched.

Save-state file layout (big-endian, version 1):

  offset  size  field
  0       4     magic "C8VM"
  4       2     format version
  6       4096  memory
  4102    16    V0-VF
  4118    2     I
  4120    2     PC
  4122    32    stack (16 x u16)
  4154    1     SP
  4155    16    keypad latch
  4171    1     delay timer
  4172    1     sound timer
  4173    1     redraw flag
  4174    256   framebuffer, 8 cells per byte, MSB = leftmost

A round trip reproduces the state bit for bit. Missing, truncated or
corrupt files raise StateFileError and never touch a live machine:
decode_state() always builds a fresh MachineState.
"""

import logging
import struct
from pathlib import Path
from typing import Union

from .config import MEMORY_SIZE, NUM_KEYS, NUM_REGISTERS, PROGRAM_START, ROM_SIZE, STACK_DEPTH
from .errors import RomLoadError, StateFileError
from .machine import MachineState
from .periph.display import PACKED_SIZE

log = logging.getLogger(__name__)

MAGIC = b"C8VM"
FORMAT_VERSION = 1
SAVE_SUFFIX = ".sav"

_HEADER = struct.Struct(">4sH")
_BODY = struct.Struct(
    f">{MEMORY_SIZE}s{NUM_REGISTERS}sHH{STACK_DEPTH}HB{NUM_KEYS}sBBB{PACKED_SIZE}s")
STATE_SIZE = _HEADER.size + _BODY.size

PathLike = Union[str, Path]


# ══════════════════════════════════════════════
# ROM images
# ══════════════════════════════════════════════

def read_rom(path_or_data) -> bytes:
    """Return ROM bytes from a path or a bytes-like object, size-checked."""
    if isinstance(path_or_data, (str, Path)):
        path = Path(path_or_data)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise RomLoadError(f"Cannot read ROM {path}: {e}") from e
    else:
        data = bytes(path_or_data)

    if len(data) > ROM_SIZE:
        raise RomLoadError(
            f"ROM is {len(data)} bytes, the program area holds {ROM_SIZE}")
    return data


def load_rom(state: MachineState, path_or_data) -> int:
    """Reset ``state`` and copy a ROM image to $200.

    Returns the number of bytes loaded. On RomLoadError the state is left
    exactly as it was.
    """
    data = read_rom(path_or_data)
    state.reset()
    state.memory.load_binary(data, PROGRAM_START)
    log.info("Loaded %d byte ROM at $%03X", len(data), PROGRAM_START)
    return len(data)


# ══════════════════════════════════════════════
# Save states
# ══════════════════════════════════════════════

def encode_state(state: MachineState) -> bytes:
    regs = state.regs
    body = _BODY.pack(
        state.memory.snapshot(),
        bytes(regs.V),
        regs.I,
        regs.PC,
        *regs.stack,
        regs.SP,
        state.keypad.snapshot(),
        state.delay_timer,
        state.sound_timer,
        1 if state.needs_redraw else 0,
        state.framebuffer.pack(),
    )
    return _HEADER.pack(MAGIC, FORMAT_VERSION) + body


def decode_state(data: bytes) -> MachineState:
    """Build a new MachineState from an encoded snapshot."""
    if len(data) < _HEADER.size:
        raise StateFileError("Save state is truncated (no header)")
    magic, version = _HEADER.unpack_from(data)
    if magic != MAGIC:
        raise StateFileError(f"Not a save state (magic {magic!r})")
    if version != FORMAT_VERSION:
        raise StateFileError(f"Unsupported save state version {version}")
    if len(data) != STATE_SIZE:
        raise StateFileError(
            f"Save state is {len(data)} bytes, expected {STATE_SIZE}")

    fields = _BODY.unpack_from(data, _HEADER.size)
    memory, v, index, pc = fields[0:4]
    stack = list(fields[4:4 + STACK_DEPTH])
    sp, keys, delay, sound, redraw, frame = fields[4 + STACK_DEPTH:]

    if sp > STACK_DEPTH:
        raise StateFileError(f"Corrupt save state: stack pointer {sp}")
    if redraw > 1 or any(k > 1 for k in keys):
        raise StateFileError("Corrupt save state: flag byte out of range")

    state = MachineState()
    state.memory.load_binary(memory, 0)
    state.regs.V[:] = v
    state.regs.I = index
    state.regs.PC = pc
    state.regs.stack = stack
    state.regs.SP = sp
    state.keypad.load(keys)
    state.delay_timer = delay
    state.sound_timer = sound
    state.needs_redraw = bool(redraw)
    state.framebuffer.unpack(frame)
    return state


def state_path(path: PathLike) -> Path:
    """Append .sav when ``path`` has no suffix (save and load share slot names)."""
    path = Path(path)
    return path if path.suffix else path.with_suffix(SAVE_SUFFIX)


def save_state(state: MachineState, path: PathLike) -> Path:
    target = state_path(path)
    try:
        target.write_bytes(encode_state(state))
    except OSError as e:
        raise StateFileError(f"Cannot write save state {target}: {e}") from e
    log.info("Saved state to %s", target)
    return target


def load_state(path: PathLike) -> MachineState:
    path = Path(path)
    if not path.exists():
        path = state_path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise StateFileError(f"Cannot read save state {path}: {e}") from e
    state = decode_state(data)
    log.info("Loaded state from %s (PC=$%03X)", path, state.program_counter)
    return state
