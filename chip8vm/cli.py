"""
chip8vm - CHIP-8 virtual machine command line
=============================================

    chip8vm run     - Run a ROM (paced at 60 Hz frames, or N raw steps)
    chip8vm resume  - Continue from a save state
    chip8vm disasm  - Disassemble a ROM
    chip8vm state   - Dump a save state

Examples:
    chip8vm run pong.ch8 --frames 600 --render
    chip8vm run test.ch8 --steps 5000 --seed 1 --save-state test.sav
    chip8vm run game.ch8 --live --keys q,w
    chip8vm run pong.ch8 --window
    chip8vm resume test.sav --frames 60 --dump
    chip8vm disasm pong.ch8
    chip8vm state test.sav

Exit codes: 0 ok, 1 load / config error, 2 machine fault.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from . import __version__, loader
from .config import EmulatorConfig, TIMER_MODES, load_config
from .cpu.decoder import disassemble_program
from .emu import Chip8Emulator, StopReason
from .errors import ConfigError, LoadError
from .log_setup import level_from_verbosity, setup_logging
from .periph.display import ConsoleDisplay
from .periph.keypad import InputBinder
from .periph.sound import Beeper
from .scheduler import FixedRateScheduler

log = logging.getLogger("chip8vm.cli")

EXIT_OK = 0
EXIT_LOAD_ERROR = 1
EXIT_FAULT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chip8vm",
        description="CHIP-8 virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""commands:
  run      Run a ROM image
  resume   Continue from a save state
  disasm   Disassemble a ROM image
  state    Dump a save state
""",
    )
    parser.add_argument("--version", action="version", version=f"chip8vm {__version__}")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase verbosity (-v, -vv)")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Only report errors")
    parser.add_argument("--log-dir", type=Path, default=None,
                        help="Also write a timestamped DEBUG log file here")
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── run / resume ─────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Run a ROM image")
    p_run.add_argument("input", help="ROM file (raw bytes, loaded at $200)")
    _add_run_options(p_run)

    p_resume = sub.add_parser("resume", help="Continue from a save state")
    p_resume.add_argument("input", help="Save state file")
    _add_run_options(p_resume)

    # ── disasm ───────────────────────────────────────────────────────────
    p_dis = sub.add_parser("disasm", help="Disassemble a ROM image")
    p_dis.add_argument("input", help="ROM file")
    p_dis.add_argument("--base", default="0x200",
                       help="Load address of the first byte (hex, default 0x200)")
    p_dis.add_argument("-o", "--output", help="Output file (default: stdout)")

    # ── state ────────────────────────────────────────────────────────────
    p_state = sub.add_parser("state", help="Dump a save state")
    p_state.add_argument("input", help="Save state file")
    p_state.add_argument("--render", action="store_true", help="Also draw the screen")

    return parser


def _add_run_options(p: argparse.ArgumentParser):
    p.add_argument("--config", type=Path, help="TOML file with a [chip8vm] table")
    p.add_argument("--ips", type=int, dest="instructions_per_second",
                   help="Instructions per second")
    p.add_argument("--timer-hz", type=int, dest="timer_hz", help="Timer tick rate")
    p.add_argument("--timer-mode", choices=TIMER_MODES, dest="timer_mode",
                   help="frame: timers tick at timer-hz; step: once per instruction")
    p.add_argument("--seed", type=int, help="Seed for the CXNN random source")
    p.add_argument("--lenient", action="store_true",
                   help="Log and skip unknown opcodes instead of halting")
    p.add_argument("--no-beep", action="store_true", help="Silence the sound timer")
    limit = p.add_mutually_exclusive_group()
    limit.add_argument("--frames", type=int, help="Stop after N frames (paced)")
    limit.add_argument("--seconds", type=float, help="Stop after N seconds (paced)")
    limit.add_argument("--steps", type=int, help="Run N raw steps, unpaced")
    p.add_argument("--keys", default="",
                   help="Host keys held down for the whole run, e.g. 'q,w'")
    p.add_argument("--break", dest="breakpoints", action="append", default=[],
                   help="Breakpoint address (hex), repeatable")
    p.add_argument("--render", action="store_true", help="Draw the final screen")
    p.add_argument("--live", action="store_true", help="Draw every frame while running")
    p.add_argument("--window", action="store_true",
                   help="Play in a pygame window (keys 1234/qwer/asdf/zxcv, Esc quits)")
    p.add_argument("--scale", type=int, default=10, help="Window pixels per cell")
    p.add_argument("--dump", action="store_true", help="Print the final machine state")
    p.add_argument("--trace", action="store_true", help="Print an instruction trace")
    p.add_argument("--save-state",
                   help="Write a save state on exit (.sav is added when there is no suffix)")


def _parse_hex(s: str) -> int:
    """Parse hex string with optional 0x or $ prefix."""
    s = s.strip()
    if s.startswith("$"):
        s = s[1:]
    return int(s, 16)


def _build_config(args) -> EmulatorConfig:
    config = load_config(args.config) if args.config else EmulatorConfig()
    return config.with_overrides(
        instructions_per_second=args.instructions_per_second,
        timer_hz=args.timer_hz,
        timer_mode=args.timer_mode,
        seed=args.seed,
        strict_decode=False if args.lenient else None,
        beep=False if args.no_beep else None,
    )


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

# ── run / resume ─────────────────────────────────────────────────────────
def cmd_run(args, console: Console) -> int:
    config = _build_config(args)
    emu = Chip8Emulator(config, beeper=Beeper(enabled=config.beep))
    if args.command == "resume":
        emu.load_state(args.input)
    else:
        size = emu.load_rom(args.input)
        console.print(f"Loaded {size} bytes from {args.input}")
    return _run_session(emu, args, console)


def _run_session(emu: Chip8Emulator, args, console: Console) -> int:
    binder = InputBinder(emu.state.keypad)
    for char in filter(None, (k.strip() for k in args.keys.split(","))):
        if binder.key_down(char) is None:
            log.warning("Key %r is not bound to the keypad", char)
    for addr in args.breakpoints:
        emu.add_breakpoint(_parse_hex(addr))
    emu.enable_trace(args.trace)

    window = None
    display = None
    if args.window:
        if args.steps is not None:
            raise ValueError("--window runs paced; use --frames or --seconds, not --steps")
        from .periph.window import PygameWindow
        window = display = PygameWindow(binder, scale=args.scale)
    elif args.live:
        display = ConsoleDisplay(console, live=True)
    try:
        if args.steps is not None:
            reason = emu.run(max_steps=args.steps)
        else:
            scheduler = FixedRateScheduler(emu, display=display, input_source=window)
            try:
                reason = scheduler.run(max_frames=args.frames, duration=args.seconds)
            except KeyboardInterrupt:
                reason = StopReason.STOPPED
    finally:
        if display is not None:
            display.close()

    if args.trace:
        console.print(emu.get_trace(), markup=False, highlight=False)
    if args.render:
        console.print(ConsoleDisplay(console).render(emu.state.framebuffer))
    if args.dump:
        console.print(emu.dump_state(), markup=False, highlight=False)

    console.print(f"Stopped: {reason.value} at PC=${emu.state.program_counter:03X} "
                  f"after {emu.interpreter.instructions} instructions")
    if emu.last_fault is not None:
        console.print(f"[red]Fault:[/red] {emu.last_fault}")

    if args.save_state:
        target = emu.save_state(args.save_state)
        console.print(f"State saved to {target}")

    if reason in (StopReason.ILLEGAL, StopReason.FAULT):
        return EXIT_FAULT
    return EXIT_OK


# ── disasm ───────────────────────────────────────────────────────────────
def cmd_disasm(args, console: Console) -> int:
    data = loader.read_rom(args.input)
    lines = [f"{addr:03X}: {opcode:04X}  {text}"
             for addr, opcode, text in disassemble_program(data, _parse_hex(args.base))]
    output = "\n".join(lines)
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        console.print(f"Disassembled {len(data)} bytes -> {args.output}")
    else:
        console.print(output, markup=False, highlight=False)
    return EXIT_OK


# ── state ────────────────────────────────────────────────────────────────
def cmd_state(args, console: Console) -> int:
    state = loader.load_state(args.input)
    console.print(state.dump(), markup=False, highlight=False)
    if args.render:
        console.print(ConsoleDisplay(console).render(state.framebuffer))
    return EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "resume": cmd_run,
    "disasm": cmd_disasm,
    "state": cmd_state,
}


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_OK

    setup_logging(console_level=level_from_verbosity(args.verbose, args.quiet),
                  log_dir=args.log_dir)
    console = console or Console()

    try:
        return COMMANDS[args.command](args, console)
    except (LoadError, ConfigError) as e:
        log.error("%s", e)
        return EXIT_LOAD_ERROR
    except ValueError as e:
        log.error("Bad argument: %s", e)
        return EXIT_LOAD_ERROR


if __name__ == "__main__":
    sys.exit(main())
