"""
CHIP-8 Virtual Machine - Fetch / Decode / Execute

Interpreter.step() runs exactly one instruction and then one timer tick:

  1. Fetch the big-endian word at PC, PC+1
  2. Decode it into an Instruction (decoder.decode)
  3. Dispatch on the instruction key to its handler; the handler
     applies the effect and sets PC (+2, +4 for a taken skip, or a jump)
  4. Tick the delay/sound timers

execute() and tick_timers() are the two halves, public so a scheduler
can run timers at 60 Hz independently of instruction throughput.

Faults (stack overflow/underflow, memory out of range, unknown opcode in
strict mode) propagate as MachineFault with ``pc`` set to the address of
the faulting instruction. In lenient mode an unknown opcode is logged
with a state dump and PC is left alone, so the same word is fetched
again on the next step.

FX0A never blocks: with no key down PC stays put, so the next step polls
again.
"""

import logging
import random
from collections import deque
from typing import Callable, Deque, Dict, Optional

from ..config import EmulatorConfig, FONT_GLYPH_SIZE, FONT_START, SPRITE_WIDTH
from ..errors import IllegalOpcode, MachineFault
from . import alu
from .decoder import Instruction, decode
from .regs import VF

log = logging.getLogger(__name__)


class Interpreter:
    """Executes instructions against one MachineState."""

    def __init__(self, state, config: Optional[EmulatorConfig] = None,
                 rng: Optional[random.Random] = None):
        self.state = state
        self.config = config or EmulatorConfig()
        self.rng = rng or random.Random(self.config.seed)
        self.history: Deque[int] = deque(maxlen=self.config.history_size)
        self.instructions = 0
        self._dispatch: Dict[str, Callable[[Instruction], None]] = self._build_dispatch()

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self):
        """One instruction, then one timer tick."""
        self.execute()
        self.tick_timers()

    def tick_timers(self):
        self.state.timers.tick()

    def execute(self):
        """Fetch, decode and execute one instruction (no timer tick)."""
        state = self.state
        pc = state.program_counter
        try:
            opcode = state.fetch_opcode()
            self.history.append(opcode)
            try:
                instr = decode(opcode)
            except IllegalOpcode as e:
                e.pc = pc
                if self.config.strict_decode:
                    raise
                self._report_illegal(e)
                return
            self._dispatch[instr.key](instr)
            self.instructions += 1
        except MachineFault as e:
            if e.pc is None:
                e.pc = pc
            raise

    def _report_illegal(self, fault: IllegalOpcode):
        recent = ' '.join(f'{op:04X}' for op in self.history)
        log.warning("%s (skipped)\n%s\nrecent opcodes: %s",
                    fault, self.state.dump(), recent)

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(instr)
    # Every handler leaves PC at the next instruction to fetch.

    def _build_dispatch(self) -> dict:
        """Build instruction key -> handler table."""
        return {
            # ── Flow control ──
            '00E0': self._op_cls,
            '00EE': self._op_ret,
            '1NNN': self._op_jp,
            '2NNN': self._op_call,
            'BNNN': self._op_jp_v0,

            # ── Skips ──
            '3XNN': self._op_se_imm,
            '4XNN': self._op_sne_imm,
            '5XY0': self._op_se_reg,
            '9XY0': self._op_sne_reg,
            'EX9E': self._op_skp,
            'EXA1': self._op_sknp,

            # ── Register loads / arithmetic ──
            '6XNN': self._op_ld_imm,
            '7XNN': self._op_add_imm,
            '8XY0': self._op_ld_reg,
            '8XY1': self._op_or,
            '8XY2': self._op_and,
            '8XY3': self._op_xor,
            '8XY4': self._op_add,
            '8XY5': self._op_sub,
            '8XY6': self._op_shr,
            '8XY7': self._op_subn,
            '8XYE': self._op_shl,
            'CXNN': self._op_rnd,

            # ── Index register / memory ──
            'ANNN': self._op_ld_i,
            'FX1E': self._op_add_i,
            'FX29': self._op_ld_font,
            'FX33': self._op_bcd,
            'FX55': self._op_store,
            'FX65': self._op_load,

            # ── Display ──
            'DXYN': self._op_drw,

            # ── Timers / input ──
            'FX07': self._op_ld_dt_read,
            'FX0A': self._op_wait_key,
            'FX15': self._op_ld_dt,
            'FX18': self._op_ld_st,
        }

    def _skip_if(self, condition: bool):
        self.state.advance(4 if condition else 2)

    # ── Flow control ──

    def _op_cls(self, ins):
        self.state.clear_screen()
        self.state.needs_redraw = True
        self.state.advance()

    def _op_ret(self, ins):
        self.state.program_counter = self.state.pop()
        self.state.advance()

    def _op_jp(self, ins):
        self.state.program_counter = ins.nnn

    def _op_call(self, ins):
        """Push the address of this CALL; RET resumes 2 bytes past it."""
        self.state.push(self.state.program_counter)
        self.state.program_counter = ins.nnn

    def _op_jp_v0(self, ins):
        self.state.program_counter = ins.nnn + self.state.get_v(0)

    # ── Skips ──

    def _op_se_imm(self, ins):
        self._skip_if(self.state.get_v(ins.x) == ins.nn)

    def _op_sne_imm(self, ins):
        self._skip_if(self.state.get_v(ins.x) != ins.nn)

    def _op_se_reg(self, ins):
        self._skip_if(self.state.get_v(ins.x) == self.state.get_v(ins.y))

    def _op_sne_reg(self, ins):
        self._skip_if(self.state.get_v(ins.x) != self.state.get_v(ins.y))

    def _op_skp(self, ins):
        key = self.state.get_v(ins.x)
        self._skip_if(self.state.get_key(key) != 0)

    def _op_sknp(self, ins):
        key = self.state.get_v(ins.x)
        self._skip_if(self.state.get_key(key) == 0)

    # ── Register loads / arithmetic ──

    def _op_ld_imm(self, ins):
        self.state.set_v(ins.x, ins.nn)
        self.state.advance()

    def _op_add_imm(self, ins):
        self.state.set_v(ins.x, alu.add_immediate(self.state.get_v(ins.x), ins.nn))
        self.state.advance()

    def _op_ld_reg(self, ins):
        self.state.set_v(ins.x, self.state.get_v(ins.y))
        self.state.advance()

    def _op_or(self, ins):
        self.state.set_v(ins.x, self.state.get_v(ins.x) | self.state.get_v(ins.y))
        self.state.advance()

    def _op_and(self, ins):
        self.state.set_v(ins.x, self.state.get_v(ins.x) & self.state.get_v(ins.y))
        self.state.advance()

    def _op_xor(self, ins):
        self.state.set_v(ins.x, self.state.get_v(ins.x) ^ self.state.get_v(ins.y))
        self.state.advance()

    def _write_with_flag(self, x: int, outcome: tuple):
        """VF first, then VX: when X is F the result wins."""
        result, vf = outcome
        self.state.set_v(VF, vf)
        self.state.set_v(x, result)
        self.state.advance()

    def _op_add(self, ins):
        self._write_with_flag(ins.x, alu.add8(self.state.get_v(ins.x), self.state.get_v(ins.y)))

    def _op_sub(self, ins):
        self._write_with_flag(ins.x, alu.sub8(self.state.get_v(ins.x), self.state.get_v(ins.y)))

    def _op_subn(self, ins):
        self._write_with_flag(ins.x, alu.subn8(self.state.get_v(ins.x), self.state.get_v(ins.y)))

    def _op_shr(self, ins):
        self._write_with_flag(ins.x, alu.shr8(self.state.get_v(ins.x)))

    def _op_shl(self, ins):
        self._write_with_flag(ins.x, alu.shl8(self.state.get_v(ins.x)))

    def _op_rnd(self, ins):
        self.state.set_v(ins.x, self.rng.randrange(256) & ins.nn)
        self.state.advance()

    # ── Index register / memory ──

    def _op_ld_i(self, ins):
        self.state.index_register = ins.nnn
        self.state.advance()

    def _op_add_i(self, ins):
        """I += VX; VF=1 when the sum passes $FFF. I keeps 16 bits."""
        total = self.state.index_register + self.state.get_v(ins.x)
        self.state.set_v(VF, 1 if total > 0xFFF else 0)
        self.state.index_register = total & 0xFFFF
        self.state.advance()

    def _op_ld_font(self, ins):
        self.state.index_register = FONT_START + self.state.get_v(ins.x) * FONT_GLYPH_SIZE
        self.state.advance()

    def _op_bcd(self, ins):
        digits = alu.bcd(self.state.get_v(ins.x))
        for offset, digit in enumerate(digits):
            self.state.write8(self.state.index_address(offset), digit)
        self.state.advance()

    def _op_store(self, ins):
        """V0..VX -> memory[I + i]."""
        for i in range(ins.x + 1):
            self.state.write8(self.state.index_address(i), self.state.get_v(i))
        self._post_transfer(ins.x)

    def _op_load(self, ins):
        """memory[I + i] -> V0..VX."""
        for i in range(ins.x + 1):
            self.state.set_v(i, self.state.read8(self.state.index_address(i)))
        self._post_transfer(ins.x)

    def _post_transfer(self, x: int):
        if self.config.load_store_increments_index:
            self.state.index_register = (self.state.index_register + x + 1) & 0xFFFF
        self.state.advance()

    # ── Display ──

    def _op_drw(self, ins):
        """Draw an 8 x N sprite from memory[I] at (VX, VY).

        Cells that fall off the right or bottom edge are clipped, not
        wrapped. VF=1 if any lit cell was switched off.
        """
        state = self.state
        fb = state.framebuffer
        x0 = state.get_v(ins.x)
        y0 = state.get_v(ins.y)
        sprite = state.memory.read_block(state.index_address(), ins.n)

        collision = 0
        for row, bits in enumerate(sprite):
            y = y0 + row
            if y >= fb.height:
                break
            for col in range(SPRITE_WIDTH):
                x = x0 + col
                if x >= fb.width:
                    break
                if bits & (0x80 >> col):
                    if fb.toggle(x, y):
                        collision = 1

        state.set_v(VF, collision)
        state.needs_redraw = True
        state.advance()

    # ── Timers / input ──

    def _op_ld_dt_read(self, ins):
        self.state.set_v(ins.x, self.state.delay_timer)
        self.state.advance()

    def _op_wait_key(self, ins):
        """Store the highest pressed key in VX, or leave PC for a re-poll."""
        key = self.state.keypad.last_pressed()
        if key is None:
            return
        self.state.set_v(ins.x, key)
        self.state.advance()

    def _op_ld_dt(self, ins):
        self.state.delay_timer = self.state.get_v(ins.x)
        self.state.advance()

    def _op_ld_st(self, ins):
        self.state.sound_timer = self.state.get_v(ins.x)
        self.state.advance()
