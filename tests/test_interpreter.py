"""
CHIP-8 Interpreter Tests

Each test hand-assembles a few opcode words at $200 and steps the
interpreter over them. Opcode encodings follow Cowgod's CHIP-8
technical reference.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import random

import pytest
from chip8vm.config import EmulatorConfig
from chip8vm.cpu.interpreter import Interpreter
from chip8vm.errors import (IllegalOpcode, MemoryAccessError, RegisterAccessError,
                            StackOverflow, StackUnderflow)
from chip8vm.machine import MachineState


def _machine(*words, config=None):
    """Fresh machine with ``words`` loaded big-endian at $200."""
    state = MachineState()
    program = b''.join(w.to_bytes(2, 'big') for w in words)
    state.memory.load_binary(program, 0x200)
    return state, Interpreter(state, config)


# ═══════════════════════════════════════════════
# Flow control
# ═══════════════════════════════════════════════

class TestFlowControl:
    """CLS, RET, JP, CALL, JP V0."""

    def test_empty_program_clears_screen(self):
        """reset + step over 0x0000 -> CLS, redraw set, PC=$202"""
        state, cpu = _machine()
        state.reset()
        state.set_pixel(3, 4, True)
        state.needs_redraw = False
        cpu.step()
        assert not state.get_pixel(3, 4)
        assert state.needs_redraw
        assert state.program_counter == 0x202

    def test_cls_explicit(self):
        """00E0 clears every cell."""
        state, cpu = _machine(0x00E0)
        for x in range(64):
            state.set_pixel(x, 31, True)
        cpu.step()
        assert state.framebuffer.lit_count() == 0
        assert state.program_counter == 0x202

    def test_jump(self):
        """1ABC -> PC=$ABC"""
        state, cpu = _machine(0x1ABC)
        cpu.step()
        assert state.program_counter == 0xABC

    def test_call_return_round_trip(self):
        """2300 at $200, 00EE at $300 -> PC=$202, stack empty"""
        state, cpu = _machine(0x2300)
        state.memory.load_binary(bytes([0x00, 0xEE]), 0x300)
        cpu.step()
        assert state.program_counter == 0x300
        assert state.stack() == [0x200]
        cpu.step()
        assert state.program_counter == 0x202
        assert state.stack_pointer == 0

    def test_jump_plus_v0(self):
        """V0=4, B300 -> PC=$304"""
        state, cpu = _machine(0xB300)
        state.set_v(0, 4)
        cpu.step()
        assert state.program_counter == 0x304

    def test_return_on_empty_stack_faults(self):
        """00EE with SP=0 -> StackUnderflow at $200"""
        state, cpu = _machine(0x00EE)
        with pytest.raises(StackUnderflow) as info:
            cpu.step()
        assert info.value.pc == 0x200

    def test_seventeenth_call_overflows(self):
        """2200 calling itself: 16 calls fit, the 17th faults."""
        state, cpu = _machine(0x2200)
        for _ in range(16):
            cpu.step()
        assert state.stack_pointer == 16
        with pytest.raises(StackOverflow):
            cpu.step()
        assert state.stack_pointer == 16

    def test_fetch_past_end_of_memory_faults(self):
        """JP $FFF, then the fetch at $FFF has no second byte."""
        state, cpu = _machine(0x1FFF)
        cpu.step()
        with pytest.raises(MemoryAccessError) as info:
            cpu.step()
        assert info.value.pc == 0xFFF


# ═══════════════════════════════════════════════
# Conditional skips
# ═══════════════════════════════════════════════

class TestSkips:
    """3XNN, 4XNN, 5XY0, 9XY0, EX9E, EXA1: skip = PC+4."""

    @pytest.mark.parametrize("opcode,v1,expected_pc", [
        (0x3142, 0x42, 0x204),   # SE taken
        (0x3142, 0x41, 0x202),   # SE not taken
        (0x4142, 0x41, 0x204),   # SNE taken
        (0x4142, 0x42, 0x202),   # SNE not taken
    ])
    def test_immediate_compare(self, opcode, v1, expected_pc):
        state, cpu = _machine(opcode)
        state.set_v(1, v1)
        cpu.step()
        assert state.program_counter == expected_pc

    @pytest.mark.parametrize("opcode,v2,expected_pc", [
        (0x5120, 7, 0x204),
        (0x5120, 8, 0x202),
        (0x9120, 8, 0x204),
        (0x9120, 7, 0x202),
    ])
    def test_register_compare(self, opcode, v2, expected_pc):
        state, cpu = _machine(opcode)
        state.set_v(1, 7)
        state.set_v(2, v2)
        cpu.step()
        assert state.program_counter == expected_pc

    def test_register_compare_ignores_low_nibble(self):
        """5125 behaves as 5120."""
        state, cpu = _machine(0x5125)
        cpu.step()
        assert state.program_counter == 0x204

    def test_skip_if_key_pressed(self):
        """V0=5, key 5 down, E09E -> skip"""
        state, cpu = _machine(0xE09E)
        state.set_v(0, 5)
        state.set_key(5, 1)
        cpu.step()
        assert state.program_counter == 0x204

    def test_skip_if_key_not_pressed(self):
        """V0=5, no keys, E0A1 -> skip; with key 5 down -> no skip"""
        state, cpu = _machine(0xE0A1)
        state.set_v(0, 5)
        cpu.step()
        assert state.program_counter == 0x204

        state, cpu = _machine(0xE0A1)
        state.set_v(0, 5)
        state.set_key(5, 1)
        cpu.step()
        assert state.program_counter == 0x202

    def test_key_index_out_of_range_faults(self):
        """V0=$20, E09E -> RegisterAccessError"""
        state, cpu = _machine(0xE09E)
        state.set_v(0, 0x20)
        with pytest.raises(RegisterAccessError):
            cpu.step()


# ═══════════════════════════════════════════════
# Register loads and arithmetic
# ═══════════════════════════════════════════════

class TestArithmetic:
    """6XNN, 7XNN, 8XYn, CXNN."""

    def test_load_immediate(self):
        state, cpu = _machine(0x6A42)
        cpu.step()
        assert state.get_v(0xA) == 0x42

    def test_add_immediate_wraps_without_flag(self):
        """VF=$55, V1=$FF, 7102 -> V1=$01, VF untouched"""
        state, cpu = _machine(0x7102)
        state.set_v(1, 0xFF)
        state.set_v(0xF, 0x55)
        cpu.step()
        assert state.get_v(1) == 0x01
        assert state.get_v(0xF) == 0x55

    def test_copy_register(self):
        state, cpu = _machine(0x8120)
        state.set_v(2, 0x99)
        cpu.step()
        assert state.get_v(1) == 0x99

    @pytest.mark.parametrize("opcode,expected", [
        (0x8121, 0b1110),   # OR
        (0x8122, 0b1000),   # AND
        (0x8123, 0b0110),   # XOR
    ])
    def test_bitwise(self, opcode, expected):
        state, cpu = _machine(opcode)
        state.set_v(1, 0b1100)
        state.set_v(2, 0b1010)
        cpu.step()
        assert state.get_v(1) == expected

    def test_add_with_carry(self):
        """V1=$FF, V2=$01, 8124 -> V1=$00 (masked), VF=1"""
        state, cpu = _machine(0x8124)
        state.set_v(1, 0xFF)
        state.set_v(2, 0x01)
        cpu.step()
        assert state.get_v(1) == 0x00
        assert state.get_v(0xF) == 1

    def test_add_without_carry(self):
        state, cpu = _machine(0x8124)
        state.set_v(1, 0x10)
        state.set_v(2, 0x20)
        state.set_v(0xF, 1)
        cpu.step()
        assert state.get_v(1) == 0x30
        assert state.get_v(0xF) == 0

    def test_sub_with_borrow(self):
        """V1=$01, V2=$02, 8125 -> V1=$FF, VF=0"""
        state, cpu = _machine(0x8125)
        state.set_v(1, 0x01)
        state.set_v(2, 0x02)
        cpu.step()
        assert state.get_v(1) == 0xFF
        assert state.get_v(0xF) == 0

    def test_sub_without_borrow(self):
        """Equal operands do not borrow: VF=1."""
        state, cpu = _machine(0x8125)
        state.set_v(1, 0x05)
        state.set_v(2, 0x05)
        cpu.step()
        assert state.get_v(1) == 0x00
        assert state.get_v(0xF) == 1

    def test_subn(self):
        """V1=$02, V2=$05, 8127 -> V1=V2-V1=$03, VF=1"""
        state, cpu = _machine(0x8127)
        state.set_v(1, 0x02)
        state.set_v(2, 0x05)
        cpu.step()
        assert state.get_v(1) == 0x03
        assert state.get_v(0xF) == 1

    def test_subn_with_borrow(self):
        state, cpu = _machine(0x8127)
        state.set_v(1, 0x05)
        state.set_v(2, 0x02)
        cpu.step()
        assert state.get_v(1) == 0xFD
        assert state.get_v(0xF) == 0

    def test_shift_right(self):
        """V1=$05, 8106 -> V1=$02, VF=1"""
        state, cpu = _machine(0x8106)
        state.set_v(1, 0x05)
        cpu.step()
        assert state.get_v(1) == 0x02
        assert state.get_v(0xF) == 1

    def test_shift_left(self):
        """V1=$81, 810E -> V1=$02, VF=1"""
        state, cpu = _machine(0x810E)
        state.set_v(1, 0x81)
        cpu.step()
        assert state.get_v(1) == 0x02
        assert state.get_v(0xF) == 1

    def test_flag_register_as_destination_keeps_result(self):
        """VF=$FF, V1=$01, 8F14 -> VF holds the sum, not the carry."""
        state, cpu = _machine(0x8F14)
        state.set_v(0xF, 0xFF)
        state.set_v(1, 0x01)
        cpu.step()
        assert state.get_v(0xF) == 0x00

    def test_flag_register_as_source_uses_old_value(self):
        """V1=$10, VF=$01, 81F5 -> V1=$0F computed from the old VF."""
        state, cpu = _machine(0x81F5)
        state.set_v(1, 0x10)
        state.set_v(0xF, 0x01)
        cpu.step()
        assert state.get_v(1) == 0x0F
        assert state.get_v(0xF) == 1

    def test_random_is_masked_and_seeded(self):
        """C10F with seed 7 matches Random(7).randrange(256) & $0F"""
        state, cpu = _machine(0xC10F, config=EmulatorConfig(seed=7))
        cpu.step()
        assert state.get_v(1) == random.Random(7).randrange(256) & 0x0F

    def test_random_mask_zero(self):
        state, cpu = _machine(0xC100)
        state.set_v(1, 0x77)
        cpu.step()
        assert state.get_v(1) == 0


# ═══════════════════════════════════════════════
# Index register and memory
# ═══════════════════════════════════════════════

class TestIndexMemory:
    """ANNN, FX1E, FX29, FX33, FX55, FX65."""

    def test_load_index(self):
        state, cpu = _machine(0xA123)
        cpu.step()
        assert state.index_register == 0x123

    def test_add_index_overflow_flag(self):
        """I=$FFF, V1=1, F11E -> I=$1000, VF=1"""
        state, cpu = _machine(0xF11E)
        state.index_register = 0xFFF
        state.set_v(1, 1)
        cpu.step()
        assert state.index_register == 0x1000
        assert state.get_v(0xF) == 1

    def test_add_index_uses_vx(self):
        """I=$100, V3=$10, VE=$99, F31E -> I=$110, VF=0"""
        state, cpu = _machine(0xF31E)
        state.index_register = 0x100
        state.set_v(3, 0x10)
        state.set_v(0xE, 0x99)
        state.set_v(0xF, 1)
        cpu.step()
        assert state.index_register == 0x110
        assert state.get_v(0xF) == 0

    def test_font_address(self):
        """V0=$A, F029 -> I=50 (glyph A), bytes match the font."""
        state, cpu = _machine(0xF029)
        state.set_v(0, 0xA)
        cpu.step()
        assert state.index_register == 50
        glyph = [state.read8(50 + i) for i in range(5)]
        assert glyph == [0xF0, 0x90, 0xF0, 0x90, 0x90]

    def test_bcd(self):
        """V0=254, I=$300, F033 -> 2, 5, 4"""
        state, cpu = _machine(0xF033)
        state.set_v(0, 254)
        state.index_register = 0x300
        cpu.step()
        assert [state.read8(0x300 + i) for i in range(3)] == [2, 5, 4]
        assert state.index_register == 0x300

    def test_store_registers(self):
        """V0..V2 = 1,2,3, I=$300, F255 -> memory[I+i], I=$303"""
        state, cpu = _machine(0xF255)
        for i, v in enumerate((1, 2, 3)):
            state.set_v(i, v)
        state.set_v(3, 0xEE)
        state.index_register = 0x300
        cpu.step()
        assert [state.read8(0x300 + i) for i in range(4)] == [1, 2, 3, 0]
        assert state.index_register == 0x303

    def test_load_registers(self):
        """memory[$300..$302] = 9,8,7, F265 -> V0..V2"""
        state, cpu = _machine(0xF265)
        state.memory.load_binary(bytes([9, 8, 7, 6]), 0x300)
        state.index_register = 0x300
        cpu.step()
        assert [state.get_v(i) for i in range(4)] == [9, 8, 7, 0]
        assert state.index_register == 0x303

    def test_load_without_index_increment(self):
        config = EmulatorConfig(load_store_increments_index=False)
        state, cpu = _machine(0xF165, config=config)
        state.index_register = 0x300
        cpu.step()
        assert state.index_register == 0x300

    def test_store_past_end_of_memory_faults(self):
        """I=$FFE, FF55 writes 16 bytes -> MemoryAccessError"""
        state, cpu = _machine(0xFF55)
        state.index_register = 0xFFE
        with pytest.raises(MemoryAccessError):
            cpu.step()


# ═══════════════════════════════════════════════
# Sprites
# ═══════════════════════════════════════════════

class TestDraw:
    """DXYN: XOR draw, collision in VF, clipping at the edges."""

    def test_draw_then_erase(self):
        """$FF sprite at (0,0) twice: lit with VF=0, then off with VF=1"""
        state, cpu = _machine(0xD011, 0xD011)
        state.memory.write8(0x300, 0xFF)
        state.index_register = 0x300
        state.needs_redraw = False

        cpu.step()
        assert [state.get_pixel(x, 0) for x in range(9)] == [True] * 8 + [False]
        assert state.get_v(0xF) == 0
        assert state.needs_redraw

        cpu.step()
        assert state.framebuffer.lit_count() == 0
        assert state.get_v(0xF) == 1

    def test_partial_overlap_sets_collision(self):
        state, cpu = _machine(0xD011)
        state.memory.write8(0x300, 0x80)
        state.index_register = 0x300
        state.set_pixel(0, 0, True)
        state.set_pixel(5, 0, True)
        cpu.step()
        assert state.get_v(0xF) == 1
        assert not state.get_pixel(0, 0)
        assert state.get_pixel(5, 0)

    def test_clips_right_edge(self):
        """V0=60: only columns 60-63 lit, nothing wraps to column 0."""
        state, cpu = _machine(0xD011)
        state.memory.write8(0x300, 0xFF)
        state.index_register = 0x300
        state.set_v(0, 60)
        cpu.step()
        assert all(state.get_pixel(x, 0) for x in range(60, 64))
        assert not any(state.get_pixel(x, 0) for x in range(4))
        assert state.framebuffer.lit_count() == 4

    def test_clips_bottom_edge(self):
        """V1=31, 2-row sprite: only row 31 lit."""
        state, cpu = _machine(0xD012)
        state.memory.load_binary(bytes([0x80, 0x80]), 0x300)
        state.index_register = 0x300
        state.set_v(1, 31)
        cpu.step()
        assert state.get_pixel(0, 31)
        assert not state.get_pixel(0, 0)
        assert state.framebuffer.lit_count() == 1

    def test_font_glyph(self):
        """Draw glyph 0 (F0 90 90 90 F0) at (10, 5)."""
        state, cpu = _machine(0xF029, 0xD125)
        state.set_v(0, 0)
        state.set_v(1, 10)
        state.set_v(2, 5)
        cpu.step()
        cpu.step()
        assert state.window()[5][10:14] == [True] * 4
        assert state.window()[6][10:14] == [True, False, False, True]

    def test_sprite_read_past_memory_faults(self):
        state, cpu = _machine(0xD002)
        state.index_register = 0xFFF
        with pytest.raises(MemoryAccessError):
            cpu.step()


# ═══════════════════════════════════════════════
# Timers and input
# ═══════════════════════════════════════════════

class TestTimersInput:
    """FX07, FX0A, FX15, FX18 and the per-step tick."""

    def test_read_delay_before_tick(self):
        """delay=10, F007 -> V0=10, then the tick leaves delay=9"""
        state, cpu = _machine(0xF007)
        state.delay_timer = 10
        cpu.step()
        assert state.get_v(0) == 10
        assert state.delay_timer == 9

    def test_set_delay_and_sound(self):
        state, cpu = _machine(0xF015, 0xF118)
        state.set_v(0, 5)
        state.set_v(1, 7)
        cpu.execute()
        cpu.execute()
        assert state.delay_timer == 5
        assert state.sound_timer == 7

    def test_timers_count_down_to_zero(self):
        """delay=sound=3, three steps -> both 0, alert fired once"""
        alerts = []
        state, cpu = _machine(*([0x6000] * 5))
        state.timers.on_sound = lambda: alerts.append(state.program_counter)
        state.delay_timer = 3
        state.sound_timer = 3
        for _ in range(3):
            cpu.step()
        assert state.delay_timer == 0
        assert state.sound_timer == 0
        assert alerts == [0x206]
        cpu.step()
        cpu.step()
        assert state.delay_timer == 0
        assert alerts == [0x206]

    def test_wait_key_polls(self):
        """FX0A with no key: PC stays; press key 7 -> V3=7, PC+2"""
        state, cpu = _machine(0xF30A)
        for _ in range(3):
            cpu.step()
            assert state.program_counter == 0x200
        state.set_key(7, 1)
        cpu.step()
        assert state.get_v(3) == 7
        assert state.program_counter == 0x202

    def test_wait_key_highest_wins(self):
        state, cpu = _machine(0xF30A)
        state.set_key(2, 1)
        state.set_key(0xC, 1)
        cpu.step()
        assert state.get_v(3) == 0xC

    def test_wait_key_still_ticks_timers(self):
        state, cpu = _machine(0xF00A)
        state.delay_timer = 2
        cpu.step()
        assert state.delay_timer == 1


# ═══════════════════════════════════════════════
# Unknown opcodes
# ═══════════════════════════════════════════════

class TestIllegal:
    """Strict decode faults; lenient decode logs and re-polls."""

    @pytest.mark.parametrize("opcode", [0x0123, 0x800F, 0xE000, 0xF0FF])
    def test_strict_raises(self, opcode):
        state, cpu = _machine(opcode)
        with pytest.raises(IllegalOpcode) as info:
            cpu.step()
        assert info.value.opcode == opcode
        assert info.value.pc == 0x200

    def test_message_names_faulting_address(self):
        state, cpu = _machine(0x6001, 0x0123)
        cpu.step()
        with pytest.raises(IllegalOpcode) as info:
            cpu.step()
        assert str(info.value) == "Unknown opcode $0123 at $202"
        assert str(IllegalOpcode(0x0123)) == "Unknown opcode $0123"

    def test_lenient_skips_without_advancing(self, caplog):
        state, cpu = _machine(0x0123, config=EmulatorConfig(strict_decode=False))
        state.delay_timer = 4
        with caplog.at_level("WARNING", logger="chip8vm"):
            cpu.step()
        assert state.program_counter == 0x200
        assert state.delay_timer == 3
        assert "Unknown opcode $0123 at $200" in caplog.text
        assert "recent opcodes: 0123" in caplog.text

    def test_history_bounded(self):
        config = EmulatorConfig(history_size=4)
        state, cpu = _machine(*([0x6000] * 6), config=config)
        for _ in range(6):
            cpu.step()
        assert list(cpu.history) == [0x6000] * 4
        assert cpu.instructions == 6


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
