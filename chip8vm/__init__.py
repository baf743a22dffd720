# chip8vm - CHIP-8 virtual machine
#
# Package layout:
#   machine.py        MachineState: memory, registers, stack, timers, keypad,
#                     framebuffer and the redraw flag
#   cpu/regs.py       V0-VF, I, PC and the 16-slot call stack
#   cpu/decoder.py    opcode word -> Instruction record, disassembler
#   cpu/alu.py        8-bit arithmetic returning (result, VF)
#   cpu/interpreter.py fetch/decode/execute + timer tick
#   mem/memory.py     4K byte memory with the built-in hex font
#   periph/           timers, keypad latch, framebuffer/display, beeper
#   loader.py         ROM ingestion and save-state snapshots
#   emu.py            Chip8Emulator session host (run loop, breakpoints, trace)
#   scheduler.py      fixed-rate frame scheduler (60 Hz timers)
#   cli.py            `chip8vm` command line

__version__ = "1.0.0"
