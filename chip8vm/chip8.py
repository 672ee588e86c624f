"""
CHIP-8 Execution Engine
Single-instance interpreter core: step() fetches, decodes and executes one instruction.
The engine never does I/O itself. A driver (see runner.py) feeds the keypad,
decrements the timers once per frame and consumes the display dirty flag.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from .quirks import Quirks

logger = logging.getLogger(__name__)

# CHIP-8 System Constants
MEMORY_SIZE = 4096
ADDRESS_MASK = 0xFFF
DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
REGISTER_COUNT = 16
STACK_SIZE = 16
KEYPAD_SIZE = 16
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
FONT_START = 0x000
FONT_GLYPH_SIZE = 5
INSTRUCTION_SIZE = 2
SPRITE_WIDTH = 8

# CHIP-8 Font set (hexadecimal digits 0-F)
CHIP8_FONT = np.array([
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
    0xF0, 0x80, 0xF0, 0x80, 0x80   # F
], dtype=np.uint8)

ProgramImage = Union[bytes, bytearray, np.ndarray]


class Chip8Error(Exception):
    """Fatal engine condition. The emulator is halted once one is raised."""


class UnimplementedInstructionError(Chip8Error):
    def __init__(self, instruction: int, address: int):
        self.instruction = instruction
        self.address = address
        super().__init__(f"Unimplemented instruction 0x{instruction:04X} at PC=0x{address:03X}")


class StackOverflowError(Chip8Error):
    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Stack overflow at PC=0x{address:03X} (depth {STACK_SIZE})")


class StackUnderflowError(Chip8Error):
    def __init__(self, address: int):
        self.address = address
        super().__init__(f"RET with empty stack at PC=0x{address:03X}")


class EngineHaltedError(Chip8Error):
    def __init__(self):
        super().__init__("Emulator has crashed and cannot execute further instructions")


class Chip8Emulator:
    """
    Single-instance CHIP-8 interpreter.

    Construct one per program image; instances share no state, so several can
    run side by side (e.g. to compare quirk profiles on the same ROM).
    Pass `seed` or `rng` to make the Cxkk random opcode reproducible.
    """

    def __init__(self, program: ProgramImage = b"", quirks: Optional[Quirks] = None,
                 seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        self.quirks = quirks if quirks is not None else Quirks()
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.memory = np.zeros(MEMORY_SIZE, dtype=np.uint8)
        self.display = np.zeros((DISPLAY_HEIGHT, DISPLAY_WIDTH), dtype=bool)
        self.registers = np.zeros(REGISTER_COUNT, dtype=np.uint8)
        # Plain Python ints so address arithmetic never overflows a numpy dtype
        self.index_register = 0
        self.program_counter = PROGRAM_START
        self.stack_pointer = 0
        self.stack = np.zeros(STACK_SIZE, dtype=np.uint16)
        self._delay_timer = 0
        self._sound_timer = 0
        self.keypad = np.zeros(KEYPAD_SIZE, dtype=bool)
        self.display_dirty = False
        self.crashed = False
        self._self_jump_warned = False

        # Load font into memory
        self.memory[FONT_START:FONT_START + CHIP8_FONT.size] = CHIP8_FONT
        self._load_program(program)

        # Instrumentation
        self.stats = {
            'instructions_executed': 0,
            'display_writes': 0,
            'display_clears': 0,
            'sprite_collisions': 0,
            'subroutine_calls': 0,
            'returns': 0,
            'jumps_taken': 0,
            'skips_taken': 0,
            'blocking_key_waits': 0,
            'random_generations': 0,
            'memory_reads': 0,
            'memory_writes': 0,
        }

    def _load_program(self, program: ProgramImage):
        if isinstance(program, np.ndarray):
            if program.dtype != np.uint8:
                if program.dtype.kind not in "iu":
                    raise ValueError(f"ROM image must hold integers, got dtype {program.dtype}")
                if program.size and (program.min() < 0 or program.max() > 0xFF):
                    raise ValueError("ROM image values must be in range 0x00-0xFF")
            program = program.astype(np.uint8).tobytes()

        if len(program) > MAX_PROGRAM_SIZE:
            raise ValueError(f"ROM too large: {len(program)} bytes, max {MAX_PROGRAM_SIZE}")

        if program:
            self.memory[PROGRAM_START:PROGRAM_START + len(program)] = np.frombuffer(bytes(program), dtype=np.uint8)
        logger.info("Loaded ROM: %d bytes", len(program))

    # ------------------------------------------------------------------
    # Driver-facing interface
    # ------------------------------------------------------------------

    @property
    def delay_timer(self) -> int:
        return self._delay_timer

    @delay_timer.setter
    def delay_timer(self, value: int):
        self._delay_timer = int(value) & 0xFF

    @property
    def sound_timer(self) -> int:
        return self._sound_timer

    @sound_timer.setter
    def sound_timer(self, value: int):
        self._sound_timer = int(value) & 0xFF

    def decrement_timers(self):
        """Count both timers down by one. Called by the driver once per frame."""
        if self._delay_timer > 0:
            self._delay_timer -= 1
        if self._sound_timer > 0:
            self._sound_timer -= 1

    def set_key(self, key: int, pressed: bool):
        """Set key state (0-F)"""
        if not 0 <= key < KEYPAD_SIZE:
            raise ValueError(f"Key index out of range: {key}")
        self.keypad[key] = bool(pressed)

    def is_key_pressed(self, key: int) -> bool:
        return bool(self.keypad[key & 0xF])

    def get_display(self) -> np.ndarray:
        """Get current display state as a (rows, columns) boolean array"""
        return self.display.copy()

    def clear_display_dirty(self):
        self.display_dirty = False

    def get_stats(self) -> Dict[str, int]:
        """Get current instrumentation statistics"""
        return self.stats.copy()

    def print_stats(self):
        print("CHIP-8 Emulator Statistics:")
        print("-" * 30)
        for key, value in self.stats.items():
            print(f"{key:25s}: {value}")

    # ------------------------------------------------------------------
    # Fetch / decode / execute
    # ------------------------------------------------------------------

    def step(self):
        """Execute one instruction"""
        if self.crashed:
            raise EngineHaltedError()

        address = self.program_counter
        high_byte = int(self.memory[address])
        low_byte = int(self.memory[(address + 1) & ADDRESS_MASK])
        instruction = (high_byte << 8) | low_byte

        self.program_counter = (address + INSTRUCTION_SIZE) & ADDRESS_MASK

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Executing: 0x%04X at PC=0x%03X  I=0x%03X SP=%d V=%s",
                         instruction, address, self.index_register, self.stack_pointer,
                         ' '.join(f"{int(v):02X}" for v in self.registers))

        self.execute(instruction)
        self.stats['instructions_executed'] += 1

    def execute(self, instruction: int):
        """
        Decode and execute a single instruction word against the current state.
        The program counter is expected to already point past the instruction.
        """
        try:
            self._execute_instruction(int(instruction) & 0xFFFF)
        except Chip8Error as e:
            self.crashed = True
            logger.error("ERROR: %s", e)
            raise

    def _instruction_address(self) -> int:
        return (self.program_counter - INSTRUCTION_SIZE) & ADDRESS_MASK

    def _unimplemented(self, instruction: int) -> UnimplementedInstructionError:
        return UnimplementedInstructionError(instruction, self._instruction_address())

    def _skip_if(self, condition: bool):
        if condition:
            self.program_counter = (self.program_counter + INSTRUCTION_SIZE) & ADDRESS_MASK
            self.stats['skips_taken'] += 1

    def _execute_instruction(self, instruction: int):
        # Decode instruction
        opcode = (instruction & 0xF000) >> 12
        x = (instruction & 0x0F00) >> 8
        y = (instruction & 0x00F0) >> 4
        n = instruction & 0x000F
        kk = instruction & 0x00FF
        nnn = instruction & 0x0FFF

        if opcode == 0x0:
            if instruction == 0x00E0:  # CLS
                self.display.fill(False)
                self.display_dirty = True
                self.stats['display_clears'] += 1
            elif instruction == 0x00EE:  # RET
                if self.stack_pointer == 0:
                    raise StackUnderflowError(self._instruction_address())
                self.stack_pointer -= 1
                self.program_counter = int(self.stack[self.stack_pointer])
                self.stats['returns'] += 1
            else:
                # 0nnn machine-code calls are not supported
                raise self._unimplemented(instruction)

        elif opcode == 0x1:  # JP addr
            if nnn == self._instruction_address() and not self._self_jump_warned:
                logger.warning("Infinite jump detected at PC=0x%03X (further warnings suppressed)", nnn)
                self._self_jump_warned = True
            self.program_counter = nnn
            self.stats['jumps_taken'] += 1

        elif opcode == 0x2:  # CALL addr
            if self.stack_pointer >= STACK_SIZE:
                raise StackOverflowError(self._instruction_address())
            self.stack[self.stack_pointer] = self.program_counter
            self.stack_pointer += 1
            self.program_counter = nnn
            self.stats['subroutine_calls'] += 1

        elif opcode == 0x3:  # SE Vx, byte
            self._skip_if(int(self.registers[x]) == kk)

        elif opcode == 0x4:  # SNE Vx, byte
            self._skip_if(int(self.registers[x]) != kk)

        elif opcode == 0x5:  # SE Vx, Vy
            if n != 0:
                raise self._unimplemented(instruction)
            self._skip_if(int(self.registers[x]) == int(self.registers[y]))

        elif opcode == 0x6:  # LD Vx, byte
            self.registers[x] = kk

        elif opcode == 0x7:  # ADD Vx, byte (no carry flag)
            self.registers[x] = (int(self.registers[x]) + kk) & 0xFF

        elif opcode == 0x8:  # Register operations
            self._execute_alu(instruction, x, y, n)

        elif opcode == 0x9:  # SNE Vx, Vy
            if n != 0:
                raise self._unimplemented(instruction)
            self._skip_if(int(self.registers[x]) != int(self.registers[y]))

        elif opcode == 0xA:  # LD I, addr
            self.index_register = nnn

        elif opcode == 0xB:  # JP V0, addr (with jumping quirk)
            if self.quirks.jumping:
                # BXNN: high nibble picks the offset register, NN is the base
                self.program_counter = (kk + int(self.registers[x])) & ADDRESS_MASK
            else:
                self.program_counter = (nnn + int(self.registers[0])) & ADDRESS_MASK
            self.stats['jumps_taken'] += 1

        elif opcode == 0xC:  # RND Vx, byte
            random_byte = int(self.rng.integers(0, 256))
            self.registers[x] = random_byte & kk
            self.stats['random_generations'] += 1

        elif opcode == 0xD:  # DRW Vx, Vy, nibble
            self._draw_sprite(x, y, n)

        elif opcode == 0xE:
            key_pressed = self.is_key_pressed(int(self.registers[x]))
            if kk == 0x9E:  # SKP Vx
                self._skip_if(key_pressed)
            elif kk == 0xA1:  # SKNP Vx
                self._skip_if(not key_pressed)
            else:
                raise self._unimplemented(instruction)

        elif opcode == 0xF:
            self._execute_misc(instruction, x, kk)

        else:
            raise self._unimplemented(instruction)

    def _execute_alu(self, instruction: int, x: int, y: int, n: int):
        """8xyN register-to-register group. VF is written after the result."""
        if n == 0x0:  # LD Vx, Vy
            self.registers[x] = self.registers[y]

        elif n in (0x1, 0x2, 0x3):  # OR / AND / XOR Vx, Vy
            if self.quirks.vf_reset:
                self.registers[0xF] = 0
            vx_val = int(self.registers[x])
            vy_val = int(self.registers[y])
            if n == 0x1:
                self.registers[x] = vx_val | vy_val
            elif n == 0x2:
                self.registers[x] = vx_val & vy_val
            else:
                self.registers[x] = vx_val ^ vy_val

        elif n == 0x4:  # ADD Vx, Vy
            result = int(self.registers[x]) + int(self.registers[y])
            self.registers[x] = result & 0xFF
            self.registers[0xF] = 1 if result > 0xFF else 0

        elif n == 0x5:  # SUB Vx, Vy
            vx_val = int(self.registers[x])
            vy_val = int(self.registers[y])
            self.registers[x] = (vx_val - vy_val) & 0xFF
            self.registers[0xF] = 0 if vx_val < vy_val else 1  # NOT borrow

        elif n == 0x7:  # SUBN Vx, Vy
            vx_val = int(self.registers[x])
            vy_val = int(self.registers[y])
            self.registers[x] = (vy_val - vx_val) & 0xFF
            self.registers[0xF] = 0 if vy_val < vx_val else 1  # NOT borrow

        elif n == 0x6:  # SHR Vx {, Vy}
            source = int(self.registers[y if self.quirks.shifting else x])
            self.registers[x] = source >> 1
            self.registers[0xF] = source & 0x1

        elif n == 0xE:  # SHL Vx {, Vy}
            source = int(self.registers[y if self.quirks.shifting else x])
            self.registers[x] = (source << 1) & 0xFF
            self.registers[0xF] = (source >> 7) & 0x1

        else:
            raise self._unimplemented(instruction)

    def _execute_misc(self, instruction: int, x: int, kk: int):
        """FxNN timer, keypad, index and block-transfer group"""
        if kk == 0x07:  # LD Vx, DT
            self.registers[x] = self._delay_timer

        elif kk == 0x0A:  # LD Vx, K
            pressed = np.flatnonzero(self.keypad)
            if pressed.size:
                key = int(pressed[0])
                self.registers[x] = key
                self.keypad[key] = False
            else:
                # Re-execute this instruction on the next step until a key is down
                self.program_counter = self._instruction_address()
                self.stats['blocking_key_waits'] += 1

        elif kk == 0x15:  # LD DT, Vx
            self.delay_timer = int(self.registers[x])

        elif kk == 0x18:  # LD ST, Vx
            self.sound_timer = int(self.registers[x])

        elif kk == 0x1E:  # ADD I, Vx
            self.index_register = (self.index_register + int(self.registers[x])) & ADDRESS_MASK

        elif kk == 0x29:  # LD F, Vx
            self.index_register = (FONT_START + FONT_GLYPH_SIZE * int(self.registers[x])) & ADDRESS_MASK

        elif kk == 0x33:  # LD B, Vx
            value = int(self.registers[x])
            digits = (value // 100, (value // 10) % 10, value % 10)
            for offset, digit in enumerate(digits):
                self.memory[(self.index_register + offset) & ADDRESS_MASK] = digit
            self.stats['memory_writes'] += 3

        elif kk == 0x55:  # LD [I], Vx (with memory quirk)
            for i in range(x + 1):
                self.memory[(self.index_register + i) & ADDRESS_MASK] = self.registers[i]
            self.stats['memory_writes'] += x + 1
            if self.quirks.memory:
                self.index_register = (self.index_register + x + 1) & ADDRESS_MASK

        elif kk == 0x65:  # LD Vx, [I] (with memory quirk)
            for i in range(x + 1):
                self.registers[i] = self.memory[(self.index_register + i) & ADDRESS_MASK]
            self.stats['memory_reads'] += x + 1
            if self.quirks.memory:
                self.index_register = (self.index_register + x + 1) & ADDRESS_MASK

        else:
            raise self._unimplemented(instruction)

    def _draw_sprite(self, x_reg: int, y_reg: int, height: int):
        """Draw a sprite at position (Vx, Vy) with given height, XOR-ing onto the display"""
        start_col = int(self.registers[x_reg]) % DISPLAY_WIDTH
        start_row = int(self.registers[y_reg]) % DISPLAY_HEIGHT
        self.registers[0xF] = 0  # Clear collision flag

        for row in range(height):
            pixel_y = start_row + row
            if pixel_y >= DISPLAY_HEIGHT:
                if self.quirks.clipping:
                    break
                pixel_y %= DISPLAY_HEIGHT

            sprite_byte = int(self.memory[(self.index_register + row) & ADDRESS_MASK])
            self.stats['memory_reads'] += 1

            for col in range(SPRITE_WIDTH):
                pixel_x = start_col + col
                if pixel_x >= DISPLAY_WIDTH:
                    if self.quirks.clipping:
                        break
                    pixel_x %= DISPLAY_WIDTH

                if sprite_byte & (0x80 >> col):
                    if self.display[pixel_y, pixel_x]:
                        self.registers[0xF] = 1
                        self.stats['sprite_collisions'] += 1
                    self.display[pixel_y, pixel_x] = not self.display[pixel_y, pixel_x]
                    self.display_dirty = True

        self.stats['display_writes'] += 1


def load_rom_file(filename: Union[str, Path]) -> bytes:
    """Load a ROM file"""
    with open(filename, 'rb') as f:
        return f.read()
