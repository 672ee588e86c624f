from __future__ import annotations

import pytest

from chip8vm import (
    Chip8Emulator,
    EngineHaltedError,
    Quirks,
    StackOverflowError,
    StackUnderflowError,
    UnimplementedInstructionError,
)
from chip8vm.chip8 import PROGRAM_START, STACK_SIZE


def _program(*words: int) -> bytes:
    return b"".join(word.to_bytes(2, "big") for word in words)


def _emulator(*words: int, quirks: Quirks | None = None) -> Chip8Emulator:
    return Chip8Emulator(_program(*words), quirks=quirks)


def test_step_advances_program_counter() -> None:
    emulator = _emulator(0x6001)

    emulator.step()

    assert emulator.program_counter == PROGRAM_START + 2


def test_jump_sets_program_counter() -> None:
    emulator = _emulator(0x1345)

    emulator.step()

    assert emulator.program_counter == 0x345


def test_call_and_return() -> None:
    emulator = _emulator(0x2204, 0x1202, 0x00EE)

    emulator.step()
    assert emulator.program_counter == 0x204
    assert emulator.stack_pointer == 1
    assert emulator.stack[0] == 0x202

    emulator.step()
    assert emulator.program_counter == 0x202
    assert emulator.stack_pointer == 0


def test_call_overflow_is_fatal() -> None:
    emulator = _emulator(0x2200)
    for _ in range(STACK_SIZE):
        emulator.step()

    with pytest.raises(StackOverflowError):
        emulator.step()
    assert emulator.crashed


def test_return_on_empty_stack_is_fatal() -> None:
    emulator = _emulator(0x00EE)

    with pytest.raises(StackUnderflowError) as excinfo:
        emulator.step()
    assert excinfo.value.address == PROGRAM_START


def test_halted_engine_refuses_to_step() -> None:
    emulator = _emulator(0x00EE)
    with pytest.raises(StackUnderflowError):
        emulator.step()

    with pytest.raises(EngineHaltedError):
        emulator.step()


@pytest.mark.parametrize(
    "words, expected_pc",
    [
        ((0x6042, 0x3042), 0x206),
        ((0x6042, 0x3043), 0x204),
        ((0x6042, 0x4042), 0x204),
        ((0x6042, 0x4043), 0x206),
    ],
)
def test_skip_on_byte_compare(words: tuple, expected_pc: int) -> None:
    emulator = _emulator(*words)
    for _ in words:
        emulator.step()

    assert emulator.program_counter == expected_pc


@pytest.mark.parametrize(
    "v1, opcode, expected_pc",
    [
        (0x11, 0x5010, 0x208),
        (0x12, 0x5010, 0x206),
        (0x11, 0x9010, 0x206),
        (0x12, 0x9010, 0x208),
    ],
)
def test_skip_on_register_compare(v1: int, opcode: int, expected_pc: int) -> None:
    emulator = _emulator(0x6011, 0x6100 | v1, opcode)
    for _ in range(3):
        emulator.step()

    assert emulator.program_counter == expected_pc


def test_jump_with_offset_adds_v0_without_quirk() -> None:
    emulator = _emulator(0x6010, 0x6220, 0xB234)
    for _ in range(3):
        emulator.step()

    assert emulator.program_counter == 0x244


def test_jump_with_offset_uses_high_nibble_register_with_quirk() -> None:
    emulator = _emulator(0x6010, 0x6220, 0xB234, quirks=Quirks(jumping=True))
    for _ in range(3):
        emulator.step()

    assert emulator.program_counter == 0x34 + 0x20


def test_jump_with_offset_wraps_address_space() -> None:
    emulator = _emulator(0x60FF, 0xBFFF)
    emulator.step()
    emulator.step()

    assert emulator.program_counter == (0xFFF + 0xFF) & 0xFFF


@pytest.mark.parametrize(
    "word",
    [0x0123, 0x5121, 0x8008, 0x801F, 0x900F, 0xE0FF, 0xF0FF],
)
def test_unknown_instruction_reports_word(word: int) -> None:
    emulator = _emulator(word)

    with pytest.raises(UnimplementedInstructionError) as excinfo:
        emulator.step()

    assert excinfo.value.instruction == word
    assert excinfo.value.address == PROGRAM_START
    assert f"0x{word:04X}" in str(excinfo.value)
    assert emulator.crashed


def test_program_counter_wraps_at_end_of_memory() -> None:
    emulator = _emulator(0x1FFE)
    emulator.step()
    emulator.memory[0xFFE] = 0x60
    emulator.memory[0xFFF] = 0x12

    emulator.step()

    assert emulator.program_counter == 0x000
    assert emulator.registers[0] == 0x12


def test_engines_do_not_share_state() -> None:
    first = _emulator(0x6011)
    second = _emulator(0x6022)

    first.step()
    second.step()

    assert first.registers[0] == 0x11
    assert second.registers[0] == 0x22


def test_failed_instruction_is_not_counted() -> None:
    emulator = _emulator(0x6001, 0x0123)

    emulator.step()
    with pytest.raises(UnimplementedInstructionError):
        emulator.step()

    assert emulator.get_stats()["instructions_executed"] == 1
