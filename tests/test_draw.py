from __future__ import annotations

import numpy as np

from chip8vm import Chip8Emulator, Quirks
from chip8vm.chip8 import DISPLAY_HEIGHT, DISPLAY_WIDTH

SPRITE_ADDR = 0x300


def _emulator(sprite: list[int], x: int = 0, y: int = 0, quirks: Quirks | None = None) -> Chip8Emulator:
    emulator = Chip8Emulator(quirks=quirks)
    emulator.memory[SPRITE_ADDR:SPRITE_ADDR + len(sprite)] = sprite
    emulator.index_register = SPRITE_ADDR
    emulator.registers[0] = x
    emulator.registers[1] = y
    return emulator


def _draw(emulator: Chip8Emulator, height: int) -> None:
    emulator.execute(0xD010 | height)


def test_single_pixel_drawn_twice_toggles_off_with_collision() -> None:
    emulator = _emulator([0x80])

    _draw(emulator, 1)
    assert emulator.display[0, 0]
    assert emulator.registers[0xF] == 0

    _draw(emulator, 1)
    assert not emulator.display[0, 0]
    assert emulator.registers[0xF] == 1


def test_draw_through_program_sets_dirty() -> None:
    program = bytes([0xA2, 0x08, 0xD0, 0x11, 0xD0, 0x11, 0x12, 0x06, 0x80, 0x00])
    emulator = Chip8Emulator(program)

    emulator.step()
    emulator.step()

    assert emulator.display_dirty
    assert emulator.display[0, 0]
    assert emulator.registers[0xF] == 0

    emulator.clear_display_dirty()
    emulator.step()

    assert emulator.display_dirty
    assert not emulator.display[0, 0]
    assert emulator.registers[0xF] == 1


def test_sprite_bits_map_msb_to_leftmost_column() -> None:
    emulator = _emulator([0b10100001], x=8, y=4)

    _draw(emulator, 1)

    lit = [col for col in range(DISPLAY_WIDTH) if emulator.display[4, col]]
    assert lit == [8, 10, 15]


def test_origin_wraps_modulo_display_size() -> None:
    emulator = _emulator([0x80], x=DISPLAY_WIDTH + 3, y=DISPLAY_HEIGHT + 2)

    _draw(emulator, 1)

    assert emulator.display[2, 3]
    assert emulator.display.sum() == 1


def test_clipping_stops_columns_at_right_edge() -> None:
    emulator = _emulator([0xFF], x=62, quirks=Quirks(clipping=True))

    _draw(emulator, 1)

    assert emulator.display[0, 62] and emulator.display[0, 63]
    assert not emulator.display[0, :6].any()


def test_without_clipping_columns_wrap_to_left_edge() -> None:
    emulator = _emulator([0xFF], x=62)

    _draw(emulator, 1)

    assert emulator.display[0, 62] and emulator.display[0, 63]
    assert emulator.display[0, :6].all()


def test_clipping_stops_rows_at_bottom_edge() -> None:
    emulator = _emulator([0x80, 0x80], y=31, quirks=Quirks(clipping=True))

    _draw(emulator, 2)

    assert emulator.display[31, 0]
    assert not emulator.display[0, 0]


def test_without_clipping_rows_wrap_to_top() -> None:
    emulator = _emulator([0x80, 0x80], y=31)

    _draw(emulator, 2)

    assert emulator.display[31, 0]
    assert emulator.display[0, 0]


def test_collision_flag_survives_later_rows() -> None:
    emulator = _emulator([0x80, 0x80])
    emulator.display[0, 0] = True

    _draw(emulator, 2)

    assert emulator.registers[0xF] == 1
    assert not emulator.display[0, 0]
    assert emulator.display[1, 0]


def test_collision_in_last_row_sets_flag() -> None:
    emulator = _emulator([0x80, 0x80])
    emulator.display[1, 0] = True

    _draw(emulator, 2)

    assert emulator.registers[0xF] == 1


def test_draw_clears_stale_flag_when_nothing_collides() -> None:
    emulator = _emulator([0x80])
    emulator.registers[0xF] = 1

    _draw(emulator, 1)

    assert emulator.registers[0xF] == 0


def test_empty_sprite_row_leaves_display_clean() -> None:
    emulator = _emulator([0x00])

    _draw(emulator, 1)

    assert not emulator.display_dirty
    assert not emulator.display.any()


def test_clear_screen_blanks_display_and_marks_dirty() -> None:
    emulator = _emulator([0xFF, 0xFF])
    _draw(emulator, 2)
    emulator.clear_display_dirty()

    emulator.execute(0x00E0)

    assert not emulator.display.any()
    assert emulator.display_dirty


def test_engine_never_clears_dirty_flag_itself() -> None:
    program = bytes([0xD0, 0x15, 0x60, 0x01, 0x60, 0x02])
    emulator = Chip8Emulator(program)

    for _ in range(3):
        emulator.step()

    assert emulator.display_dirty


def test_font_glyph_draws_zero() -> None:
    emulator = Chip8Emulator(bytes([0x60, 0x00, 0xF0, 0x29, 0xD0, 0x05]))
    for _ in range(3):
        emulator.step()

    expected = np.array([
        [1, 1, 1, 1],
        [1, 0, 0, 1],
        [1, 0, 0, 1],
        [1, 0, 0, 1],
        [1, 1, 1, 1],
    ], dtype=bool)
    assert np.array_equal(emulator.display[0:5, 0:4], expected)


def test_get_display_returns_a_copy() -> None:
    emulator = _emulator([0x80])
    _draw(emulator, 1)

    display = emulator.get_display()
    display[0, 0] = False

    assert emulator.display[0, 0]
    assert display.shape == (DISPLAY_HEIGHT, DISPLAY_WIDTH)
