from __future__ import annotations

import pytest

pytest.importorskip("tkinter")

from chip8vm.frontend import KEY_MAPPING  # noqa: E402


def test_key_mapping_covers_every_keypad_slot() -> None:
    assert sorted(KEY_MAPPING.values()) == list(range(16))
    assert KEY_MAPPING["x"] == 0x0
    assert KEY_MAPPING["4"] == 0xC
    assert KEY_MAPPING["v"] == 0xF
