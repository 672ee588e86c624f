"""
chip8vm: a CHIP-8 interpreter with selectable quirks.
"""

from .chip8 import (
    Chip8Emulator,
    Chip8Error,
    EngineHaltedError,
    StackOverflowError,
    StackUnderflowError,
    UnimplementedInstructionError,
    load_rom_file,
)
from .quirks import PROFILES, Quirks, get_profile, load_quirks_file
from .runner import FrameRunner

__version__ = "0.1.0"
