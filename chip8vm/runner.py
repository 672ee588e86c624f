"""
Frame driver for the CHIP-8 engine.
Runs a fixed number of instructions per display frame, counts the timers down,
keeps the tone in step with the sound timer and redraws only when the display changed.
"""

import logging
from typing import Callable, Optional, Protocol

import numpy as np

from .chip8 import Chip8Emulator

logger = logging.getLogger(__name__)

INSTRUCTIONS_PER_FRAME = 20
FPS = 60


class Beeper(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class SilentBeeper:
    """Beeper that only tracks whether the tone would be playing"""

    def __init__(self):
        self.playing = False
        self.activations = 0

    def start(self):
        if not self.playing:
            self.activations += 1
        self.playing = True

    def stop(self):
        self.playing = False


class FrameRunner:
    """
    Drives a Chip8Emulator one display frame at a time.

    on_redraw receives a copy of the display whenever the dirty flag was set
    during the frame; the flag is cleared right after.
    """

    def __init__(self, emulator: Chip8Emulator, instructions_per_frame: int = INSTRUCTIONS_PER_FRAME,
                 beeper: Optional[Beeper] = None,
                 on_redraw: Optional[Callable[[np.ndarray], None]] = None):
        if instructions_per_frame < 1:
            raise ValueError(f"instructions_per_frame must be positive, got {instructions_per_frame}")
        self.emulator = emulator
        self.instructions_per_frame = instructions_per_frame
        self.beeper = beeper if beeper is not None else SilentBeeper()
        self.on_redraw = on_redraw
        self.frames = 0
        self.redraws = 0

    def run_frame(self) -> bool:
        """Run one frame. Returns True if the display was redrawn."""
        emulator = self.emulator

        for _ in range(self.instructions_per_frame):
            emulator.step()
            # Display wait quirk: at most one draw per frame
            if emulator.quirks.display_wait and emulator.display_dirty:
                break

        if emulator.sound_timer > 0:
            self.beeper.start()
        else:
            self.beeper.stop()

        emulator.decrement_timers()
        self.frames += 1

        if not emulator.display_dirty:
            return False

        if self.on_redraw is not None:
            self.on_redraw(emulator.get_display())
        emulator.clear_display_dirty()
        self.redraws += 1
        return True

    def run(self, frames: int) -> int:
        """Run a number of frames back to back, returns how many redrew the display"""
        redraws = 0
        for _ in range(frames):
            if self.run_frame():
                redraws += 1
        logger.debug("Ran %d frames, %d redraws", frames, redraws)
        return redraws
