"""
Interactive tkinter window for the CHIP-8 engine.
Maps the keyboard onto the 16-key pad, paints the display when the frame
driver reports a change and plays the tone while the sound timer runs.
"""

import logging
import tkinter as tk
from tkinter import Canvas
from typing import Dict, Optional

import numpy as np

from .audio import open_beeper
from .chip8 import DISPLAY_HEIGHT, DISPLAY_WIDTH, Chip8Error
from .runner import FPS, FrameRunner

logger = logging.getLogger(__name__)

# CHIP-8 keypad mapping to keyboard keys
# Original CHIP-8 keypad:     Modern keyboard mapping:
# 1 2 3 C                     1 2 3 4
# 4 5 6 D          =>         Q W E R
# 7 8 9 E                     A S D F
# A 0 B F                     Z X C V
KEY_MAPPING: Dict[str, int] = {
    '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
    'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
    'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
    'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF
}

FRAME_INTERVAL_MS = 1000 // FPS


class TkFrontend:
    """Window around a FrameRunner. Everything runs on the Tk main loop."""

    def __init__(self, runner: FrameRunner, scale: int = 10, title: str = "CHIP-8 Display"):
        self.runner = runner
        self.emulator = runner.emulator
        self.scale = scale
        self.error: Optional[Chip8Error] = None
        self._window_closing = False
        self._pressed_keys = set()

        self.root = tk.Tk()
        self.root.title(title)
        self.root.resizable(False, False)

        self.canvas = Canvas(self.root, width=DISPLAY_WIDTH * scale, height=DISPLAY_HEIGHT * scale, bg='black')
        self.canvas.pack()

        runner.beeper = open_beeper()
        runner.on_redraw = self.paint

        self.root.bind('<KeyPress>', self._key_press)
        self.root.bind('<KeyRelease>', self._key_release)
        self.root.focus_set()
        self.root.protocol("WM_DELETE_WINDOW", self.close)

    def _key_press(self, event):
        if self._window_closing:
            return
        key = event.keysym.lower()
        if key in KEY_MAPPING:
            chip8_key = KEY_MAPPING[key]
            if chip8_key not in self._pressed_keys:
                self._pressed_keys.add(chip8_key)
                self.emulator.set_key(chip8_key, True)
                logger.debug("Key pressed: %s -> CHIP-8 key 0x%X", key, chip8_key)
        elif key == 'escape':
            self.close()

    def _key_release(self, event):
        if self._window_closing:
            return
        key = event.keysym.lower()
        if key in KEY_MAPPING:
            chip8_key = KEY_MAPPING[key]
            if chip8_key in self._pressed_keys:
                self._pressed_keys.remove(chip8_key)
                self.emulator.set_key(chip8_key, False)

    def paint(self, display: np.ndarray):
        self.canvas.delete("all")
        scale = self.scale
        for y, x in zip(*np.nonzero(display)):
            x1 = int(x) * scale
            y1 = int(y) * scale
            self.canvas.create_rectangle(x1, y1, x1 + scale, y1 + scale, fill='white', outline='white')

    def close(self):
        """Safely close the window and stop all callbacks"""
        if self._window_closing:
            return
        self._window_closing = True
        self.runner.beeper.stop()
        self.root.quit()
        self.root.destroy()

    def _tick(self):
        if self._window_closing:
            return
        try:
            self.runner.run_frame()
        except Chip8Error as e:
            self.error = e
            print(f"Emulator crashed: {e}")
            self.close()
            return
        except tk.TclError:
            # Window was destroyed mid-frame
            self._window_closing = True
            return
        self.root.after(FRAME_INTERVAL_MS, self._tick)

    def run(self):
        self.paint(self.emulator.get_display())
        self.root.after(0, self._tick)
        try:
            self.root.mainloop()
        finally:
            self._window_closing = True
