"""
Display export helpers: terminal rendering and PNG screenshots.
"""

from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image


def render_ascii(display: np.ndarray) -> str:
    """Render the display as text, two characters per pixel"""
    return '\n'.join(''.join('██' if pixel else '  ' for pixel in row) for row in display)


def display_to_image(display: np.ndarray, scale: int = 1) -> Image.Image:
    """Convert the display to a grayscale image, lit pixels white"""
    if scale < 1:
        raise ValueError(f"scale must be positive, got {scale}")
    pixels = np.asarray(display, dtype=bool).astype(np.uint8) * 255
    img = Image.fromarray(pixels)
    if scale != 1:
        img = img.resize((img.width * scale, img.height * scale), Image.Resampling.NEAREST)
    return img


def save_screenshot(display: np.ndarray, output_file: Union[str, Path], scale: int = 8) -> Path:
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    display_to_image(display, scale).save(output_file)
    return output_file
