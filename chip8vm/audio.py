"""
Sound timer tone.
A square wave looped on a pygame mixer channel for as long as the frame
driver keeps it started.
"""

import logging

import numpy as np

from .runner import Beeper, SilentBeeper

logger = logging.getLogger(__name__)

TONE_FREQUENCY = 432
SAMPLE_RATE = 44_100
AMPLITUDE = 8_000
BUFFER_SECONDS = 0.1


def square_wave(frequency: float, sample_rate: int, channels: int = 1, amplitude: int = AMPLITUDE) -> np.ndarray:
    """Whole periods of a signed 16-bit square wave, roughly BUFFER_SECONDS long"""
    if frequency <= 0:
        raise ValueError(f"Tone frequency must be positive, got {frequency}")
    period = max(2, int(round(sample_rate / frequency)))
    periods = max(1, int(sample_rate * BUFFER_SECONDS) // period)
    phase = np.arange(period * periods) % period
    wave = np.where(phase < period // 2, amplitude, -amplitude).astype(np.int16)
    if channels > 1:
        wave = np.repeat(wave[:, None], channels, axis=1)
    return np.ascontiguousarray(wave)


class SquareWaveBeeper:
    """
    Loops a square wave through pygame's mixer between start() and stop().

    mixer defaults to pygame.mixer, initialised on demand. Any object with the
    same get_init/Sound surface can stand in for it.
    """

    def __init__(self, frequency: float = TONE_FREQUENCY, volume: float = 0.35, mixer=None):
        if mixer is None:
            mixer = _pygame_mixer()

        mixer_state = mixer.get_init()
        if mixer_state is None:
            raise RuntimeError("pygame mixer must be initialised before creating SquareWaveBeeper")
        sample_rate, _, channels = mixer_state

        self.frequency = frequency
        self.sample_rate = sample_rate
        self._sound = mixer.Sound(buffer=square_wave(frequency, sample_rate, channels).tobytes())
        self._sound.set_volume(max(0.0, min(1.0, volume)))
        self._channel = None
        self.playing = False

    def start(self):
        if self.playing:
            return
        self._channel = self._sound.play(loops=-1)
        self.playing = True
        logger.debug("Tone on (%s Hz)", self.frequency)

    def stop(self):
        if not self.playing:
            return
        if self._channel is not None:
            self._channel.stop()
        self._channel = None
        self.playing = False
        logger.debug("Tone off")


def _pygame_mixer():
    try:
        import pygame
    except ImportError as exc:
        raise RuntimeError("pygame is required for audio output (pip install chip8vm[audio])") from exc

    if pygame.mixer.get_init() is None:
        pygame.mixer.pre_init(SAMPLE_RATE, -16, 1, 512)
        try:
            pygame.mixer.init()
        except pygame.error as exc:
            raise RuntimeError(f"pygame mixer unavailable: {exc}") from exc
    return pygame.mixer


def open_beeper(frequency: float = TONE_FREQUENCY) -> Beeper:
    """SquareWaveBeeper when an audio device is usable, otherwise a silent one"""
    try:
        return SquareWaveBeeper(frequency)
    except RuntimeError as e:
        logger.warning("Sound disabled: %s", e)
        return SilentBeeper()
