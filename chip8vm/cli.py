#!/usr/bin/env python3
"""
Command line runner for the CHIP-8 interpreter.
Opens an interactive window by default; --headless runs a fixed number of
frames and can dump the final display as text or as a PNG screenshot.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .chip8 import Chip8Emulator, Chip8Error, load_rom_file
from .imaging import render_ascii, save_screenshot
from .quirks import PROFILES, Quirks, describe, get_profile, load_quirks_file
from .runner import INSTRUCTIONS_PER_FRAME, FrameRunner

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='chip8vm',
        description='CHIP-8 interpreter with selectable quirks',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  chip8vm games/pong.ch8
  chip8vm games/pong.ch8 --profile schip --ipf 30
  chip8vm tests/5-quirks.ch8 --quirks-file quirks.json
  chip8vm ibm.ch8 --headless --frames 120 --ascii --screenshot ibm.png
        """
    )
    parser.add_argument('rom', type=Path,
                        help='Path to the CHIP-8 program image')
    quirk_group = parser.add_mutually_exclusive_group()
    quirk_group.add_argument('--profile', choices=sorted(PROFILES), default='default',
                             help='Named quirk profile (default: default, all quirks off)')
    quirk_group.add_argument('--quirks-file', type=Path,
                             help='JSON file with quirk switches or {"profile": ..., "overrides": {...}}')
    parser.add_argument('--ipf', type=int, default=INSTRUCTIONS_PER_FRAME,
                        help=f'Instructions executed per 60 Hz frame (default: {INSTRUCTIONS_PER_FRAME})')
    parser.add_argument('--scale', type=int, default=10,
                        help='Window / screenshot scale factor (default: 10)')
    parser.add_argument('--seed', type=int,
                        help='Seed for the random number opcode')
    parser.add_argument('--headless', action='store_true',
                        help='Run without a window')
    parser.add_argument('--frames', type=int, default=600,
                        help='Frames to run in headless mode (default: 600)')
    parser.add_argument('--ascii', action='store_true',
                        help='Print the final display to the terminal (headless mode)')
    parser.add_argument('--screenshot', type=Path,
                        help='Save the final display as a PNG (headless mode)')
    parser.add_argument('--debug-log', type=Path,
                        help='Also write log output to this file')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log every executed instruction')
    return parser


def configure_logging(verbose: bool, debug_log: Optional[Path] = None):
    level = logging.DEBUG if verbose else logging.WARNING
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if debug_log is not None:
        handlers.append(logging.FileHandler(debug_log, mode='w', encoding='utf-8'))
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s',
                        handlers=handlers, force=True)


def resolve_quirks(args: argparse.Namespace) -> Quirks:
    if args.quirks_file is not None:
        logger.debug("Reading quirks from %s", args.quirks_file)
        return load_quirks_file(args.quirks_file)
    return get_profile(args.profile)


def run_headless(runner: FrameRunner, args: argparse.Namespace) -> int:
    emulator = runner.emulator
    exit_code = 0
    try:
        runner.run(args.frames)
    except Chip8Error as e:
        print(f"Emulator crashed: {e}")
        exit_code = 1

    print("Execution completed!")
    emulator.print_stats()
    print(f"\nEmulator crashed: {emulator.crashed}")
    print(f"Program counter: 0x{emulator.program_counter:03X}")

    if args.ascii:
        print("\nDisplay output:")
        print(render_ascii(emulator.get_display()))

    if args.screenshot is not None:
        path = save_screenshot(emulator.get_display(), args.screenshot, scale=args.scale)
        print(f"Screenshot saved to: {path}")

    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.ipf < 1:
        parser.error("--ipf must be at least 1")
    if args.scale < 1:
        parser.error("--scale must be at least 1")

    configure_logging(args.verbose, args.debug_log)

    try:
        rom_data = load_rom_file(args.rom)
    except FileNotFoundError:
        print(f"ROM file not found: {args.rom}")
        return 1
    except OSError as e:
        print(f"Cannot read ROM file {args.rom}: {e}")
        return 1

    try:
        quirks = resolve_quirks(args)
        emulator = Chip8Emulator(rom_data, quirks=quirks, seed=args.seed)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    print(f"Loading ROM: {args.rom} ({len(rom_data)} bytes)")
    print("Quirks enabled:")
    print(describe(quirks))

    runner = FrameRunner(emulator, instructions_per_frame=args.ipf)

    if args.headless:
        return run_headless(runner, args)

    # Imported here so headless runs work on Pythons built without Tk
    from .frontend import TkFrontend

    print("Use keyboard for input (1234/QWER/ASDF/ZXCV), press ESC to exit")
    frontend = TkFrontend(runner, scale=args.scale, title=f"CHIP-8: {args.rom.name}")
    frontend.run()
    return 1 if frontend.error is not None else 0


if __name__ == "__main__":
    sys.exit(main())
