#!/usr/bin/env python3
"""
Stillwatch - Main Entry Point

Watches a webcam during a randomized countdown session. Breaking stillness
(or leaving the zone) adds time to the countdown; random praise and
attention checks keep the subject honest.

Usage:
    python main.py                       # Configured range (see config.py / .env)
    python main.py --max 10              # Anything from 1 to 10 minutes
    python main.py --min 5 --max 5       # Exactly 5 minutes
    python main.py --backend keypoint --attention-checks
"""

import argparse
import asyncio
import logging
import random
import sys
from dataclasses import replace
from typing import Dict

import config
from camera import create_signal_source
from core.engine import SessionEngine
from core.errors import InputUnavailable, InvalidConfig
from core.penalty import make_bands
from core.runner import SessionRunner
from core.settings import SessionSettings
from narration import create_narrator
from tracking.analytics import format_clock, generate_summary_text

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Suppress noisy third-party library logs
logging.getLogger("comtypes").setLevel(logging.WARNING)


def build_settings(args: argparse.Namespace) -> SessionSettings:
    """
    Apply command-line overrides on top of the configured settings.

    Raises:
        InvalidConfig: If the combination is invalid.
    """
    settings = SessionSettings.from_config()
    overrides = {}

    if args.unit:
        overrides["duration_unit"] = args.unit
    if args.backend:
        overrides["backend"] = args.backend
    if args.escalating:
        overrides["penalty_bands"] = make_bands(config.PENALTY_BANDS_ESCALATING)
    if args.unbounded:
        overrides["bounded"] = False
    if args.attention_checks:
        overrides["attention_checks_enabled"] = True
    if args.grace is not None:
        overrides["grace_seconds"] = args.grace

    settings = replace(settings, **overrides)
    settings.validate()
    return settings


class ConsoleDisplay:
    """Renders engine status on a single terminal line."""

    def __init__(self):
        self._last_line = ""

    def render(self, status: Dict) -> None:
        state = status["state"]
        if state == "grace":
            line = f"Get ready... {status['grace_remaining']}s"
        else:
            marker = "✓" if status["compliant"] else "✗"
            line = (f"Time Remaining: {format_clock(status['remaining_seconds'])}  "
                    f"[{state}] {marker}  violations: {status['violations']}")
            if status["attention_target"]:
                x, y = status["attention_target"]
                line += f"  target: ({x:.2f}, {y:.2f})"

        if line != self._last_line:
            sys.stdout.write("\r" + line.ljust(len(self._last_line)))
            sys.stdout.flush()
            self._last_line = line

    def finish(self) -> None:
        if self._last_line:
            sys.stdout.write("\n")
            self._last_line = ""


def run_cli(args: argparse.Namespace) -> int:
    """Run one session in the terminal. Returns the process exit code."""
    try:
        settings = build_settings(args)
    except InvalidConfig as e:
        print(f"\n❌ Invalid configuration: {e}")
        return 2

    rng = random.Random(args.seed) if args.seed is not None else random.Random()
    engine = SessionEngine(
        settings=settings,
        source=create_signal_source(settings.backend, settings.zone),
        narrator=create_narrator(False if args.silent else None),
        rng=rng,
    )

    display = ConsoleDisplay()
    engine.on_display = display.render
    engine.on_error = lambda error_type, message: logger.error(f"{error_type}: {message}")

    print("\n" + "=" * 60)
    print("🎯 Stillwatch")
    print("=" * 60)
    print("\nPress Ctrl+C to end the session early.\n")

    runner = SessionRunner(engine)
    try:
        asyncio.run(runner.run(args.min, args.max))
    except InvalidConfig as e:
        print(f"\n❌ Invalid session length: {e}")
        return 2
    except InputUnavailable as e:
        print(f"\n❌ Could not start: {e}")
        return 1
    except KeyboardInterrupt:
        # asyncio.run() cancels the runner, which normally stops the session already
        engine.stop_session()
        print("\n\n⏸️  Session ended early")
    finally:
        display.finish()

    if engine.last_summary:
        print("\n" + generate_summary_text(engine.last_summary))
    return 0


def main():
    """Main entry point - parses arguments and runs a session."""
    parser = argparse.ArgumentParser(
        description="Stillwatch - webcam-monitored countdown sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --max 10              Random length between 1 and 10 minutes
  python main.py --min 5 --max 8       Random length between 5 and 8 minutes
  python main.py --min 90 --unit seconds
        """
    )
    parser.add_argument("--min", type=int, help="Minimum session length")
    parser.add_argument("--max", type=int, help="Maximum session length")
    parser.add_argument("--unit", choices=sorted(config.UNIT_SECONDS), help="Duration unit")
    parser.add_argument("--backend", choices=["motion", "keypoint"], help="Signal backend")
    parser.add_argument("--escalating", action="store_true",
                        help="Use escalating penalty bands instead of the fixed band")
    parser.add_argument("--unbounded", action="store_true",
                        help="Let penalties push the countdown past the maximum")
    parser.add_argument("--attention-checks", action="store_true",
                        help="Enable random attention checks (keypoint backend)")
    parser.add_argument("--grace", type=int, help="Grace countdown in seconds")
    parser.add_argument("--silent", action="store_true", help="Log narration instead of speaking")
    parser.add_argument("--seed", type=int, help="Seed the session's random source")

    args = parser.parse_args()

    try:
        sys.exit(run_cli(args))
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
