#!/usr/bin/env python3
"""
Check whether a train is blocking NW 9th & Naito from the terminal.

Usage:
    python check_status.py                          # Single check
    python check_status.py --continuous             # Keep checking every 30 seconds
    python check_status.py --continuous --interval 60 --detector darkness

In continuous mode, press Enter (or type r + Enter) to check right away.
"""

import argparse
import asyncio
import dataclasses
import sys
from datetime import datetime
from pathlib import Path

# Path resolution - get absolute paths relative to project root
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent

# Add parent directory to path for package imports when run from a checkout
sys.path.insert(0, str(PROJECT_ROOT))
from trainstatus.app import TrainStatusApp, configure_logging  # noqa: E402
from trainstatus.config import DETECTOR_NAMES, Settings  # noqa: E402
from trainstatus.errors import ConfigError  # noqa: E402
from trainstatus.status import Status  # noqa: E402

STATUS_EMOJI = {
    Status.UNKNOWN: '⚪',
    Status.CHECKING: '⏳',
    Status.CLEAR: '🟢',
    Status.BLOCKED: '🔴',
    Status.ERROR: '⚠️',
}


def print_snapshot(snapshot):
    """Controller view that writes each snapshot to stdout."""
    stamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    emoji = STATUS_EMOJI.get(snapshot.status, '⚪')

    if snapshot.status == Status.CHECKING:
        print(f"[{stamp}] {emoji} Checking...")
        return

    print(f"[{stamp}] {emoji} {snapshot.status.value.upper()}")
    if snapshot.reason:
        print(f"  {snapshot.reason}")


def print_stats(train_app):
    stats = train_app.controller.get_stats()
    print("\n" + "=" * 60)
    print("Stopped by user")
    print(f"Checks started: {stats['checks_started']}")
    print(f"Skipped (already checking): {stats['checks_skipped']}")
    print(f"Failed: {stats['checks_failed']}")
    print("=" * 60)


async def run_once(train_app):
    """Run a single check and return its snapshot."""
    train_app.controller.subscribe(print_snapshot)
    return await train_app.controller.check_now()


async def run_continuous(train_app):
    """Poll until cancelled; Enter on stdin triggers a manual check."""
    controller = train_app.controller
    controller.subscribe(print_snapshot)
    loop = asyncio.get_running_loop()

    def on_keypress():
        line = sys.stdin.readline()
        if line.strip().lower() in ('', 'r'):
            if controller.trigger() is None:
                print("  (check already in progress, ignoring)")

    keyboard = False
    try:
        loop.add_reader(sys.stdin, on_keypress)
        keyboard = True
    except (NotImplementedError, ValueError, OSError):
        print("Manual refresh key not available on this terminal")

    await train_app.start()
    try:
        await asyncio.Event().wait()
    finally:
        if keyboard:
            loop.remove_reader(sys.stdin)
        await train_app.stop()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Check whether a train is blocking NW 9th & Naito',
    )
    parser.add_argument('-c', '--continuous', action='store_true',
                        help='Keep checking on an interval')
    parser.add_argument('--interval', type=float, default=None,
                        help='Seconds between checks (default from CHECK_INTERVAL)')
    parser.add_argument('--detector', choices=DETECTOR_NAMES, default=None,
                        help='Detector to use (default from DETECTOR)')
    return parser.parse_args(argv)


def build_settings(args):
    settings = Settings.from_env()
    overrides = {}
    if args.interval is not None:
        overrides['check_interval'] = args.interval
    if args.detector is not None:
        overrides['detector'] = args.detector
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    return settings


def main(argv=None):
    args = parse_args(argv)

    try:
        settings = build_settings(args)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(settings)
    train_app = TrainStatusApp(settings)

    print("=" * 60)
    print("Train Status Checker - NW 9th & Naito")
    print(f"Detector: {train_app.detector.name}")
    if args.continuous:
        print("Mode: Continuous (Enter to refresh, Ctrl+C to stop)")
        print(f"Interval: {settings.check_interval:g} seconds")
    else:
        print("Mode: Single check")
    print("=" * 60)

    if not args.continuous:
        snapshot = asyncio.run(run_once(train_app))
        return 1 if snapshot is None or snapshot.status == Status.ERROR else 0

    try:
        asyncio.run(run_continuous(train_app))
    except KeyboardInterrupt:
        print_stats(train_app)
    return 0


if __name__ == "__main__":
    sys.exit(main())
