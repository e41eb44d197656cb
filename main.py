#!/usr/bin/env python3
"""
Monitor Layout - Automatic display layout profiles for X11
==========================================================

Save the current display layout as a profile and re-apply it automatically
whenever the same set of monitors is connected (e.g. docked vs. undocked).

Usage:
    python main.py [--change [--force] [--default NAME]]
    python main.py --save NAME | --load NAME | --remove NAME
    python main.py --fingerprint | --config

    Without an action, all profiles are listed and the one matching the
    connected hardware is marked "(detected)".

Profiles live in ~/.config/monitor-layout/profiles/<name>/:
    setup       fingerprint of the hardware the profile was saved on
    config      the layout
    block       optional script; exit status 0 means "do not select"
    postswitch  optional script run after the profile was applied

A "postswitch" script directly in the profiles directory runs after every
profile change. All scripts receive the profile name as argument.

Exit status: 0 on success, 1 if no profile matched or an operation failed.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Set up logging first
def setup_logging(debug: bool = False, log_file: Optional[Path] = None):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO

    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            print(f"Warning: cannot write log file {log_file}: {e}", file=sys.stderr)

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
    )

logger = logging.getLogger(__name__)


def build_manager(settings):
    """Create the ProfileManager for these settings."""
    from monitor_layout.profile_manager import ProfileManager
    return ProfileManager(settings)


def list_profiles(manager) -> int:
    """Print all profiles, marking the detected and blocked ones."""
    statuses = manager.list_status()
    if not statuses:
        print(f"No profiles saved in {manager.store.directory}")
        return 0

    for status in statuses:
        marker = ""
        if status.blocked:
            marker = " (blocked)"
        elif status.detected:
            marker = " (detected)"
        print(f"{status.name}{marker}")
    return 0


def change_profile(manager, force: bool, default: Optional[str]) -> int:
    """Detect the connected hardware and apply the matching profile."""
    from monitor_layout.profile_manager import ApplyStatus, ProfileEvent, SelectionKind

    markers = {
        ProfileEvent.BLOCKED: " (blocked)",
        ProfileEvent.DETECTED: " (detected)",
        ProfileEvent.MISMATCHED: "",
    }

    def report(name, event):
        if event in markers:
            print(f"{name}{markers[event]}")

    manager.selector.add_event_callback(report)
    selection, result = manager.change(force=force, default=default)

    if selection.kind == SelectionKind.NO_MATCH:
        print("No matching profile found", file=sys.stderr)
        return 1

    if selection.kind == SelectionKind.FALLBACK:
        if result.status == ApplyStatus.NOTHING_TO_APPLY:
            print(f"No matching profile found and default profile '{selection.profile}' "
                  f"has no layout", file=sys.stderr)
            return 1
        print(f" -> no profile detected, using default '{selection.profile}'")

    if result.status == ApplyStatus.APPLIED:
        print(f" -> loaded profile '{result.profile}'")
    elif result.status == ApplyStatus.SKIPPED_IDEMPOTENT:
        print(f" -> profile '{result.profile}' is already active")
    elif result.status == ApplyStatus.NOTHING_TO_APPLY:
        print(f" -> profile '{result.profile}' has no layout, nothing changed")
    else:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    return 0


def load_profile(manager, name: str) -> int:
    """Apply a profile regardless of the connected hardware."""
    from monitor_layout.profile_store import MissingProfileRecord

    try:
        result = manager.load(name)
    except MissingProfileRecord as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not result.ok:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    print(f" -> loaded profile '{name}'")
    return 0


def save_profile(manager, name: str) -> int:
    """Save the current hardware and layout as a profile."""
    from monitor_layout.fingerprint import NoIdentityData
    from monitor_layout.xrandr import DisplayCommandError

    try:
        path = manager.save(name)
    except NoIdentityData as e:
        print(f"Error: {e}; cannot save a profile without a fingerprint", file=sys.stderr)
        return 1
    except DisplayCommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Saved current configuration as profile '{name}' ({path})")
    return 0


def remove_profile(manager, name: str) -> int:
    """Delete a saved profile."""
    if not manager.remove(name):
        print(f"Error: profile '{name}' does not exist", file=sys.stderr)
        return 1
    print(f"Removed profile '{name}'")
    return 0


def show_fingerprint(manager) -> int:
    """Print the fingerprint of the connected hardware."""
    from monitor_layout.fingerprint import NoIdentityData

    try:
        print(manager.fingerprinter.fingerprint())
    except NoIdentityData as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def show_config(manager) -> int:
    """Print the current layout in profile format."""
    from monitor_layout.xrandr import DisplayCommandError

    try:
        sys.stdout.write(manager.current_layout_text())
    except DisplayCommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Monitor Layout - automatic display layout profiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        '--change', '-c',
        action='store_true',
        help='Apply the profile matching the connected displays'
    )
    actions.add_argument(
        '--save', '-s',
        metavar='NAME',
        help='Save the current setup as profile NAME'
    )
    actions.add_argument(
        '--load', '-l',
        metavar='NAME',
        help='Apply profile NAME unconditionally'
    )
    actions.add_argument(
        '--remove', '-r',
        metavar='NAME',
        help='Delete profile NAME'
    )
    actions.add_argument(
        '--fingerprint',
        action='store_true',
        help='Print the fingerprint of the connected displays and exit'
    )
    actions.add_argument(
        '--config',
        action='store_true',
        help='Print the current layout in profile format and exit'
    )

    parser.add_argument(
        '--force',
        action='store_true',
        default=None,
        help='With --change, apply even if the layout is already active'
    )
    parser.add_argument(
        '--default', '-d',
        metavar='NAME',
        help='Profile to use when no profile matches'
    )
    parser.add_argument(
        '--profiles',
        type=Path,
        metavar='DIR',
        help='Directory holding the profiles'
    )
    parser.add_argument(
        '--settings',
        type=Path,
        metavar='PATH',
        help='Path to the settings file'
    )
    parser.add_argument(
        '--display',
        metavar='DISPLAY',
        help='X display to use (default: $DISPLAY)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    from monitor_layout.config import Config
    from monitor_layout.profile_store import InvalidProfileName

    args = parse_args(argv)

    config = Config(args.settings)
    config.load()
    settings = config.settings.with_overrides(
        profiles_dir=args.profiles,
        default_profile=args.default,
        force=args.force,
        display=args.display,
    )

    # Read-only queries do not go to the log file
    log_file = None if (args.fingerprint or args.config) else settings.log_file
    setup_logging(args.debug, log_file)

    manager = build_manager(settings)

    try:
        if args.fingerprint:
            return show_fingerprint(manager)
        if args.config:
            return show_config(manager)
        if args.save is not None:
            return save_profile(manager, args.save)
        if args.load is not None:
            return load_profile(manager, args.load)
        if args.remove is not None:
            return remove_profile(manager, args.remove)
        if args.change:
            return change_profile(manager, settings.force, settings.default_profile)
        return list_profiles(manager)
    except InvalidProfileName as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
