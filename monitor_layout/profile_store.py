"""
Profile Store - Profile directories on disk
===========================================

Each profile is a directory named after the profile::

    <store>/<name>/setup        fingerprint, one line
    <store>/<name>/config       layout record
    <store>/<name>/block        optional block predicate
    <store>/<name>/postswitch   optional profile hook
    <store>/postswitch          optional global hook
"""

import os
import shutil
import logging
import tempfile
from pathlib import Path
from typing import List, Optional

from .hooks import HookRunner
from .layout import OutputDirective, LayoutSyntaxError, format_layout, parse_layout

logger = logging.getLogger(__name__)

SETUP_FILE = "setup"
CONFIG_FILE = "config"
BLOCK_HOOK = "block"
POSTSWITCH_HOOK = "postswitch"


class InvalidProfileName(Exception):
    """Exception raised for names that cannot be used as a directory."""
    pass


class MissingProfileRecord(Exception):
    """Exception raised when a profile lacks its setup or config record."""
    pass


def _atomic_write(path: Path, text: str):
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        os.unlink(tmp_name)
        raise


class ProfileStore:
    """Reads and writes profile directories."""

    def __init__(self, directory: Path, hook_runner: Optional[HookRunner] = None):
        """
        Args:
            directory: Store root holding one sub-directory per profile
            hook_runner: Executes hook scripts (default: real processes)
        """
        self.directory = Path(directory)
        self.hook_runner = hook_runner or HookRunner()

    def profile_path(self, name: str) -> Path:
        """
        Directory of a profile.

        Raises:
            InvalidProfileName: If *name* is not a plain directory name
        """
        if not name or name.startswith('.') or '/' in name or '\0' in name:
            raise InvalidProfileName(f"Invalid profile name: {name!r}")
        return self.directory / name

    def list_profiles(self) -> List[str]:
        """Profile names in sorted order."""
        if not self.directory.is_dir():
            return []
        return sorted(
            entry.name for entry in self.directory.iterdir()
            if entry.is_dir() and not entry.name.startswith('.')
        )

    def exists(self, name: str) -> bool:
        return self.profile_path(name).is_dir()

    def read_fingerprint(self, name: str) -> str:
        """Stored fingerprint, or "" when the setup record is missing or unreadable."""
        path = self.profile_path(name) / SETUP_FILE
        try:
            return path.read_text(encoding='utf-8').strip()
        except OSError:
            logger.debug(f"Profile '{name}' has no setup record")
            return ""
        except UnicodeDecodeError as e:
            logger.error(f"Profile '{name}' has an unreadable setup record: {e}")
            return ""

    def read_layout(self, name: str) -> List[OutputDirective]:
        """Stored layout, or [] when the config record is missing or unreadable."""
        path = self.profile_path(name) / CONFIG_FILE
        try:
            text = path.read_text(encoding='utf-8')
        except OSError:
            logger.debug(f"Profile '{name}' has no config record")
            return []
        except UnicodeDecodeError as e:
            logger.error(f"Profile '{name}' has an unreadable config record: {e}")
            return []
        try:
            return parse_layout(text)
        except LayoutSyntaxError as e:
            logger.error(f"Profile '{name}' has a malformed config record: {e}")
            return []

    def require_layout(self, name: str) -> List[OutputDirective]:
        """
        Stored layout of a profile that must be applicable.

        Raises:
            MissingProfileRecord: If the profile or its layout is missing
        """
        if not self.exists(name):
            raise MissingProfileRecord(f"Profile '{name}' does not exist")
        layout = self.read_layout(name)
        if not layout:
            raise MissingProfileRecord(f"Profile '{name}' has no usable config record")
        return layout

    def write_profile(self, name: str, fingerprint: str, layout: List[OutputDirective]) -> Path:
        """
        Create or overwrite a profile. The setup record is written first.

        Returns:
            The profile directory
        """
        path = self.profile_path(name)
        path.mkdir(parents=True, exist_ok=True)
        _atomic_write(path / SETUP_FILE, fingerprint.strip() + "\n")
        _atomic_write(path / CONFIG_FILE, format_layout(layout))
        logger.info(f"Saved profile '{name}' to {path}")
        return path

    def remove_profile(self, name: str) -> bool:
        """Delete a profile directory. Returns True if it existed."""
        path = self.profile_path(name)
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        logger.info(f"Removed profile '{name}'")
        return True

    # Hooks

    def has_block_hook(self, name: str) -> bool:
        return self.hook_runner.is_hook(self.profile_path(name) / BLOCK_HOOK)

    def run_block_hook(self, name: str) -> int:
        return self.hook_runner.run(self.profile_path(name) / BLOCK_HOOK, name)

    def has_profile_hook(self, name: str) -> bool:
        return self.hook_runner.is_hook(self.profile_path(name) / POSTSWITCH_HOOK)

    def run_profile_hook(self, name: str) -> int:
        return self.hook_runner.run(self.profile_path(name) / POSTSWITCH_HOOK, name)

    def has_global_hook(self) -> bool:
        return self.hook_runner.is_hook(self.directory / POSTSWITCH_HOOK)

    def run_global_hook(self, name: str) -> int:
        """Run the store-wide postswitch hook for the profile just applied."""
        return self.hook_runner.run(self.directory / POSTSWITCH_HOOK, name)
