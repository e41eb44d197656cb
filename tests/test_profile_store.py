#!/usr/bin/env python3
"""
Tests for the on-disk profile store.
"""

import os
import stat
import sys
import tempfile
import unittest
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from monitor_layout.hooks import HookRunner
from monitor_layout.layout import OutputDirective
from monitor_layout.profile_store import (
    InvalidProfileName, MissingProfileRecord, ProfileStore,
)


DOCKED = [OutputDirective("eDP-1"), OutputDirective("HDMI-1", "1920x1080", "0x0")]


class RecordingHookRunner(HookRunner):
    """Hook runner that records calls instead of starting processes."""

    def __init__(self, status=0):
        self.status = status
        self.calls = []

    def run(self, path, *args):
        self.calls.append((Path(path), args))
        return self.status


def make_executable(path: Path, body: str = "#!/bin/sh\nexit 0\n"):
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)


class TestProfileStore(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name) / "profiles"
        self.hooks = RecordingHookRunner()
        self.store = ProfileStore(self.root, self.hooks)

    def tearDown(self):
        self._tmp.cleanup()

    def test_empty_store(self):
        self.assertEqual(self.store.list_profiles(), [])
        self.assertFalse(self.store.has_global_hook())

    def test_write_and_read_back(self):
        path = self.store.write_profile("docked", "HDMI-1:00ff", DOCKED)

        self.assertEqual(path, self.root / "docked")
        self.assertEqual((path / "setup").read_text(), "HDMI-1:00ff\n")
        self.assertEqual(
            (path / "config").read_text(),
            "output eDP-1\noff\noutput HDMI-1\nmode 1920x1080\npos 0x0\n",
        )
        self.assertEqual(self.store.read_fingerprint("docked"), "HDMI-1:00ff")
        self.assertEqual(self.store.read_layout("docked"), DOCKED)

    def test_write_overwrites_existing_records(self):
        self.store.write_profile("docked", "old", DOCKED)
        self.store.write_profile("docked", "new", DOCKED[1:])

        self.assertEqual(self.store.read_fingerprint("docked"), "new")
        self.assertEqual(self.store.read_layout("docked"), DOCKED[1:])
        # No temporary files left behind
        self.assertEqual(sorted(os.listdir(self.root / "docked")), ["config", "setup"])

    def test_list_profiles_sorted_and_skips_files_and_hidden(self):
        for name in ("mobile", "docked", "beamer"):
            self.store.write_profile(name, name, DOCKED)
        (self.root / ".cache").mkdir()
        make_executable(self.root / "postswitch")

        self.assertEqual(self.store.list_profiles(), ["beamer", "docked", "mobile"])

    def test_missing_records_read_as_empty(self):
        (self.root / "bare").mkdir(parents=True)

        self.assertEqual(self.store.read_fingerprint("bare"), "")
        self.assertEqual(self.store.read_layout("bare"), [])
        self.assertEqual(self.store.read_fingerprint("absent"), "")

    def test_malformed_layout_reads_as_empty(self):
        self.store.write_profile("broken", "fp", DOCKED)
        (self.root / "broken" / "config").write_text("pos 0x0\n")

        self.assertEqual(self.store.read_layout("broken"), [])

    def test_undecodable_records_read_as_empty(self):
        self.store.write_profile("binary", "fp", DOCKED)
        (self.root / "binary" / "setup").write_bytes(b"\xff\xfe\x00garbage")
        (self.root / "binary" / "config").write_bytes(b"output \xff\xfe\n")

        self.assertEqual(self.store.read_fingerprint("binary"), "")
        self.assertEqual(self.store.read_layout("binary"), [])

    def test_require_layout(self):
        self.store.write_profile("docked", "fp", DOCKED)
        (self.root / "empty").mkdir()

        self.assertEqual(self.store.require_layout("docked"), DOCKED)
        with self.assertRaises(MissingProfileRecord):
            self.store.require_layout("empty")
        with self.assertRaises(MissingProfileRecord):
            self.store.require_layout("absent")

    def test_invalid_names(self):
        for name in ("", ".", "..", ".hidden", "a/b"):
            with self.subTest(name=name):
                with self.assertRaises(InvalidProfileName):
                    self.store.write_profile(name, "fp", DOCKED)

    def test_remove_profile(self):
        self.store.write_profile("docked", "fp", DOCKED)

        self.assertTrue(self.store.remove_profile("docked"))
        self.assertFalse(self.store.exists("docked"))
        self.assertFalse(self.store.remove_profile("docked"))

    def test_hooks_need_to_be_executable(self):
        self.store.write_profile("docked", "fp", DOCKED)
        (self.root / "docked" / "block").write_text("#!/bin/sh\nexit 0\n")

        self.assertFalse(self.store.has_block_hook("docked"))

        make_executable(self.root / "docked" / "block")
        self.assertTrue(self.store.has_block_hook("docked"))

    def test_hooks_receive_profile_name(self):
        self.store.write_profile("docked", "fp", DOCKED)
        for path in (self.root / "docked" / "block",
                     self.root / "docked" / "postswitch",
                     self.root / "postswitch"):
            make_executable(path)

        self.assertTrue(self.store.has_profile_hook("docked"))
        self.assertTrue(self.store.has_global_hook())

        self.store.run_block_hook("docked")
        self.store.run_profile_hook("docked")
        self.store.run_global_hook("docked")

        self.assertEqual(self.hooks.calls, [
            (self.root / "docked" / "block", ("docked",)),
            (self.root / "docked" / "postswitch", ("docked",)),
            (self.root / "postswitch", ("docked",)),
        ])


class TestHookRunner(unittest.TestCase):
    """Runs real scripts through /bin/sh."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_exit_status_and_arguments(self):
        script = self.dir / "hook"
        marker = self.dir / "marker"
        make_executable(script, f'#!/bin/sh\necho "$1" > "{marker}"\nexit 3\n')

        status = HookRunner().run(script, "docked")

        self.assertEqual(status, 3)
        self.assertEqual(marker.read_text().strip(), "docked")

    def test_unstartable_hook_raises(self):
        from monitor_layout.hooks import HookError

        with self.assertRaises(HookError):
            HookRunner().run(self.dir / "missing", "docked")


if __name__ == '__main__':
    unittest.main()
