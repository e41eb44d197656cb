#!/usr/bin/env python3
"""
Tests for the command-line interface.

The ProfileManager is real; xrandr and fingerprinting are mocked.
"""

import io
import sys
import tempfile
import unittest
from unittest.mock import Mock, patch
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from monitor_layout.fingerprint import NoIdentityData
from monitor_layout.hooks import HookRunner
from monitor_layout.layout import OutputDirective
from monitor_layout.profile_manager import ProfileManager
from monitor_layout.profile_store import ProfileStore
from monitor_layout.xrandr import OutputState


class SilentHookRunner(HookRunner):
    def run(self, path, *args):
        return 1


class TestMain(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        tmp = Path(self._tmp.name)
        self.root = tmp / "profiles"
        self.settings_file = tmp / "config.yaml"
        self.settings_file.write_text(f"profiles_dir: {self.root}\nlog_file: null\n")

        self.store = ProfileStore(self.root, SilentHookRunner())
        self.store.write_profile("mobile", "X", [OutputDirective("eDP-1", "1920x1080", "0x0")])
        self.store.write_profile("docked", "Y", [
            OutputDirective("eDP-1"), OutputDirective("HDMI-1", "1920x1080", "0x0"),
        ])

        self.display = Mock()
        self.display.query.return_value = [
            OutputState("eDP-1", connected=True, width=1920, height=1080),
        ]
        self.fingerprinter = Mock()
        self.fingerprinter.fingerprint.return_value = "Y"
        self.seen_settings = []

        patcher = patch("main.setup_logging")
        patcher.start()
        self.addCleanup(patcher.stop)
        patcher = patch("main.build_manager", side_effect=self._build_manager)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self._tmp.cleanup()

    def _build_manager(self, settings):
        self.seen_settings.append(settings)
        return ProfileManager(settings, display=self.display, store=self.store,
                              fingerprinter=self.fingerprinter)

    def run_main(self, *argv):
        """Run main() and return (exit status, stdout, stderr)."""
        out, err = io.StringIO(), io.StringIO()
        with patch("sys.stdout", out), patch("sys.stderr", err):
            status = main.main(["--settings", str(self.settings_file), *argv])
        return status, out.getvalue(), err.getvalue()

    def test_listing_marks_detected_profile(self):
        status, out, _ = self.run_main()

        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), ["docked (detected)", "mobile"])

    def test_listing_marks_blocked_profile(self):
        block = self.root / "docked" / "block"
        block.write_text("#!/bin/sh\nexit 0\n")
        block.chmod(0o755)
        self.store.hook_runner = HookRunner()

        status, out, _ = self.run_main()

        self.assertEqual(status, 0)
        self.assertEqual(out.splitlines(), ["docked (blocked)", "mobile"])

    def test_change_applies_match(self):
        status, out, _ = self.run_main("--change")

        self.assertEqual(status, 0)
        self.assertIn("docked (detected)", out)
        self.assertIn("loaded profile 'docked'", out)
        self.display.apply.assert_called_once()

    def test_change_already_active(self):
        self.fingerprinter.fingerprint.return_value = "X"

        status, out, _ = self.run_main("-c")

        self.assertEqual(status, 0)
        self.assertIn("already active", out)
        self.display.apply.assert_not_called()

    def test_change_force(self):
        self.fingerprinter.fingerprint.return_value = "X"

        status, _, _ = self.run_main("--change", "--force")

        self.assertEqual(status, 0)
        self.display.apply.assert_called_once()

    def test_change_without_match_fails(self):
        self.fingerprinter.fingerprint.return_value = "Z"

        status, _, err = self.run_main("--change")

        self.assertEqual(status, 1)
        self.assertIn("No matching profile", err)
        self.display.apply.assert_not_called()

    def test_change_with_default(self):
        self.fingerprinter.fingerprint.return_value = "Z"

        status, out, _ = self.run_main("--change", "--default", "docked")

        self.assertEqual(status, 0)
        self.assertIn("using default 'docked'", out)
        self.display.apply.assert_called_once()

    def test_change_with_missing_default_fails(self):
        self.fingerprinter.fingerprint.return_value = "Z"

        status, _, err = self.run_main("--change", "--default", "nonexistent")

        self.assertEqual(status, 1)
        self.assertIn("'nonexistent'", err)
        self.display.apply.assert_not_called()

    def test_change_with_default_without_layout_fails(self):
        self.fingerprinter.fingerprint.return_value = "Z"
        (self.root / "mobile" / "config").unlink()

        status, _, _ = self.run_main("--change", "--default", "mobile")

        self.assertEqual(status, 1)
        self.display.apply.assert_not_called()

    def test_empty_profile_names_are_rejected(self):
        for option in ("--save", "--load", "--remove"):
            with self.subTest(option=option):
                status, out, err = self.run_main(option, "")

                self.assertEqual(status, 1)
                self.assertIn("Invalid profile name", err)
                self.assertNotIn("(detected)", out)

    def test_save(self):
        self.fingerprinter.fingerprint.return_value = "W"

        status, out, _ = self.run_main("--save", "beamer")

        self.assertEqual(status, 0)
        self.assertEqual(self.store.read_fingerprint("beamer"), "W")
        self.assertIn("beamer", out)

    def test_save_without_fingerprint(self):
        self.fingerprinter.fingerprint.side_effect = NoIdentityData("no EDID")

        status, _, err = self.run_main("-s", "beamer")

        self.assertEqual(status, 1)
        self.assertIn("no EDID", err)
        self.assertFalse(self.store.exists("beamer"))

    def test_load(self):
        status, _, _ = self.run_main("--load", "mobile")

        self.assertEqual(status, 0)
        self.display.apply.assert_called_once()

    def test_load_missing_profile(self):
        status, _, err = self.run_main("--load", "absent")

        self.assertEqual(status, 1)
        self.assertIn("absent", err)

    def test_remove(self):
        status, _, _ = self.run_main("--remove", "mobile")
        self.assertEqual(status, 0)
        self.assertFalse(self.store.exists("mobile"))

        status, _, _ = self.run_main("--remove", "mobile")
        self.assertEqual(status, 1)

    def test_invalid_profile_name(self):
        status, _, err = self.run_main("--save", "../escape")

        self.assertEqual(status, 1)
        self.assertIn("Invalid profile name", err)

    def test_fingerprint(self):
        status, out, _ = self.run_main("--fingerprint")

        self.assertEqual(status, 0)
        self.assertEqual(out, "Y\n")

    def test_fingerprint_unknown_hardware(self):
        self.fingerprinter.fingerprint.side_effect = NoIdentityData("no EDID")

        status, _, _ = self.run_main("--fingerprint")

        self.assertEqual(status, 1)

    def test_config_prints_current_layout(self):
        status, out, _ = self.run_main("--config")

        self.assertEqual(status, 0)
        self.assertEqual(out, "output eDP-1\nmode 1920x1080\npos 0x0\n")

    def test_command_line_overrides_settings_file(self):
        other = Path(self._tmp.name) / "other"

        self.run_main("--profiles", str(other), "--display", ":3")

        settings = self.seen_settings[-1]
        self.assertEqual(settings.profiles_dir, other)
        self.assertEqual(settings.display, ":3")
        self.assertFalse(settings.force)
        self.assertIsNone(settings.log_file)

    def test_actions_are_exclusive(self):
        with patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                main.parse_args(["--save", "a", "--load", "b"])


if __name__ == '__main__':
    unittest.main()
