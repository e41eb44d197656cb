"""
Configuration Management
========================
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, replace

import yaml

logger = logging.getLogger(__name__)

CONFIG_HOME = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
DEFAULT_CONFIG_DIR = CONFIG_HOME / "monitor-layout"
DEFAULT_PROFILES_DIR = DEFAULT_CONFIG_DIR / "profiles"
DEFAULT_LOG_FILE = Path.home() / ".local" / "share" / "monitor-layout" / "monitor-layout.log"
DEFAULT_IDENTITY_SOURCES = ["xlib", "xrandr", "sysfs"]


def _expand_path(value: Optional[str]) -> Optional[Path]:
    if value is None or value == "":
        return None
    return Path(os.path.expanduser(str(value)))


@dataclass
class Settings:
    """Runtime settings, built once at startup and passed to each component."""
    profiles_dir: Path = DEFAULT_PROFILES_DIR
    default_profile: Optional[str] = None
    force: bool = False
    display: Optional[str] = None          # X display, None = $DISPLAY
    log_file: Optional[Path] = DEFAULT_LOG_FILE
    identity_sources: List[str] = field(default_factory=lambda: list(DEFAULT_IDENTITY_SOURCES))

    def with_overrides(self, **overrides) -> 'Settings':
        """Copy with every non-None override applied (command-line flags)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


class Config:
    """
    Loads settings from a YAML file.

    Example ``config.yaml``::

        profiles_dir: ~/.config/monitor-layout/profiles
        default_profile: mobile
        display: ":0"
        log_file: ~/.local/share/monitor-layout/monitor-layout.log
        fingerprint:
          sources: [xlib, xrandr, sysfs]
    """

    DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to configuration file, or None for default
        """
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._data: Dict[str, Any] = {}
        self.settings = Settings()

    def load(self) -> bool:
        """
        Load configuration from file.

        Returns:
            True if configuration was loaded successfully
        """
        if not self.config_path.exists():
            logger.debug(f"Configuration file not found: {self.config_path}, using defaults")
            return False

        try:
            with open(self.config_path, 'r') as f:
                self._data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration: {e}")
            return False
        except OSError as e:
            logger.error(f"Failed to load configuration: {e}")
            return False

        if not isinstance(self._data, dict):
            logger.error(f"Configuration in {self.config_path} is not a mapping")
            self._data = {}
            return False

        self._parse_config()
        logger.debug(f"Loaded configuration from {self.config_path}")
        return True

    def _parse_config(self):
        """Parse loaded configuration data into Settings."""
        defaults = Settings()

        fingerprint = self._data.get('fingerprint') or {}
        sources = fingerprint.get('sources', defaults.identity_sources)
        if isinstance(sources, str):
            sources = [sources]

        log_file = defaults.log_file
        if 'log_file' in self._data:
            log_file = _expand_path(self._data.get('log_file'))

        self.settings = Settings(
            profiles_dir=_expand_path(self._data.get('profiles_dir')) or defaults.profiles_dir,
            default_profile=self._data.get('default_profile') or None,
            force=bool(self._data.get('force', False)),
            display=self._data.get('display') or None,
            log_file=log_file,
            identity_sources=[str(s) for s in sources],
        )

    def save(self) -> bool:
        """
        Save current settings to file.

        Returns:
            True if configuration was saved successfully
        """
        s = self.settings
        self._data = {
            'profiles_dir': str(s.profiles_dir),
            'default_profile': s.default_profile,
            'force': s.force,
            'display': s.display,
            'log_file': str(s.log_file) if s.log_file else None,
            'fingerprint': {'sources': list(s.identity_sources)},
        }
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                yaml.safe_dump(self._data, f, default_flow_style=False, sort_keys=False)
            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
            return False
