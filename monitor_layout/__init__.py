"""
Monitor Layout - Automatic display layout profiles for X11
==========================================================

Save the current multi-monitor layout as a named profile and have it applied
again whenever the same displays are connected:
- EDID based fingerprint of the connected hardware
- First-match profile selection with block scripts and a default fallback
- Idempotent, single-call xrandr application
- Postswitch hooks to notify other software
"""

__version__ = "1.0.0"
__author__ = "Monitor Layout"

from .config import Config, Settings
from .fingerprint import Fingerprinter, NoIdentityData
from .profile_manager import ProfileManager
from .profile_store import ProfileStore
from .xrandr import XRandR

__all__ = [
    "Config",
    "Settings",
    "Fingerprinter",
    "NoIdentityData",
    "ProfileManager",
    "ProfileStore",
    "XRandR",
]
