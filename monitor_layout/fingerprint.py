"""
Hardware Fingerprinting - Identify the connected displays
=========================================================

A fingerprint names every connected output together with the EDID of the
display attached to it. Modes and positions play no part, so the same
monitors produce the same fingerprint however they are arranged.

Several ways of reading EDIDs exist. They are tried in a fixed order and the
first one that returns any data is used for all outputs.
"""

import re
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from Xlib import X, display as xdisplay, error as xerror
from Xlib.ext import randr

from .xrandr import XRandR, DisplayCommandError, OUTPUT_LINE_RE

logger = logging.getLogger(__name__)

# Identity used for a connected output that has no EDID while others do
UNKNOWN_IDENTITY = "unknown"

# Longest EDID read through the X property interface, in 32-bit units
EDID_MAX_LONGS = 1024

HEX_LINE_RE = re.compile(r'^(?:[0-9a-fA-F]{2})+$')


class NoIdentityData(Exception):
    """Raised when no method yields identity data for any output."""
    pass


class IdentitySourceError(Exception):
    """Raised by an identity source that cannot be queried at all."""
    pass


class IdentitySource:
    """Base class for EDID acquisition methods."""

    name = "base"

    def read(self) -> Dict[str, bytes]:
        """
        Read identity blobs for connected outputs.

        Returns:
            Mapping of output name to EDID bytes (empty bytes if none)

        Raises:
            IdentitySourceError: If the method is unavailable
        """
        raise NotImplementedError


class XlibEdidSource(IdentitySource):
    """Reads the RandR ``EDID`` output property through python-xlib."""

    name = "xlib"

    def __init__(self, display_name: Optional[str] = None):
        self.display_name = display_name

    def read(self) -> Dict[str, bytes]:
        try:
            disp = xdisplay.Display(self.display_name)
        except xerror.DisplayError as e:
            raise IdentitySourceError(f"Cannot open X display: {e}") from e

        try:
            if not disp.has_extension('RANDR'):
                raise IdentitySourceError("X server lacks the RANDR extension")
            root = disp.screen().root
            resources = root.xrandr_get_screen_resources()
            edid_atom = disp.intern_atom('EDID')

            blobs = {}
            for output in resources.outputs:
                info = disp.xrandr_get_output_info(output, resources.config_timestamp)
                if info.connection != randr.Connected:
                    continue
                name = info.name.decode() if isinstance(info.name, bytes) else info.name
                prop = disp.xrandr_get_output_property(
                    output, edid_atom, X.AnyPropertyType, 0, EDID_MAX_LONGS
                )
                value = getattr(prop, 'value', None)
                blobs[name] = bytes(value) if value else b""
            return blobs
        except xerror.XError as e:
            raise IdentitySourceError(f"RandR request failed: {e}") from e
        finally:
            disp.close()


def parse_verbose_edids(text: str) -> Dict[str, bytes]:
    """
    Extract EDID blobs of connected outputs from ``xrandr --verbose``.

    Args:
        text: xrandr --verbose output

    Returns:
        Mapping of connected output name to EDID bytes
    """
    blobs: Dict[str, bytes] = {}
    current: Optional[str] = None
    in_edid = False

    for line in text.splitlines():
        if line and not line[0].isspace():
            in_edid = False
            match = OUTPUT_LINE_RE.match(line)
            current = match.group(1) if match and match.group(2) == 'connected' else None
            if current:
                blobs[current] = b""
            continue
        if current is None:
            continue

        stripped = line.strip()
        if in_edid:
            if HEX_LINE_RE.match(stripped):
                blobs[current] += bytes.fromhex(stripped)
                continue
            in_edid = False
        if stripped == 'EDID:':
            in_edid = True

    return blobs


class XrandrEdidSource(IdentitySource):
    """Parses the ``EDID:`` hex dump printed by ``xrandr --verbose``."""

    name = "xrandr"

    def __init__(self, xrandr: XRandR):
        self.xrandr = xrandr

    def read(self) -> Dict[str, bytes]:
        try:
            return parse_verbose_edids(self.xrandr.verbose_output())
        except DisplayCommandError as e:
            raise IdentitySourceError(str(e)) from e


class SysfsEdidSource(IdentitySource):
    """Reads ``edid`` files of connected DRM connectors from sysfs."""

    name = "sysfs"

    def __init__(self, root: Path = Path("/sys/class/drm")):
        self.root = root

    def read(self) -> Dict[str, bytes]:
        if not self.root.is_dir():
            raise IdentitySourceError(f"{self.root} does not exist")

        blobs = {}
        for connector in sorted(self.root.glob("card*-*")):
            # card0-HDMI-A-1 -> HDMI-A-1
            name = connector.name.split('-', 1)[1]
            try:
                status = (connector / "status").read_text().strip()
                if status != "connected":
                    continue
                blobs[name] = (connector / "edid").read_bytes()
            except OSError as e:
                logger.debug(f"Skipping connector {connector.name}: {e}")
        return blobs


SOURCE_NAMES = ("xlib", "xrandr", "sysfs")


def build_sources(names: Iterable[str], xrandr: XRandR,
                  display_name: Optional[str] = None) -> List[IdentitySource]:
    """
    Instantiate identity sources in the given priority order.

    Unknown names are logged and ignored.
    """
    sources: List[IdentitySource] = []
    for name in names:
        if name == "xlib":
            sources.append(XlibEdidSource(display_name))
        elif name == "xrandr":
            sources.append(XrandrEdidSource(xrandr))
        elif name == "sysfs":
            sources.append(SysfsEdidSource())
        else:
            logger.warning(f"Unknown fingerprint source '{name}' (expected one of {', '.join(SOURCE_NAMES)})")
    return sources


def format_fingerprint(blobs: Dict[str, bytes]) -> str:
    """Join ``output:hexblob`` tokens, sorted by output name, into one line."""
    tokens = []
    for output in sorted(blobs):
        identity = blobs[output].hex() or UNKNOWN_IDENTITY
        tokens.append(f"{output}:{identity}")
    return " ".join(tokens)


class Fingerprinter:
    """Computes the hardware fingerprint from a priority list of sources."""

    def __init__(self, sources: List[IdentitySource]):
        self.sources = list(sources)

    def fingerprint(self) -> str:
        """
        Compute the fingerprint of the connected displays.

        Returns:
            One-line fingerprint string

        Raises:
            NoIdentityData: If no source yields data for any output
        """
        for source in self.sources:
            try:
                blobs = source.read()
            except IdentitySourceError as e:
                logger.debug(f"Fingerprint source '{source.name}' unavailable: {e}")
                continue

            if any(blobs.values()):
                logger.debug(f"Fingerprint from '{source.name}' for outputs {sorted(blobs)}")
                return format_fingerprint(blobs)
            logger.debug(f"Fingerprint source '{source.name}' returned no identity data")

        raise NoIdentityData("No display identity information available")
