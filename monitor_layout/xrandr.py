"""
XRandR Interface - Query and apply output layouts via the xrandr tool
======================================================================

The active mode of an output is the mode line marked ``*`` in
``xrandr --query``. The ``WxH+X+Y`` geometry on the output line gives the
position; its size is only used when no mode line is marked, since for a
rotated or panned output it is not a mode name.
"""

import os
import re
import logging
import subprocess
from typing import Iterable, List, Optional
from dataclasses import dataclass

from .layout import OutputDirective

logger = logging.getLogger(__name__)

# Matches lines like:
#   "DisplayPort-0 connected primary 2560x1440+1920+0 (normal left ...) 597mm x 336mm"
#   "HDMI-1 disconnected (normal left inverted right x axis y axis)"
#   "DP-2 connected (normal left inverted right x axis y axis)"
OUTPUT_LINE_RE = re.compile(
    r'^(\S+)\s+(connected|disconnected)(?:\s+primary)?'
    r'(?:\s+(\d+)x(\d+)\+(\d+)\+(\d+))?'
)

# Matches mode lines like "   1920x1080     60.02*+  59.93"
MODE_LINE_RE = re.compile(r'^\s+(\S+)\s+(.*)$')


class DisplayCommandError(Exception):
    """Exception raised when xrandr fails or cannot be run."""
    pass


@dataclass
class OutputState:
    """One output as reported by ``xrandr --query``."""
    name: str
    connected: bool
    width: Optional[int] = None   # None when the output has no active mode
    height: Optional[int] = None
    x: int = 0
    y: int = 0
    mode: Optional[str] = None    # name of the mode line marked current

    @property
    def is_active(self) -> bool:
        return self.connected and self.width is not None and self.height is not None

    def to_directive(self) -> OutputDirective:
        """Describe this output in layout terms (inactive outputs are off)."""
        if not self.is_active:
            return OutputDirective(self.name)
        return OutputDirective(
            self.name,
            mode=self.mode or f"{self.width}x{self.height}",
            position=f"{self.x}x{self.y}",
        )


def parse_query(text: str) -> List[OutputState]:
    """
    Parse ``xrandr --query`` output into OutputState objects.

    Args:
        text: Standard output of ``xrandr --query``

    Returns:
        Outputs in the order xrandr lists them
    """
    outputs = []
    current: Optional[OutputState] = None
    for line in text.splitlines():
        if not line:
            continue
        if line[0].isspace():
            mode_match = MODE_LINE_RE.match(line)
            if current and current.is_active and current.mode is None \
                    and mode_match and '*' in mode_match.group(2):
                current.mode = mode_match.group(1)
            continue
        current = None
        match = OUTPUT_LINE_RE.match(line)
        if not match:
            continue
        connected = match.group(2) == 'connected'
        state = OutputState(name=match.group(1), connected=connected)
        if connected and match.group(3):
            state.width = int(match.group(3))
            state.height = int(match.group(4))
            state.x = int(match.group(5))
            state.y = int(match.group(6))
        outputs.append(state)
        current = state
    return outputs


def build_arguments(layout: Iterable[OutputDirective]) -> List[str]:
    """Translate a layout into xrandr arguments for a single invocation."""
    args: List[str] = []
    for directive in layout:
        args += ["--output", directive.output]
        if directive.is_off:
            args.append("--off")
            continue
        args += ["--mode", directive.mode]
        if directive.position:
            args += ["--pos", directive.position]
    return args


class XRandR:
    """
    Display-control interface backed by the xrandr command line tool.

    All output changes of a layout are passed to one xrandr call so the
    server switches every output in the same request.
    """

    def __init__(self, display: Optional[str] = None, executable: str = "xrandr"):
        """
        Args:
            display: X display to talk to (e.g., ":0"), None for $DISPLAY
            executable: xrandr binary to run
        """
        self.executable = executable
        self.environ = dict(os.environ)
        if display:
            self.environ['DISPLAY'] = display

    def _output(self, *args: str) -> str:
        command = [self.executable, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                env=self.environ,
            )
        except OSError as e:
            raise DisplayCommandError(f"Could not run {self.executable}: {e}") from e

        if result.returncode != 0:
            stderr_msg = result.stderr.strip() if result.stderr else "(no stderr)"
            logger.error(f"xrandr exit {result.returncode}: {stderr_msg}")
            raise DisplayCommandError(
                f"xrandr returned error code {result.returncode}: {stderr_msg}"
            )
        if result.stderr:
            logger.warning(f"xrandr wrote to stderr without failing: {result.stderr.strip()}")
        return result.stdout

    def query(self) -> List[OutputState]:
        """All outputs with connection state and active geometry."""
        outputs = parse_query(self._output("--query"))
        for o in outputs:
            if o.is_active:
                logger.debug(f"Output {o.name}: {o.width}x{o.height}+{o.x}+{o.y}")
            else:
                logger.debug(f"Output {o.name}: {'connected' if o.connected else 'disconnected'}, inactive")
        return outputs

    def verbose_output(self) -> str:
        """Raw ``xrandr --verbose`` text (includes EDID properties)."""
        return self._output("--verbose")

    def apply(self, layout: Iterable[OutputDirective]):
        """
        Apply a layout in one xrandr call.

        Raises:
            DisplayCommandError: If xrandr rejects the layout
        """
        args = build_arguments(layout)
        if not args:
            return
        logger.info(f"xrandr {' '.join(args)}")
        self._output(*args)
