"""
Layout Records - Per-output mode/position directives
====================================================

A layout is an ordered list of OutputDirective objects. The same textual
form is used for the stored ``config`` record and for the live snapshot, so
two layouts can be compared without interpreting modes or positions.
"""

import logging
from typing import Iterable, List, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class LayoutSyntaxError(Exception):
    """Exception raised when a layout record cannot be parsed."""
    pass


@dataclass(frozen=True)
class OutputDirective:
    """Desired (or live) state of a single output."""
    output: str                     # xrandr output name (e.g., "HDMI-1")
    mode: Optional[str] = None      # "1920x1080", None when the output is off
    position: Optional[str] = None  # "0x0"

    @property
    def is_off(self) -> bool:
        return self.mode is None

    def to_lines(self) -> List[str]:
        """Render this directive in the stored text form."""
        lines = [f"output {self.output}"]
        if self.is_off:
            lines.append("off")
            return lines
        lines.append(f"mode {self.mode}")
        if self.position:
            lines.append(f"pos {self.position}")
        return lines


def format_layout(layout: Iterable[OutputDirective]) -> str:
    """
    Render a layout as the text stored in a profile's ``config`` file.

    Args:
        layout: Directives in output order

    Returns:
        One directive keyword per line, newline terminated
    """
    lines: List[str] = []
    for directive in layout:
        lines.extend(directive.to_lines())
    return "\n".join(lines) + "\n" if lines else ""


def parse_layout(text: str) -> List[OutputDirective]:
    """
    Parse the stored text form back into directives.

    Args:
        text: Contents of a ``config`` record

    Returns:
        List of OutputDirective in file order

    Raises:
        LayoutSyntaxError: On unknown keywords or incomplete output blocks
    """
    layout: List[OutputDirective] = []
    current: Optional[dict] = None

    def finish(block: Optional[dict]):
        if block is None:
            return
        if not block['off'] and block['mode'] is None:
            raise LayoutSyntaxError(f"Output {block['output']} has neither a mode nor 'off'")
        if block['off']:
            layout.append(OutputDirective(block['output']))
        else:
            layout.append(OutputDirective(block['output'], block['mode'], block['position']))

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        keyword, _, value = line.partition(' ')
        value = value.strip()

        if keyword == 'output':
            if not value:
                raise LayoutSyntaxError(f"Line {lineno}: 'output' without a name")
            finish(current)
            current = {'output': value, 'mode': None, 'position': None, 'off': False}
            continue

        if current is None:
            raise LayoutSyntaxError(f"Line {lineno}: '{keyword}' before any 'output' line")

        if keyword == 'off':
            current['off'] = True
        elif keyword == 'mode' and value:
            current['mode'] = value
        elif keyword == 'pos' and value:
            current['position'] = value
        else:
            raise LayoutSyntaxError(f"Line {lineno}: unrecognized directive '{line}'")

    finish(current)
    return layout


class LayoutSnapshotter:
    """Describes the live layout using the display-control interface."""

    def __init__(self, display):
        """
        Args:
            display: Display-control interface providing ``query()``
        """
        self.display = display

    def snapshot(self) -> List[OutputDirective]:
        """Current layout, one directive per output in reported order."""
        layout = [state.to_directive() for state in self.display.query()]
        logger.debug(f"Current layout: {[d.to_lines() for d in layout]}")
        return layout
