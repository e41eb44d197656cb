"""
Hook Execution - Run profile scripts as child processes
=======================================================
"""

import os
import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class HookError(Exception):
    """Exception raised when a hook script cannot be started."""
    pass


class HookRunner:
    """
    Runs block and postswitch scripts.

    Scripts inherit stdout/stderr and run to completion. Tests replace this
    with a mock so no processes are spawned.
    """

    @staticmethod
    def is_hook(path: Path) -> bool:
        """True if *path* is an executable file."""
        return path.is_file() and os.access(path, os.X_OK)

    def run(self, path: Path, *args: str) -> int:
        """
        Run a hook script.

        Args:
            path: Script to execute
            *args: Arguments passed to the script

        Returns:
            The script's exit status

        Raises:
            HookError: If the script could not be executed
        """
        command = [str(path), *args]
        logger.debug(f"Running hook: {' '.join(command)}")
        try:
            result = subprocess.run(command, check=False)
        except OSError as e:
            raise HookError(f"Failed to run hook {path}: {e}") from e
        logger.debug(f"Hook {path} exited with {result.returncode}")
        return result.returncode
