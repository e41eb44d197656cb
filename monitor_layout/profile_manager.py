"""
Profile Manager - Match the connected hardware to a profile and apply it
========================================================================
"""

import logging
from enum import Enum
from typing import Callable, List, Optional, Tuple
from dataclasses import dataclass

from .config import Settings
from .fingerprint import Fingerprinter, NoIdentityData, build_sources
from .hooks import HookError, HookRunner
from .layout import LayoutSnapshotter, format_layout
from .profile_store import ProfileStore
from .xrandr import XRandR, DisplayCommandError

logger = logging.getLogger(__name__)


class ProfileEvent(Enum):
    """Events reported while profiles are scanned."""
    CONSIDERED = "considered"
    BLOCKED = "blocked"
    MISMATCHED = "mismatched"
    DETECTED = "detected"


class SelectionKind(Enum):
    MATCHED = "matched"
    FALLBACK = "fallback"
    NO_MATCH = "no-match"


@dataclass
class Selection:
    """Outcome of a selection pass."""
    kind: SelectionKind
    profile: Optional[str] = None


@dataclass
class ProfileStatus:
    """A profile as shown in the listing."""
    name: str
    detected: bool = False
    blocked: bool = False


class ApplyStatus(Enum):
    APPLIED = "applied"
    SKIPPED_IDEMPOTENT = "skipped"
    NOTHING_TO_APPLY = "nothing"
    FAILED = "failed"


@dataclass
class ApplyResult:
    """Outcome of applying a profile."""
    status: ApplyStatus
    profile: str
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != ApplyStatus.FAILED


class BlockGate:
    """
    Decides whether a profile is excluded from automatic selection.

    A profile's ``block`` script is run with the profile name. Exit status 0
    means the profile IS blocked; any other status means it is not.
    """

    def __init__(self, store: ProfileStore):
        self.store = store

    def is_blocked(self, name: str) -> bool:
        if not self.store.has_block_hook(name):
            return False
        try:
            status = self.store.run_block_hook(name)
        except HookError as e:
            logger.warning(f"Block hook of profile '{name}' failed, treating as not blocked: {e}")
            return False
        logger.debug(f"Block hook of profile '{name}' exited with {status}")
        return status == 0


class ProfileSelector:
    """Linear scan of stored profiles, first fingerprint match wins."""

    def __init__(self, store: ProfileStore, gate: Optional[BlockGate] = None):
        self.store = store
        self.gate = gate or BlockGate(store)
        self._event_callbacks: List[Callable[[str, ProfileEvent], None]] = []

    def add_event_callback(self, callback: Callable[[str, ProfileEvent], None]):
        """Register a callback receiving (profile name, event) pairs."""
        self._event_callbacks.append(callback)

    def _emit(self, name: str, event: ProfileEvent):
        logger.debug(f"Profile '{name}': {event.value}")
        for callback in self._event_callbacks:
            callback(name, event)

    def _matches(self, name: str, current_fingerprint: Optional[str]) -> bool:
        stored = self.store.read_fingerprint(name)
        if not stored or current_fingerprint is None:
            return False
        return stored == current_fingerprint

    def select(self, current_fingerprint: Optional[str], default: Optional[str] = None) -> Selection:
        """
        Pick the profile for the current hardware.

        Args:
            current_fingerprint: Fingerprint of the connected displays, None if unknown
            default: Profile to fall back to when nothing matches

        Returns:
            Selection (matched profile, fallback, or no match)
        """
        for name in self.store.list_profiles():
            self._emit(name, ProfileEvent.CONSIDERED)
            if self.gate.is_blocked(name):
                self._emit(name, ProfileEvent.BLOCKED)
                continue
            if self._matches(name, current_fingerprint):
                self._emit(name, ProfileEvent.DETECTED)
                return Selection(SelectionKind.MATCHED, name)
            self._emit(name, ProfileEvent.MISMATCHED)

        if default:
            logger.info(f"No profile matched, falling back to '{default}'")
            return Selection(SelectionKind.FALLBACK, default)
        return Selection(SelectionKind.NO_MATCH)

    def detect(self, current_fingerprint: Optional[str]) -> List[ProfileStatus]:
        """Status of every profile; only the first match is marked detected."""
        statuses = []
        found = False
        for name in self.store.list_profiles():
            status = ProfileStatus(name)
            if self.gate.is_blocked(name):
                status.blocked = True
            elif not found and self._matches(name, current_fingerprint):
                status.detected = found = True
            statuses.append(status)
        return statuses


class LayoutApplier:
    """Applies a stored layout and runs postswitch hooks."""

    def __init__(self, store: ProfileStore, display: XRandR,
                 snapshotter: Optional[LayoutSnapshotter] = None):
        self.store = store
        self.display = display
        self.snapshotter = snapshotter or LayoutSnapshotter(display)

    def apply(self, name: str, force: bool = False) -> ApplyResult:
        """
        Apply profile *name*.

        Args:
            name: Profile to apply
            force: Apply even if the current layout already equals the profile's

        Returns:
            ApplyResult
        """
        layout = self.store.read_layout(name)
        if not layout:
            logger.warning(f"Profile '{name}' has no layout to apply")
            return ApplyResult(ApplyStatus.NOTHING_TO_APPLY, name)

        try:
            if not force and self.snapshotter.snapshot() == layout:
                logger.info(f"Profile '{name}' is already active")
                return ApplyResult(ApplyStatus.SKIPPED_IDEMPOTENT, name)

            logger.info(f"Loading profile '{name}'")
            self.display.apply(layout)
        except DisplayCommandError as e:
            logger.error(f"Failed to apply profile '{name}': {e}")
            return ApplyResult(ApplyStatus.FAILED, name, str(e))

        self._run_postswitch_hooks(name)
        return ApplyResult(ApplyStatus.APPLIED, name)

    def _run_postswitch_hooks(self, name: str):
        """Profile hook first, then the global hook. Failures are only logged."""
        hooks = [
            ("profile", self.store.has_profile_hook(name), lambda: self.store.run_profile_hook(name)),
            ("global", self.store.has_global_hook(), lambda: self.store.run_global_hook(name)),
        ]
        for scope, present, run in hooks:
            if not present:
                continue
            try:
                status = run()
            except HookError as e:
                logger.warning(f"{scope.capitalize()} postswitch hook failed: {e}")
                continue
            if status != 0:
                logger.warning(f"{scope.capitalize()} postswitch hook exited with {status}")


class ProfileManager:
    """
    Ties fingerprinting, selection and application together.

    Every collaborator can be injected; defaults are built from *settings*.
    """

    def __init__(
        self,
        settings: Settings,
        display: Optional[XRandR] = None,
        store: Optional[ProfileStore] = None,
        fingerprinter: Optional[Fingerprinter] = None,
        hook_runner: Optional[HookRunner] = None,
    ):
        self.settings = settings
        self.display = display or XRandR(settings.display)
        self.store = store or ProfileStore(settings.profiles_dir, hook_runner)
        self.fingerprinter = fingerprinter or Fingerprinter(
            build_sources(settings.identity_sources, self.display, settings.display)
        )
        self.snapshotter = LayoutSnapshotter(self.display)
        self.selector = ProfileSelector(self.store)
        self.applier = LayoutApplier(self.store, self.display, self.snapshotter)

    def current_fingerprint(self) -> Optional[str]:
        """Fingerprint of the connected displays, or None if unknown."""
        try:
            return self.fingerprinter.fingerprint()
        except NoIdentityData as e:
            logger.warning(f"Current display configuration unknown: {e}")
            return None

    def current_layout_text(self) -> str:
        return format_layout(self.snapshotter.snapshot())

    def list_status(self) -> List[ProfileStatus]:
        return self.selector.detect(self.current_fingerprint())

    def change(self, force: Optional[bool] = None,
               default: Optional[str] = None) -> Tuple[Selection, Optional[ApplyResult]]:
        """
        Detect the hardware and apply the matching (or default) profile.

        Returns:
            The selection and, unless nothing was selected, the apply result
        """
        force = self.settings.force if force is None else force
        default = default or self.settings.default_profile

        selection = self.selector.select(self.current_fingerprint(), default)
        if selection.kind == SelectionKind.NO_MATCH:
            logger.info("No matching profile found")
            return selection, None
        return selection, self.applier.apply(selection.profile, force=force)

    def load(self, name: str) -> ApplyResult:
        """
        Apply a named profile unconditionally.

        Raises:
            MissingProfileRecord: If the profile has no layout
        """
        self.store.require_layout(name)
        return self.applier.apply(name, force=True)

    def save(self, name: str):
        """
        Record the current fingerprint and layout as profile *name*.

        Raises:
            NoIdentityData: If the hardware cannot be fingerprinted
            DisplayCommandError: If the current layout cannot be read
        """
        fingerprint = self.fingerprinter.fingerprint()
        layout = self.snapshotter.snapshot()
        return self.store.write_profile(name, fingerprint, layout)

    def remove(self, name: str) -> bool:
        return self.store.remove_profile(name)
