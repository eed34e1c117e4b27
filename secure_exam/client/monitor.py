"""
Integrity monitor for the in-progress phase.

``IntegrityMonitor.armed()`` attaches every listener for the lifetime of the
block. The first integrity signal trips the monitor and calls
``on_violation`` once with the reason; later signals are ignored until the
monitor is re-armed.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from secure_exam.client.events import BrowserDocument, BrowserEvent, BrowserWindow, Bindings, listening

logger = logging.getLogger(__name__)

TAB_SWITCH = "Tab switch detected"
FOCUS_LOST = "Browser focus lost"
FULLSCREEN_EXITED = "Exited fullscreen mode"
RESTRICTED_SHORTCUT = "Restricted keyboard shortcut"
TIME_ELAPSED = "Exam time elapsed"

RESTRICTED_INPUT_EVENTS = ("copy", "cut", "paste", "contextmenu", "selectstart", "dragstart")
BLOCKED_KEYS = frozenset({"F12", "PrintScreen"})
CTRL_KEYS = frozenset("cvxspar")
CTRL_SHIFT_KEYS = frozenset("IJCK")
ALT_KEYS = frozenset({"Tab", "F4"})


def is_restricted_keystroke(event: BrowserEvent) -> bool:
    key = event.key or ""
    if key in BLOCKED_KEYS:
        return True
    if (event.ctrl or event.meta) and key.lower() in CTRL_KEYS:
        return True
    if event.ctrl and event.shift and key.upper() in CTRL_SHIFT_KEYS:
        return True
    return event.alt and key in ALT_KEYS


def _cancel(event: BrowserEvent) -> None:
    event.prevent_default()
    event.stop_propagation()


class IntegrityMonitor:
    def __init__(
        self,
        document: BrowserDocument,
        window: BrowserWindow,
        on_violation: Callable[[str], None],
    ):
        self.document = document
        self.window = window
        self.on_violation = on_violation
        self.tripped = False

    def _trip(self, reason: str) -> None:
        if self.tripped:
            return
        self.tripped = True
        logger.warning("Integrity signal: %s", reason)
        self.on_violation(reason)

    def _on_visibility_change(self, event: BrowserEvent) -> None:
        if self.document.hidden:
            self._trip(TAB_SWITCH)

    def _on_blur(self, event: BrowserEvent) -> None:
        self._trip(FOCUS_LOST)

    def _on_fullscreen_change(self, event: BrowserEvent) -> None:
        if self.document.fullscreen_element is None:
            self._trip(FULLSCREEN_EXITED)

    def _on_keydown(self, event: BrowserEvent) -> None:
        if is_restricted_keystroke(event):
            _cancel(event)
            self._trip(RESTRICTED_SHORTCUT)

    def bindings(self) -> Bindings:
        bindings = Bindings()
        for event_type in RESTRICTED_INPUT_EVENTS:
            bindings.on(self.document, event_type, _cancel)
        return (
            bindings.on(self.document, "visibilitychange", self._on_visibility_change)
            .on(self.window, "blur", self._on_blur)
            .on(self.document, "fullscreenchange", self._on_fullscreen_change)
            .on(self.window, "keydown", self._on_keydown)
        )

    @contextmanager
    def armed(self) -> Iterator["IntegrityMonitor"]:
        self.tripped = False
        with listening(self.bindings()):
            yield self
