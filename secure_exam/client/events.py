"""
Minimal browser-style event surface for the candidate client.

The monitor and controller only talk to these objects, so a real browser
bridge (or a test) can feed events in through ``dispatch`` and observe the
fullscreen state the client asks for.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

Listener = Callable[["BrowserEvent"], None]


@dataclass
class BrowserEvent:
    type: str
    key: str = ""
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    alt: bool = False
    default_prevented: bool = False
    propagation_stopped: bool = False
    return_value: Optional[str] = None

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


class EventTarget:
    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def add_listener(self, event_type: str, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def remove_listener(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(v) for v in self._listeners.values())

    def dispatch(self, event: BrowserEvent) -> BrowserEvent:
        # Listeners may detach themselves while handling.
        for listener in list(self._listeners.get(event.type, [])):
            listener(event)
            if event.propagation_stopped:
                break
        return event


class BrowserDocument(EventTarget):
    def __init__(self):
        super().__init__()
        self.hidden = False
        self.fullscreen_element: Optional[str] = None
        self.fullscreen_supported = True

    def request_fullscreen(self) -> bool:
        if not self.fullscreen_supported:
            return False
        self.fullscreen_element = "document"
        self.dispatch(BrowserEvent("fullscreenchange"))
        return True

    def exit_fullscreen(self) -> None:
        if self.fullscreen_element is None:
            return
        self.fullscreen_element = None
        self.dispatch(BrowserEvent("fullscreenchange"))

    def set_hidden(self, hidden: bool) -> None:
        self.hidden = hidden
        self.dispatch(BrowserEvent("visibilitychange"))


class BrowserWindow(EventTarget):
    def blur(self) -> None:
        self.dispatch(BrowserEvent("blur"))

    def close(self) -> BrowserEvent:
        return self.dispatch(BrowserEvent("beforeunload"))


Binding = Tuple[EventTarget, str, Listener]


@contextmanager
def listening(bindings: Iterable[Binding]) -> Iterator[None]:
    """Attach every binding for the duration of the block, detaching on exit."""
    attached: List[Binding] = []
    try:
        for target, event_type, listener in bindings:
            target.add_listener(event_type, listener)
            attached.append((target, event_type, listener))
        yield
    finally:
        for target, event_type, listener in reversed(attached):
            target.remove_listener(event_type, listener)


@dataclass
class Bindings:
    """Collects listener bindings before they are attached with ``listening``."""

    items: List[Binding] = field(default_factory=list)

    def on(self, target: EventTarget, event_type: str, listener: Listener) -> "Bindings":
        self.items.append((target, event_type, listener))
        return self

    def __iter__(self):
        return iter(self.items)
