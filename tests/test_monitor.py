import pytest

from secure_exam.client.events import BrowserDocument, BrowserEvent, BrowserWindow
from secure_exam.client.monitor import (
    FOCUS_LOST, FULLSCREEN_EXITED, RESTRICTED_INPUT_EVENTS, RESTRICTED_SHORTCUT, TAB_SWITCH,
    IntegrityMonitor, is_restricted_keystroke,
)


@pytest.fixture
def document():
    doc = BrowserDocument()
    doc.request_fullscreen()
    return doc


@pytest.fixture
def window():
    return BrowserWindow()


@pytest.fixture
def reasons():
    return []


@pytest.fixture
def monitor(document, window, reasons):
    return IntegrityMonitor(document, window, reasons.append)


def key(k, **mods):
    return BrowserEvent("keydown", key=k, **mods)


def test_restricted_keystrokes():
    restricted = [
        key("F12"), key("PrintScreen"),
        key("c", ctrl=True), key("V", ctrl=True), key("s", meta=True), key("r", ctrl=True),
        key("I", ctrl=True, shift=True), key("j", ctrl=True, shift=True),
        key("Tab", alt=True), key("F4", alt=True),
    ]
    allowed = [
        key("a"), key("Enter"), key("Tab"), key("F5"), key("z", ctrl=True),
        key("I", shift=True), key("K", meta=True, shift=True), key("x", alt=True),
    ]
    assert all(is_restricted_keystroke(e) for e in restricted)
    assert not any(is_restricted_keystroke(e) for e in allowed)


def test_listeners_only_live_while_armed(monitor, document, window):
    assert document.listener_count() == 0
    with monitor.armed():
        assert document.listener_count() == len(RESTRICTED_INPUT_EVENTS) + 2
        assert window.listener_count() == 2
    assert document.listener_count() == 0
    assert window.listener_count() == 0


def test_listeners_released_when_block_raises(monitor, document, window):
    with pytest.raises(RuntimeError):
        with monitor.armed():
            raise RuntimeError("phase aborted")
    assert document.listener_count() == 0
    assert window.listener_count() == 0


@pytest.mark.parametrize("trigger, reason", [
    (lambda d, w: d.set_hidden(True), TAB_SWITCH),
    (lambda d, w: w.blur(), FOCUS_LOST),
    (lambda d, w: d.exit_fullscreen(), FULLSCREEN_EXITED),
    (lambda d, w: w.dispatch(key("p", ctrl=True)), RESTRICTED_SHORTCUT),
])
def test_signals_map_to_reasons(monitor, document, window, reasons, trigger, reason):
    with monitor.armed():
        trigger(document, window)
    assert reasons == [reason]


def test_only_first_signal_reports(monitor, document, window, reasons):
    with monitor.armed():
        window.blur()
        document.set_hidden(True)
        window.dispatch(key("F12"))
    assert reasons == [FOCUS_LOST]
    assert monitor.tripped


def test_rearming_resets_the_trip(monitor, window, reasons):
    with monitor.armed():
        window.blur()
    with monitor.armed():
        window.blur()
    assert reasons == [FOCUS_LOST, FOCUS_LOST]


def test_visible_again_is_not_a_violation(monitor, document, reasons):
    with monitor.armed():
        document.set_hidden(False)
        document.request_fullscreen()
    assert reasons == []


def test_restricted_input_is_cancelled_silently(monitor, document, reasons):
    with monitor.armed():
        events = [document.dispatch(BrowserEvent(t)) for t in RESTRICTED_INPUT_EVENTS]
    assert all(e.default_prevented for e in events)
    assert reasons == []

    assert not document.dispatch(BrowserEvent("paste")).default_prevented


def test_restricted_key_is_cancelled(monitor, window):
    with monitor.armed():
        event = window.dispatch(key("a", ctrl=True))
        plain = window.dispatch(key("a"))
    assert event.default_prevented
    assert not plain.default_prevented


def test_nothing_reported_when_disarmed(document, window, reasons, monitor):
    window.blur()
    document.set_hidden(True)
    assert reasons == []
