import asyncio
import logging
from datetime import datetime, timedelta, timezone

from secure_exam.client.timers import ExamCountdown, IntervalTimer, ReadingCountdown, format_clock

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def settle(timer, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while timer.running:
        assert asyncio.get_running_loop().time() < deadline
        await asyncio.sleep(0.01)


def test_format_clock():
    assert format_clock(None) == "--:--"
    assert format_clock(0) == "00:00"
    assert format_clock(-4) == "00:00"
    assert format_clock(125.9) == "02:05"


async def test_countdown_fires_within_the_submit_lead():
    now = [T0]
    ticks, expired = [], []
    countdown = ExamCountdown(
        T0 + timedelta(seconds=30), ticks.append, lambda: expired.append(True),
        clock=lambda: now[0], interval=0.01, submit_lead=5,
    ).start()

    await asyncio.sleep(0.05)
    assert expired == []
    assert ticks[0] == 30

    now[0] = T0 + timedelta(seconds=26)
    await settle(countdown)
    assert expired == [True]
    assert ticks[-1] == 4


async def test_countdown_without_lead_waits_for_zero():
    now = [T0 + timedelta(seconds=29, milliseconds=500)]
    expired = []
    countdown = ExamCountdown(
        T0 + timedelta(seconds=30), lambda _: None, lambda: expired.append(True),
        clock=lambda: now[0], interval=0.01,
    ).start()
    await asyncio.sleep(0.05)
    assert expired == []
    now[0] = T0 + timedelta(seconds=30)
    await settle(countdown)
    assert expired == [True]


async def test_reading_countdown_runs_down():
    ticks, done = [], []
    reading = ReadingCountdown(3, ticks.append, lambda: done.append(True), interval=0.01).start()
    await settle(reading)
    assert ticks == [2, 1, 0]
    assert done == [True]


async def test_failing_tick_is_logged(caplog):
    def tick():
        raise RuntimeError("display gone")

    timer = IntervalTimer(0.01, tick, immediate=True)
    with caplog.at_level(logging.ERROR, logger="secure_exam.client.timers"):
        timer.start()
        await settle(timer)
        await asyncio.sleep(0)

    assert "IntervalTimer stopped" in caplog.text
    assert "display gone" in caplog.text


async def test_cancel_is_quiet(caplog):
    timer = IntervalTimer(0.01, lambda: True).start()
    with caplog.at_level(logging.ERROR, logger="secure_exam.client.timers"):
        timer.cancel()
        timer.cancel()
        await asyncio.sleep(0.02)
    assert not timer.running
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
