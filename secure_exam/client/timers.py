"""
Countdown timers driven by the running asyncio loop.

Every timer owns exactly one task. ``cancel()`` is safe to call at any time,
including before ``start()`` and after the timer has finished on its own.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from secure_exam.core.clock import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


def format_clock(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--:--"
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


class IntervalTimer:
    """Call ``tick`` every ``interval`` seconds until it returns False."""

    def __init__(self, interval: float, tick: Callable[[], bool], immediate: bool = False):
        self.interval = interval
        self.tick = tick
        self.immediate = immediate
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "IntervalTimer":
        if self.running:
            return self
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._report_failure)
        return self

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _report_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s stopped: tick raised %r", type(self).__name__, exc, exc_info=exc)

    async def _run(self) -> None:
        if self.immediate and not self.tick():
            return
        while True:
            await asyncio.sleep(self.interval)
            if not self.tick():
                return


class ExamCountdown(IntervalTimer):
    """
    Remaining exam time, recomputed from the server's expiry on every tick
    so a suspended or throttled loop never drifts.

    ``on_expire`` fires once ``submit_lead`` seconds before the expiry, so a
    submission made from it still reaches the server while the session is open.
    """

    def __init__(
        self,
        expires_at: datetime,
        on_tick: Callable[[float], None],
        on_expire: Callable[[], None],
        clock: Clock = utcnow,
        interval: float = 1.0,
        submit_lead: float = 0.0,
    ):
        super().__init__(interval, self._evaluate, immediate=True)
        self.expires_at = as_utc(expires_at)
        self.submit_lead = max(0.0, submit_lead)
        self.on_tick = on_tick
        self.on_expire = on_expire
        self.clock = clock

    def remaining(self) -> float:
        return max(0.0, (self.expires_at - self.clock()).total_seconds())

    def _evaluate(self) -> bool:
        remaining = self.remaining()
        self.on_tick(remaining)
        if remaining <= self.submit_lead:
            self.on_expire()
            return False
        return True


class ReadingCountdown(IntervalTimer):
    """Mandatory reading period shown before the exam can begin."""

    def __init__(
        self,
        seconds: int,
        on_tick: Callable[[int], None],
        on_done: Callable[[], None],
        interval: float = 1.0,
    ):
        super().__init__(interval, self._step)
        self.left = max(0, seconds)
        self.on_tick = on_tick
        self.on_done = on_done

    def start(self) -> "IntervalTimer":
        if self.left == 0:
            self.on_done()
            return self
        return super().start()

    def _step(self) -> bool:
        self.left -= 1
        self.on_tick(self.left)
        if self.left <= 0:
            self.on_done()
            return False
        return True
