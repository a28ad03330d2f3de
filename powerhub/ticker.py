"""
Interval scheduler for the gateway's periodic work.

ScheduledLoop fires an async callback on wall-clock aligned boundaries,
measured from the intended schedule rather than from when the previous
callback finished. Missed intervals are skipped, never queued.

Usage:
    loop = ScheduledLoop(1.0, check_thresholds, name="threshold")
    loop.start()
    ...
    loop.stop()
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

log = logging.getLogger("powerhub.ticker")


class ScheduledLoop:
    """
    Precise interval runner.

    Attributes:
        interval: Seconds between executions
        callback: Async function called each interval
        name: Name used in logs and statistics
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._next_run: float = 0
        self._running = False
        self._task: asyncio.Task | None = None

        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._last_execution_time: float = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the loop as a background task on the running event loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"ticker:{self.name}")

    def stop(self) -> None:
        """Stop the loop. No callback starts after this returns."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        # Align first run to the next interval boundary
        now = time.time()
        self._next_run = ((now // self.interval) + 1) * self.interval

        while self._running:
            sleep_duration = self._next_run - time.time()
            if sleep_duration > 0:
                try:
                    await asyncio.sleep(sleep_duration)
                except asyncio.CancelledError:
                    break

            if not self._running:
                break

            drift = time.time() - self._next_run
            if drift > 30:
                # clock jump (NTP sync, suspend/resume), not real drift
                log.info("Ticker '%s' clock jump detected (%.0fs), realigning", self.name, drift)
            else:
                self._drift_total += max(0, drift)

            try:
                start = time.time()
                await self.callback()
                self._last_execution_time = time.time() - start
                self._execution_count += 1
            except asyncio.CancelledError:
                break
            except Exception:
                log.exception("Ticker '%s' callback error", self.name)

            now = time.time()
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            # the first step is the run that just happened
            if skipped > 1:
                self._skipped_count += skipped - 1
                log.warning(
                    "Ticker '%s' skipped %d intervals (execution took %.3fs)",
                    self.name, skipped - 1, self._last_execution_time,
                )

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "execution_count": self._execution_count,
            "drift_total_s": round(self._drift_total, 3),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }


class SchedulerGroup:
    """Start, stop and report on several ScheduledLoops together."""

    def __init__(self):
        self._loops: dict[str, ScheduledLoop] = {}

    def add(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> ScheduledLoop:
        loop = ScheduledLoop(interval_seconds, callback, name)
        self._loops[name] = loop
        return loop

    def start_all(self) -> None:
        for loop in self._loops.values():
            loop.start()

    def stop_all(self) -> None:
        for loop in self._loops.values():
            loop.stop()

    def get(self, name: str) -> ScheduledLoop | None:
        return self._loops.get(name)

    def get_stats(self) -> dict:
        return {name: loop.get_stats() for name, loop in self._loops.items()}
