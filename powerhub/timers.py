"""
One-shot relay timers.

Each node has at most one armed timer. The live asyncio handle is kept in an
owned table next to the persisted record; on startup restore() rebuilds the
table from the persisted end times.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass

from .errors import InvalidArgumentError, PowerHubError
from .relay import RelayCommandLog
from .store import TIMERS, DocumentStore
from .utils import RELAY_STATES, Clock, is_number, now_ms

log = logging.getLogger("powerhub.timers")


@dataclass
class ArmedTimer:
    start_time: int
    duration: int
    action: str
    handle: asyncio.TimerHandle | None = None

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration

    def to_record(self) -> dict:
        return {
            "startTime": self.start_time,
            "duration": self.duration,
            "action": self.action,
            "endTime": self.end_time,
        }


class TimerEngine:
    def __init__(self, relay: RelayCommandLog, store: DocumentStore, clock: Clock = time.time) -> None:
        self.relay = relay
        self.store = store
        self.clock = clock
        self._timers: dict[str, ArmedTimer] = {}
        self._restored = False

    def _persist(self) -> None:
        doc = {"nodes": {node_id: t.to_record() for node_id, t in self._timers.items()}}
        self.store.save(TIMERS, doc)

    def _arm(self, node_id: str, start_time: int, duration: int, action: str) -> ArmedTimer:
        loop = asyncio.get_running_loop()
        previous = self._timers.pop(node_id, None)
        if previous and previous.handle:
            previous.handle.cancel()

        timer = ArmedTimer(start_time=start_time, duration=duration, action=action)
        timer.handle = loop.call_later(duration / 1000, self._fire, node_id, timer)
        self._timers[node_id] = timer
        return timer

    def _fire(self, node_id: str, timer: ArmedTimer) -> None:
        if self._timers.get(node_id) is not timer:
            return
        try:
            self.relay.set(node_id, timer.action)
            log.info("Timer fired for node %s: relay %s", node_id, timer.action.upper())
        except PowerHubError as e:
            log.error("Timer for node %s failed to set relay: %s", node_id, e)
        finally:
            self._timers.pop(node_id, None)
            try:
                self._persist()
            except PowerHubError as e:
                log.error("Failed to persist timers after firing for node %s: %s", node_id, e)

    def start(self, node_id: str, duration: float, action: str) -> dict:
        """Arm (or replace) the timer for a node; duration is in seconds."""
        if not is_number(duration) or duration <= 0:
            raise InvalidArgumentError("Invalid timer parameters")
        if action not in RELAY_STATES:
            raise InvalidArgumentError("Invalid timer parameters")

        duration_ms = duration * 1000
        if not math.isfinite(duration_ms):
            raise InvalidArgumentError("Invalid timer parameters")

        timer = self._arm(node_id, now_ms(self.clock), int(round(duration_ms)), action)
        self._persist()
        log.info("Timer armed for node %s: %s in %.1fs", node_id, action, timer.duration / 1000)
        return self.status(node_id)

    def cancel(self, node_id: str) -> bool:
        timer = self._timers.pop(node_id, None)
        if timer is None:
            return False
        if timer.handle:
            timer.handle.cancel()
        self._persist()
        log.info("Timer cancelled for node %s", node_id)
        return True

    def status(self, node_id: str) -> dict:
        timer = self._timers.get(node_id)
        if timer is None:
            return {"active": False, "remainingTime": 0}

        remaining = max(0, math.ceil((timer.end_time - now_ms(self.clock)) / 1000))
        if remaining <= 0:
            # elapsed but the callback has not run yet
            self.cancel(node_id)
            log.info("Reclaimed elapsed timer for node %s", node_id)
            return {"active": False, "remainingTime": 0}

        return {"active": True, "remainingTime": remaining, "action": timer.action}

    def restore(self) -> int:
        """Re-arm persisted timers whose end time is still ahead. Runs once."""
        if self._restored:
            log.warning("Timer restore already ran, ignoring")
            return 0
        self._restored = True

        doc = self.store.load(TIMERS)
        now = now_ms(self.clock)
        restored = 0
        for node_id, record in doc["nodes"].items():
            end_time = record.get("endTime") if isinstance(record, dict) else None
            action = record.get("action") if isinstance(record, dict) else None
            if not is_number(end_time) or action not in RELAY_STATES:
                log.warning("Discarded malformed timer for node %s: %r", node_id, record)
                continue
            remaining = int(end_time) - now
            if remaining > 0:
                self._arm(node_id, now, remaining, action)
                restored += 1
                log.info("Restored timer for node %s: %ss remaining", node_id, math.ceil(remaining / 1000))
            else:
                log.info("Removed expired timer for node %s", node_id)

        self._persist()
        return restored

    def shutdown(self) -> None:
        """Drop live handles; the persisted table is kept for the next start."""
        for timer in self._timers.values():
            if timer.handle:
                timer.handle.cancel()
        self._timers.clear()

    @property
    def active_count(self) -> int:
        return len(self._timers)
