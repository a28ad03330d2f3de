from __future__ import annotations

import logging
import re
import time
from datetime import datetime

from .errors import InvalidArgumentError, NotFoundError, PowerHubError
from .relay import RelayCommandLog
from .store import SCHEDULES, DocumentStore
from .utils import RELAY_STATES, Clock, now_ms

log = logging.getLogger("powerhub.schedules")

_TIME_RE = re.compile(r"([01]\d|2[0-3]):[0-5]\d")


class ScheduleEngine:
    """Recurring HH:mm relay actions, matched against local wall-clock time."""

    def __init__(self, relay: RelayCommandLog, store: DocumentStore, clock: Clock = time.time) -> None:
        self.relay = relay
        self.store = store
        self.clock = clock
        self.doc = store.load(SCHEDULES)
        self._last_minute: str | None = None
        self._last_id = 0

    @property
    def schedules(self) -> dict[str, list]:
        return self.doc["nodes"]

    def _persist(self) -> None:
        self.store.save(SCHEDULES, self.doc)

    def _new_id(self) -> str:
        # millisecond stamp, bumped when two entries land in the same millisecond
        candidate = max(now_ms(self.clock), self._last_id + 1)
        self._last_id = candidate
        return str(candidate)

    def _find(self, node_id: str, schedule_id: str) -> dict:
        entries = self.schedules.get(node_id)
        if entries is None:
            raise NotFoundError("Node not found")
        for entry in entries:
            if entry.get("id") == schedule_id:
                return entry
        raise NotFoundError("Schedule not found")

    def list(self, node_id: str):
        return [dict(e) for e in self.schedules.get(node_id, [])]

    def create(self, node_id: str) -> None:
        self.schedules[node_id] = []
        self._persist()

    def delete(self, node_id: str) -> None:
        if self.schedules.pop(node_id, None) is not None:
            self._persist()

    def add(self, node_id: str, time_of_day: str, action: str) -> dict:
        if not isinstance(time_of_day, str) or not _TIME_RE.fullmatch(time_of_day):
            raise InvalidArgumentError("Invalid schedule data: time must be HH:mm")
        if action not in RELAY_STATES:
            raise InvalidArgumentError("Invalid schedule data: action must be on or off")

        entry = {"id": self._new_id(), "time": time_of_day, "action": action, "enabled": True}
        self.schedules.setdefault(node_id, []).append(entry)
        self._persist()
        log.info("Added schedule %s for node %s: %s at %s", entry["id"], node_id, action, time_of_day)
        return dict(entry)

    def remove(self, node_id: str, schedule_id: str) -> None:
        entry = self._find(node_id, schedule_id)
        self.schedules[node_id].remove(entry)
        self._persist()

    def set_enabled(self, node_id: str, schedule_id: str, enabled: bool) -> dict:
        entry = self._find(node_id, schedule_id)
        entry["enabled"] = bool(enabled)
        self._persist()
        return dict(entry)

    def evaluate(self, now: datetime | None = None) -> list[tuple[str, dict]]:
        """Fire every enabled entry matching the current minute.

        A minute that was already evaluated is skipped, so each entry fires
        at most once per matching minute.
        """
        now = now or datetime.fromtimestamp(self.clock())
        minute = now.strftime("%H:%M")
        stamp = now.strftime("%Y-%m-%d ") + minute
        if stamp == self._last_minute:
            log.debug("Minute %s already evaluated", stamp)
            return []
        self._last_minute = stamp

        fired = []
        for node_id, entries in list(self.schedules.items()):
            for entry in list(entries):
                if not entry.get("enabled") or entry.get("time") != minute:
                    continue
                try:
                    self.relay.set(node_id, entry["action"])
                except PowerHubError as e:
                    log.error(
                        "Failed to execute schedule for node %s: %s at %s (%s)",
                        node_id, entry["action"], entry["time"], e,
                    )
                    continue
                log.info("Executed schedule for node %s: %s at %s", node_id, entry["action"], entry["time"])
                fired.append((node_id, dict(entry)))
        return fired
