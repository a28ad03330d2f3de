"""
Gateway composition root.

Wires the durable store, registry, relay command log, timer and schedule
engines, threshold monitor, broadcaster and log recorder together, owns the
periodic tasks, and implements the operations that cascade across
components (register, remove, telemetry).

Everything runs on one asyncio event loop. No operation here awaits in the
middle of a read-modify-write, so the in-memory documents are never
interleaved.
"""

import logging
import time

from sqlalchemy.engine import Engine

from .db import make_engine
from .errors import InvalidArgumentError
from .monitor import ThresholdMonitor
from .notifier import TelegramNotifier, manual_message
from .recorder import LogRecorder
from .registry import NodeRegistry
from .relay import RelayCommandLog
from .schedules import ScheduleEngine
from .settings import Settings
from .store import DocumentStore
from .ticker import SchedulerGroup
from .timers import TimerEngine
from .utils import Clock
from .ws_manager import ConnectionManager

log = logging.getLogger("powerhub.gateway")


class PowerGateway:
    def __init__(
        self,
        settings: Settings,
        engine: Engine | None = None,
        clock: Clock = time.time,
        notifier: TelegramNotifier | None = None,
    ) -> None:
        self.settings = settings
        self.store = DocumentStore(engine if engine is not None else make_engine(settings.database_url))
        self.store.initialize()

        self.registry = NodeRegistry(self.store, clock)
        self.relay = RelayCommandLog(self.store, clock)
        self.schedules = ScheduleEngine(self.relay, self.store, clock)
        self.timers = TimerEngine(self.relay, self.store, clock)
        self.broadcaster = ConnectionManager(settings.observer_queue_size)
        self.notifier = notifier or TelegramNotifier(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            api_url=settings.telegram_api_url,
        )
        self.monitor = ThresholdMonitor(
            self.registry,
            self.relay,
            self.broadcaster,
            self.notifier,
            cooldown_seconds=settings.alert_cooldown_seconds,
            clock=clock,
        )
        self.recorder = LogRecorder(self.registry, settings.logs_dir, settings.log_interval_seconds)

        self.tickers = SchedulerGroup()
        self.tickers.add("threshold", settings.threshold_interval_seconds, self.monitor.tick)
        self.tickers.add("schedule", settings.schedule_interval_seconds, self._check_schedules)
        self.started = False

    async def _check_schedules(self) -> None:
        self.schedules.evaluate()

    async def start(self) -> None:
        """Restore timers and start periodic work. Call before serving requests."""
        if self.started:
            return
        restored = self.timers.restore()
        for node_id in list(self.registry.nodes):
            self.recorder.start(node_id)
        self.tickers.start_all()
        self.started = True
        log.info(
            "Gateway started: %d nodes, %d timers restored",
            len(self.registry.nodes), restored,
        )

    async def stop(self) -> None:
        self.tickers.stop_all()
        self.recorder.stop_all()
        self.timers.shutdown()
        await self.notifier.drain()
        self.started = False
        log.info("Gateway stopped")

    def register_node(self, node_id: str, name: str | None = None) -> dict:
        node = self.registry.register(node_id, name)
        self.relay.create(node_id)
        self.schedules.create(node_id)
        self.timers.cancel(node_id)
        self.recorder.start(node_id)
        return node

    def remove_node(self, node_id: str) -> None:
        self.registry.get(node_id)
        # stop writers before the node disappears
        self.recorder.stop(node_id)
        self.timers.cancel(node_id)
        self.registry.remove(node_id)
        self.relay.delete(node_id)
        self.schedules.delete(node_id)
        self.monitor.forget(node_id)

    def report_telemetry(self, node_id: str, voltage, current, power) -> dict:
        node, created = self.registry.report_telemetry(node_id, voltage, current, power)
        if created:
            self.recorder.start(node_id)

        log.debug(
            "Node %s: Power=%sW, Threshold=%sW, AutoCutoff=%s",
            node_id, node["power"], node.get("threshold"), node.get("autoCutoff"),
        )
        self.monitor.check(node_id)

        self.broadcaster.publish({
            "type": "sensor_data",
            "nodeId": node_id,
            "voltage": node["voltage"],
            "current": node["current"],
            "power": node["power"],
        })
        return node

    def manual_alert(self, node_id: str, power) -> None:
        if not node_id:
            raise InvalidArgumentError("Node ID is required")
        self.notifier.dispatch(node_id, manual_message(node_id, power))

    def health(self) -> dict:
        return {
            "nodes": len(self.registry.nodes),
            "observers": self.broadcaster.count,
            "timers": self.timers.active_count,
            "logging": self.recorder.active_count,
            "tickers": self.tickers.get_stats(),
        }
