import logging
import math
import time
from dataclasses import dataclass

from .errors import PowerHubError
from .notifier import TelegramNotifier, threshold_message
from .registry import NodeRegistry
from .relay import RelayCommandLog
from .utils import Clock
from .ws_manager import ConnectionManager

log = logging.getLogger("powerhub.monitor")


@dataclass
class CheckResult:
    exceeded: bool = False
    alerted: bool = False
    cutoff: bool = False


class ThresholdMonitor:
    """Power-vs-threshold evaluation driving alerts and auto-cutoff.

    Auto-cutoff is applied on every exceeding check. Alerts (broadcast plus
    external notification) are rate limited per node by the cooldown window,
    and the cooldown only moves when an alert actually goes out.
    """

    def __init__(
        self,
        registry: NodeRegistry,
        relay: RelayCommandLog,
        broadcaster: ConnectionManager,
        notifier: TelegramNotifier,
        cooldown_seconds: float = 60.0,
        clock: Clock = time.time,
    ) -> None:
        self.registry = registry
        self.relay = relay
        self.broadcaster = broadcaster
        self.notifier = notifier
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self._last_alert: dict[str, float] = {}

    def check(self, node_id: str) -> CheckResult:
        result = CheckResult()
        node = self.registry.find(node_id)
        if node is None:
            return result

        threshold = node.get("threshold")
        power = node.get("power")
        if threshold is None or power is None:
            return result
        if power <= threshold:
            return result

        result.exceeded = True
        now = self.clock()

        if node.get("autoCutoff"):
            if not self.relay.has(node_id) or self.relay.get(node_id)["state"] != "off":
                log.info("AUTO-CUTOFF: Turning off relay for node %s (%sW > %sW)", node_id, power, threshold)
                self.relay.set(node_id, "off")
                result.cutoff = True

        last = self._last_alert.get(node_id)
        if last is not None and now - last <= self.cooldown_seconds:
            remaining = math.ceil(self.cooldown_seconds - (now - last))
            log.debug(
                "THRESHOLD EXCEEDED: node %s %sW > %sW (alert cooldown: %ss remaining)",
                node_id, power, threshold, remaining,
            )
            return result

        log.warning("THRESHOLD EXCEEDED: node %s %sW > %sW (sending alert)", node_id, power, threshold)
        self._last_alert[node_id] = now
        self.broadcaster.publish({
            "type": "threshold_alert",
            "nodeId": node_id,
            "power": power,
            "threshold": threshold,
        })
        self.notifier.dispatch(node_id, threshold_message(node_id, power, threshold))
        result.alerted = True
        return result

    async def tick(self) -> None:
        for node_id in list(self.registry.nodes):
            try:
                self.check(node_id)
            except PowerHubError as e:
                log.error("Threshold check failed for node %s: %s", node_id, e)

    def forget(self, node_id: str) -> None:
        self._last_alert.pop(node_id, None)
