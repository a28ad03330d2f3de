import logging
import time
from typing import Any

from .errors import ConflictError, InvalidArgumentError, NotFoundError
from .store import NODES, DocumentStore
from .utils import Clock, is_number, now_ms

log = logging.getLogger("powerhub.registry")

_UNSET: Any = object()


def _to_float(value, field: str) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Invalid sensor data: {field}")
    if not is_number(parsed):
        raise InvalidArgumentError(f"Invalid sensor data: {field}")
    return parsed


class NodeRegistry:
    """Node identities with their latest telemetry and settings snapshot."""

    def __init__(self, store: DocumentStore, clock: Clock = time.time) -> None:
        self.store = store
        self.clock = clock
        self.doc = store.load(NODES)

    @property
    def nodes(self) -> dict[str, dict]:
        return self.doc["nodes"]

    def _persist(self) -> None:
        self.store.save(NODES, self.doc)

    def list(self) -> dict[str, dict]:
        return {node_id: dict(node) for node_id, node in self.nodes.items()}

    def exists(self, node_id: str) -> bool:
        return node_id in self.nodes

    def find(self, node_id: str) -> dict | None:
        return self.nodes.get(node_id)

    def get(self, node_id: str) -> dict:
        node = self.nodes.get(node_id)
        if node is None:
            raise NotFoundError("Node not found")
        return node

    def register(self, node_id: str, name: str | None = None) -> dict:
        if not node_id:
            raise InvalidArgumentError("Node ID is required")
        if node_id in self.nodes:
            raise ConflictError("Node with this ID already exists")

        node = {
            "name": name or node_id,
            "voltage": None,
            "current": None,
            "power": None,
            "timestamp": now_ms(self.clock),
            "threshold": None,
            "autoCutoff": False,
        }
        self.nodes[node_id] = node
        self._persist()
        log.info("Registered node %s (%s)", node_id, node["name"])
        return node

    def update_settings(self, node_id: str, threshold=_UNSET, auto_cutoff=_UNSET) -> dict:
        node = self.get(node_id)
        if threshold is not _UNSET:
            try:
                parsed = float(threshold) if threshold is not None else None
            except (TypeError, ValueError):
                parsed = None
            node["threshold"] = parsed if is_number(parsed) else None
        if auto_cutoff is not _UNSET:
            node["autoCutoff"] = bool(auto_cutoff)
        self._persist()
        log.info(
            "Settings for node %s: threshold=%s autoCutoff=%s",
            node_id, node.get("threshold"), node.get("autoCutoff"),
        )
        return node

    def rename(self, node_id: str, name: str) -> dict:
        if not name:
            raise InvalidArgumentError("Name is required")
        node = self.get(node_id)
        node["name"] = name
        self._persist()
        return node

    def report_telemetry(self, node_id: str, voltage, current, power) -> tuple[dict, bool]:
        """Create-or-update a node's readings. Returns (node, created).

        Unknown node ids are accepted: devices may report before they are
        registered.
        """
        if not node_id:
            raise InvalidArgumentError("Node ID is required")
        if voltage is None or current is None or power is None:
            raise InvalidArgumentError("Missing sensor data")
        readings = {
            "voltage": _to_float(voltage, "voltage"),
            "current": _to_float(current, "current"),
            "power": _to_float(power, "power"),
        }

        created = node_id not in self.nodes
        node = self.nodes.setdefault(node_id, {"name": node_id, "threshold": None, "autoCutoff": False})
        node.update(readings)
        node["timestamp"] = now_ms(self.clock)
        self._persist()
        if created:
            log.info("Node %s created by telemetry report", node_id)
        return node, created

    def remove(self, node_id: str) -> None:
        if node_id not in self.nodes:
            raise NotFoundError("Node not found")
        del self.nodes[node_id]
        self._persist()
        log.info("Removed node %s", node_id)
