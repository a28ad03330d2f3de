import logging
import time

from .errors import InvalidArgumentError
from .store import RELAY_COMMANDS, DocumentStore
from .utils import RELAY_STATES, Clock, now_ms

log = logging.getLogger("powerhub.relay")


class RelayCommandLog:
    """Desired relay state per node, polled by the devices.

    Last writer wins; every write stamps the current time.
    """

    def __init__(self, store: DocumentStore, clock: Clock = time.time) -> None:
        self.store = store
        self.clock = clock
        self.doc = store.load(RELAY_COMMANDS)

    @property
    def commands(self) -> dict[str, dict]:
        return self.doc["nodes"]

    def _persist(self) -> None:
        self.store.save(RELAY_COMMANDS, self.doc)

    def get(self, node_id: str) -> dict:
        command = self.commands.get(node_id)
        if command is None:
            return {"state": "off", "timestamp": now_ms(self.clock)}
        return dict(command)

    def has(self, node_id: str) -> bool:
        return node_id in self.commands

    def set(self, node_id: str, state: str) -> dict:
        if state not in RELAY_STATES:
            raise InvalidArgumentError('Invalid relay state. Use "on" or "off"')
        command = {"state": state, "timestamp": now_ms(self.clock)}
        self.commands[node_id] = command
        self._persist()
        log.info("Relay state for node %s set to %s", node_id, state.upper())
        return dict(command)

    def create(self, node_id: str) -> dict:
        command = {"state": "off", "timestamp": now_ms(self.clock)}
        self.commands[node_id] = command
        self._persist()
        return dict(command)

    def delete(self, node_id: str) -> None:
        if self.commands.pop(node_id, None) is not None:
            self._persist()
