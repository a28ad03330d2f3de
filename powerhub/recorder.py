import csv
import hashlib
import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path

from .errors import NotFoundError
from .registry import NodeRegistry
from .ticker import ScheduledLoop

log = logging.getLogger("powerhub.recorder")

HEADER = ["Timestamp", "Voltage (V)", "Current (A)", "Power (W)"]

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _file_key(node_id: str) -> str:
    """Filesystem-safe form of a node id, distinct for distinct ids.

    Ids that needed sanitizing get a digest of the raw id after a "~", which
    never appears in an id kept as-is.
    """
    safe = _UNSAFE.sub("_", node_id)
    if safe == node_id:
        return safe
    digest = hashlib.sha1(node_id.encode("utf-8")).hexdigest()[:12]
    return f"{safe}~{digest}"


def _cell(value) -> str:
    return "" if value is None else str(value)


class LogRecorder:
    """Append-only CSV time series, one file and one ticker per node."""

    def __init__(self, registry: NodeRegistry, logs_dir: str | Path, interval_seconds: float = 1.0) -> None:
        self.registry = registry
        self.logs_dir = Path(logs_dir)
        self.interval = interval_seconds
        self._loops: dict[str, ScheduledLoop] = {}

    def log_path(self, node_id: str) -> Path:
        return self.logs_dir / f"node_{_file_key(node_id)}_data.csv"

    def write(self, node_id: str) -> bool:
        """Append one line with the node's latest readings."""
        node = self.registry.find(node_id)
        if node is None:
            return False

        path = self.log_path(node_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        is_new = not path.exists()
        with path.open("a", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            if is_new:
                writer.writerow(HEADER)
            writer.writerow([_iso_now(), _cell(node.get("voltage")), _cell(node.get("current")), _cell(node.get("power"))])
        return True

    def start(self, node_id: str) -> None:
        self.stop(node_id)

        async def append_line() -> None:
            try:
                self.write(node_id)
            except OSError as e:
                log.error("Error logging data for node %s: %s", node_id, e)

        loop = ScheduledLoop(self.interval, append_line, name=f"log:{node_id}")
        self._loops[node_id] = loop
        loop.start()
        log.debug("Logging started for node %s", node_id)

    def stop(self, node_id: str) -> None:
        loop = self._loops.pop(node_id, None)
        if loop is not None:
            loop.stop()
            log.debug("Logging stopped for node %s", node_id)

    def stop_all(self) -> None:
        for node_id in list(self._loops):
            self.stop(node_id)

    def is_logging(self, node_id: str) -> bool:
        return node_id in self._loops

    @property
    def active_count(self) -> int:
        return len(self._loops)

    def snapshot(self, node_id: str) -> tuple[Path, str]:
        """Copy the live log so a download is not affected by ongoing appends.

        Returns the snapshot path and the attachment filename.
        """
        source = self.log_path(node_id)
        if not source.exists():
            raise NotFoundError("No logs found for this node")

        stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")
        filename = f"{source.stem}_{stamp}.csv"
        exports = self.logs_dir / "exports"
        exports.mkdir(parents=True, exist_ok=True)
        target = exports / filename
        shutil.copyfile(source, target)
        log.info("Created log snapshot %s", target)
        return target, filename
