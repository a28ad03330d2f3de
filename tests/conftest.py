import pytest

from powerhub.db import make_engine
from powerhub.registry import NodeRegistry
from powerhub.relay import RelayCommandLog
from powerhub.settings import Settings
from powerhub.store import DocumentStore


class FakeClock:
    """Wall clock the tests move by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def dispatch(self, node_id, message):
        self.sent.append((node_id, message))

    async def drain(self):
        return None


class FakeBroadcaster:
    def __init__(self):
        self.events: list[dict] = []

    def publish(self, event):
        self.events.append(event)
        return 1


class FakeWebSocket:
    def __init__(self):
        self.accepted = False

    async def accept(self):
        self.accepted = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    return make_engine(f"sqlite:///{tmp_path / 'powerhub.db'}")


@pytest.fixture
def store(engine):
    s = DocumentStore(engine)
    s.initialize()
    return s


@pytest.fixture
def registry(store, clock):
    return NodeRegistry(store, clock)


@pytest.fixture
def relay(store, clock):
    return RelayCommandLog(store, clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'gateway.db'}",
        logs_dir=str(tmp_path / "logs"),
        alert_cooldown_seconds=60,
        threshold_interval_seconds=1,
        schedule_interval_seconds=3600,
        log_interval_seconds=3600,
        telegram_bot_token=None,
        telegram_chat_id=None,
        mqtt_host=None,
        log_format="text",
    )
