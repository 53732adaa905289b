"""Shared fixtures: a controllable clock, a default config and a wired engine."""

from datetime import UTC, datetime, timedelta

import pytest

from adapters.memory import InMemoryEngine, build_in_memory_engine
from vitaltrack.config import AppConfig, get_config
from vitaltrack.domain.errors import DeliveryError
from vitaltrack.domain.models import Alert
from vitaltrack.result import Result

FACILITY_ID = "facility-1"
RESIDENT_ID = "resident-1"
RESIDENT_NAME = "Ada Lovelace"


class FakeClock:
    """Wall clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 8, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    @property
    def ms(self) -> int:
        return int(self.now.timestamp() * 1000)


class RecordingNotifier:
    """Notification service that remembers what it was asked to send."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[Alert] = []

    async def notify_staff(self, alert: Alert) -> Result[bool, DeliveryError]:
        if self.fail:
            return Result.err(DeliveryError("pager gateway unavailable"))
        self.sent.append(alert)
        return Result.ok(True)


@pytest.fixture(autouse=True)
def clear_config_cache():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(config: AppConfig, clock: FakeClock, notifier: RecordingNotifier) -> InMemoryEngine:
    engine = build_in_memory_engine(config, notifier=notifier, clock=clock)
    engine.residents.add(RESIDENT_ID, FACILITY_ID, RESIDENT_NAME)
    return engine
