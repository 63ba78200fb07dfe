from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from multimedidor.main import app, get_now, get_store, get_timezone
from multimedidor.schemas import Reading
from multimedidor.store import JsonFileReadingStore, MemoryReadingStore, SqlReadingStore

# Fixed "now" for everything time-windowed
NOW = datetime(2025, 3, 10, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    """Returns ``now``, then moves forward by ``step`` on every call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current

    def set(self, moment: datetime) -> None:
        self.now = moment


@pytest.fixture
def clock():
    return FakeClock(NOW - timedelta(hours=1))


@pytest.fixture
def make_reading():
    """Build a stored reading directly, bypassing any store."""

    def factory(created_at: datetime, demand=None, **fields) -> Reading:
        return Reading(created_at=created_at, Demanda_Ativa=demand, **fields)

    return factory


@pytest.fixture(params=["memory", "json", "sqlite"])
async def store(request, tmp_path, clock):
    """An opened store of every backend, capacity 5."""
    if request.param == "memory":
        s = MemoryReadingStore(capacity=5, clock=clock)
    elif request.param == "json":
        s = JsonFileReadingStore(str(tmp_path / "dados.json"), capacity=5, clock=clock)
    else:
        s = SqlReadingStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", capacity=5, clock=clock)
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def memory_store(clock):
    return MemoryReadingStore(capacity=200, clock=clock)


@pytest.fixture
def client(memory_store):
    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_now] = lambda: NOW
    app.dependency_overrides[get_timezone] = lambda: timezone.utc
    yield TestClient(app)
    app.dependency_overrides.clear()
