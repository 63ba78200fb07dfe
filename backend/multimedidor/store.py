# backend/multimedidor/store.py

"""
Reading stores.

Every store keeps readings in insertion order, caps them at ``capacity``
(oldest dropped first) and exposes the same async contract, so the
aggregation and export code never needs to know where readings live.
"""

import abc
import asyncio
import json
import logging
import os
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import crud
from .config import Settings
from .database import create_tables, make_engine, make_session_factory
from .errors import PersistenceError
from .schemas import Reading, ReadingIn

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadingStore(abc.ABC):
    backend_name = "abstract"

    def __init__(self, capacity: int, clock: Clock = utcnow):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._clock = clock

    def _stamp(self, payload: ReadingIn, client_ip: Optional[str], last: Optional[Reading]) -> Reading:
        """Assign server receive time, never earlier than the last stored reading."""
        created_at = self._clock()
        if last is not None and created_at < last.created_at:
            created_at = last.created_at
        return Reading.from_payload(payload, created_at=created_at, client_ip=client_ip)

    async def open(self) -> None:
        """Prepare the backing storage. Called once at startup."""

    async def close(self) -> None:
        """Release resources held by the store."""

    @abc.abstractmethod
    async def insert(self, payload: ReadingIn, client_ip: Optional[str] = None) -> Reading:
        """Stamp and append a reading, evicting the oldest ones beyond capacity."""

    @abc.abstractmethod
    async def recent(self, n: int) -> List[Reading]:
        """Most recent ``n`` readings, newest first."""

    @abc.abstractmethod
    async def window(self, since: Optional[datetime], until: Optional[datetime] = None) -> List[Reading]:
        """Readings with ``since <= created_at < until``, oldest first."""

    @abc.abstractmethod
    async def count(self) -> int:
        ...

    @abc.abstractmethod
    async def clear(self) -> None:
        """Remove every reading, in memory and in the backing storage."""

    async def latest(self) -> Optional[Reading]:
        readings = await self.recent(1)
        return readings[0] if readings else None

    async def all(self) -> List[Reading]:
        return await self.window(None)


class MemoryReadingStore(ReadingStore):
    backend_name = "memory"

    def __init__(self, capacity: int, clock: Clock = utcnow):
        super().__init__(capacity, clock)
        # deque drops from the left (oldest) once maxlen is reached
        self._readings = deque(maxlen=capacity)

    def _load(self, readings: Iterable[Reading]) -> None:
        self._readings = deque(readings, maxlen=self.capacity)

    async def insert(self, payload: ReadingIn, client_ip: Optional[str] = None) -> Reading:
        last = self._readings[-1] if self._readings else None
        reading = self._stamp(payload, client_ip, last)
        if len(self._readings) == self.capacity:
            logger.debug("Store full (%s), evicting oldest reading", self.capacity)
        self._readings.append(reading)
        return reading

    async def recent(self, n: int) -> List[Reading]:
        if n <= 0:
            return []
        result = []
        for reading in reversed(self._readings):
            if len(result) == n:
                break
            result.append(reading)
        return result

    async def window(self, since: Optional[datetime], until: Optional[datetime] = None) -> List[Reading]:
        return [
            r for r in self._readings
            if (since is None or r.created_at >= since) and (until is None or r.created_at < until)
        ]

    async def count(self) -> int:
        return len(self._readings)

    async def clear(self) -> None:
        self._readings.clear()
        logger.info("Memory store cleared")


class JsonFileReadingStore(MemoryReadingStore):
    """
    Memory store mirrored to a JSON file after every change.

    Readings are accepted in memory first; if the file cannot be written
    the reading stays readable and ``PersistenceError`` is raised so the
    caller can report the failure.
    """

    backend_name = "json"

    def __init__(self, path: str, capacity: int, clock: Clock = utcnow):
        super().__init__(capacity, clock)
        self.path = path

    async def open(self) -> None:
        if not os.path.exists(self.path):
            logger.info("No data file at %s, starting empty", self.path)
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict) or not isinstance(data.get("leituras", []), list):
                raise ValueError("expected an object with a 'leituras' list")
            records = data.get("leituras", [])
            if not all(isinstance(record, dict) for record in records):
                raise ValueError("every entry in 'leituras' must be an object")
            readings = [Reading(**record) for record in records]
        except (OSError, ValueError) as exc:
            logger.error("Could not load %s, starting empty: %s", self.path, exc)
            return
        self._load(readings)
        logger.info("Loaded %s readings from %s", len(self._readings), self.path)

    def _save(self, readings: Iterable[Reading]) -> None:
        data = {
            "leituras": [r.to_record() for r in readings],
            "ultimaAtualizacao": utcnow().isoformat(),
        }
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    async def insert(self, payload: ReadingIn, client_ip: Optional[str] = None) -> Reading:
        reading = await super().insert(payload, client_ip)
        try:
            self._save(self._readings)
        except OSError as exc:
            logger.error("Failed to write %s: %s", self.path, exc)
            raise PersistenceError(f"Erro ao salvar dados no arquivo: {exc}", reading) from exc
        return reading

    async def clear(self) -> None:
        # File first: if it fails, memory still matches what is on disk
        try:
            self._save([])
        except OSError as exc:
            logger.error("Failed to clear %s: %s", self.path, exc)
            raise PersistenceError(f"Erro ao limpar arquivo de dados: {exc}") from exc
        await super().clear()


class SqlReadingStore(ReadingStore):
    backend_name = "sqlite"

    def __init__(self, engine, capacity: int, clock: Clock = utcnow):
        super().__init__(capacity, clock)
        self.engine = engine
        self.session_factory = make_session_factory(engine)
        # read-last, stamp, insert and trim must not interleave between requests
        self._lock = asyncio.Lock()

    @classmethod
    def from_url(cls, database_url: str, capacity: int, clock: Clock = utcnow) -> "SqlReadingStore":
        return cls(make_engine(database_url), capacity, clock)

    async def open(self) -> None:
        logger.info("Creating tables if missing")
        await create_tables(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    async def insert(self, payload: ReadingIn, client_ip: Optional[str] = None) -> Reading:
        reading = None
        try:
            async with self._lock, self.session_factory() as session:
                last_row = await crud.read_latest_reading(session)
                last = crud.row_to_reading(last_row) if last_row else None
                reading = self._stamp(payload, client_ip, last)
                await crud.create_reading(session, reading)
                await crud.trim_to_capacity(session, self.capacity)
                # insert and eviction land together or not at all
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to store reading: %s", exc)
            raise PersistenceError(f"Erro ao salvar dados no banco: {exc}", reading) from exc
        return reading

    async def recent(self, n: int) -> List[Reading]:
        if n <= 0:
            return []
        async with self.session_factory() as session:
            rows = await crud.read_latest_readings(session, n)
        return [crud.row_to_reading(row) for row in rows]

    async def window(self, since: Optional[datetime], until: Optional[datetime] = None) -> List[Reading]:
        async with self.session_factory() as session:
            rows = await crud.read_readings_between(session, since, until)
        return [crud.row_to_reading(row) for row in rows]

    async def count(self) -> int:
        async with self.session_factory() as session:
            return await crud.count_readings(session)

    async def clear(self) -> None:
        try:
            async with self._lock, self.session_factory() as session:
                await crud.delete_all_readings(session)
        except SQLAlchemyError as exc:
            logger.error("Failed to clear readings: %s", exc)
            raise PersistenceError(f"Erro ao limpar banco de dados: {exc}") from exc


def build_store(settings: Settings, clock: Clock = utcnow) -> ReadingStore:
    """Create the store selected by ``settings.STORE_BACKEND``."""
    if settings.STORE_BACKEND == "memory":
        return MemoryReadingStore(settings.STORE_CAPACITY, clock)
    if settings.STORE_BACKEND == "json":
        return JsonFileReadingStore(settings.DATA_FILE, settings.STORE_CAPACITY, clock)
    return SqlReadingStore.from_url(settings.DATABASE_URL, settings.STORE_CAPACITY, clock)
