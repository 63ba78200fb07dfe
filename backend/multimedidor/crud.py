# backend/multimedidor/crud.py

from datetime import datetime, timezone
import logging
from typing import List, Optional

from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ReadingRow
from .schemas import Reading

logger = logging.getLogger(__name__)


def to_naive_utc(moment: datetime) -> datetime:
    """SQLite keeps no offset, so every stored/compared instant is naive UTC."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def row_to_reading(row: ReadingRow) -> Reading:
    return Reading(**row.payload)


async def create_reading(db: AsyncSession, reading: Reading) -> ReadingRow:
    """
    Stage one reading in the current transaction; the caller commits.
    :param db: async SQLAlchemy session
    :param reading: reading with created_at already assigned
    :return: the inserted row, with its id assigned
    """
    row = ReadingRow(
        created_at=to_naive_utc(reading.created_at),
        device_id=reading.device_id,
        client_ip=reading.client_ip,
        demanda_ativa=reading.Demanda_Ativa,
        payload=reading.to_record(),
    )
    db.add(row)
    await db.flush()
    logger.debug("Reading stored with id %s", row.id)
    return row


async def trim_to_capacity(db: AsyncSession, capacity: int) -> int:
    """
    Drop the oldest rows so at most ``capacity`` remain. The caller commits.
    :return: number of rows deleted
    """
    # SELECT id FROM readings ORDER BY id DESC LIMIT 1 OFFSET capacity
    result = await db.execute(
        select(ReadingRow.id).order_by(desc(ReadingRow.id)).offset(capacity).limit(1)
    )
    cutoff_id = result.scalar()
    if cutoff_id is None:
        return 0
    result = await db.execute(delete(ReadingRow).where(ReadingRow.id <= cutoff_id))
    logger.debug("Evicted %s readings over capacity %s", result.rowcount, capacity)
    return result.rowcount


async def read_latest_readings(db: AsyncSession, limit: int) -> List[ReadingRow]:
    """Return last ``limit`` rows, newest first."""
    result = await db.execute(
        select(ReadingRow).order_by(desc(ReadingRow.id)).limit(limit)
    )
    return list(result.scalars().all())


async def read_latest_reading(db: AsyncSession) -> Optional[ReadingRow]:
    rows = await read_latest_readings(db, 1)
    return rows[0] if rows else None


async def read_readings_between(
    db: AsyncSession, since: Optional[datetime] = None, until: Optional[datetime] = None
) -> List[ReadingRow]:
    """
    Rows with ``since <= created_at < until``, oldest first.
    Either bound may be None to leave that side open.
    """
    query = select(ReadingRow)
    if since is not None:
        query = query.where(ReadingRow.created_at >= to_naive_utc(since))
    if until is not None:
        query = query.where(ReadingRow.created_at < to_naive_utc(until))
    result = await db.execute(query.order_by(ReadingRow.id))
    rows = list(result.scalars().all())
    logger.debug("Fetched %s readings between %s and %s", len(rows), since, until)
    return rows


async def count_readings(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(ReadingRow.id)))
    return result.scalar() or 0


async def delete_all_readings(db: AsyncSession) -> int:
    result = await db.execute(delete(ReadingRow))
    await db.commit()
    logger.info("Deleted %s readings", result.rowcount)
    return result.rowcount
