# backend/multimedidor/models.py

from sqlalchemy import Column, Integer, String, Float, DateTime, JSON
from sqlalchemy.orm import declarative_base

# Base class for all tables
Base = declarative_base()


class ReadingRow(Base):
    __tablename__ = "readings"

    id = Column(Integer, primary_key=True, index=True)
    # Server receive time, stored as naive UTC
    created_at = Column(DateTime, nullable=False, index=True)
    device_id = Column(String, nullable=True, index=True)
    client_ip = Column(String, nullable=True)
    demanda_ativa = Column(Float, nullable=True)
    # Full reading as sent by the meter plus server metadata
    payload = Column(JSON, nullable=False)
