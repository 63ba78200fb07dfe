# backend/multimedidor/schemas.py

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict

READING_SCHEMA_VERSION = 1


class MeterFields(BaseModel):
    """
    Numeric fields reported by the three-phase meter, named exactly as the
    ESP32 firmware sends them. Every field is optional: a register the
    firmware failed to read arrives as null.
    """

    model_config = ConfigDict(extra="allow")

    # Three-phase system
    Tensao_Trifasica: Optional[float] = None
    Corrente_Trifasica: Optional[float] = None
    Fator_Potencia_Trifasico: Optional[float] = None
    Potencia_Aparente_Trifasica: Optional[float] = None
    Potencia_Reativa_Trifasica: Optional[float] = None
    Potencia_Ativa_Trifasica: Optional[float] = None
    Frequencia: Optional[float] = None

    # Per phase
    Tensao_Fase_1: Optional[float] = None
    Tensao_Fase_2: Optional[float] = None
    Tensao_Fase_3: Optional[float] = None
    Corrente_Fase_1: Optional[float] = None
    Corrente_Fase_2: Optional[float] = None
    Corrente_Fase_3: Optional[float] = None
    Potencia_Ativa_Fase_1: Optional[float] = None
    Potencia_Ativa_Fase_2: Optional[float] = None
    Potencia_Ativa_Fase_3: Optional[float] = None
    Potencia_Reativa_Fase_1: Optional[float] = None
    Potencia_Reativa_Fase_2: Optional[float] = None
    Potencia_Reativa_Fase_3: Optional[float] = None
    Potencia_Aparente_Fase_1: Optional[float] = None
    Potencia_Aparente_Fase_2: Optional[float] = None
    Potencia_Aparente_Fase_3: Optional[float] = None
    Fator_Potencia_Fase_1: Optional[float] = None
    Fator_Potencia_Fase_2: Optional[float] = None
    Fator_Potencia_Fase_3: Optional[float] = None

    # Energy counters
    Energia_Ativa_Positiva: Optional[float] = None
    Energia_Reativa_Positiva: Optional[float] = None
    Energia_Ativa_Negativa: Optional[float] = None
    Energia_Reativa_Negativa: Optional[float] = None

    # Demand
    Demanda_Maxima_Ativa: Optional[float] = None
    Demanda_Ativa: Optional[float] = None
    Demanda_Maxima_Aparente: Optional[float] = None
    Demanda_Aparente: Optional[float] = None

    # Line voltages and maxima
    Tensao_Linha_12: Optional[float] = None
    Tensao_Linha_23: Optional[float] = None
    Tensao_Linha_31: Optional[float] = None
    Tensao_Maxima_Trifasica: Optional[float] = None
    Corrente_Maxima_Trifasica: Optional[float] = None

    # THD (carried as reported)
    THD_Tensao_Fase_1: Optional[float] = None
    THD_Tensao_Fase_2: Optional[float] = None
    THD_Tensao_Fase_3: Optional[float] = None
    THD_Corrente_Fase_1: Optional[float] = None
    THD_Corrente_Fase_2: Optional[float] = None
    THD_Corrente_Fase_3: Optional[float] = None


class ReadingIn(MeterFields):
    """Payload posted by the meter to /api/data."""

    device_id: Optional[str] = None
    # Device clock, informational only
    timestamp: Optional[Union[str, float]] = None


class Reading(ReadingIn):
    """A stored reading. Immutable once the store hands it out."""

    model_config = ConfigDict(extra="allow", frozen=True)

    client_ip: Optional[str] = None
    created_at: datetime
    schema_version: int = READING_SCHEMA_VERSION

    @classmethod
    def from_payload(cls, payload: ReadingIn, created_at: datetime, client_ip: Optional[str] = None) -> "Reading":
        data = payload.model_dump()
        data.update(created_at=created_at, client_ip=client_ip, schema_version=READING_SCHEMA_VERSION)
        return cls(**data)

    def to_record(self) -> dict:
        """JSON-safe dict, as written to the data file or the payload column."""
        return self.model_dump(mode="json")


# --- Aggregation output ---------------------------------------------------


class HourlyBucket(BaseModel):
    hora: str
    demanda_media: float = 0
    demanda_maxima: float = 0
    demanda_minima: float = 0
    registros: int = 0


class HourlyStatistics(BaseModel):
    media_geral: float = 0
    maxima_geral: float = 0
    minima_geral: float = 0
    horas_com_dados: int = 0


class HourlyDemand(BaseModel):
    status: str = "success"
    periodo: str = "Últimas 24 horas"
    total_horas: int
    dados: List[HourlyBucket]
    estatisticas: HourlyStatistics


class DailyBucket(BaseModel):
    data: str
    data_iso: str
    demanda_media: float = 0
    demanda_maxima: float = 0
    demanda_minima: float = 0
    registros: int = 0


class DailyStatistics(BaseModel):
    media_geral: float = 0
    maxima_geral: float = 0
    minima_geral: float = 0
    dias_com_dados: int = 0


class DailyDemand(BaseModel):
    status: str = "success"
    periodo: str = "Últimos 30 dias"
    total_dias: int
    dados: List[DailyBucket]
    estatisticas: DailyStatistics


class DemandPoint(BaseModel):
    timestamp: str
    timestamp_iso: str
    demanda: float
    demanda_maxima: float


class RealtimeStatistics(BaseModel):
    demanda_atual: float = 0
    demanda_maxima: float = 0


class RealtimeDemand(BaseModel):
    status: str = "success"
    periodo: str = "Últimas 6 horas"
    total_registros: int
    dados: List[DemandPoint]
    estatisticas: RealtimeStatistics


class StoreStatistics(BaseModel):
    total_leituras: int = 0
    tensao_media: float = 0
    corrente_media: float = 0
    potencia_media: float = 0
    potencia_maxima: float = 0
    potencia_minima: float = 0
    data_inicio: Optional[datetime] = None
    data_fim: Optional[datetime] = None
