# backend/multimedidor/aggregation.py

"""
Demand aggregation for the dashboard charts.

All functions are pure: they take readings (any order is fine, they are
filtered by ``created_at``), the current instant and the timezone used for
hour / date labels. Only readings whose ``Demanda_Ativa`` is present and
strictly positive are counted. Values are rounded to 2 decimals when the
output models are built, never while grouping.
"""

from datetime import datetime, timedelta, tzinfo
from typing import Iterable, List

import pandas as pd

from .schemas import (
    DailyBucket,
    DailyDemand,
    DailyStatistics,
    DemandPoint,
    HourlyBucket,
    HourlyDemand,
    HourlyStatistics,
    Reading,
    RealtimeDemand,
    RealtimeStatistics,
    StoreStatistics,
)

HOURLY_WINDOW = timedelta(hours=24)
DAILY_WINDOW = timedelta(days=30)
REALTIME_WINDOW = timedelta(hours=6)
REALTIME_LIMIT = 100

BUCKET_STATS = ["mean", "max", "min", "count"]


def demand_frame(readings: Iterable[Reading], now: datetime, span: timedelta) -> pd.DataFrame:
    """
    Readings received in ``[now - span, now]`` with positive demand, oldest first.
    Columns: created_at (UTC), demanda, demanda_maxima.
    """
    readings = list(readings)
    df = pd.DataFrame({
        "created_at": pd.to_datetime([r.created_at for r in readings], utc=True),
        "demanda": pd.Series([r.Demanda_Ativa for r in readings], dtype="float64"),
        "demanda_maxima": pd.Series([r.Demanda_Maxima_Ativa for r in readings], dtype="float64"),
    })
    # NaN > 0 is False, so absent demand drops out here too
    mask = (df["created_at"] >= now - span) & (df["created_at"] <= now) & (df["demanda"] > 0)
    return df[mask].sort_values("created_at", kind="stable")


def _group_demand(df: pd.DataFrame, key: pd.Series) -> pd.DataFrame:
    return df.groupby(key)["demanda"].agg(BUCKET_STATS)


def _overall(grouped: pd.DataFrame):
    """Average of bucket averages, max of maxima, min of minima over buckets with data."""
    filled = grouped[(grouped["count"] > 0) & (grouped["mean"] > 0)]
    if filled.empty:
        return 0.0, 0.0, 0.0, 0
    return float(filled["mean"].mean()), float(filled["max"].max()), float(filled["min"].min()), len(filled)


def demand_by_hour(readings: Iterable[Reading], now: datetime, tz: tzinfo) -> HourlyDemand:
    """
    Group the last 24 hours by local hour of day.
    Always returns 24 buckets "00:00".."23:00"; hours without data are zero.
    """
    df = demand_frame(readings, now, HOURLY_WINDOW)
    local_hour = df["created_at"].dt.tz_convert(tz).dt.hour
    grouped = _group_demand(df, local_hour).reindex(range(24), fill_value=0)

    buckets = [
        HourlyBucket(
            hora=f"{hour:02d}:00",
            demanda_media=round(float(row["mean"]), 2),
            demanda_maxima=round(float(row["max"]), 2),
            demanda_minima=round(float(row["min"]), 2),
            registros=int(row["count"]),
        )
        for hour, row in grouped.iterrows()
    ]
    average, maximum, minimum, filled = _overall(grouped)
    return HourlyDemand(
        total_horas=len(buckets),
        dados=buckets,
        estatisticas=HourlyStatistics(
            media_geral=round(average, 2),
            maxima_geral=round(maximum, 2),
            minima_geral=round(minimum, 2),
            horas_com_dados=filled,
        ),
    )


def demand_by_day(readings: Iterable[Reading], now: datetime, tz: tzinfo) -> DailyDemand:
    """Group the last 30 days by local calendar date. Only days with data appear, oldest first."""
    df = demand_frame(readings, now, DAILY_WINDOW)
    local_day = df["created_at"].dt.tz_convert(tz).dt.date
    grouped = _group_demand(df, local_day).sort_index()

    buckets = [
        DailyBucket(
            data=day.strftime("%d/%m/%Y"),
            data_iso=day.isoformat(),
            demanda_media=round(float(row["mean"]), 2),
            demanda_maxima=round(float(row["max"]), 2),
            demanda_minima=round(float(row["min"]), 2),
            registros=int(row["count"]),
        )
        for day, row in grouped.iterrows()
    ]
    average, maximum, minimum, filled = _overall(grouped)
    return DailyDemand(
        total_dias=len(buckets),
        dados=buckets,
        estatisticas=DailyStatistics(
            media_geral=round(average, 2),
            maxima_geral=round(maximum, 2),
            minima_geral=round(minimum, 2),
            dias_com_dados=filled,
        ),
    )


def demand_realtime(
    readings: Iterable[Reading], now: datetime, tz: tzinfo, limit: int = REALTIME_LIMIT
) -> RealtimeDemand:
    """Point series of the last 6 hours, at most ``limit`` most recent points, oldest first."""
    df = demand_frame(readings, now, REALTIME_WINDOW)
    series = df.tail(limit) if limit > 0 else df.iloc[0:0]
    points = [
        DemandPoint(
            timestamp=row.created_at.tz_convert(tz).strftime("%H:%M:%S"),
            timestamp_iso=row.created_at.isoformat(),
            demanda=round(float(row.demanda), 2),
            demanda_maxima=0.0 if pd.isna(row.demanda_maxima) else round(float(row.demanda_maxima), 2),
        )
        for row in series.itertuples(index=False)
    ]
    current = float(series["demanda"].iloc[-1]) if not series.empty else 0.0
    peak = float(series["demanda"].max()) if not series.empty else 0.0
    return RealtimeDemand(
        total_registros=len(points),
        dados=points,
        estatisticas=RealtimeStatistics(
            demanda_atual=round(current, 2),
            demanda_maxima=round(peak, 2),
        ),
    )


def store_statistics(readings: List[Reading]) -> StoreStatistics:
    """
    Whole-store summary. Means cover readings that report a three-phase
    voltage; the minimum power only looks at positive values.
    """
    if not readings:
        return StoreStatistics()
    df = pd.DataFrame({
        "tensao": pd.Series([r.Tensao_Trifasica for r in readings], dtype="float64"),
        "corrente": pd.Series([r.Corrente_Trifasica for r in readings], dtype="float64"),
        "potencia": pd.Series([r.Potencia_Ativa_Trifasica for r in readings], dtype="float64"),
    })
    with_voltage = df[df["tensao"].notna()].fillna(0.0)
    powers = with_voltage["potencia"]
    positive = powers[powers > 0]
    has_voltage = not with_voltage.empty
    return StoreStatistics(
        total_leituras=len(readings),
        tensao_media=round(float(with_voltage["tensao"].mean()), 2) if has_voltage else 0,
        corrente_media=round(float(with_voltage["corrente"].mean()), 2) if has_voltage else 0,
        potencia_media=round(float(powers.mean()), 2) if has_voltage else 0,
        potencia_maxima=round(float(powers.max()), 2) if has_voltage else 0,
        potencia_minima=round(float(positive.min()), 2) if not positive.empty else 0,
        data_inicio=readings[0].created_at,
        data_fim=readings[-1].created_at,
    )
