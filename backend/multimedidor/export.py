# backend/multimedidor/export.py

import csv
import io
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import ExportPeriodError
from .schemas import Reading

FULL_EXPORT_LIMIT = 10000
SUMMARY_EXPORT_LIMIT = 5000

# (header, Reading attribute)
FULL_COLUMNS: List[Tuple[str, str]] = [
    ("Device ID", "device_id"),
    ("Timestamp", "timestamp"),
    ("Tensão Trifásica (V)", "Tensao_Trifasica"),
    ("Corrente Trifásica (A)", "Corrente_Trifasica"),
    ("Fator Potência Trifásico", "Fator_Potencia_Trifasico"),
    ("Potência Aparente Trifásica (VA)", "Potencia_Aparente_Trifasica"),
    ("Potência Reativa Trifásica (Var)", "Potencia_Reativa_Trifasica"),
    ("Potência Ativa Trifásica (W)", "Potencia_Ativa_Trifasica"),
    ("Frequência (Hz)", "Frequencia"),
    ("Tensão Fase 1 (V)", "Tensao_Fase_1"),
    ("Tensão Fase 2 (V)", "Tensao_Fase_2"),
    ("Tensão Fase 3 (V)", "Tensao_Fase_3"),
    ("Corrente Fase 1 (A)", "Corrente_Fase_1"),
    ("Corrente Fase 2 (A)", "Corrente_Fase_2"),
    ("Corrente Fase 3 (A)", "Corrente_Fase_3"),
    ("Energia Ativa Positiva (kWh)", "Energia_Ativa_Positiva"),
    ("Energia Reativa Positiva (kVARh)", "Energia_Reativa_Positiva"),
    ("Demanda Máxima Ativa (W)", "Demanda_Maxima_Ativa"),
    ("Demanda Ativa (W)", "Demanda_Ativa"),
    ("Tensão Linha 12 (V)", "Tensao_Linha_12"),
    ("Tensão Linha 23 (V)", "Tensao_Linha_23"),
    ("Tensão Linha 31 (V)", "Tensao_Linha_31"),
    ("THD Tensão Fase 1 (%)", "THD_Tensao_Fase_1"),
    ("THD Tensão Fase 2 (%)", "THD_Tensao_Fase_2"),
    ("THD Tensão Fase 3 (%)", "THD_Tensao_Fase_3"),
    ("THD Corrente Fase 1 (%)", "THD_Corrente_Fase_1"),
    ("THD Corrente Fase 2 (%)", "THD_Corrente_Fase_2"),
    ("THD Corrente Fase 3 (%)", "THD_Corrente_Fase_3"),
    ("Client IP", "client_ip"),
    ("Data/Hora Criação", "created_at"),
]

SUMMARY_COLUMNS: List[Tuple[str, str]] = [
    ("Data_Hora", "created_at"),
    ("Tensao_Trifasica_V", "Tensao_Trifasica"),
    ("Corrente_Trifasica_A", "Corrente_Trifasica"),
    ("Potencia_Ativa_W", "Potencia_Ativa_Trifasica"),
    ("Demanda_Ativa_W", "Demanda_Ativa"),
    ("Frequencia_Hz", "Frequencia"),
    ("Fator_Potencia", "Fator_Potencia_Trifasico"),
    ("Energia_Ativa_kWh", "Energia_Ativa_Positiva"),
    ("THD_Tensao_F1_%", "THD_Tensao_Fase_1"),
]


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def render_csv(readings: Iterable[Reading], columns: Sequence[Tuple[str, str]], numbered: bool = False) -> str:
    """
    Render readings as ``;``-separated CSV with CRLF line endings.
    Absent fields become empty cells. With ``numbered`` a leading ID column counts rows from 1.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", lineterminator="\r\n")
    headers = [header for header, _ in columns]
    writer.writerow(["ID"] + headers if numbered else headers)
    for index, reading in enumerate(readings, start=1):
        row = [_cell(getattr(reading, attr, None)) for _, attr in columns]
        writer.writerow([index] + row if numbered else row)
    return buffer.getvalue()


def render_full_csv(readings: Iterable[Reading]) -> str:
    return render_csv(readings, FULL_COLUMNS, numbered=True)


def render_summary_csv(readings: Iterable[Reading]) -> str:
    return render_csv(readings, SUMMARY_COLUMNS)


def export_filename(kind: str, now: datetime) -> str:
    """dados_<kind>_multimedidor_2025-01-31_14-05-09.csv"""
    return f"dados_{kind}_multimedidor_{now.strftime('%Y-%m-%d_%H-%M-%S')}.csv"


def parse_period(inicio: Optional[str], fim: Optional[str]) -> Tuple[date, date]:
    """Validate the ``inicio``/``fim`` query strings (YYYY-MM-DD, both required, inicio <= fim)."""
    if not inicio or not fim:
        raise ExportPeriodError("Informe as datas 'inicio' e 'fim' (AAAA-MM-DD)")
    try:
        start = date.fromisoformat(inicio)
        end = date.fromisoformat(fim)
    except ValueError:
        raise ExportPeriodError("Datas devem estar no formato AAAA-MM-DD")
    if start > end:
        raise ExportPeriodError("'inicio' deve ser anterior ou igual a 'fim'")
    return start, end


def period_bounds(start: date, end: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Local dates ``start..end`` inclusive as a half-open instant range."""
    since = datetime.combine(start, time.min, tzinfo=tz)
    until = datetime.combine(end + timedelta(days=1), time.min, tzinfo=tz)
    return since, until
