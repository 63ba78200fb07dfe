# backend/multimedidor/main.py

import logging
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .aggregation import (
    DAILY_WINDOW,
    HOURLY_WINDOW,
    REALTIME_WINDOW,
    demand_by_day,
    demand_by_hour,
    demand_realtime,
    store_statistics,
)
from .config import settings
from .errors import ExportPeriodError, PersistenceError
from .export import (
    FULL_EXPORT_LIMIT,
    SUMMARY_EXPORT_LIMIT,
    export_filename,
    parse_period,
    period_bounds,
    render_full_csv,
    render_summary_csv,
)
from .schemas import ReadingIn
from .store import ReadingStore, build_store, utcnow

logging.basicConfig(
    filename=settings.LOG_FILE,
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.SERVER_NAME)

# The dashboard may be served from anywhere on the lab network
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_URLS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.store = None


@app.on_event("startup")
async def on_startup():
    """
    Build the reading store selected in settings and open it
    (creates the table or loads the data file).
    """
    store = build_store(settings)
    logger.info("Application startup: opening %s store (capacity %s)", store.backend_name, store.capacity)
    await store.open()
    app.state.store = store
    logger.info("Store ready with %s readings", await store.count())


@app.on_event("shutdown")
async def on_shutdown():
    if app.state.store is not None:
        await app.state.store.close()


def get_store(request: Request) -> ReadingStore:
    """FastAPI dependency: the store created at startup."""
    return request.app.state.store


def get_now() -> datetime:
    return utcnow()


def get_timezone() -> tzinfo:
    return ZoneInfo(settings.TIMEZONE)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"status": "error", "message": str(exc)})


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Ingestion ------------------------------------------------------------


@app.post("/api/data")
async def api_receive_data(payload: ReadingIn, request: Request, store: ReadingStore = Depends(get_store)):
    """
    Endpoint: POST /api/data
    Stores one reading sent by the ESP32. If the backing storage fails the
    reading is still kept in memory when the store allows it, and 500 is returned.
    """
    received = payload.model_dump(exclude_unset=True)
    logger.info(
        "Reading from %s: demand=%s W, %s fields",
        payload.device_id or "N/A", payload.Demanda_Ativa, len(received),
    )
    client_ip = request.client.host if request.client else None
    try:
        await store.insert(payload, client_ip=client_ip)
    except PersistenceError as exc:
        return JSONResponse(
            status_code=500,
            content={"status": "error", "message": "Erro ao salvar dados", "error_details": str(exc)},
        )
    total = await store.count()
    logger.debug("Reading stored, %s in store", total)
    return {
        "status": "success",
        "message": "Dados recebidos e salvos!",
        "total_registros": total,
        "received": received,
    }


# --- Retrieval ------------------------------------------------------------


@app.get("/api/data")
async def api_recent_data(store: ReadingStore = Depends(get_store)):
    """Last 10 readings, newest first."""
    logger.info("/api/data called")
    readings = await store.recent(10)
    return {
        "status": "online",
        "total_registros": await store.count(),
        "ultima_atualizacao": readings[0].created_at.isoformat() if readings else None,
        "dados": [r.to_record() for r in readings],
    }


@app.get("/api/latest")
async def api_latest(store: ReadingStore = Depends(get_store)):
    """
    Endpoint: GET /api/latest
    Most recent reading. 404 if nothing has been received yet.
    """
    logger.info("/api/latest called")
    latest = await store.latest()
    if latest is None:
        raise HTTPException(status_code=404, detail="Nenhum dado recebido")
    return latest.to_record()


@app.get("/api/history")
@app.get("/api/historico")
async def api_history(limit: int = Query(100, ge=1), store: ReadingStore = Depends(get_store)):
    """Return last N readings, newest first."""
    logger.info("/api/history called with limit %s", limit)
    readings = await store.recent(limit)
    return {
        "status": "success",
        "total": len(readings),
        "limite": limit,
        "dados": [r.to_record() for r in readings],
    }


@app.get("/api/estatisticas")
async def api_statistics(store: ReadingStore = Depends(get_store)):
    logger.info("/api/estatisticas called")
    return {"status": "success", "estatisticas": store_statistics(await store.all())}


# --- Demand charts --------------------------------------------------------


@app.get("/api/demanda-diaria")
async def api_demand_daily(
    store: ReadingStore = Depends(get_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_timezone),
):
    """Demand per hour of day over the last 24 hours (24 buckets)."""
    logger.info("/api/demanda-diaria called")
    readings = await store.window(now - HOURLY_WINDOW)
    return demand_by_hour(readings, now, tz)


@app.get("/api/demanda-mensal")
async def api_demand_monthly(
    store: ReadingStore = Depends(get_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_timezone),
):
    """Demand per calendar day over the last 30 days."""
    logger.info("/api/demanda-mensal called")
    readings = await store.window(now - DAILY_WINDOW)
    return demand_by_day(readings, now, tz)


@app.get("/api/demanda-tempo-real")
async def api_demand_realtime(
    store: ReadingStore = Depends(get_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_timezone),
):
    """Last 100 demand points of the last 6 hours."""
    logger.info("/api/demanda-tempo-real called")
    readings = await store.window(now - REALTIME_WINDOW)
    return demand_realtime(readings, now, tz)


# --- CSV export -----------------------------------------------------------


@app.get("/api/exportar/csv/completo")
async def api_export_full(store: ReadingStore = Depends(get_store), now: datetime = Depends(get_now)):
    readings = (await store.all())[-FULL_EXPORT_LIMIT:]
    if not readings:
        raise HTTPException(status_code=404, detail="Nenhum dado encontrado para exportação")
    logger.info("Exporting %s readings (full CSV)", len(readings))
    return csv_response(render_full_csv(readings), export_filename("completos", now))


@app.get("/api/exportar/csv/resumido")
async def api_export_summary(store: ReadingStore = Depends(get_store), now: datetime = Depends(get_now)):
    readings = (await store.all())[-SUMMARY_EXPORT_LIMIT:]
    if not readings:
        raise HTTPException(status_code=404, detail="Nenhum dado encontrado para exportação")
    logger.info("Exporting %s readings (summary CSV)", len(readings))
    return csv_response(render_summary_csv(readings), export_filename("resumidos", now))


@app.get("/api/exportar/csv/periodo")
async def api_export_period(
    inicio: Optional[str] = None,
    fim: Optional[str] = None,
    store: ReadingStore = Depends(get_store),
    now: datetime = Depends(get_now),
    tz: tzinfo = Depends(get_timezone),
):
    """
    Endpoint: GET /api/exportar/csv/periodo?inicio=AAAA-MM-DD&fim=AAAA-MM-DD
    Full CSV for local dates inicio..fim inclusive. 400 on bad dates, 404 if empty.
    """
    try:
        start, end = parse_period(inicio, fim)
    except ExportPeriodError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    since, until = period_bounds(start, end, tz)
    readings = await store.window(since, until)
    if not readings:
        raise HTTPException(status_code=404, detail="Nenhum dado encontrado no período")
    logger.info("Exporting %s readings for %s..%s", len(readings), start, end)
    return csv_response(render_full_csv(readings), export_filename("periodo", now))


# --- Admin / health -------------------------------------------------------


@app.post("/api/clear")
async def api_clear(store: ReadingStore = Depends(get_store)):
    logger.warning("/api/clear called, removing all readings")
    try:
        await store.clear()
    except PersistenceError as exc:
        return JSONResponse(status_code=500, content={"status": "error", "message": str(exc)})
    return {"status": "success", "message": "Dados limpos com sucesso!"}


@app.get("/api/health")
async def api_health(store: ReadingStore = Depends(get_store), now: datetime = Depends(get_now)):
    return {
        "status": "healthy",
        "server": settings.SERVER_NAME,
        "database": store.backend_name,
        "total_registros": await store.count(),
        "timestamp": now.isoformat(),
    }


@app.get("/")
async def root():
    return {
        "message": f"{settings.SERVER_NAME} funcionando!",
        "endpoints": [
            "POST /api/data",
            "GET /api/data",
            "GET /api/latest",
            "GET /api/history?limit=N",
            "GET /api/estatisticas",
            "GET /api/demanda-diaria",
            "GET /api/demanda-mensal",
            "GET /api/demanda-tempo-real",
            "GET /api/exportar/csv/completo",
            "GET /api/exportar/csv/resumido",
            "GET /api/exportar/csv/periodo?inicio=AAAA-MM-DD&fim=AAAA-MM-DD",
            "POST /api/clear",
            "GET /api/health",
        ],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
