from datetime import timedelta

from fastapi.testclient import TestClient

from multimedidor.main import app, get_store
from multimedidor.store import JsonFileReadingStore, MemoryReadingStore

from conftest import NOW

SAMPLE = {
    "device_id": "multimedidor_ufrj_001",
    "timestamp": "10/03/2025 11:29:58",
    "Tensao_Trifasica": 219.8,
    "Corrente_Trifasica": 12.4,
    "Potencia_Ativa_Trifasica": 2710.0,
    "Demanda_Ativa": 2650.0,
    "Demanda_Maxima_Ativa": 3100.0,
    "THD_Tensao_Fase_1": 2.3,
    "Energia_Ativa_Negativa": None,
}


def post_reading(client, **overrides):
    body = dict(SAMPLE, **overrides)
    return client.post("/api/data", json=body)


def test_post_data_stores_reading(client):
    response = post_reading(client)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["total_registros"] == 1
    assert body["received"]["Demanda_Ativa"] == 2650.0

    latest = client.get("/api/latest").json()
    assert latest["device_id"] == "multimedidor_ufrj_001"
    assert latest["client_ip"] == "testclient"
    assert latest["timestamp"] == "10/03/2025 11:29:58"
    assert latest["created_at"].startswith("2025-03-10T14:30:00")


def test_post_data_rejects_non_numeric_field(client):
    response = post_reading(client, Demanda_Ativa="muita")
    assert response.status_code == 422


def test_post_data_keeps_unknown_fields(client):
    post_reading(client, Temperatura_CPU=47.5)
    assert client.get("/api/latest").json()["Temperatura_CPU"] == 47.5


def test_latest_is_404_when_empty(client):
    assert client.get("/api/latest").status_code == 404


def test_data_and_history_are_newest_first(client):
    for n in range(1, 13):
        post_reading(client, Demanda_Ativa=float(n))

    data = client.get("/api/data").json()
    assert data["status"] == "online"
    assert data["total_registros"] == 12
    assert [d["Demanda_Ativa"] for d in data["dados"]] == [float(n) for n in range(12, 2, -1)]

    history = client.get("/api/history", params={"limit": 3}).json()
    assert history["total"] == 3
    assert history["limite"] == 3
    assert [d["Demanda_Ativa"] for d in history["dados"]] == [12.0, 11.0, 10.0]

    assert client.get("/api/historico").json()["total"] == 12
    assert client.get("/api/history", params={"limit": 0}).status_code == 422


def test_hourly_demand_route(client):
    for value in (5.0, 1.0, 9.0, 0.0):
        post_reading(client, Demanda_Ativa=value)

    body = client.get("/api/demanda-diaria").json()
    assert body["status"] == "success"
    assert body["total_horas"] == 24
    bucket = body["dados"][14]
    assert bucket == {
        "hora": "14:00",
        "demanda_media": 5.0,
        "demanda_maxima": 9.0,
        "demanda_minima": 1.0,
        "registros": 3,
    }
    assert body["estatisticas"]["horas_com_dados"] == 1


def test_monthly_demand_route(client, clock):
    for days_ago in (3, 1, 1):
        clock.set(NOW - timedelta(days=days_ago))
        post_reading(client)

    body = client.get("/api/demanda-mensal").json()
    assert body["total_dias"] == 2
    assert [d["data_iso"] for d in body["dados"]] == ["2025-03-07", "2025-03-09"]
    assert body["dados"][1]["registros"] == 2


def test_realtime_demand_route(client):
    for n in range(1, 151):
        post_reading(client, Demanda_Ativa=float(n))

    body = client.get("/api/demanda-tempo-real").json()
    assert body["total_registros"] == 100
    assert body["dados"][0]["demanda"] == 51.0
    assert body["dados"][-1]["demanda"] == 150.0
    assert body["estatisticas"] == {"demanda_atual": 150.0, "demanda_maxima": 150.0}


def test_clear_resets_every_view(client):
    for n in range(5):
        post_reading(client, Demanda_Ativa=100.0 + n)

    response = client.post("/api/clear")
    assert response.status_code == 200
    assert response.json()["status"] == "success"

    assert client.get("/api/data").json()["dados"] == []
    assert client.get("/api/latest").status_code == 404
    hourly = client.get("/api/demanda-diaria").json()
    assert all(b["registros"] == 0 for b in hourly["dados"])
    assert hourly["estatisticas"]["maxima_geral"] == 0
    assert client.get("/api/demanda-mensal").json()["dados"] == []
    assert client.get("/api/demanda-tempo-real").json()["dados"] == []


def test_statistics_route(client):
    post_reading(client, Tensao_Trifasica=220.0, Potencia_Ativa_Trifasica=1000.0)
    post_reading(client, Tensao_Trifasica=222.0, Potencia_Ativa_Trifasica=3000.0)
    stats = client.get("/api/estatisticas").json()["estatisticas"]
    assert stats["total_leituras"] == 2
    assert stats["tensao_media"] == 221.0
    assert stats["potencia_maxima"] == 3000.0
    assert stats["potencia_minima"] == 1000.0


def test_csv_exports(client):
    assert client.get("/api/exportar/csv/completo").status_code == 404
    assert client.get("/api/exportar/csv/resumido").status_code == 404

    post_reading(client)
    post_reading(client)

    full = client.get("/api/exportar/csv/completo")
    assert full.status_code == 200
    assert full.headers["content-type"].startswith("text/csv")
    assert (
        full.headers["content-disposition"]
        == 'attachment; filename="dados_completos_multimedidor_2025-03-10_15-30-00.csv"'
    )
    lines = full.text.strip().split("\r\n")
    assert len(lines) == 3
    assert lines[0].startswith("ID;Device ID;")

    summary = client.get("/api/exportar/csv/resumido")
    assert summary.text.startswith("Data_Hora;")


def test_period_export(client):
    assert client.get("/api/exportar/csv/periodo", params={"inicio": "2025-03-01"}).status_code == 400
    assert client.get("/api/exportar/csv/periodo", params={"inicio": "x", "fim": "y"}).status_code == 400
    params = {"inicio": "2025-03-01", "fim": "2025-03-10"}
    assert client.get("/api/exportar/csv/periodo", params=params).status_code == 404

    post_reading(client)
    response = client.get("/api/exportar/csv/periodo", params=params)
    assert response.status_code == 200
    assert len(response.text.strip().split("\r\n")) == 2

    other_days = {"inicio": "2025-03-11", "fim": "2025-03-12"}
    assert client.get("/api/exportar/csv/periodo", params=other_days).status_code == 404


def test_health(client):
    post_reading(client)
    body = client.get("/api/health").json()
    assert body["status"] == "healthy"
    assert body["database"] == "memory"
    assert body["total_registros"] == 1


def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert "POST /api/data" in body["endpoints"]


def test_persistence_failure_is_500_but_reading_stays_readable(client, tmp_path, clock):
    broken = JsonFileReadingStore(str(tmp_path / "no-such-dir" / "dados.json"), capacity=10, clock=clock)
    app.dependency_overrides[get_store] = lambda: broken

    response = post_reading(client)
    assert response.status_code == 500
    body = response.json()
    assert body["status"] == "error"
    assert "error_details" in body

    assert client.get("/api/data").json()["total_registros"] == 1


class BrokenStore(MemoryReadingStore):
    async def recent(self, n):
        raise RuntimeError("boom")


def test_unexpected_error_is_json_500(client, clock):
    app.dependency_overrides[get_store] = lambda: BrokenStore(capacity=10, clock=clock)
    quiet = TestClient(app, raise_server_exceptions=False)

    response = quiet.get("/api/data")
    assert response.status_code == 500
    assert response.json() == {"status": "error", "message": "boom"}

    # routes that never touch recent() keep working
    assert quiet.get("/api/health").status_code == 200
