from fastapi.testclient import TestClient

from painel_vendas.config import Settings
from painel_vendas.errors import RemoteFetchError
from painel_vendas.main import create_app
from painel_vendas.services import DashboardService

from .conftest import FakeSheetsClient


def test_health(client):
    assert client.get("/_health").json() == {"ok": True}


# ==================== Dashboard ====================
def test_summary_sums_rows_in_inclusive_range(client):
    r = client.get("/api/dashboard/summary", params={"conta": "1", "start": "2024-01-01", "end": "2024-01-31"})
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["conta"] == "1"
    assert body["sheetId"] == "sheet-1"

    resumo = body["resumo"]
    assert resumo["faturamentoTotal"] == 1000.0 + 2500.5 + 500.0
    assert resumo["vendasTotais"] == 35
    assert resumo["visitas"] == 700
    assert resumo["ticketMedio"] == 108.34
    assert resumo["taxaConversao"] == 5.0
    assert resumo["variacaoFatMedia"] == 15.0
    assert resumo["variacaoVendasMedia"] is None


def test_summary_marketplace_filter(client):
    r = client.get("/api/dashboard/summary", params={"conta": "1", "marketplace": "shopee"})
    assert r.json()["resumo"]["faturamentoTotal"] == 2500.5


def test_rows_are_cached_between_requests(client, fake_client):
    client.get("/api/dashboard/summary", params={"conta": "1"})
    client.get("/api/dashboard/monthly", params={"conta": "1"})
    assert len(fake_client.read_calls) == 1


def test_unknown_account_is_400(client):
    r = client.get("/api/dashboard/summary", params={"conta": "9"})
    assert r.status_code == 400
    assert r.json() == {
        "ok": False,
        "conta": "9",
        "error": "Conta inválida ou GOOGLE_SHEETS_ID não configurado.",
        "code": "INVALID_PARAMETER",
        "field": "conta",
    }


def test_dashboard_refuses_veia_account(client):
    r = client.get("/api/dashboard/detalhado", params={"conta": "3"})
    assert r.status_code == 400
    assert r.json()["error"] == "Use /api/veia/* para conta 3"
    assert r.json()["sheetId"] == "sheet-3"


def test_invalid_date_is_400(client):
    r = client.get("/api/dashboard/summary", params={"conta": "1", "start": "ontem"})
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "INVALID_PARAMETER"
    assert body["field"] == "start"
    assert body["error"] == 'Parâmetro "start" inválido (use YYYY-MM-DD ou dd/mm/aaaa)'


def test_detalhado_with_and_without_pagination(client):
    body = client.get("/api/dashboard/detalhado", params={"conta": "1"}).json()
    assert body["total"] == 4
    assert body["page"] is None
    assert [l["dateISO"] for l in body["linhas"]][0] == "2024-01-01"

    body = client.get("/api/dashboard/detalhado", params={"conta": "1", "page": "2", "limit": "3"}).json()
    assert (body["page"], body["limit"], body["total"]) == (2, 3, 4)
    assert [l["dateISO"] for l in body["linhas"]] == ["2024-02-01"]

    r = client.get("/api/dashboard/detalhado", params={"conta": "1", "limit": "5000"})
    assert r.status_code == 400
    assert r.json()["error"] == 'Parâmetro "limit" deve ser no máximo 2000'


def test_monthly(client):
    body = client.get("/api/dashboard/monthly", params={"conta": "1"}).json()
    assert body["meses"] == [
        {"mesISO": "2024-01", "faturamento": 4000.5, "vendas": 35},
        {"mesISO": "2024-02", "faturamento": 3000.0, "vendas": 30},
    ]


def test_tab_not_found_lists_titles(service, fake_client):
    fake_client.sheets["sheet-2"] = {"Outra": []}
    client = TestClient(create_app(service=service))
    r = client.get("/api/dashboard/summary", params={"conta": "2"})
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "TAB_NOT_FOUND"
    assert body["available"] == ["Outra"]


def test_missing_headers_is_500(service, fake_client):
    fake_client.sheets["sheet-2"]["CONTA 2"] = [["Data", "Marketplace"], ["01/01/2024", "x"]]
    client = TestClient(create_app(service=service))
    r = client.get("/api/dashboard/summary", params={"conta": "2"})
    assert r.status_code == 500
    body = r.json()
    assert body["code"] == "MISSING_HEADERS"
    assert "Faturamento Dia (R$)" in body["missing"]


def test_remote_error_status_is_passed_through(service, fake_client):
    fake_client.error = RemoteFetchError("Quota exceeded", status_code=429)
    client = TestClient(create_app(service=service))
    r = client.get("/api/dashboard/summary", params={"conta": "1"})
    assert r.status_code == 429
    assert r.json()["code"] == "REMOTE_FETCH_ERROR"
    assert r.json()["error"] == "Quota exceeded"


# ==================== VEIA ====================
def test_veia_summary(client):
    body = client.get("/api/veia/summary", params={"conta": "3"}).json()
    assert body["resumo"]["meses"] == 2
    assert body["resumo"]["vendasBrutas1Total"] == 3000.0
    assert body["resumo"]["conta1Total"] == 7.0

    body = client.get("/api/veia/summary", params={"conta": "3", "modalidade": "full"}).json()
    assert body["resumo"]["vendasBrutas1Total"] == 1000.0


def test_veia_routes_only_for_conta_3(client):
    r = client.get("/api/veia/mensal", params={"conta": "1"})
    assert r.status_code == 400
    assert r.json()["error"] == "Rota VEIA só para conta 3"


def test_veia_invalid_month_filter(client):
    r = client.get("/api/veia/mensal", params={"conta": "3", "de": "janeiro"})
    assert r.status_code == 400
    assert r.json()["field"] == "de"


def test_veia_mensal_and_periodos(client):
    body = client.get("/api/veia/mensal", params={"conta": "3", "de": "02/2024"}).json()
    assert [m["mesAno"] for m in body["meses"]] == ["2024-02"]
    assert body["modalidades"] == ["Flex"]
    assert body["status"] == ["Cancelada"]

    body = client.get("/api/veia/consolidado", params={"conta": "3"}).json()
    assert body["tabName"] == "Consolidado"
    assert body["periodos"] == [
        {"value": "2024-01", "label": "01/2024"},
        {"value": "2024-02", "label": "02/2024"},
    ]


# ==================== Comparativo ====================
def test_comparativo_summary(client):
    r = client.get("/api/comparativo/summary", params={
        "contaA": "1", "contaB": "2", "de": "2024-01-01", "ate": "2024-01-31",
    })
    body = r.json()
    assert body["contaA"]["id"] == 1
    assert body["contaA"]["sheetId"] == "sheet-1"
    assert body["contaA"]["resumo"]["faturamentoTotal"] == 4000.5
    assert body["contaB"]["resumo"]["faturamentoTotal"] == 400.0
    assert body["delta"]["faturamentoTotal"] == 3600.5
    assert body["delta"]["vendasTotais"] == 31


def test_comparativo_rejects_other_accounts(client):
    r = client.get("/api/comparativo/summary", params={"contaA": "3", "contaB": "2"})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == 'Parâmetro "contaA" deve ser 1 ou 2'
    assert body["contaA"] == "3"


def test_comparativo_mensal(client):
    body = client.get("/api/comparativo/mensal", params={"contaA": "1", "contaB": "2"}).json()
    assert body["meses"] == [
        {"mesAno": "2024-01", "A": {"fat": 4000.5, "vendas": 35}, "B": {"fat": 400.0, "vendas": 4}},
        {"mesAno": "2024-02", "A": {"fat": 3000.0, "vendas": 30}, "B": {"fat": 600.0, "vendas": 6}},
    ]


# ==================== Curva ABC ====================
def test_curvaabc_rows(client):
    rows = client.get("/api/curvaabc").json()["rows"]
    assert len(rows) == 7
    assert rows[0]["codigoAnuncio"] == "MLB1"
    assert rows[0]["periodo"] == "2024-01-01"


def test_curvaabc_check_and_ack(client):
    mudancas = client.get("/api/curvaabc/check").json()["mudancas"]
    assert mudancas == [{
        "codigo": "MLB1",
        "anterior": "A",
        "atual": "B",
        "periodo_anterior": "2024-01-01",
        "periodo_atual": "2024-02-01",
        "marketplace": "Mercado Livre",
    }]

    r = client.post("/api/curvaabc/ack", json={
        "conta": 1, "codigoAnuncio": "MLB1", "periodo": "2024-02-01",
        "curvaAtual": "B", "marketplace": "Mercado Livre",
    })
    assert r.status_code == 200
    assert r.json()["ack"] == {
        "codigo": "MLB1", "periodoAtual": "2024-02-01", "curva": "B", "marketplace": "Mercado Livre",
    }
    assert client.get("/api/curvaabc/check").json()["mudancas"] == []


def test_curvaabc_ack_requires_codigo_and_periodo(client):
    r = client.post("/api/curvaabc/ack", json={"codigo": "MLB1"})
    assert r.status_code == 400
    assert r.json()["field"] == "periodo"

    r = client.post("/api/curvaabc/ack", json={"periodoAtual": "2024-02-01"})
    assert r.status_code == 400
    assert r.json()["field"] == "codigo"


def test_curvaabc_ack_malformed_body_is_400(client):
    r = client.post("/api/curvaabc/ack")
    assert r.status_code == 400
    assert r.json() == {
        "ok": False,
        "error": "Corpo da requisição inválido",
        "code": "INVALID_PARAMETER",
        "field": "body",
    }

    r = client.post("/api/curvaabc/ack", content="{x", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_PARAMETER"
    assert r.json()["field"] == "body"

    r = client.post("/api/curvaabc/ack", json={"codigo": 123, "periodo": "2024-02-01"})
    assert r.status_code == 400
    body = r.json()
    assert body["ok"] is False
    assert body["code"] == "INVALID_PARAMETER"
    assert body["field"] == "codigo"
    assert body["error"] == 'Parâmetro "codigo" inválido'


def test_curvaabc_not_configured(fake_client):
    settings = Settings(sheet_ids=["sheet-1", "sheet-2", "sheet-3"], tabs=["Conta 1", "Conta 2", "Consolidado"])
    client = TestClient(create_app(service=DashboardService(settings, fake_client)))
    r = client.get("/api/curvaabc")
    assert r.status_code == 500
    assert r.json()["code"] == "SHEETS_CONFIG_ERROR"


# ==================== Debug / sync ====================
def test_debug_sheets(client):
    body = client.get("/api/debug/sheets", params={"conta": "1"}).json()
    assert body["titles"] == ["Conta 1", "Resumo"]
    assert body["tabConfigurada"] == "Conta 1"


def test_debug_firstrow_veia(client):
    body = client.get("/api/debug/firstrow", params={"conta": "3"}).json()
    assert body["first"]["mesAno"] == "2024-01"
    assert body["headersDetectados"]["mes_ano"] == "MES/ANO"


def test_debug_sample_force_bypasses_cache(client, fake_client):
    body = client.get("/api/debug/sample", params={"conta": "1", "force": "1"}).json()
    assert len(body["rows"]) == 3
    assert body["previewRaw"][0]["Data"] == "01/01/2024"

    client.get("/api/dashboard/summary", params={"conta": "1"})
    # amostra (forcada + preview) e depois a carga normal do cache
    assert len(fake_client.read_calls) == 3


def test_sync_etag(client):
    r = client.get("/api/sync", params={"conta": "1"})
    assert r.status_code == 200
    etag = r.headers["etag"]
    assert len(r.json()["rows"]) == 4

    r = client.get("/api/sync", params={"conta": "1"}, headers={"If-None-Match": etag})
    assert r.status_code == 304


def test_lifespan_closes_client(service, fake_client):
    with TestClient(create_app(service=service)) as c:
        assert c.get("/_health").status_code == 200
    assert fake_client.closed
