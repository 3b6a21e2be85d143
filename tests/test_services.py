import asyncio

import pytest

from painel_vendas.config import Settings
from painel_vendas.errors import ConfigError
from painel_vendas.services import DashboardService

from .conftest import FakeSheetsClient


def test_account_helpers(settings):
    assert settings.account_tab_name("2") == "Conta 2"
    assert settings.account_tab_name("9") == "Curva ABC"
    assert settings.account_tab_name("abc") == "Conta 1"
    assert settings.account_tab_name(None) == "Conta 1"
    assert settings.sheet_id_for("3") == "sheet-3"
    assert settings.sheet_id_for("9") is None
    assert settings.curva_abc_settings() == ("sheet-abc", "Curva ABC")
    assert settings.veia_tab_name() == "Consolidado"


def test_incomplete_settings():
    s = Settings(sheet_ids=["a", "b", "c"])
    assert s.veia_tab_name() == "Consolidado"
    with pytest.raises(ConfigError):
        s.account_tab_name("1")
    with pytest.raises(ConfigError):
        s.curva_abc_settings()


def test_concurrent_loads_read_the_sheet_once(settings):
    fake = FakeSheetsClient(delay=0.01)
    service = DashboardService(settings, fake)

    async def run():
        return await asyncio.gather(
            service.load_sheet_data("sheet-1", "1"),
            service.load_sheet_data("sheet-1", "1"),
        )

    a, b = asyncio.run(run())
    assert a == b and len(a) == 4
    assert len(fake.read_calls) == 1
    assert fake.read_calls[0] == ("sheet-1", "'Conta 1'!A1:Z10000")


def test_force_reads_again_without_replacing_cache(service, fake_client):
    asyncio.run(service.load_sheet_data("sheet-1", "1"))
    asyncio.run(service.load_sheet_data("sheet-1", "1", force=True))
    asyncio.run(service.load_sheet_data("sheet-1", "1"))
    assert len(fake_client.read_calls) == 2


def test_real_tab_title_is_used_for_rows(service):
    rows = asyncio.run(service.load_sheet_data("sheet-2", "2"))
    assert {r.conta for r in rows} == {"CONTA 2"}


def test_veia_dataset(service):
    dataset = asyncio.run(service.load_veia("sheet-3"))
    assert dataset.tab_name == "Consolidado"
    assert [r.mes_ano for r in dataset.rows] == ["2024-01", "2024-02"]
    assert dataset.headers["status"] == "Status da Venda"


def test_comparativo_filtered_rows_are_cached(service, fake_client):
    filters = {"de": "2024-01-01", "ate": "2024-01-31", "marketplace": None}
    a, b = asyncio.run(service.load_comparativo("1", "2", filters))
    assert (a.id, b.id) == (1, 2)
    assert len(a.rows) == 3 and len(b.rows) == 1
    assert len(service.comparativo_cache) == 2

    asyncio.run(service.load_comparativo("1", "2", filters))
    assert len(fake_client.read_calls) == 2


def test_acknowledged_transitions_are_hidden(service):
    pending = asyncio.run(service.curva_abc_pending())
    assert [(m.codigo, m.anterior, m.atual) for m in pending] == [("MLB1", "A", "B")]

    service.ack_transition("MLB1", "01/02/2024", curva="B", marketplace="MERCADO LIVRE")
    assert asyncio.run(service.curva_abc_pending()) == []


def test_ack_store_drops_oldest_past_limit(service):
    service.max_acks = 2
    service.ack_transition("MLB1", "2024-02-01", marketplace="Mercado Livre")
    service.ack_transition("MLB2", "2024-02-01")
    service.ack_transition("MLB3", "2024-02-01")

    assert len(service._acks) == 2
    # a mais antiga (MLB1) saiu, entao a mudanca volta a aparecer
    pending = asyncio.run(service.curva_abc_pending())
    assert [m.codigo for m in pending] == ["MLB1"]


def test_aclose_closes_client(service, fake_client):
    asyncio.run(service.aclose())
    assert fake_client.closed
