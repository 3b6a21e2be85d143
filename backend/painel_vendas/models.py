"""
models.py - Linhas normalizadas e respostas da API.

Os campos sao snake_case no Python e saem em camelCase no JSON (o front
espera "ticketMedio", "dateISO", "vendasBrutas1"...).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== Linhas ====================
class SheetRow(ApiModel):
    conta: str
    date_iso: str = Field(alias="dateISO")
    faturamento: float = 0.0
    vendas: int = 0
    ticket_medio: float = 0.0
    visitas: int = 0
    taxa_conversao: float = 0.0
    variacao_fat: Optional[float] = None
    variacao_vendas: Optional[float] = None
    variacao_ticket: Optional[float] = None
    variacao_visitas: Optional[float] = None
    variacao_tx_conversao: Optional[float] = None
    marketplace: Optional[str] = None


class VeiaRow(ApiModel):
    conta: str = "3"
    mes_ano: str
    modalidade: Optional[str] = None
    status: Optional[str] = None
    vendas_brutas1: Optional[float] = None
    vendas_brutas2: Optional[float] = None
    pct_c1: Optional[float] = None
    pct_c2: Optional[float] = None
    conta1: Optional[int] = None
    conta2: Optional[int] = None
    reembolso_c1: Optional[float] = None
    reembolso_c2: Optional[float] = None
    custo_dev_c1: Optional[float] = None
    custo_dev_c2: Optional[float] = None


class CurvaAbcRow(ApiModel):
    codigo_anuncio: str
    curva: str
    periodo: Optional[str] = None
    marketplace: Optional[str] = None


class CurvaAbcMudanca(BaseModel):
    codigo: str
    anterior: Optional[str] = None
    atual: Optional[str] = None
    periodo_anterior: Optional[str] = None
    periodo_atual: Optional[str] = None
    marketplace: Optional[str] = None


# ==================== Agregados ====================
class DashboardResumo(ApiModel):
    faturamento_total: float = 0.0
    vendas_totais: int = 0
    ticket_medio: float = 0.0
    visitas: int = 0
    taxa_conversao: float = 0.0
    variacao_fat_media: Optional[float] = None
    variacao_vendas_media: Optional[float] = None
    variacao_ticket_media: Optional[float] = None
    variacao_visitas_media: Optional[float] = None
    variacao_tx_conversao_media: Optional[float] = None


class ResumoDelta(ApiModel):
    faturamento_total: float = 0.0
    vendas_totais: int = 0
    ticket_medio: float = 0.0
    visitas: int = 0
    taxa_conversao: float = 0.0


class MonthlyPoint(ApiModel):
    mes_iso: str = Field(alias="mesISO")
    faturamento: float = 0.0
    vendas: int = 0


class FatVendas(ApiModel):
    fat: float = 0.0
    vendas: int = 0


class ComparativoMes(ApiModel):
    mes_ano: str
    a: FatVendas = Field(alias="A")
    b: FatVendas = Field(alias="B")


class VeiaResumo(ApiModel):
    meses: int = 0
    vendas_brutas1_total: float = 0.0
    vendas_brutas2_total: float = 0.0
    conta1_total: float = 0.0
    conta2_total: float = 0.0
    reembolso_c1_total: float = 0.0
    reembolso_c2_total: float = 0.0
    custo_dev_c1_total: float = 0.0
    custo_dev_c2_total: float = 0.0


class VeiaMes(ApiModel):
    mes_ano: str
    vendas_brutas1: float = 0.0
    vendas_brutas2: float = 0.0
    conta1: float = 0.0
    conta2: float = 0.0
    reembolso_c1: float = 0.0
    reembolso_c2: float = 0.0
    custo_dev_c1: float = 0.0
    custo_dev_c2: float = 0.0


class VeiaPeriodo(ApiModel):
    value: str
    label: str


# ==================== Respostas ====================
class OkResponse(ApiModel):
    ok: bool = True


class ContaResponse(OkResponse):
    conta: str
    sheet_id: Optional[str] = None


class DashboardSummaryResponse(ContaResponse):
    resumo: DashboardResumo


class DashboardDetalhadoResponse(ContaResponse):
    linhas: List[SheetRow]
    total: int
    page: Optional[int] = None
    limit: Optional[int] = None


class DashboardMonthlyResponse(ContaResponse):
    meses: List[MonthlyPoint]


class RowsResponse(ContaResponse):
    rows: List[SheetRow]


class VeiaSummaryResponse(ContaResponse):
    resumo: VeiaResumo


class VeiaMensalResponse(ContaResponse):
    meses: List[VeiaMes]
    modalidades: List[str]
    status: List[str]


class VeiaConsolidadoResponse(ContaResponse):
    tab_name: Optional[str] = None
    periodos: List[VeiaPeriodo]


class ComparativoConta(ApiModel):
    id: int
    sheet_id: str
    resumo: DashboardResumo


class ComparativoSummaryResponse(OkResponse):
    conta_a: ComparativoConta
    conta_b: ComparativoConta
    delta: ResumoDelta


class ComparativoMensalResponse(OkResponse):
    meses: List[ComparativoMes]


class CurvaAbcResponse(OkResponse):
    rows: List[CurvaAbcRow]


class CurvaAbcCheckResponse(OkResponse):
    mudancas: List[CurvaAbcMudanca]


class CurvaAbcAckRequest(ApiModel):
    conta: Optional[Union[str, int]] = None
    codigo: Optional[str] = None
    codigo_anuncio: Optional[str] = None
    periodo: Optional[str] = None
    periodo_atual: Optional[str] = None
    curva: Optional[str] = None
    curva_atual: Optional[str] = None
    marketplace: Optional[str] = None


class CurvaAbcAck(ApiModel):
    codigo: str
    periodo_atual: str
    curva: Optional[str] = None
    marketplace: Optional[str] = None


class CurvaAbcAckResponse(OkResponse):
    ack: CurvaAbcAck


class DebugSheetsResponse(ContaResponse):
    titles: List[str]
    tab_configurada: Optional[str] = None


class DebugFirstRowResponse(ContaResponse):
    first: Optional[Dict[str, Any]] = None
    headers_detectados: Optional[Dict[str, str]] = None


class DebugSampleResponse(ContaResponse):
    rows: List[Dict[str, Any]]
    preview_raw: List[Dict[str, Any]] = []
