"""
normalizer.py - Leitura do range bruto da planilha e normalizacao das linhas.

O range vem da API como lista de listas (linhas curtas quando as ultimas
celulas estao vazias). Montamos um DataFrame retangular de strings e
convertemos cada linha para o registro tipado do conjunto de dados:
  - diario (contas 1 e 2): SheetRow
  - VEIA (conta 3, aba "Consolidado"): VeiaRow
  - Curva ABC: CurvaAbcRow
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .errors import MissingHeaders
from .models import CurvaAbcRow, SheetRow, VeiaRow
from .parsers import (
    is_row_empty,
    normalize_curva_periodo,
    normalize_header,
    parse_date_iso,
    parse_int,
    parse_int_nullable,
    parse_money,
    parse_money_nullable,
    parse_month_key,
    parse_percent_nullable,
    text_or_none,
)

logger = logging.getLogger(__name__)

# ==================== Cabecalhos ====================
DAILY_HEADERS: Dict[str, str] = {
    "data": "Data",
    "faturamento": "Faturamento Dia (R$)",
    "vendas": "Quantidade de Vendas",
    "ticket_medio": "Ticket Médio (R$)",
    "visitas": "Nº de Visitas",
    "taxa_conversao": "Taxa de Conversão (%)",
    "variacao_fat": "VARIAÇÃO FAT",
    "variacao_vendas": "VARIAÇÃO VENDAS",
    "variacao_ticket": "VARIAÇÃO TICKET",
    "variacao_visitas": "VARIAÇÃO VISITAS",
    "variacao_tx_conversao": "VARIAÇÃO TX DE CONVERSÃO",
}
MARKETPLACE_HEADER = "Marketplace"

VEIA_HEADERS: Dict[str, str] = {
    "mes_ano": "Mês/Ano",
    "modalidade": "Modalidade",
    "status": "Status da Venda",
    "vendas_brutas1": "Total de Vendas Brutas (1)",
    "vendas_brutas2": "Total de Vendas Brutas (2)",
    "pct_c1": "% C1",
    "conta1": "Conta 1",
    "pct_c2": "% C2",
    "conta2": "Conta 2",
    "reembolso_c1": "Reembolso C1 (R$)",
    "reembolso_c2": "Reembolso C2 (R$)",
    "custo_dev_c1": "Custo Devolução C1 (R$)",
    "custo_dev_c2": "Custo Devolução C2 (R$)",
}

CURVA_ABC_HEADERS: Dict[str, str] = {
    "codigo_anuncio": "CODIGO ANUNCIO",
    "curva": "CURVA",
    "periodo": "PERIODO",
    "marketplace": "MARKETPLACE",
}


# ==================== Frame ====================
def values_to_frame(values: Sequence[Sequence[Any]]) -> Tuple[List[str], pd.DataFrame]:
    """
    Separa o cabecalho e devolve o corpo como DataFrame retangular (celulas
    ausentes viram "") com colunas posicionais 0..n-1.
    """
    if not values:
        return [], pd.DataFrame()
    header = ["" if c is None else str(c) for c in values[0]]
    body = [list(r or []) for r in values[1:]]
    df = pd.DataFrame(body, dtype=object) if body else pd.DataFrame(dtype=object)
    width = max(len(header), df.shape[1])
    df = df.reindex(columns=range(width))
    df = df.astype(object).where(pd.notna(df), "")
    return header, df


def frame_preview(values: Sequence[Sequence[Any]], n: int = 5) -> List[Dict[str, Any]]:
    """Primeiras linhas cruas com o cabecalho da planilha, para debug."""
    header, df = values_to_frame(values)
    names = []
    for i in range(df.shape[1]):
        label = header[i].strip() if i < len(header) else ""
        if not label or label in names:
            label = f"col_{i + 1}"
        names.append(label)
    df.columns = names
    return df.head(n).to_dict(orient="records")


def header_index(header: Sequence[str], label: str) -> int:
    for i, cell in enumerate(header):
        if (cell or "").strip() == label:
            return i
    return -1


def _resolve_exact(header: Sequence[str], labels: Dict[str, str]) -> Tuple[Dict[str, int], List[str]]:
    indices = {field: header_index(header, label) for field, label in labels.items()}
    missing = [labels[f] for f, i in indices.items() if i < 0]
    return indices, missing


def detect_veia_headers(header: Sequence[str]) -> Optional[Tuple[Dict[str, int], Dict[str, str]]]:
    """
    Cabecalhos do VEIA comparados sem acento/caixa/espacos extras.
    None se faltar qualquer um.
    """
    normalized_row = [normalize_header(c) for c in header]
    indices: Dict[str, int] = {}
    detected: Dict[str, str] = {}
    for field, label in VEIA_HEADERS.items():
        target = normalize_header(label)
        try:
            idx = normalized_row.index(target)
        except ValueError:
            return None
        indices[field] = idx
        detected[field] = header[idx] or ""
    return indices, detected


# ==================== Diario (contas 1 e 2) ====================
def normalize_daily_rows(values: Sequence[Sequence[Any]], conta: str) -> List[SheetRow]:
    if not values or len(values) < 2:
        return []

    header, df = values_to_frame(values)
    idx, missing = _resolve_exact(header, DAILY_HEADERS)
    if missing:
        raise MissingHeaders(f'Missing required headers in tab "{conta}"', missing)
    mkt_idx = header_index(header, MARKETPLACE_HEADER)

    out: List[SheetRow] = []
    for row in df.itertuples(index=False, name=None):
        if is_row_empty(row):
            continue
        date_iso = parse_date_iso(row[idx["data"]])
        if not date_iso:
            continue

        taxa = parse_percent_nullable(row[idx["taxa_conversao"]])
        out.append(SheetRow(
            conta=conta,
            date_iso=date_iso,
            faturamento=parse_money(row[idx["faturamento"]]),
            vendas=parse_int(row[idx["vendas"]]),
            ticket_medio=parse_money(row[idx["ticket_medio"]]),
            visitas=parse_int(row[idx["visitas"]]),
            taxa_conversao=0.0 if taxa is None else taxa,
            variacao_fat=parse_percent_nullable(row[idx["variacao_fat"]]),
            variacao_vendas=parse_percent_nullable(row[idx["variacao_vendas"]]),
            variacao_ticket=parse_percent_nullable(row[idx["variacao_ticket"]]),
            variacao_visitas=parse_percent_nullable(row[idx["variacao_visitas"]]),
            variacao_tx_conversao=parse_percent_nullable(row[idx["variacao_tx_conversao"]]),
            marketplace=text_or_none(row[mkt_idx]) if mkt_idx >= 0 else None,
        ))

    out.sort(key=lambda r: r.date_iso)
    return out


# ==================== VEIA (conta 3) ====================
def parse_veia_row(row: Sequence[Any], indices: Dict[str, int]) -> Optional[VeiaRow]:
    def get(field: str) -> Any:
        i = indices.get(field)
        return row[i] if i is not None and i < len(row) else None

    mes = parse_month_key(get("mes_ano"))
    if not mes:
        return None

    return VeiaRow(
        mes_ano=mes,
        modalidade=text_or_none(get("modalidade")),
        status=text_or_none(get("status")),
        vendas_brutas1=parse_money_nullable(get("vendas_brutas1")),
        vendas_brutas2=parse_money_nullable(get("vendas_brutas2")),
        pct_c1=parse_percent_nullable(get("pct_c1")),
        conta1=parse_int_nullable(get("conta1")),
        pct_c2=parse_percent_nullable(get("pct_c2")),
        conta2=parse_int_nullable(get("conta2")),
        reembolso_c1=parse_money_nullable(get("reembolso_c1")),
        reembolso_c2=parse_money_nullable(get("reembolso_c2")),
        custo_dev_c1=parse_money_nullable(get("custo_dev_c1")),
        custo_dev_c2=parse_money_nullable(get("custo_dev_c2")),
    )


def normalize_veia_rows(values: Sequence[Sequence[Any]]) -> Tuple[List[VeiaRow], Optional[Dict[str, str]]]:
    """
    Retorna (linhas, cabecalhos detectados). Aba sem o conjunto completo de
    cabecalhos do VEIA conta como "sem dados VEIA": ([], None).
    """
    if not values or len(values) < 2:
        return [], None

    header, df = values_to_frame(values)
    detection = detect_veia_headers(header)
    if detection is None:
        logger.info("[VEIA] cabecalhos VEIA nao encontrados; aba tratada como vazia")
        return [], None

    indices, detected = detection
    out: List[VeiaRow] = []
    for row in df.itertuples(index=False, name=None):
        if is_row_empty(row):
            continue
        parsed = parse_veia_row(row, indices)
        if parsed is not None:
            out.append(parsed)

    out.sort(key=lambda r: r.mes_ano)
    return out, detected


# ==================== Curva ABC ====================
def normalize_curva_abc_rows(values: Sequence[Sequence[Any]]) -> List[CurvaAbcRow]:
    if not values or len(values) < 2:
        return []

    header, df = values_to_frame(values)
    idx, missing = _resolve_exact(header, CURVA_ABC_HEADERS)
    if missing:
        raise MissingHeaders("Planilha Curva ABC não possui todos os cabeçalhos obrigatórios.", missing)

    out: List[CurvaAbcRow] = []
    for row in df.itertuples(index=False, name=None):
        if is_row_empty(row):
            continue
        out.append(CurvaAbcRow(
            codigo_anuncio=str(row[idx["codigo_anuncio"]] or "").strip(),
            curva=str(row[idx["curva"]] or "").strip(),
            periodo=normalize_curva_periodo(row[idx["periodo"]]),
            marketplace=text_or_none(row[idx["marketplace"]]),
        ))

    # sem periodo vai para o fim; empate mantem a ordem da planilha
    out.sort(key=lambda r: (r.periodo is None, r.periodo or ""))
    return out
