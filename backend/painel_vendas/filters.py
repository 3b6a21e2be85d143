"""
filters.py - Filtros por periodo/conta/marketplace, paginacao e agregacoes.

Funcoes puras sobre as linhas ja normalizadas; o servico chama estas funcoes
depois de buscar os dados (em cache) da planilha.
"""
from __future__ import annotations

import re
from collections import OrderedDict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidParameter
from .models import (
    ComparativoMes,
    CurvaAbcMudanca,
    CurvaAbcRow,
    DashboardResumo,
    FatVendas,
    MonthlyPoint,
    ResumoDelta,
    SheetRow,
    VeiaMes,
    VeiaPeriodo,
    VeiaResumo,
    VeiaRow,
)
from .parsers import leading_int, normalize_curva_periodo, round_half_up, round_two

VALID_DASHBOARD_ACCOUNTS = {"1", "2"}
DEFAULT_PAGE_LIMIT = 200
MAX_PAGE_LIMIT = 2000

_DMY = re.compile(r"(\d{2})/(\d{2})/(\d{4})")
_MONTH = re.compile(r"\d{4}-\d{2}")


# ==================== Parametros ====================
def parse_date_param(value: Any) -> Optional[date]:
    """YYYY-MM-DD ou dd/mm/aaaa -> date; None se vazio ou invalido."""
    if not value:
        return None
    s = str(value).strip()
    if not s:
        return None
    m = _DMY.fullmatch(s)
    try:
        if m:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        return date.fromisoformat(s)
    except ValueError:
        return None


def parse_list_param(value: Any) -> List[str]:
    """CSV -> lista minuscula sem vazios."""
    if not value:
        return []
    return [s.strip().lower() for s in str(value).split(",") if s.strip()]


def parse_pagination(page: Optional[str], limit: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    (page, limit) quando algum foi informado; None = sem paginacao.
    Le o inteiro do inicio do texto ("2abc" -> 2, "1.5" -> 1).
    """
    if page is None and limit is None:
        return None

    p = leading_int(str(page if page is not None else "1")) or 0
    if p < 1:
        raise InvalidParameter('Parâmetro "page" inválido (use inteiro >= 1)', field="page")

    lim = leading_int(str(limit if limit is not None else DEFAULT_PAGE_LIMIT)) or 0
    if lim < 1:
        raise InvalidParameter('Parâmetro "limit" inválido (use inteiro >= 1)', field="limit")
    if lim > MAX_PAGE_LIMIT:
        raise InvalidParameter(f'Parâmetro "limit" deve ser no máximo {MAX_PAGE_LIMIT}', field="limit")
    return p, lim


def paginate(rows: List[Any], page: int, limit: int) -> List[Any]:
    start = (page - 1) * limit
    return rows[start:start + limit]


# ==================== Filtro diario ====================
def apply_filters(rows: Iterable[SheetRow], start: Any = None, end: Any = None,
                  conta: Any = None, marketplace: Any = None) -> List[SheetRow]:
    """
    start inclusivo; end inclusivo no dia (compara com end + 1 dia, exclusivo).
    conta/marketplace: CSV, comparacao sem caixa.
    """
    out = list(rows)

    if start:
        ds = parse_date_param(start)
        if ds is None:
            raise InvalidParameter('Parâmetro "start" inválido (use YYYY-MM-DD ou dd/mm/aaaa)', field="start")
        out = [r for r in out if date.fromisoformat(r.date_iso) >= ds]

    if end:
        de = parse_date_param(end)
        if de is None:
            raise InvalidParameter('Parâmetro "end" inválido (use YYYY-MM-DD ou dd/mm/aaaa)', field="end")
        limite = de + timedelta(days=1)
        out = [r for r in out if date.fromisoformat(r.date_iso) < limite]

    contas = parse_list_param(conta)
    if contas:
        out = [r for r in out if (r.conta or "").lower() in contas]

    markets = parse_list_param(marketplace)
    if markets:
        out = [r for r in out if (r.marketplace or "").lower() in markets]

    return out


# ==================== Agregacoes diario ====================
_VARIACOES = (
    ("variacao_fat", "variacao_fat_media"),
    ("variacao_vendas", "variacao_vendas_media"),
    ("variacao_ticket", "variacao_ticket_media"),
    ("variacao_visitas", "variacao_visitas_media"),
    ("variacao_tx_conversao", "variacao_tx_conversao_media"),
)


def build_summary(rows: Iterable[SheetRow]) -> DashboardResumo:
    """
    Somas de faturamento/vendas/visitas; media simples de ticket e conversao.
    As variacoes fazem media so sobre as linhas que tem valor (primeiro dia
    de um periodo costuma vir sem variacao).
    """
    faturamento = 0.0
    vendas = 0
    visitas = 0
    ticket_soma = 0.0
    taxa_soma = 0.0
    count = 0
    var_sum = {f: 0.0 for f, _ in _VARIACOES}
    var_count = {f: 0 for f, _ in _VARIACOES}

    for r in rows:
        faturamento += r.faturamento or 0
        vendas += r.vendas or 0
        visitas += r.visitas or 0
        ticket_soma += r.ticket_medio or 0
        taxa_soma += r.taxa_conversao or 0
        count += 1
        for f, _ in _VARIACOES:
            v = getattr(r, f)
            if v is not None:
                var_sum[f] += v
                var_count[f] += 1

    medias = {
        out: (round_two(var_sum[f] / var_count[f]) if var_count[f] else None)
        for f, out in _VARIACOES
    }
    return DashboardResumo(
        faturamento_total=faturamento,
        vendas_totais=vendas,
        ticket_medio=round_two(ticket_soma / count) if count else 0.0,
        visitas=visitas,
        taxa_conversao=round_two(taxa_soma / count) if count else 0.0,
        **medias,
    )


def build_resumo_delta(a: DashboardResumo, b: DashboardResumo) -> ResumoDelta:
    return ResumoDelta(
        faturamento_total=round_two(a.faturamento_total - b.faturamento_total),
        vendas_totais=a.vendas_totais - b.vendas_totais,
        ticket_medio=round_two(a.ticket_medio - b.ticket_medio),
        visitas=a.visitas - b.visitas,
        taxa_conversao=round_two(a.taxa_conversao - b.taxa_conversao),
    )


def _monthly_buckets(rows: Iterable[SheetRow]) -> Dict[str, Dict[str, float]]:
    buckets: Dict[str, Dict[str, float]] = {}
    for r in rows:
        mes = (r.date_iso or "")[:7]
        if not _MONTH.fullmatch(mes):
            continue
        b = buckets.setdefault(mes, {"fat": 0.0, "vendas": 0})
        b["fat"] += r.faturamento or 0
        b["vendas"] += r.vendas or 0
    return buckets


def build_monthly(rows: Iterable[SheetRow]) -> List[MonthlyPoint]:
    buckets = _monthly_buckets(rows)
    return [
        MonthlyPoint(mes_iso=mes, faturamento=round_two(b["fat"]), vendas=round_half_up(b["vendas"]))
        for mes, b in sorted(buckets.items())
    ]


def build_comparativo_mensal(rows_a: Iterable[SheetRow], rows_b: Iterable[SheetRow]) -> List[ComparativoMes]:
    ma = _monthly_buckets(rows_a)
    mb = _monthly_buckets(rows_b)
    vazio = {"fat": 0.0, "vendas": 0}
    out = []
    for mes in sorted(set(ma) | set(mb)):
        a = ma.get(mes, vazio)
        b = mb.get(mes, vazio)
        out.append(ComparativoMes(
            mes_ano=mes,
            a=FatVendas(fat=round_two(a["fat"]), vendas=round_half_up(a["vendas"])),
            b=FatVendas(fat=round_two(b["fat"]), vendas=round_half_up(b["vendas"])),
        ))
    return out


# ==================== Comparativo ====================
def _first(value: Any) -> Any:
    return value[0] if isinstance(value, (list, tuple)) else value


def sanitize_comparativo_filters(de: Any = None, ate: Any = None, marketplace: Any = None) -> Dict[str, Optional[str]]:
    de, ate, marketplace = _first(de), _first(ate), _first(marketplace)
    de = de.strip() if isinstance(de, str) and de.strip() else None
    ate = ate.strip() if isinstance(ate, str) and ate.strip() else None
    mkt = None
    if isinstance(marketplace, str):
        mkt = ",".join(s.strip() for s in marketplace.split(",") if s.strip()) or None
    return {"de": de, "ate": ate, "marketplace": mkt}


def parse_comparativo_conta(value: Any, param: str) -> str:
    v = _first(value)
    normalized = str(v).strip() if v is not None else ""
    if normalized not in VALID_DASHBOARD_ACCOUNTS:
        raise InvalidParameter(f'Parâmetro "{param}" deve ser 1 ou 2', field=param)
    return normalized


def comparativo_cache_key(sheet_id: str, tab_name: str, filters: Dict[str, Optional[str]], conta: str) -> str:
    return "|".join([
        sheet_id or "",
        tab_name or "",
        filters.get("de") or "",
        filters.get("ate") or "",
        ",".join(parse_list_param(filters.get("marketplace"))),
        str(conta or ""),
    ])


# ==================== VEIA ====================
def normalize_month_filter(value: Any) -> Optional[str]:
    if not value:
        return None
    s = str(value).strip()
    if re.fullmatch(r"\d{4}-\d{2}", s):
        return s
    m = re.fullmatch(r"(\d{2})/(\d{4})", s)
    if m:
        return f"{m.group(2)}-{m.group(1)}"
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", s):
        return s[:7]
    return None


def normalize_veia_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s == "*":
        return None
    return s.lower()


def sanitize_veia_filters(de: Any = None, ate: Any = None, modalidade: Any = None,
                          status: Any = None) -> Dict[str, Optional[str]]:
    raw_de = de.strip() if isinstance(de, str) else de
    raw_ate = ate.strip() if isinstance(ate, str) else ate

    mes_de = normalize_month_filter(raw_de) if raw_de else None
    if raw_de and not mes_de:
        raise InvalidParameter('Parâmetro "de" inválido (use YYYY-MM ou MM/YYYY)', field="de")
    mes_ate = normalize_month_filter(raw_ate) if raw_ate else None
    if raw_ate and not mes_ate:
        raise InvalidParameter('Parâmetro "ate" inválido (use YYYY-MM ou MM/YYYY)', field="ate")

    return {
        "de": mes_de,
        "ate": mes_ate,
        "modalidade": normalize_veia_text(modalidade),
        "status": normalize_veia_text(status),
    }


def filter_veia_rows(rows: Iterable[VeiaRow], filters: Dict[str, Optional[str]]) -> List[VeiaRow]:
    de = filters.get("de")
    ate = filters.get("ate")
    modalidade = filters.get("modalidade")
    status = filters.get("status")
    out = []
    for r in rows:
        mes = r.mes_ano or None
        if de and (not mes or mes < de):
            continue
        if ate and (not mes or mes > ate):
            continue
        if modalidade and normalize_veia_text(r.modalidade) != modalidade:
            continue
        if status and normalize_veia_text(r.status) != status:
            continue
        out.append(r)
    return out


_VEIA_CAMPOS = (
    "vendas_brutas1", "vendas_brutas2", "conta1", "conta2",
    "reembolso_c1", "reembolso_c2", "custo_dev_c1", "custo_dev_c2",
)


def build_veia_summary(rows: Iterable[VeiaRow]) -> VeiaResumo:
    meses = set()
    totals = {c: 0.0 for c in _VEIA_CAMPOS}
    for r in rows:
        if r.mes_ano:
            meses.add(r.mes_ano)
        for c in _VEIA_CAMPOS:
            totals[c] += getattr(r, c) or 0
    return VeiaResumo(meses=len(meses), **{f"{c}_total": round_two(v) for c, v in totals.items()})


def build_veia_monthly(rows: Iterable[VeiaRow]) -> Tuple[List[VeiaMes], List[str], List[str]]:
    buckets: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
    modalidades = set()
    status = set()
    for r in rows:
        if r.modalidade:
            modalidades.add(str(r.modalidade))
        if r.status:
            status.add(str(r.status))
        if not r.mes_ano:
            continue
        b = buckets.setdefault(r.mes_ano, {c: 0.0 for c in _VEIA_CAMPOS})
        for c in _VEIA_CAMPOS:
            b[c] += getattr(r, c) or 0

    meses = [
        VeiaMes(mes_ano=mes, **{c: round_two(v) for c, v in b.items()})
        for mes, b in sorted(buckets.items())
    ]
    return meses, sorted(modalidades), sorted(status)


def build_veia_periodos(rows: Iterable[VeiaRow]) -> List[VeiaPeriodo]:
    meses = sorted({r.mes_ano for r in rows if r.mes_ano})
    return [VeiaPeriodo(value=m, label=f"{m[5:7]}/{m[:4]}") for m in meses]


# ==================== Curva ABC ====================
def _periodo_sort_key(row: CurvaAbcRow) -> Tuple[bool, str]:
    iso = normalize_curva_periodo(row.periodo) if row.periodo else None
    return (iso is None, iso or "")


def _curva_key(curva: str) -> str:
    return "".join(curva.split()).upper()


def build_curva_abc_transitions(rows: Iterable[CurvaAbcRow]) -> List[CurvaAbcMudanca]:
    """
    Agrupa por codigo do anuncio, ordena por periodo (sem periodo no fim) e
    registra cada par consecutivo cuja letra de curva mudou. Par com curva
    vazia em qualquer lado e pulado, mas a comparacao segue do item atual.
    """
    grupos: "OrderedDict[str, List[CurvaAbcRow]]" = OrderedDict()
    for r in rows:
        grupos.setdefault(r.codigo_anuncio or "desconhecido", []).append(r)

    mudancas: List[CurvaAbcMudanca] = []
    for codigo, lista in grupos.items():
        ordered = sorted(lista, key=_periodo_sort_key)
        for prev, cur in zip(ordered, ordered[1:]):
            if not (prev.curva or "").strip() or not (cur.curva or "").strip():
                continue
            if _curva_key(prev.curva) == _curva_key(cur.curva):
                continue
            mudancas.append(CurvaAbcMudanca(
                codigo=codigo,
                anterior=prev.curva,
                atual=cur.curva,
                periodo_anterior=prev.periodo,
                periodo_atual=cur.periodo,
                marketplace=cur.marketplace or prev.marketplace or None,
            ))
    return mudancas
