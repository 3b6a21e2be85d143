"""
parsers.py - Conversao de celulas da planilha para valores tipados.

As celulas sao digitadas a mao e chegam em formato pt-BR ("R$ 1.234,56",
"12,5%", "01/02/2024"). Todas as funcoes aqui sao totais: uma celula ruim
vira 0 ou None, nunca uma excecao.
"""
from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

_LEADING_FLOAT = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"[+-]?\d+")
_MM_YYYY = re.compile(r"(\d{2})/(\d{4})")
_YYYY_MM = re.compile(r"(\d{4})-(\d{2})(?:-(\d{2}))?")


# ==================== Helpers ====================
def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _float_prefix(text: str) -> Optional[float]:
    """Le o numero no inicio do texto ("12abc" -> 12.0)."""
    m = _LEADING_FLOAT.match(text.strip())
    if not m:
        return None
    out = float(m.group(0))
    return out if math.isfinite(out) else None


def leading_int(text: str) -> Optional[int]:
    m = _LEADING_INT.match(text.strip())
    return int(m.group(0)) if m else None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round_two(value: Any) -> float:
    try:
        return round(float(value or 0), 2)
    except (TypeError, ValueError):
        return 0.0


def text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def is_row_empty(row: Iterable[Any]) -> bool:
    return all(not str("" if cell is None else cell).strip() for cell in row)


# ==================== Texto ====================
def norm_ascii_lower(s: Any) -> str:
    if not s:
        return ""
    s = unicodedata.normalize("NFKD", str(s)).encode("ascii", "ignore").decode("ascii")
    return s.strip().lower()


def normalize_sheet_name(name: Any) -> str:
    """Titulo de aba sem aspas nas pontas, sem acento e minusculo."""
    s = re.sub(r"""^['"]|['"]$""", "", str(name or ""))
    return norm_ascii_lower(s)


def normalize_header(value: Any) -> str:
    s = norm_ascii_lower(value)
    return " ".join(s.split())


# ==================== Numeros (fallback 0) ====================
def parse_money(value: Any) -> float:
    if _is_number(value):
        return float(value) if math.isfinite(value) else 0.0
    if not value:
        return 0.0
    txt = re.sub(r"[R$\s]", "", str(value)).replace(".", "").replace(",", ".", 1)
    out = _float_prefix(txt)
    return 0.0 if out is None else out


def parse_percent(value: Any) -> float:
    if _is_number(value):
        return float(value) if math.isfinite(value) else 0.0
    if not value:
        return 0.0
    txt = str(value).replace("%", "", 1).replace(",", ".", 1).strip()
    out = _float_prefix(txt)
    return 0.0 if out is None else out


def parse_int(value: Any) -> int:
    if _is_number(value):
        return round_half_up(value) if math.isfinite(value) else 0
    if not value:
        return 0
    txt = str(value).replace(".", "").replace(",", "", 1).strip()
    out = leading_int(txt)
    return 0 if out is None else out


# ==================== Numeros (nullable) ====================
def parse_numeric(value: Any) -> Optional[float]:
    """
    Versao que distingue "vazio" de zero: None quando nao ha numero.
    Remove R$, %, espacos e pontos de milhar; virgula vira ponto.
    """
    if value is None:
        return None
    if _is_number(value):
        return float(value) if math.isfinite(value) else None
    txt = re.sub(r"[R$%]", "", str(value), flags=re.IGNORECASE)
    txt = re.sub(r"\s+", "", txt).replace(".", "").replace(",", ".", 1).strip()
    if not txt:
        return None
    return _float_prefix(txt)


def parse_money_nullable(value: Any) -> Optional[float]:
    return parse_numeric(value)


def parse_percent_nullable(value: Any) -> Optional[float]:
    return parse_numeric(value)


def parse_int_nullable(value: Any) -> Optional[int]:
    parsed = parse_numeric(value)
    return None if parsed is None else round_half_up(parsed)


# ==================== Datas ====================
def _iso_fallback(s: str) -> Optional[datetime]:
    candidate = s if "T" in s else f"{s}T00:00:00+00:00"
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt


def parse_date_iso(value: Any) -> Optional[str]:
    """
    Aceita dd/mm/aaaa, date/datetime ou ISO. Retorna 'YYYY-MM-DD' ou None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    s = str(value).strip()
    if not s:
        return None

    if "/" in s:
        parts = [leading_int(p) if p.strip() else None for p in s.split("/")[:3]]
        if len(parts) == 3 and all(p is not None for p in parts):
            day, month, year = parts
            try:
                return date(year, month, day).isoformat()
            except ValueError:
                pass

    dt = _iso_fallback(s)
    return dt.date().isoformat() if dt else None


def parse_month_key(value: Any) -> Optional[str]:
    """
    'Mês/Ano' do VEIA -> 'YYYY-MM'. Aceita MM/YYYY, YYYY-MM, YYYY-MM-DD,
    dd/mm/aaaa e datas.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        iso = parse_date_iso(value)
        return iso[:7] if iso else None

    s = str(value).strip()
    if not s:
        return None

    m = _MM_YYYY.fullmatch(s)
    if m:
        year, month = int(m.group(2)), int(m.group(1))
    else:
        m = _YYYY_MM.fullmatch(s)
        if m:
            year, month = int(m.group(1)), int(m.group(2))
        else:
            iso = parse_date_iso(s)
            if not iso:
                return None
            year, month = int(iso[:4]), int(iso[5:7])

    if month < 1 or month > 12:
        return None
    return f"{year:04d}-{month:02d}"


def normalize_curva_periodo(value: Any) -> Optional[str]:
    """Periodo da Curva ABC como data ISO; meses viram o dia 1."""
    if not value:
        return None
    iso = parse_date_iso(value)
    if iso:
        return iso
    s = str(value).strip()
    m = re.fullmatch(r"(\d{4})-(\d{2})", s)
    if m:
        return f"{s}-01"
    m = re.fullmatch(r"(\d{2})/(\d{4})", s)
    if m:
        return f"{m.group(2)}-{m.group(1)}-01"
    return None
