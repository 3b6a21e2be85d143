from datetime import date, datetime

import pytest

from painel_vendas.parsers import (
    normalize_curva_periodo,
    normalize_header,
    normalize_sheet_name,
    parse_date_iso,
    parse_int,
    parse_int_nullable,
    parse_money,
    parse_money_nullable,
    parse_month_key,
    parse_percent,
    parse_percent_nullable,
    round_half_up,
)


def test_parse_money_brl():
    assert parse_money("R$ 1.234,56") == 1234.56
    assert parse_money("1.020,00") == 1020.0
    assert parse_money(12.5) == 12.5


@pytest.mark.parametrize("value", ["", None, "abc", "R$"])
def test_parse_money_falls_back_to_zero(value):
    assert parse_money(value) == 0


def test_parse_percent():
    assert parse_percent("12,5%") == 12.5
    assert parse_percent("-3%") == -3.0
    assert parse_percent("") == 0


def test_parse_int():
    assert parse_int("1.234") == 1234
    assert parse_int(2.5) == 3
    assert parse_int("x") == 0


def test_nullable_variants_distinguish_empty_from_zero():
    assert parse_money_nullable("") is None
    assert parse_money_nullable("R$ 0,00") == 0.0
    assert parse_percent_nullable("  ") is None
    assert parse_percent_nullable("7,5 %") == 7.5
    assert parse_int_nullable("abc") is None
    assert parse_int_nullable("1.500") == 1500


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2


@pytest.mark.parametrize("value, expected", [
    ("05/03/2024", "2024-03-05"),
    ("5/3/2024", "2024-03-05"),
    ("2024-03-05", "2024-03-05"),
    ("2024-03-05T10:00:00Z", "2024-03-05"),
    (date(2024, 3, 5), "2024-03-05"),
    (datetime(2024, 3, 5, 23, 0), "2024-03-05"),
])
def test_parse_date_iso_valid(value, expected):
    assert parse_date_iso(value) == expected


@pytest.mark.parametrize("value", ["", None, "data ruim", "31/02/2024", "99/99/9999", "abc/def/ghi"])
def test_parse_date_iso_invalid_is_none(value):
    assert parse_date_iso(value) is None


@pytest.mark.parametrize("value, expected", [
    ("01/2024", "2024-01"),
    ("2024-02", "2024-02"),
    ("2024-02-17", "2024-02"),
    ("17/02/2024", "2024-02"),
    ("13/2024", None),
    ("", None),
    ("texto", None),
])
def test_parse_month_key(value, expected):
    assert parse_month_key(value) == expected


@pytest.mark.parametrize("value, expected", [
    ("01/02/2024", "2024-02-01"),
    ("2024-02", "2024-02-01"),
    ("02/2024", "2024-02-01"),
    ("2024-02-15", "2024-02-15"),
    ("", None),
    ("sem periodo", None),
])
def test_normalize_curva_periodo(value, expected):
    assert normalize_curva_periodo(value) == expected


def test_name_normalization():
    assert normalize_sheet_name("'Conversão'") == "conversao"
    assert normalize_sheet_name("  CONTA 1 ") == "conta 1"
    assert normalize_header("  Mês/Ano  ") == "mes/ano"
    assert normalize_header("Custo   Devolução C1 (R$)") == "custo devolucao c1 (r$)"
