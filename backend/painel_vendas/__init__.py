"""Painel de vendas: KPIs de marketplaces lidos do Google Sheets."""

__version__ = "0.1.0"
