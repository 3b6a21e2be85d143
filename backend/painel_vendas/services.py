"""
services.py - Carga dos conjuntos de dados com cache.

DashboardService e criado uma vez no startup da aplicacao e injetado nas
rotas. Ele e dono do resolvedor de abas, dos caches TTL e das confirmacoes
da Curva ABC; nada disso fica em variavel global de modulo.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .cache import SingleFlightCache
from .config import VEIA_CONTA, Settings
from .errors import InvalidParameter
from .filters import apply_filters, build_curva_abc_transitions, comparativo_cache_key
from .models import CurvaAbcAck, CurvaAbcMudanca, CurvaAbcRow, SheetRow, VeiaRow
from .normalizer import normalize_curva_abc_rows, normalize_daily_rows, normalize_veia_rows
from .parsers import normalize_curva_periodo
from .sheets_client import tab_range
from .tab_resolver import TabResolver

logger = logging.getLogger(__name__)

SHEET_ID_ERROR = "Conta inválida ou GOOGLE_SHEETS_ID não configurado."
MAX_ACKS = 10000


def is_veia_account(conta: Any) -> bool:
    return str(conta or "").strip() == VEIA_CONTA


@dataclass
class VeiaDataset:
    rows: List[VeiaRow] = field(default_factory=list)
    tab_name: Optional[str] = None
    headers: Optional[Dict[str, str]] = None


@dataclass
class ComparativoDataset:
    id: int
    conta: str
    sheet_id: str
    tab_name: str
    rows: List[SheetRow]


def _ack_key(codigo: Any, periodo: Any, marketplace: Any) -> Tuple[str, str, str]:
    return (
        str(codigo or "").strip(),
        normalize_curva_periodo(periodo) or str(periodo or "").strip(),
        str(marketplace or "").strip().lower(),
    )


class DashboardService:
    def __init__(self, settings: Settings, client):
        self.settings = settings
        self.client = client
        self.resolver = TabResolver(client)

        ttl = settings.cache_ttl_seconds
        self.tab_cache: SingleFlightCache[List[SheetRow]] = SingleFlightCache("tab", ttl)
        self.veia_cache: SingleFlightCache[VeiaDataset] = SingleFlightCache("veia", ttl)
        self.curva_cache: SingleFlightCache[List[CurvaAbcRow]] = SingleFlightCache("curvaabc", ttl)
        self.comparativo_cache: SingleFlightCache[List[SheetRow]] = SingleFlightCache("comparativo", ttl)

        # confirmacoes em memoria; ao passar de max_acks sai a mais antiga
        self.max_acks = MAX_ACKS
        self._acks: OrderedDict[Tuple[str, str, str], CurvaAbcAck] = OrderedDict()

    # ==================== Contas ====================
    def require_sheet_id(self, conta: Any, message: str = SHEET_ID_ERROR) -> str:
        sheet_id = self.settings.sheet_id_for(conta)
        if not sheet_id:
            raise InvalidParameter(message, field="conta")
        return sheet_id

    # ==================== Leitura crua ====================
    async def list_titles(self, sheet_id: str) -> List[str]:
        return await self.client.list_titles(sheet_id)

    async def read_tab_values(self, sheet_id: str, tab_name: str) -> Tuple[str, List[List[Any]]]:
        """(titulo real, valores crus) do range configurado da aba."""
        real_title = await self.resolver.resolve(sheet_id, tab_name)
        values = await self.client.read_range(sheet_id, tab_range(real_title, self.settings.sheet_range))
        return real_title, values

    # ==================== Diario (contas 1 e 2) ====================
    async def load_tab_rows(self, sheet_id: str, tab_name: str, force: bool = False) -> List[SheetRow]:
        real_title = await self.resolver.resolve(sheet_id, tab_name)

        async def loader() -> List[SheetRow]:
            values = await self.client.read_range(sheet_id, tab_range(real_title, self.settings.sheet_range))
            rows = normalize_daily_rows(values, real_title)
            logger.debug("[SHEETS] %s!%s -> %d linhas", sheet_id, real_title, len(rows))
            return rows

        return await self.tab_cache.get(f"{sheet_id}:{real_title}", loader, force=force)

    async def load_sheet_data(self, sheet_id: str, conta: Any = "1", force: bool = False) -> List[SheetRow]:
        tab_name = self.settings.account_tab_name(conta)
        return await self.load_tab_rows(sheet_id, tab_name, force=force)

    # ==================== VEIA (conta 3) ====================
    async def load_veia(self, sheet_id: str, force: bool = False) -> VeiaDataset:
        async def loader() -> VeiaDataset:
            real_title, values = await self.read_tab_values(sheet_id, self.settings.veia_tab_name())
            rows, headers = normalize_veia_rows(values)
            return VeiaDataset(rows=rows, tab_name=real_title, headers=headers)

        return await self.veia_cache.get(f"{sheet_id}:veia", loader, force=force)

    # ==================== Curva ABC ====================
    async def load_curva_abc(self, force: bool = False) -> List[CurvaAbcRow]:
        sheet_id, tab_name = self.settings.curva_abc_settings()

        async def loader() -> List[CurvaAbcRow]:
            _, values = await self.read_tab_values(sheet_id, tab_name)
            rows = normalize_curva_abc_rows(values)
            logger.info("[CURVA ABC] %d linhas carregadas", len(rows))
            return rows

        return await self.curva_cache.get("curvaabc", loader, force=force)

    async def curva_abc_pending(self, force: bool = False) -> List[CurvaAbcMudanca]:
        """Mudancas de curva ainda nao confirmadas."""
        rows = await self.load_curva_abc(force=force)
        return [m for m in build_curva_abc_transitions(rows) if not self.is_acknowledged(m)]

    def ack_transition(self, codigo: str, periodo_atual: str, curva: Optional[str] = None,
                       marketplace: Optional[str] = None) -> CurvaAbcAck:
        ack = CurvaAbcAck(codigo=codigo, periodo_atual=periodo_atual, curva=curva, marketplace=marketplace)
        key = _ack_key(codigo, periodo_atual, marketplace)
        self._acks[key] = ack
        self._acks.move_to_end(key)
        while len(self._acks) > self.max_acks:
            self._acks.popitem(last=False)
        logger.info("[CURVA ABC] confirmada mudanca %s em %s", codigo, periodo_atual)
        return ack

    def is_acknowledged(self, mudanca: CurvaAbcMudanca) -> bool:
        return _ack_key(mudanca.codigo, mudanca.periodo_atual, mudanca.marketplace) in self._acks

    # ==================== Comparativo ====================
    async def load_comparativo_conta(self, conta: str, filters: Dict[str, Optional[str]],
                                     label: str) -> ComparativoDataset:
        sheet_id = self.require_sheet_id(
            conta, f"Conta {label or conta} inválida ou GOOGLE_SHEETS_ID não configurado."
        )
        tab_name = self.settings.account_tab_name(conta)
        key = comparativo_cache_key(sheet_id, tab_name, filters, conta)

        async def loader() -> List[SheetRow]:
            rows = await self.load_sheet_data(sheet_id, conta)
            return apply_filters(
                rows,
                start=filters.get("de"),
                end=filters.get("ate"),
                marketplace=filters.get("marketplace"),
            )

        rows = await self.comparativo_cache.get(key, loader)
        return ComparativoDataset(id=int(conta), conta=conta, sheet_id=sheet_id, tab_name=tab_name, rows=rows)

    async def load_comparativo(self, conta_a: str, conta_b: str,
                               filters: Dict[str, Optional[str]]) -> Tuple[ComparativoDataset, ComparativoDataset]:
        a, b = await asyncio.gather(
            self.load_comparativo_conta(conta_a, filters, "A"),
            self.load_comparativo_conta(conta_b, filters, "B"),
        )
        return a, b

    async def aclose(self) -> None:
        close = getattr(self.client, "aclose", None)
        if close is not None:
            await close()
