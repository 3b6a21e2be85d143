from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from .errors import TabNotFound
from .parsers import normalize_sheet_name

logger = logging.getLogger(__name__)


class TabResolver:
    """
    Nome logico da aba -> titulo real na planilha, ignorando acento, caixa e
    aspas. O cache nao expira: a estrutura das planilhas e estavel.
    """

    def __init__(self, client):
        self.client = client
        self._cache: Dict[Tuple[str, str], str] = {}

    async def list_titles(self, sheet_id: str) -> List[dict]:
        titles = await self.client.list_titles(sheet_id)
        return [{"raw_title": t, "normalized": normalize_sheet_name(t)} for t in titles]

    async def resolve(self, sheet_id: str, requested: str) -> str:
        target = normalize_sheet_name(requested)
        key = (sheet_id, target)
        if key in self._cache:
            return self._cache[key]

        titles = await self.list_titles(sheet_id)
        hit = next((t["raw_title"] for t in titles if t["raw_title"] and t["normalized"] == target), None)
        if hit:
            self._cache[key] = hit
            return hit

        available = [t["raw_title"] for t in titles if t["raw_title"]]
        logger.warning("[SHEETS] aba %r nao encontrada em %s", requested, sheet_id)
        raise TabNotFound(requested, available)
