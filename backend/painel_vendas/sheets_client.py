from __future__ import annotations

# ==================== Imports ====================
import asyncio
import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from .config import SHEETS_SCOPE, Settings
from .errors import RemoteFetchError

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"


def quote_sheet_title(title: str) -> str:
    """Titulo de aba entre aspas simples para ranges A1 ('It''s')."""
    escaped = str(title or "").replace("'", "''")
    return f"'{escaped}'"


def tab_range(title: str, cells: str = "A1:Z10000") -> str:
    return f"{quote_sheet_title(title)}!{cells}"


def _error_message(r: httpx.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text or f"HTTP {r.status_code}"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if isinstance(err, str):
        return err
    return r.text or f"HTTP {r.status_code}"


class SheetsClient:
    """
    Cliente minimo da API REST do Google Sheets (v4): lista abas e le ranges.
    Autentica com service account (google-auth) e faz as chamadas com httpx.
    """

    def __init__(self, settings: Settings, credentials: Any = None,
                 http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._credentials = credentials
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout))

    # ---------- auth ----------
    def _get_credentials(self):
        if self._credentials is None:
            info = self.settings.credentials_info()
            self._credentials = service_account.Credentials.from_service_account_info(
                info, scopes=[SHEETS_SCOPE]
            )
        return self._credentials

    async def _access_token(self) -> str:
        creds = self._get_credentials()
        if not creds.valid:
            # google-auth e sincrono; refresh fora do event loop
            await asyncio.to_thread(creds.refresh, GoogleAuthRequest())
        return creds.token

    # ---------- chamadas ----------
    async def _get_json(self, url: str, params: Optional[dict] = None) -> dict:
        token = await self._access_token()
        try:
            r = await self._http.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            logger.warning("[SHEETS] falha de rede em %s: %s", url, e)
            raise RemoteFetchError(f"Falha ao acessar Google Sheets: {e}") from e
        if r.status_code >= 400:
            msg = _error_message(r)
            logger.warning("[SHEETS] HTTP %s em %s: %s", r.status_code, url, msg)
            raise RemoteFetchError(msg, status_code=r.status_code)
        return r.json()

    async def list_titles(self, sheet_id: str) -> List[str]:
        logger.debug("[SHEETS] listando abas de %s", sheet_id)
        data = await self._get_json(
            f"{SHEETS_API_BASE}/{sheet_id}",
            params={"fields": "sheets(properties(title))"},
        )
        return [
            (s.get("properties") or {}).get("title") or ""
            for s in data.get("sheets") or []
        ]

    async def read_range(self, sheet_id: str, a1_range: str) -> List[List[Any]]:
        logger.debug("[SHEETS] lendo %s de %s", a1_range, sheet_id)
        data = await self._get_json(f"{SHEETS_API_BASE}/{sheet_id}/values/{quote(a1_range, safe='')}")
        return data.get("values") or []

    async def aclose(self) -> None:
        await self._http.aclose()
