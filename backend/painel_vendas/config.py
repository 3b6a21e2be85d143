from __future__ import annotations

# ==================== Imports ====================
import base64
import binascii
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigError

# ==================== ENV ====================
load_dotenv()

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"
VEIA_CONTA = "3"
VEIA_DEFAULT_TAB = "Consolidado"
CURVA_ABC_INDEX = 3  # quarta entrada de GOOGLE_SHEETS_ID / SHEETS_TABS


def _split_csv(raw: Optional[str]) -> List[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


def normalize_private_key(raw: Optional[str]) -> str:
    """
    Aceita a chave em PEM com '\\n' escapado ou em base64.
    """
    if not raw:
        return ""
    try:
        maybe = base64.b64decode(raw, validate=True).decode("utf-8")
        if "BEGIN PRIVATE KEY" in maybe:
            return maybe
    except (binascii.Error, UnicodeDecodeError, ValueError):
        pass
    return raw.replace("\\r\\n", "\n").replace("\\n", "\n")


def _conta_index(conta: Optional[str]) -> int:
    m = re.match(r"\s*([+-]?\d+)", str(conta or "1"))
    value = int(m.group(1)) if m else 1
    return max(0, (value or 1) - 1)


@dataclass
class Settings:
    client_email: str = ""
    private_key: str = ""
    sheet_ids: List[str] = field(default_factory=list)
    tabs: List[str] = field(default_factory=list)
    cache_ttl_seconds: float = 60.0
    sheet_range: str = "A1:Z10000"
    http_timeout: float = 30.0
    log_level: str = "INFO"
    dist_dir: str = ""

    # ---------- credenciais ----------
    def credentials_info(self) -> dict:
        if not self.client_email or not self.private_key:
            raise ConfigError("Missing required Google Sheets environment variables")
        if not self.sheet_ids:
            raise ConfigError("GOOGLE_SHEETS_ID is not configured")
        return {
            "type": "service_account",
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": "https://oauth2.googleapis.com/token",
        }

    # ---------- contas / abas ----------
    def sheets_tabs(self) -> List[str]:
        if not self.tabs:
            raise ConfigError("SHEETS_TABS is not configured")
        return self.tabs

    def account_tab_name(self, conta: Optional[str]) -> str:
        tabs = self.sheets_tabs()
        return tabs[min(_conta_index(conta), len(tabs) - 1)]

    def tab_name_by_index(self, index: int) -> str:
        tabs = self.sheets_tabs()
        if index < 0 or index >= len(tabs):
            raise ConfigError("Tab index inválido configurado em SHEETS_TABS para Curva ABC")
        return tabs[index]

    def sheet_id_for(self, conta: Optional[str]) -> Optional[str]:
        idx = _conta_index(conta)
        return self.sheet_ids[idx] if idx < len(self.sheet_ids) else None

    def veia_tab_name(self) -> str:
        try:
            return self.account_tab_name(VEIA_CONTA) or VEIA_DEFAULT_TAB
        except ConfigError:
            return VEIA_DEFAULT_TAB

    def curva_abc_settings(self) -> tuple:
        if len(self.sheet_ids) <= CURVA_ABC_INDEX:
            raise ConfigError(
                "Planilha Curva ABC não configurada. Adicione a quarta entrada em GOOGLE_SHEETS_ID."
            )
        return self.sheet_ids[CURVA_ABC_INDEX], self.tab_name_by_index(CURVA_ABC_INDEX)


def load_settings() -> Settings:
    return Settings(
        client_email=os.getenv("GOOGLE_CLIENT_EMAIL", "").strip(),
        private_key=normalize_private_key(
            os.getenv("GOOGLE_PRIVATE_KEY_BASE64") or os.getenv("GOOGLE_PRIVATE_KEY", "")
        ),
        sheet_ids=_split_csv(os.getenv("GOOGLE_SHEETS_ID")),
        tabs=_split_csv(os.getenv("SHEETS_TABS")),
        cache_ttl_seconds=float(os.getenv("SHEET_CACHE_TTL_SECONDS", "60")),
        sheet_range=os.getenv("SHEET_RANGE", "A1:Z10000").strip() or "A1:Z10000",
        http_timeout=float(os.getenv("SHEETS_HTTP_TIMEOUT", "30")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        dist_dir=os.getenv("DIST_DIR", "").strip(),
    )
