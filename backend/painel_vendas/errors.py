from __future__ import annotations

from typing import Any, Dict, List, Optional


class DashboardError(Exception):
    """Erro com status HTTP; vira {ok: false, error, code} na resposta."""

    status_code = 500
    code: Optional[str] = None

    def __init__(self, message: str, status_code: Optional[int] = None,
                 code: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.extra: Dict[str, Any] = dict(extra or {})


class InvalidParameter(DashboardError):
    status_code = 400
    code = "INVALID_PARAMETER"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, extra={"field": field} if field else None)
        self.field = field


class TabNotFound(DashboardError):
    status_code = 400
    code = "TAB_NOT_FOUND"

    def __init__(self, requested: str, available: List[str]):
        joined = ", ".join(available)
        super().__init__(
            f'Aba não encontrada: "{requested}". Abas disponíveis: {joined}',
            extra={"available": list(available)},
        )
        self.requested = requested
        self.available = list(available)


class MissingHeaders(DashboardError):
    status_code = 500
    code = "MISSING_HEADERS"

    def __init__(self, message: str, missing: List[str]):
        super().__init__(message, extra={"missing": list(missing)})
        self.missing = list(missing)


class RemoteFetchError(DashboardError):
    code = "REMOTE_FETCH_ERROR"


class ConfigError(DashboardError):
    code = "SHEETS_CONFIG_ERROR"
