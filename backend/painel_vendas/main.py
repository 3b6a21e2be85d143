from __future__ import annotations

# ==================== Imports ====================
import hashlib
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from fastapi.staticfiles import StaticFiles

from .config import Settings, load_settings
from .errors import DashboardError, InvalidParameter
from .filters import (
    apply_filters,
    build_comparativo_mensal,
    build_monthly,
    build_resumo_delta,
    build_summary,
    build_veia_monthly,
    build_veia_periodos,
    build_veia_summary,
    filter_veia_rows,
    paginate,
    parse_comparativo_conta,
    parse_pagination,
    sanitize_comparativo_filters,
    sanitize_veia_filters,
)
from .models import (
    ComparativoConta,
    ComparativoMensalResponse,
    ComparativoSummaryResponse,
    CurvaAbcAckRequest,
    CurvaAbcAckResponse,
    CurvaAbcCheckResponse,
    CurvaAbcResponse,
    DashboardDetalhadoResponse,
    DashboardMonthlyResponse,
    DashboardSummaryResponse,
    DebugFirstRowResponse,
    DebugSampleResponse,
    DebugSheetsResponse,
    RowsResponse,
    VeiaConsolidadoResponse,
    VeiaMensalResponse,
    VeiaSummaryResponse,
)
from .normalizer import frame_preview
from .services import DashboardService, is_veia_account
from .sheets_client import SheetsClient

logger = logging.getLogger(__name__)

VEIA_ONLY_ERROR = "Rota VEIA só para conta 3"
DASHBOARD_ONLY_ERROR = "Use /api/veia/* para conta 3"


# ==================== Utils ====================
def make_etag_from_bytes(*chunks: bytes) -> str:
    md5 = hashlib.md5()
    for c in chunks:
        md5.update(c)
    return md5.hexdigest()


def _bind(request: Request, **ctx) -> None:
    """Contexto da requisicao (conta, sheetId...) repetido no corpo de erro."""
    current = dict(getattr(request.state, "error_context", {}) or {})
    current.update({k: v for k, v in ctx.items() if v is not None})
    request.state.error_context = current


def _service(request: Request) -> DashboardService:
    return request.app.state.service


def _is_truthy(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "sim")


def _validation_field(errors: list) -> str:
    """Nome do campo do primeiro erro de validacao; "body" se nao houver."""
    for err in errors[:1]:
        names = [p for p in err.get("loc", ()) if isinstance(p, str) and p not in ("body", "query", "path", "header")]
        if names:
            return names[-1]
    return "body"


def log_routes(app: FastAPI) -> None:
    logger.info("[ROUTES]")
    for route in app.routes:
        if isinstance(route, APIRoute):
            for method in sorted(route.methods):
                logger.info("[ROUTES] %s %s", method, route.path)


# ==================== App ====================
def create_app(service: Optional[DashboardService] = None,
               settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or (service.settings if service is not None else load_settings())
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "service", None) is None:
            app.state.service = DashboardService(settings, SheetsClient(settings))
        log_routes(app)
        yield
        await app.state.service.aclose()

    app = FastAPI(title="Painel de Vendas", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_methods=["*"], allow_headers=["*"],
    )

    # ==================== Erros ====================
    @app.exception_handler(DashboardError)
    async def dashboard_error_handler(request: Request, exc: DashboardError):
        if exc.status_code >= 500:
            logger.exception("Erro %s em %s", exc.status_code, request.url.path, exc_info=exc)
        body = {"ok": False}
        body.update(getattr(request.state, "error_context", {}) or {})
        body.update({"error": exc.message or "Internal server error", "code": exc.code})
        body.update(exc.extra)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        field = _validation_field(exc.errors())
        body = {"ok": False}
        body.update(getattr(request.state, "error_context", {}) or {})
        body.update({
            "error": "Corpo da requisição inválido" if field == "body" else f'Parâmetro "{field}" inválido',
            "code": InvalidParameter.code,
            "field": field,
        })
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Erro inesperado em %s", request.url.path, exc_info=exc)
        body = {"ok": False}
        body.update(getattr(request.state, "error_context", {}) or {})
        body.update({"error": str(exc) or "Internal server error", "code": None})
        return JSONResponse(status_code=500, content=body)

    # ==================== Helpers de conta ====================
    def dashboard_account(request: Request, conta: Optional[str]) -> tuple:
        conta_param = conta or "1"
        _bind(request, conta=conta_param)
        sheet_id = _service(request).require_sheet_id(conta_param)
        _bind(request, sheetId=sheet_id)
        if is_veia_account(conta_param):
            raise InvalidParameter(DASHBOARD_ONLY_ERROR, field="conta")
        return conta_param, sheet_id

    def veia_account(request: Request, conta: Optional[str]) -> tuple:
        conta_param = conta or "1"
        _bind(request, conta=conta_param)
        if not is_veia_account(conta_param):
            raise InvalidParameter(VEIA_ONLY_ERROR, field="conta")
        sheet_id = _service(request).require_sheet_id(conta_param)
        _bind(request, sheetId=sheet_id)
        return conta_param, sheet_id

    def any_account(request: Request, conta: Optional[str]) -> tuple:
        conta_param = conta or "1"
        _bind(request, conta=conta_param)
        sheet_id = _service(request).require_sheet_id(conta_param)
        _bind(request, sheetId=sheet_id)
        return conta_param, sheet_id

    # ==================== Health ====================
    @app.get("/_health")
    def health():
        return {"ok": True}

    # ==================== Dashboard (contas 1 e 2) ====================
    @app.get("/api/dashboard/summary", response_model=DashboardSummaryResponse)
    async def dashboard_summary(
        request: Request,
        conta: Optional[str] = Query(None),
        start: Optional[str] = Query(None, description="YYYY-MM-DD ou dd/mm/aaaa (inclusivo)"),
        end: Optional[str] = Query(None, description="YYYY-MM-DD ou dd/mm/aaaa (inclusivo)"),
        marketplace: Optional[str] = Query(None, description="CSV de marketplaces"),
    ):
        conta_param, sheet_id = dashboard_account(request, conta)
        rows = await _service(request).load_sheet_data(sheet_id, conta_param)
        filtered = apply_filters(rows, start=start, end=end, marketplace=marketplace)
        return DashboardSummaryResponse(conta=conta_param, sheet_id=sheet_id, resumo=build_summary(filtered))

    @app.get("/api/dashboard/detalhado", response_model=DashboardDetalhadoResponse)
    async def dashboard_detalhado(
        request: Request,
        conta: Optional[str] = Query(None),
        start: Optional[str] = Query(None),
        end: Optional[str] = Query(None),
        marketplace: Optional[str] = Query(None),
        page: Optional[str] = Query(None),
        limit: Optional[str] = Query(None),
    ):
        conta_param, sheet_id = dashboard_account(request, conta)
        rows = await _service(request).load_sheet_data(sheet_id, conta_param)
        filtered = apply_filters(rows, start=start, end=end, marketplace=marketplace)

        pagination = parse_pagination(page, limit)
        if pagination is None:
            return DashboardDetalhadoResponse(
                conta=conta_param, sheet_id=sheet_id, linhas=filtered, total=len(filtered)
            )
        p, lim = pagination
        return DashboardDetalhadoResponse(
            conta=conta_param, sheet_id=sheet_id,
            linhas=paginate(filtered, p, lim), page=p, limit=lim, total=len(filtered),
        )

    @app.get("/api/dashboard/monthly", response_model=DashboardMonthlyResponse)
    async def dashboard_monthly(
        request: Request,
        conta: Optional[str] = Query(None),
        start: Optional[str] = Query(None),
        end: Optional[str] = Query(None),
        marketplace: Optional[str] = Query(None),
    ):
        conta_param, sheet_id = dashboard_account(request, conta)
        rows = await _service(request).load_sheet_data(sheet_id, conta_param)
        filtered = apply_filters(rows, start=start, end=end, marketplace=marketplace)
        return DashboardMonthlyResponse(conta=conta_param, sheet_id=sheet_id, meses=build_monthly(filtered))

    # ==================== VEIA (conta 3) ====================
    @app.get("/api/veia/summary", response_model=VeiaSummaryResponse)
    async def veia_summary(
        request: Request,
        conta: Optional[str] = Query(None),
        de: Optional[str] = Query(None, description="YYYY-MM ou MM/YYYY"),
        ate: Optional[str] = Query(None, description="YYYY-MM ou MM/YYYY"),
        modalidade: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
    ):
        conta_param, sheet_id = veia_account(request, conta)
        dataset = await _service(request).load_veia(sheet_id)
        filters = sanitize_veia_filters(de, ate, modalidade, status)
        resumo = build_veia_summary(filter_veia_rows(dataset.rows, filters))
        return VeiaSummaryResponse(conta=conta_param, sheet_id=sheet_id, resumo=resumo)

    @app.get("/api/veia/mensal", response_model=VeiaMensalResponse)
    async def veia_mensal(
        request: Request,
        conta: Optional[str] = Query(None),
        de: Optional[str] = Query(None),
        ate: Optional[str] = Query(None),
        modalidade: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
    ):
        conta_param, sheet_id = veia_account(request, conta)
        dataset = await _service(request).load_veia(sheet_id)
        filters = sanitize_veia_filters(de, ate, modalidade, status)
        meses, modalidades, status_lista = build_veia_monthly(filter_veia_rows(dataset.rows, filters))
        return VeiaMensalResponse(
            conta=conta_param, sheet_id=sheet_id,
            meses=meses, modalidades=modalidades, status=status_lista,
        )

    @app.get("/api/veia/consolidado", response_model=VeiaConsolidadoResponse)
    async def veia_consolidado(request: Request, conta: Optional[str] = Query(None)):
        conta_param, sheet_id = veia_account(request, conta)
        dataset = await _service(request).load_veia(sheet_id)
        return VeiaConsolidadoResponse(
            conta=conta_param, sheet_id=sheet_id,
            tab_name=dataset.tab_name, periodos=build_veia_periodos(dataset.rows),
        )

    # ==================== Comparativo ====================
    @app.get("/api/comparativo/summary", response_model=ComparativoSummaryResponse)
    async def comparativo_summary(
        request: Request,
        conta_a: Optional[str] = Query(None, alias="contaA"),
        conta_b: Optional[str] = Query(None, alias="contaB"),
        de: Optional[str] = Query(None),
        ate: Optional[str] = Query(None),
        marketplace: Optional[str] = Query(None),
    ):
        _bind(request, contaA=conta_a, contaB=conta_b)
        a_param = parse_comparativo_conta(conta_a, "contaA")
        b_param = parse_comparativo_conta(conta_b, "contaB")
        filters = sanitize_comparativo_filters(de, ate, marketplace)

        a, b = await _service(request).load_comparativo(a_param, b_param, filters)
        resumo_a = build_summary(a.rows)
        resumo_b = build_summary(b.rows)
        return ComparativoSummaryResponse(
            conta_a=ComparativoConta(id=a.id, sheet_id=a.sheet_id, resumo=resumo_a),
            conta_b=ComparativoConta(id=b.id, sheet_id=b.sheet_id, resumo=resumo_b),
            delta=build_resumo_delta(resumo_a, resumo_b),
        )

    @app.get("/api/comparativo/mensal", response_model=ComparativoMensalResponse)
    async def comparativo_mensal(
        request: Request,
        conta_a: Optional[str] = Query(None, alias="contaA"),
        conta_b: Optional[str] = Query(None, alias="contaB"),
        de: Optional[str] = Query(None),
        ate: Optional[str] = Query(None),
        marketplace: Optional[str] = Query(None),
    ):
        _bind(request, contaA=conta_a, contaB=conta_b)
        a_param = parse_comparativo_conta(conta_a, "contaA")
        b_param = parse_comparativo_conta(conta_b, "contaB")
        filters = sanitize_comparativo_filters(de, ate, marketplace)

        a, b = await _service(request).load_comparativo(a_param, b_param, filters)
        return ComparativoMensalResponse(meses=build_comparativo_mensal(a.rows, b.rows))

    # ==================== Curva ABC ====================
    @app.get("/api/curvaabc", response_model=CurvaAbcResponse)
    async def curvaabc(request: Request, force: Optional[str] = Query(None)):
        rows = await _service(request).load_curva_abc(force=_is_truthy(force))
        return CurvaAbcResponse(rows=rows)

    @app.get("/api/curvaabc/check", response_model=CurvaAbcCheckResponse)
    async def curvaabc_check(request: Request, force: Optional[str] = Query(None)):
        mudancas = await _service(request).curva_abc_pending(force=_is_truthy(force))
        return CurvaAbcCheckResponse(mudancas=mudancas)

    @app.post("/api/curvaabc/ack", response_model=CurvaAbcAckResponse)
    async def curvaabc_ack(request: Request, body: CurvaAbcAckRequest):
        codigo = (body.codigo or body.codigo_anuncio or "").strip()
        periodo = (body.periodo_atual or body.periodo or "").strip()
        if body.conta is not None:
            _bind(request, conta=str(body.conta))
        if not codigo:
            raise InvalidParameter('Parâmetro "codigo" é obrigatório', field="codigo")
        if not periodo:
            raise InvalidParameter('Parâmetro "periodo" é obrigatório', field="periodo")

        ack = _service(request).ack_transition(
            codigo=codigo,
            periodo_atual=periodo,
            curva=body.curva_atual or body.curva,
            marketplace=body.marketplace,
        )
        return CurvaAbcAckResponse(ack=ack)

    # ==================== Debug ====================
    @app.get("/api/debug/sheets", response_model=DebugSheetsResponse)
    async def debug_sheets(request: Request, conta: Optional[str] = Query(None)):
        conta_param, sheet_id = any_account(request, conta)
        service = _service(request)
        try:
            tab_configurada = service.settings.account_tab_name(conta_param)
        except DashboardError:
            tab_configurada = None
        titles = await service.list_titles(sheet_id)
        return DebugSheetsResponse(conta=conta_param, sheet_id=sheet_id, titles=titles, tab_configurada=tab_configurada)

    @app.get("/api/debug/firstrow", response_model=DebugFirstRowResponse)
    async def debug_firstrow(request: Request, conta: Optional[str] = Query(None)):
        conta_param, sheet_id = any_account(request, conta)
        service = _service(request)
        if is_veia_account(conta_param):
            dataset = await service.load_veia(sheet_id)
            first = dataset.rows[0].model_dump(by_alias=True) if dataset.rows else None
            return DebugFirstRowResponse(
                conta=conta_param, sheet_id=sheet_id, first=first, headers_detectados=dataset.headers
            )
        rows = await service.load_sheet_data(sheet_id, conta_param)
        first = rows[0].model_dump(by_alias=True) if rows else None
        return DebugFirstRowResponse(conta=conta_param, sheet_id=sheet_id, first=first)

    @app.get("/api/debug/sample", response_model=DebugSampleResponse)
    async def debug_sample(
        request: Request,
        conta: Optional[str] = Query(None),
        force: Optional[str] = Query(None, description="1 ignora os caches"),
    ):
        conta_param, sheet_id = any_account(request, conta)
        service = _service(request)
        bypass = _is_truthy(force)
        if is_veia_account(conta_param):
            tab_name = service.settings.veia_tab_name()
            rows = (await service.load_veia(sheet_id, force=bypass)).rows
        else:
            tab_name = service.settings.account_tab_name(conta_param)
            rows = await service.load_sheet_data(sheet_id, conta_param, force=bypass)

        _, values = await service.read_tab_values(sheet_id, tab_name)
        return DebugSampleResponse(
            conta=conta_param, sheet_id=sheet_id,
            rows=[r.model_dump(by_alias=True) for r in rows[:3]],
            preview_raw=frame_preview(values, n=5),
        )

    # ==================== Sync ====================
    @app.get("/api/sync")
    async def sync(request: Request, conta: Optional[str] = Query(None)):
        conta_param, sheet_id = dashboard_account(request, conta)
        rows = await _service(request).load_sheet_data(sheet_id, conta_param)
        payload = RowsResponse(conta=conta_param, sheet_id=sheet_id, rows=rows)

        body = json.dumps(payload.model_dump(mode="json", by_alias=True), ensure_ascii=False).encode("utf-8")
        etag = make_etag_from_bytes(body)

        client_inm = (request.headers.get("if-none-match") or "").replace('"', "")
        if client_inm and etag == client_inm:
            return Response(status_code=304, headers={"ETag": f'"{etag}"'})

        return Response(
            content=body,
            media_type="application/json",
            headers={
                "ETag": f'"{etag}"',
                "Cache-Control": "private, max-age=60",
            },
        )

    # ==================== Front ====================
    if settings.dist_dir and Path(settings.dist_dir).is_dir():
        app.mount("/", StaticFiles(directory=settings.dist_dir, html=True), name="front")

    return app


app = create_app()
