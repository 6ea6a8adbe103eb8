from __future__ import annotations

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from ..app import BudgetWorkspace, InvalidTransition
from ..capture import page_from_data_url
from ..config import Settings, load_settings
from ..extraction import (
    BudgetExtractionService,
    DocumentNormalizer,
    EntitlementError,
    ExtractionError,
    LineOrder,
    NoPagesError,
    QuotaExceededError,
    build_client,
)
from ..history import HistoryStore
from ..logging import get_logger
from ..render import render_html

LOG = get_logger("web")


def _status_for(error: ExtractionError) -> int:
    if isinstance(error, NoPagesError):
        return 400
    if isinstance(error, EntitlementError):
        return 401
    if isinstance(error, QuotaExceededError):
        return 429
    return 502


def _attachment(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode("ascii") or "presupuesto"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def _error_response(error: ExtractionError) -> JSONResponse:
    return JSONResponse(error.as_dict(), status_code=_status_for(error))


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=400, detail="Body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return body


def build_workspace(settings: Settings) -> BudgetWorkspace:
    service = BudgetExtractionService(
        build_client(settings),
        normalizer=DocumentNormalizer(LineOrder.parse(settings.line_order)),
        max_retries=settings.max_retries,
    )
    return BudgetWorkspace(service, HistoryStore(settings.history_path), settings.branding)


def create_app(
    settings: Optional[Settings] = None,
    *,
    workspace: Optional[BudgetWorkspace] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create the Starlette app exposing capture, extraction, history and exports."""
    if workspace is None:
        if settings is None:
            raise ValueError("create_app needs settings or a workspace")
        workspace = build_workspace(settings)
    ws = workspace

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "history_path": ws.history.path})

    async def session_state(_: Request) -> JSONResponse:
        return JSONResponse(ws.session.as_dict())

    async def add_page(request: Request) -> JSONResponse:
        body = await _json_body(request)
        data_url = body.get("data_url")
        if not isinstance(data_url, str):
            raise HTTPException(status_code=400, detail="data_url is required")
        try:
            page = await run_in_threadpool(page_from_data_url, data_url)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        try:
            count = ws.add_page(page)
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return JSONResponse({"pages": count, "width": page.width, "height": page.height}, status_code=201)

    async def discard_page(request: Request) -> JSONResponse:
        try:
            count = ws.discard_page(int(request.path_params["index"]))
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return JSONResponse({"pages": count})

    async def extract(_: Request) -> JSONResponse:
        if not ws.session.pages and not ws.session.busy:
            return _error_response(NoPagesError("No pages captured"))
        try:
            pages = ws.begin_processing()
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        try:
            document = await run_in_threadpool(ws.run_extraction, pages)
        except Exception as exc:
            return _error_response(ws.fail_processing(exc))
        entry = ws.finish_processing(document=document)
        LOG.info(f"Extraction {document.id} stored in history")
        return JSONResponse({"document": document.to_dict(), "history_id": entry.id if entry else None})

    async def credentials(request: Request) -> JSONResponse:
        body = await _json_body(request)
        api_key = body.get("api_key")
        if not isinstance(api_key, str) or not api_key.strip():
            raise HTTPException(status_code=400, detail="api_key is required")
        ws.service.use_api_key(api_key.strip())
        return JSONResponse({"status": "ok"})

    async def reset(_: Request) -> JSONResponse:
        try:
            ws.reset()
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return JSONResponse(ws.session.as_dict())

    async def history_list(_: Request) -> JSONResponse:
        items = [
            {"id": e.id, "capturedAt": e.captured_at, "client": e.client, "total": float(e.total)}
            for e in ws.history.list()
        ]
        return JSONResponse({"items": items})

    async def history_detail(request: Request) -> JSONResponse:
        entry = ws.history.get(request.path_params["entry_id"])
        if entry is None:
            raise HTTPException(status_code=404, detail="Budget not found")
        return JSONResponse(entry.to_dict())

    async def history_delete(request: Request) -> JSONResponse:
        if not ws.remove(request.path_params["entry_id"]):
            raise HTTPException(status_code=404, detail="Budget not found")
        return JSONResponse({"status": "deleted"})

    async def history_select(request: Request) -> JSONResponse:
        try:
            document = ws.select(request.path_params["entry_id"])
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if document is None:
            raise HTTPException(status_code=404, detail="Budget not found")
        return JSONResponse({"document": document.to_dict()})

    async def document_export(request: Request) -> Response:
        document = ws.find_document(request.path_params["document_id"])
        if document is None:
            raise HTTPException(status_code=404, detail="Budget not found")
        fmt = request.path_params["fmt"]
        if fmt == "html":
            return HTMLResponse(render_html(document, ws.branding))
        try:
            content, media_type, filename = await run_in_threadpool(ws.export, document, fmt)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(content, media_type=media_type, headers={"Content-Disposition": _attachment(filename)})

    async def api_only(_: Request) -> JSONResponse:
        return JSONResponse({"detail": "Budget capture API is running. See /api/session."})

    routes = [
        Route("/", api_only, methods=["GET"]),
        Route("/api/health", health, methods=["GET"]),
        Route("/api/session", session_state, methods=["GET"]),
        Route("/api/pages", add_page, methods=["POST"]),
        Route("/api/pages/{index:int}", discard_page, methods=["DELETE"]),
        Route("/api/extract", extract, methods=["POST"]),
        Route("/api/credentials", credentials, methods=["POST"]),
        Route("/api/reset", reset, methods=["POST"]),
        Route("/api/history", history_list, methods=["GET"]),
        Route("/api/history/{entry_id:str}", history_detail, methods=["GET"]),
        Route("/api/history/{entry_id:str}", history_delete, methods=["DELETE"]),
        Route("/api/history/{entry_id:str}/select", history_select, methods=["POST"]),
        Route("/api/documents/{document_id:str}.{fmt:str}", document_export, methods=["GET"]),
    ]

    app = Starlette(debug=False, routes=routes)

    origins = allow_origins or ["http://localhost:5173", "http://127.0.0.1:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


def create_app_from_env() -> Starlette:
    """uvicorn factory: settings resolved from the working directory."""
    return create_app(load_settings())


__all__ = ["create_app", "create_app_from_env", "build_workspace"]
