# fish_report/routers/proxy.py
"""
Cross-origin proxy for the spreadsheet script backend.

Mirrors method, query string and JSON body to GAS_URL and hands the backend's
status and body back unchanged. No business logic, no validation.
"""
from __future__ import annotations
import logging
from typing import Dict

import requests
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["proxy"])

PROXY_PATH = "/api/gas"

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@router.api_route(PROXY_PATH, methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def gas_proxy(request: Request) -> Response:
    if request.method == "OPTIONS":
        headers = dict(CORS_HEADERS)
        requested = request.headers.get("Access-Control-Request-Headers")
        if requested:
            headers["Access-Control-Allow-Headers"] = requested
        return Response(status_code=200, headers=headers)

    gas_url = (request.app.state.settings.GAS_URL or "").strip()
    if not gas_url:
        return JSONResponse({"ok": False, "error": "GAS_URL not set"}, status_code=500, headers=CORS_HEADERS)

    qs = request.url.query
    url = f"{gas_url}?{qs}" if qs else gas_url
    timeout = request.app.state.settings.HTTP_TIMEOUT

    if request.method in ("GET", "HEAD"):
        kwargs = {"method": "GET"}
    else:
        body = await request.body()
        kwargs = {
            "method": "POST",
            "data": body or b"{}",
            "headers": {"Content-Type": "application/json"},
        }

    try:
        upstream = await run_in_threadpool(requests.request, url=url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        logger.error("proxy %s %s failed: %s", request.method, gas_url, e)
        return JSONResponse(
            {"ok": False, "error": "proxy_error", "detail": str(e)},
            status_code=502,
            headers=CORS_HEADERS,
        )

    media_type = upstream.headers.get("Content-Type") or "application/json"
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=media_type,
        headers=CORS_HEADERS,
    )
