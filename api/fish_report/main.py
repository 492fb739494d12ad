# fish_report/main.py
# Fish Report API - intake tickets, inventory reports, month list
from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.types import Receive, Scope, Send

from fish_report import __version__
from fish_report.deps import Services, build_services
from fish_report.logging_setup import setup_logging
from fish_report.settings import ConfigError, Settings, settings as default_settings

from fish_report.routers.proxy import PROXY_PATH, router as proxy_router
from fish_report.routers.master import router as master_router
from fish_report.routers.intake import router as intake_router
from fish_report.routers.inventory import router as inventory_router
from fish_report.routers.tickets import router as tickets_router
from fish_report.routers.queue import router as queue_router
from fish_report.routers.history import router as history_router

logger = logging.getLogger(__name__)


class AppCORSMiddleware(CORSMiddleware):
    """CORS for the app routes. Paths in `skip_paths` answer CORS themselves."""

    def __init__(self, app, skip_paths=(), **kwargs):
        super().__init__(app, **kwargs)
        self.skip_paths = frozenset(skip_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] in self.skip_paths:
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or default_settings

    # ---------------------------------------------------------
    # Lifespan: services, offline sync
    # ---------------------------------------------------------
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings)
        svc = services or build_services(settings)
        app.state.services = svc
        if settings.SYNC_ON_STARTUP and len(svc.queue):
            try:
                result = svc.queue.sync_pending(svc.client)
                logger.info("startup sync: %s", result.as_dict())
            except ConfigError as e:
                logger.warning("startup sync skipped: %s", e)
        yield
        svc.close()

    app = FastAPI(
        title="Fish Report API",
        version=__version__,
        description="Fish processing intake tickets and inventory reports",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(
        AppCORSMiddleware,
        skip_paths=(PROXY_PATH,),
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    app.include_router(proxy_router)
    app.include_router(master_router)
    app.include_router(intake_router)
    app.include_router(inventory_router)
    app.include_router(tickets_router)
    app.include_router(queue_router)
    app.include_router(history_router)

    @app.get("/health")
    def health(request: Request):
        """Health check with store and master status."""
        svc: Services = request.app.state.services
        store = svc.store.health()
        result = {
            "status": "ok",
            "version": __version__,
            "store": store,
            "master": svc.master.status,
            "pending": len(svc.queue),
        }
        if store.get("status") != "healthy":
            result["status"] = "degraded"
        return result

    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run("fish_report.main:app", host="127.0.0.1", port=8000)
