# fish_report/deps.py
"""
Service container. Built once in the app lifespan and handed to routers
through `get_services`.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

import requests
from fastapi import HTTPException, Request

from fish_report.settings import ConfigError, Settings
from fish_report.store import LocalStore, build_store
from fish_report.services.gas_client import GasClient, GasError
from fish_report.services.master import MasterCache, build_master_source
from fish_report.services.offline_queue import OfflineQueue
from fish_report.services.forms import (
    IntakeForm, InventoryForm, LocalHistory, FormValidationError, FormBusyError,
)
from fish_report.services.tickets import TicketListView, TicketActionError


@dataclass
class Services:
    settings: Settings
    store: LocalStore
    client: GasClient
    master: MasterCache
    queue: OfflineQueue
    history: LocalHistory
    intake: IntakeForm
    inventory: InventoryForm
    tickets: TicketListView

    def close(self) -> None:
        self.store.close()


def build_services(
    settings: Settings,
    store: Optional[LocalStore] = None,
    session: Optional[requests.Session] = None,
    master_source=None,
) -> Services:
    store = store or build_store(settings)
    client = GasClient.from_settings(settings, session=session)
    source = master_source or build_master_source(settings, client)
    master = MasterCache(store, source, ttl_seconds=settings.MASTER_CACHE_TTL_SECONDS)
    queue = OfflineQueue(store)
    history = LocalHistory(store)
    return Services(
        settings=settings,
        store=store,
        client=client,
        master=master,
        queue=queue,
        history=history,
        intake=IntakeForm(store, client, queue, history, factory_codes=settings.FACTORY_CODES),
        inventory=InventoryForm(store, client, queue, history),
        tickets=TicketListView(client),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def http_error(e: Exception) -> HTTPException:
    """Map service exceptions to HTTP errors."""
    if isinstance(e, ConfigError):
        return HTTPException(status_code=503, detail={"ok": False, "error": str(e)})
    if isinstance(e, FormValidationError):
        return HTTPException(status_code=422, detail={"ok": False, "error": e.message, "field": e.field})
    if isinstance(e, FormBusyError):
        return HTTPException(status_code=409, detail={"ok": False, "error": str(e)})
    if isinstance(e, TicketActionError):
        return HTTPException(status_code=409, detail={"ok": False, "error": str(e)})
    if isinstance(e, GasError):
        return HTTPException(status_code=502, detail={"ok": False, "error": e.message, "retry": True})
    return HTTPException(status_code=500, detail={"ok": False, "error": str(e)})
