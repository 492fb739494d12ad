# fish_report/routers/inventory.py
"""
Inventory report form, opened from a ticket row (`?tid=...&species=...`).

Photos are held in memory until submit; they are uploaded one by one before
the report itself is recorded.
"""
from __future__ import annotations
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Query, UploadFile

from fish_report.deps import Services, get_services, http_error
from fish_report.services.forms import FormBusyError, FormValidationError
from fish_report.services.gas_client import GasError
from fish_report.settings import ConfigError

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.get("")
def get_inventory(
    tid: Optional[str] = Query(None, description="ticket id to report on"),
    species: Optional[str] = Query(None),
    svc: Services = Depends(get_services),
):
    master = svc.master.load()
    if tid:
        try:
            svc.inventory.open_for_ticket(tid, species)
        except (FormValidationError, ConfigError) as e:
            raise http_error(e)
    out = svc.inventory.snapshot(master)
    out["options"] = svc.inventory.options(master, preferred_species=species)
    return out


@router.patch("/draft")
def patch_inventory_draft(values: Dict[str, Any] = Body(...), svc: Services = Depends(get_services)):
    try:
        svc.inventory.update(values)
    except FormValidationError as e:
        raise http_error(e)
    return svc.inventory.snapshot(svc.master.master)


@router.delete("/draft")
def cancel_inventory(svc: Services = Depends(get_services)):
    svc.inventory.cancel()
    return {"ok": True}


@router.post("/photos/{category}")
async def attach_photo(category: str, file: UploadFile = File(...), svc: Services = Depends(get_services)):
    content = await file.read()
    try:
        svc.inventory.attach_photo(category, file.filename or "photo", content, file.content_type)
    except FormValidationError as e:
        raise http_error(e)
    return svc.inventory.photo_summary()


@router.delete("/photos/{category}/{index}")
def remove_photo(category: str, index: int, svc: Services = Depends(get_services)):
    try:
        svc.inventory.remove_photo(category, index)
    except FormValidationError as e:
        raise http_error(e)
    return svc.inventory.photo_summary()


@router.post("/submit")
def submit_inventory(svc: Services = Depends(get_services)):
    try:
        result = svc.inventory.submit()
    except (FormValidationError, FormBusyError, ConfigError, GasError) as e:
        raise http_error(e)
    return result.as_dict()
