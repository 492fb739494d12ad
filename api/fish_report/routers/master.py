# fish_report/routers/master.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from fish_report.deps import Services, get_services

router = APIRouter(prefix="/master", tags=["Master"])


@router.get("")
def get_master(svc: Services = Depends(get_services)):
    """Cached master data; refetched when older than the TTL."""
    svc.master.load()
    return svc.master.snapshot()


@router.post("/reload")
def reload_master(svc: Services = Depends(get_services)):
    svc.master.reload()
    return svc.master.snapshot()
