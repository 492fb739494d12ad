# fish_report/routers/history.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from fish_report.deps import Services, get_services

router = APIRouter(prefix="/history", tags=["History"])


@router.get("")
def get_history(svc: Services = Depends(get_services)):
    return {"species": svc.history.species(), "submissions": svc.history.entries()}


@router.delete("/species")
def clear_species(svc: Services = Depends(get_services)):
    svc.history.clear_species()
    return {"ok": True}
