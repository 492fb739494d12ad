# fish_report/routers/intake.py
"""
Intake (purchase ticket) form.

The draft lives server-side in the local store; the UI patches it field by
field and submits when every required field is filled.
"""
from __future__ import annotations
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from fish_report.deps import Services, get_services, http_error
from fish_report.services.forms import FormBusyError, FormValidationError
from fish_report.services.gas_client import GasError
from fish_report.settings import ConfigError

router = APIRouter(prefix="/intake", tags=["Intake"])


@router.get("")
def get_intake(svc: Services = Depends(get_services)):
    return svc.intake.snapshot(svc.master.load())


@router.patch("/draft")
def patch_intake_draft(values: Dict[str, Any] = Body(...), svc: Services = Depends(get_services)):
    try:
        svc.intake.update(values)
    except FormValidationError as e:
        raise http_error(e)
    return svc.intake.snapshot(svc.master.master)


@router.delete("/draft")
def cancel_intake(svc: Services = Depends(get_services)):
    svc.intake.cancel()
    return {"ok": True}


@router.post("/submit")
def submit_intake(svc: Services = Depends(get_services)):
    try:
        result = svc.intake.submit()
    except (FormValidationError, FormBusyError, ConfigError, GasError) as e:
        raise http_error(e)
    return result.as_dict()
