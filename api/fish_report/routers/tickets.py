# fish_report/routers/tickets.py
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel

from fish_report.deps import Services, get_services, http_error
from fish_report.services.gas_client import GasError
from fish_report.services.tickets import TicketActionError
from fish_report.settings import ConfigError

router = APIRouter(prefix="/tickets", tags=["Tickets"])

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class CloseIn(BaseModel):
    confirm: bool = False


def _month_or_current(month: Optional[str]) -> str:
    return month or date.today().strftime("%Y-%m")


@router.get("")
def list_tickets(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    svc: Services = Depends(get_services),
):
    month = _month_or_current(month)
    try:
        rows = svc.tickets.load_month(month)
    except (TicketActionError, ConfigError, GasError) as e:
        raise http_error(e)
    return {"ok": True, "month": month, "items": [r.to_wire() for r in rows]}


@router.get("/export")
def export_tickets(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    svc: Services = Depends(get_services),
):
    month = _month_or_current(month)
    try:
        text = svc.tickets.export_csv(month)
    except (TicketActionError, ConfigError, GasError) as e:
        raise http_error(e)
    return Response(
        content=text.encode("utf-8-sig"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="tickets_{month}.csv"'},
    )


@router.post("/{ticket_id}/close")
def close_ticket(ticket_id: str, body: CloseIn, svc: Services = Depends(get_services)):
    try:
        return {"ok": True, **svc.tickets.close_ticket(ticket_id, confirm=body.confirm)}
    except (TicketActionError, ConfigError, GasError) as e:
        raise http_error(e)
