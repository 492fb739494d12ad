# fish_report/services/tickets.py
"""
Month list and ticket closing.

A ticket's status is always derived from the records the backend returns,
never from a stored flag:
    reported     an inventory report references the ticket
    closed       no report, but a close marker references it
    intake-only  neither
"""
from __future__ import annotations
import io
import logging
import re
from typing import Any, Dict, List, Optional

import pandas as pd

from fish_report.models import TicketRow, TicketStatus, now_iso

logger = logging.getLogger(__name__)

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# backend row `type` -> canonical kind
_KINDS = {
    "intake": "intake", "ticket": "intake",
    "inventory": "inventory", "report": "inventory",
    "close": "close", "closed": "close",
}

EXPORT_COLUMNS = {
    "ticketId": "チケットID",
    "purchaseDate": "仕入れの年月日",
    "species": "魚種",
    "factory": "工場",
    "status": "在庫報告 / 消込",
    "reportDate": "加工した年月日",
}


class TicketActionError(ValueError):
    """Rejected locally (bad month, missing confirmation, wrong status)."""


def validate_month(month: str) -> str:
    month = (month or "").strip()
    if not MONTH_RE.match(month):
        raise TicketActionError(f"Invalid month '{month}', expected YYYY-MM")
    return month


def _kind(item: Dict[str, Any]) -> Optional[str]:
    return _KINDS.get(str(item.get("type") or "").strip().lower())


def _payload(item: Dict[str, Any]) -> Dict[str, Any]:
    inner = item.get("payload")
    return inner if isinstance(inner, dict) else item


def derive_status(has_report: bool, has_close: bool) -> TicketStatus:
    if has_report:
        return TicketStatus.reported
    if has_close:
        return TicketStatus.closed
    return TicketStatus.intake_only


def build_rows(items: List[Dict[str, Any]], month: str) -> List[TicketRow]:
    tickets: Dict[str, Dict[str, Any]] = {}
    reports: Dict[str, Dict[str, Any]] = {}
    closed: set = set()
    for item in items:
        kind = _kind(item)
        data = _payload(item)
        tid = str(data.get("ticketId") or "").strip()
        if not kind or not tid:
            continue
        if kind == "intake":
            tickets[tid] = data
        elif kind == "inventory":
            reports[tid] = data
        else:
            closed.add(tid)

    rows: List[TicketRow] = []
    for tid, t in tickets.items():
        purchase = str(t.get("purchaseDate") or t.get("date") or "")
        if not purchase.startswith(month):
            continue
        rep = reports.get(tid)
        status = derive_status(rep is not None, tid in closed)
        rows.append(TicketRow(
            ticketId=tid,
            purchaseDate=purchase,
            date=str(t.get("date") or ""),
            species=str(t.get("species") or ""),
            factory=str(t.get("factory") or ""),
            status=status,
            reportDate=(rep or {}).get("date") or None,
            canReport=status == TicketStatus.intake_only,
            canClose=status == TicketStatus.intake_only,
        ))
    rows.sort(key=lambda r: (r.purchase_date, r.ticket_id))
    return rows


class TicketListView:
    def __init__(self, client):
        self.client = client

    def load_month(self, month: str) -> List[TicketRow]:
        month = validate_month(month)
        items = self.client.list_month(month)
        rows = build_rows(items, month)
        logger.info("month %s: %d tickets from %d records", month, len(rows), len(items))
        return rows

    def ticket_status(self, ticket_id: str) -> TicketStatus:
        data = self.client.get_ticket(ticket_id)
        return derive_status(bool(data.get("report")), bool(data.get("closed")))

    def close_ticket(self, ticket_id: str, confirm: bool = False) -> Dict[str, Any]:
        """Close an intake-only ticket without a report (needs confirm=True)."""
        ticket_id = (ticket_id or "").strip()
        if not ticket_id:
            raise TicketActionError("ticketId is required")
        if not confirm:
            raise TicketActionError("Closing a ticket must be confirmed")
        status = self.ticket_status(ticket_id)
        if status != TicketStatus.intake_only:
            raise TicketActionError(f"Ticket {ticket_id} is {status.value}, only intake-only tickets can be closed")
        self.client.close_ticket(ticket_id, now_iso())
        logger.info("ticket %s closed", ticket_id)
        return {"ticketId": ticket_id, "status": TicketStatus.closed.value}

    def export_csv(self, month: str) -> str:
        rows = [r.to_wire() for r in self.load_month(month)]
        df = pd.DataFrame(rows, columns=list(EXPORT_COLUMNS))
        df = df.rename(columns=EXPORT_COLUMNS).fillna("")
        buf = io.StringIO()
        df.to_csv(buf, index=False)
        return buf.getvalue()
