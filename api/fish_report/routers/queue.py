# fish_report/routers/queue.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from fish_report.deps import Services, get_services

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.get("")
def list_queue(svc: Services = Depends(get_services)):
    items = svc.queue.pending()
    return {"count": len(items), "items": [x.to_wire() for x in items]}


@router.post("/sync")
def sync_queue(svc: Services = Depends(get_services)):
    """Retry every queued submission now; failures stay queued."""
    result = svc.queue.sync_pending(svc.client)
    return {"ok": result.failed == 0, **result.as_dict(), "pending": len(svc.queue)}
