from __future__ import annotations

import pytest

from fish_report.models import QueueItem
from fish_report.services.gas_client import GasClient, GasClientConfig, GasError
from fish_report.services.offline_queue import OfflineQueue
from fish_report.store import QUEUE_KEY


def _item(tid: str, type_: str = "intake") -> QueueItem:
    return QueueItem(type=type_, payload={"ticketId": tid})


def test_failed_item_stays_in_place(queue, client, backend):
    queue.enqueue(_item("HN20240601-aaaaaa"))
    queue.enqueue(_item("HN20240601-bbbbbb", "inventory"))
    backend.fail_record_if = lambda body: body["payload"]["ticketId"].endswith("aaaaaa")

    result = queue.sync_pending(client)

    assert result.delivered == 1
    assert result.failed == 1
    assert result.errors == ["sheet busy"]
    assert [x.payload["ticketId"] for x in queue.pending()] == ["HN20240601-aaaaaa"]
    assert [r["payload"]["ticketId"] for r in backend.records] == ["HN20240601-bbbbbb"]


def test_sync_delivers_in_order_and_clears_key(queue, client, backend, store):
    for tid in ("A", "B", "C"):
        queue.enqueue(_item(tid))
    result = queue.sync_pending(client)

    assert result.as_dict() == {"delivered": 3, "failed": 0, "errors": []}
    assert [r["payload"]["ticketId"] for r in backend.records] == ["A", "B", "C"]
    assert len(queue) == 0
    assert store.get(QUEUE_KEY) is None


def test_offline_sync_keeps_everything(queue, client, backend):
    queue.enqueue(_item("A"))
    queue.enqueue(_item("B"))
    backend.offline = True

    result = queue.sync_pending(client)

    assert result.delivered == 0
    assert result.failed == 2
    assert [x.payload["ticketId"] for x in queue.pending()] == ["A", "B"]


def test_retries_go_ahead_of_items_queued_during_sync(queue, backend, store):
    class EnqueueWhileSyncing:
        def record(self, type_, payload):
            if payload["ticketId"] == "A":
                queue.enqueue(_item("late"))
                raise GasError("sheet busy")
            return {"ok": True}

    queue.enqueue(_item("A"))
    queue.sync_pending(EnqueueWhileSyncing())

    assert [x.payload["ticketId"] for x in queue.pending()] == ["A", "late"]


def test_unreadable_entries_are_dropped(store):
    store.set(QUEUE_KEY, [
        {"type": "intake", "payload": {"ticketId": "A"}, "queuedAt": "2024-06-01T10:00:00"},
        {"type": "bogus", "payload": {}},
        "garbage",
    ])
    q = OfflineQueue(store)
    assert [x.payload["ticketId"] for x in q.pending()] == ["A"]


def test_missing_backend_url_keeps_items(queue, store, session):
    queue.enqueue(_item("A"))
    result = queue.sync_pending(GasClient(GasClientConfig(), session=session))

    assert result.failed == 1
    assert "GAS_WEBAPP_URL" in result.errors[0]
    assert len(queue) == 1


def test_unexpected_error_keeps_undelivered_items(queue):
    class BreaksOnB:
        def __init__(self):
            self.sent = []

        def record(self, type_, payload):
            if payload["ticketId"] == "B":
                raise TypeError("bad payload")
            self.sent.append(payload["ticketId"])
            return {"ok": True}

    for tid in ("A", "B", "C"):
        queue.enqueue(_item(tid))
    client = BreaksOnB()

    with pytest.raises(TypeError):
        queue.sync_pending(client)

    assert client.sent == ["A"]
    assert [x.payload["ticketId"] for x in queue.pending()] == ["B", "C"]
