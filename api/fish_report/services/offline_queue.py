# fish_report/services/offline_queue.py
"""
Offline submission queue.

Record submissions that failed are kept in the local store and retried when
sync_pending() runs (app start, or the user asks). No backoff: nothing is
retried in between.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List

from pydantic import ValidationError

from fish_report.models import QueueItem
from fish_report.services.gas_client import GasError
from fish_report.settings import ConfigError
from fish_report.store import LocalStore, QUEUE_KEY

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    delivered: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {"delivered": self.delivered, "failed": self.failed, "errors": self.errors}


class OfflineQueue:
    def __init__(self, store: LocalStore, key: str = QUEUE_KEY):
        self.store = store
        self.key = key
        self._lock = threading.Lock()
        self._sync_lock = threading.Lock()

    def _read(self) -> List[QueueItem]:
        raw = self.store.get(self.key, [])
        if not isinstance(raw, list):
            return []
        items: List[QueueItem] = []
        for entry in raw:
            try:
                items.append(QueueItem.model_validate(entry))
            except ValidationError as e:
                logger.error("dropping unreadable queue entry: %s", e)
        return items

    def _write(self, items: List[QueueItem]) -> None:
        if items:
            self.store.set(self.key, [x.to_wire() for x in items])
        else:
            self.store.remove(self.key)

    def pending(self) -> List[QueueItem]:
        return self._read()

    def __len__(self) -> int:
        return len(self._read())

    def enqueue(self, item: QueueItem) -> None:
        with self._lock:
            items = self._read()
            items.append(item)
            self._write(items)
        logger.info("queued %s submission (%d pending)", item.type, len(items))

    def drain_all(self) -> List[QueueItem]:
        """Empty the queue and return what it held."""
        with self._lock:
            items = self._read()
            self.store.remove(self.key)
        return items

    def sync_pending(self, client) -> SyncResult:
        """
        Deliver queued items one at a time. Failed items go back to the
        front of the queue in their original order, ahead of anything that
        was enqueued while the sync ran.
        """
        result = SyncResult()
        with self._sync_lock:
            tasks = self.drain_all()
            if not tasks:
                return result
            retry: List[QueueItem] = []
            done = 0
            try:
                for task in tasks:
                    try:
                        client.record(task.type, task.payload)
                        result.delivered += 1
                    except (GasError, ConfigError) as e:
                        logger.error("sync failed for %s: %s", task.type, e)
                        retry.append(task)
                        result.errors.append(str(e))
                    done += 1
            finally:
                # unconfirmed items go back to the front
                keep = retry + tasks[done:]
                result.failed = len(keep)
                if keep:
                    with self._lock:
                        existing = self._read()
                        self._write(keep + existing)
        logger.info("offline sync: %d delivered, %d kept", result.delivered, result.failed)
        return result
