# fish_report/services/master.py
"""
Master data (factories, people, species, suppliers, ...) with a local TTL cache.

CSV feed layout:
    row 0  human labels (ignored)
    row 1  category key per column
    row 2+ option values for that column
"""
from __future__ import annotations
import logging
import re
import threading
import time
from typing import Callable, Dict, List, Optional

import requests

from fish_report.models import Master
from fish_report.settings import ConfigError
from fish_report.store import LocalStore, MASTER_KEY, MASTER_TS_KEY

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60 * 10

STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


def parse_master_csv(text: str) -> Master:
    rows = [
        [c.strip() for c in r.split(",")]
        for r in re.split(r"\r?\n", text or "")
    ]
    rows = [r for r in rows if any(c for c in r)]
    if len(rows) < 2:
        return {}
    ids = rows[1]
    master: Master = {}
    for col, key in enumerate(ids):
        if not key:
            continue
        items: List[str] = []
        for row in rows[2:]:
            value = row[col] if col < len(row) else ""
            if value:
                items.append(value)
        master[key] = items
    return master


class CsvMasterSource:
    """Fetches the published CSV sheet."""

    def __init__(self, url: Optional[str], session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self) -> Master:
        if not self.url:
            raise ConfigError("MASTER_CSV_URL is not configured")
        resp = self.session.get(self.url, timeout=self.timeout)
        if not resp.ok:
            raise RuntimeError(f"master fetch failed (HTTP {resp.status_code})")
        resp.encoding = resp.encoding or "utf-8"
        return parse_master_csv(resp.text)


class ApiMasterSource:
    """Fetches master data from the backend's `action=master`."""

    def __init__(self, client):
        self.client = client

    def fetch(self) -> Master:
        return self.client.fetch_master()


class MasterCache:
    """
    load()   -> cached value when younger than the TTL, else reload()
    reload() -> always fetch; on failure keep the previous value and set `error`
    """

    def __init__(
        self,
        store: LocalStore,
        source,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.status = STATUS_IDLE
        self.error: Optional[str] = None
        self.master: Master = {}
        self.fetched_at: Optional[float] = None
        self._lock = threading.Lock()

    def _read_cached(self) -> Optional[Dict]:
        entry = self.store.get(MASTER_KEY)
        if isinstance(entry, dict) and isinstance(entry.get("data"), dict):
            return entry
        # browser build kept the data and the timestamp (ms) under two keys
        if isinstance(entry, dict):
            ts_ms = self.store.get(MASTER_TS_KEY)
            try:
                return {"data": entry, "fetchedAt": float(ts_ms) / 1000.0}
            except (TypeError, ValueError):
                return None
        return None

    def _fresh(self, fetched_at: float) -> bool:
        return self.clock() - fetched_at <= self.ttl_seconds

    def load(self) -> Master:
        entry = self._read_cached()
        if entry is not None:
            fetched_at = float(entry.get("fetchedAt") or 0)
            if self._fresh(fetched_at):
                self.master = entry["data"]
                self.fetched_at = fetched_at
                self.status = STATUS_SUCCESS
                self.error = None
                return self.master
            if not self.master:
                # stale but better than nothing while the refetch runs / fails
                self.master = entry["data"]
                self.fetched_at = fetched_at
        return self.reload()

    def reload(self) -> Master:
        with self._lock:
            self.status = STATUS_LOADING
            self.error = None
            try:
                data = self.source.fetch()
                if not data:
                    raise ValueError("master data has no categories")
            except Exception as e:
                logger.warning("master fetch failed: %s", e)
                self.status = STATUS_ERROR
                self.error = str(e) or "unknown error"
                return self.master
            now = self.clock()
            self.store.set(MASTER_KEY, {"data": data, "fetchedAt": now})
            self.master = data
            self.fetched_at = now
            self.status = STATUS_SUCCESS
            logger.info("master data loaded: %s", ", ".join(f"{k}={len(v)}" for k, v in data.items()))
            return self.master

    def options(self, key: str) -> List[str]:
        return list(self.master.get(key) or [])

    def snapshot(self) -> Dict:
        return {
            "status": self.status,
            "error": self.error,
            "fetchedAt": self.fetched_at,
            "master": self.master,
        }


def build_master_source(settings, client):
    if (settings.MASTER_SOURCE or "csv").lower() == "api":
        return ApiMasterSource(client)
    return CsvMasterSource(settings.MASTER_CSV_URL, session=client.session, timeout=settings.HTTP_TIMEOUT)
