"""
Shared fixtures.

The spreadsheet backend is replaced by an in-memory FakeBackend behind a fake
requests.Session, so the real GasClient request/response handling runs in
every test.
"""
from __future__ import annotations
import json
from typing import Any, Dict, List, Optional

import pytest
import requests
from fastapi.testclient import TestClient

from fish_report.deps import build_services
from fish_report.main import create_app
from fish_report.services.forms import LocalHistory
from fish_report.services.gas_client import GasClient
from fish_report.services.offline_queue import OfflineQueue
from fish_report.settings import Settings
from fish_report.store import JsonFileStore

GAS_WEBAPP_URL = "https://script.example/macros/s/abc/exec"
MASTER_CSV_URL = "https://sheets.example/master.csv"

MASTER_CSV = "\n".join([
    "工場,担当者,魚種,仕入れ先,産地",
    "factory,person,species,supplier,origin",
    "羽野,佐藤,サバ,丸魚水産,長崎",
    "大道,鈴木,アジ,,福岡",
])


class FakeResponse:
    def __init__(self, data: Any = None, status_code: int = 200, text: Optional[str] = None):
        self._data = data
        self.status_code = status_code
        self.text = text if text is not None else (json.dumps(data, ensure_ascii=False) if data is not None else "")
        self.content = self.text.encode("utf-8")
        self.headers = {"Content-Type": "application/json"}
        self.encoding = "utf-8"

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._data is None:
            raise ValueError("not json")
        return self._data


class FakeBackend:
    """In-memory stand-in for the spreadsheet script."""

    def __init__(self):
        self.records: List[Dict[str, Any]] = []
        self.uploads: List[Dict[str, Any]] = []
        self.master: Dict[str, List[str]] = {"factory": ["羽野"], "species": ["サバ"]}
        self.csv_text = MASTER_CSV
        self.calls: List[Dict[str, Any]] = []
        self.csv_fetches = 0
        self.offline = False
        # action -> error message returned with ok:false
        self.failing: Dict[str, str] = {}
        # record payload predicate -> fail only matching records
        self.fail_record_if = None

    def _find(self, kind: str, tid: str) -> Optional[Dict[str, Any]]:
        for rec in self.records:
            if rec["type"] == kind and rec["payload"].get("ticketId") == tid:
                return rec["payload"]
        return None

    def handle(self, method: str, params: Dict[str, Any], body: Optional[Dict[str, Any]]) -> FakeResponse:
        action = params.get("action")
        self.calls.append({"method": method, "action": action, "params": dict(params), "body": body})
        if self.offline:
            raise requests.ConnectionError("network unreachable")
        if action in self.failing:
            return FakeResponse({"ok": False, "error": self.failing[action]})

        if action == "list":
            return FakeResponse({"ok": True, "items": list(self.records)})
        if action == "record":
            if self.fail_record_if is not None and self.fail_record_if(body):
                return FakeResponse({"ok": False, "error": "sheet busy"})
            self.records.append({"type": body["type"], "payload": body["payload"]})
            return FakeResponse({"ok": True})
        if action == "uploadB64":
            self.uploads.append(body)
            n = len(self.uploads)
            return FakeResponse({"ok": True, "fileId": f"file-{n}", "url": f"https://drive.example/file-{n}"})
        if action == "ticket":
            tid = params.get("id")
            ticket = self._find("intake", tid)
            if ticket is None:
                return FakeResponse({"ok": False, "error": "not found"}, status_code=404)
            return FakeResponse({
                "ok": True,
                "ticket": ticket,
                "report": self._find("inventory", tid),
                "closed": self._find("close", tid) is not None,
            })
        if action == "master":
            return FakeResponse({"ok": True, "master": self.master})
        return FakeResponse({"ok": False, "error": f"unknown action {action}"}, status_code=400)


class FakeSession:
    def __init__(self, backend: FakeBackend):
        self.backend = backend

    def request(self, method, url, params=None, json=None, timeout=None, **kwargs):
        return self.backend.handle(method, params or {}, json)

    def get(self, url, timeout=None, **kwargs):
        if url == MASTER_CSV_URL:
            self.backend.csv_fetches += 1
            if self.backend.offline:
                raise requests.ConnectionError("network unreachable")
            return FakeResponse(text=self.backend.csv_text)
        return self.request("GET", url, params=kwargs.get("params"), timeout=timeout)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session(backend) -> FakeSession:
    return FakeSession(backend)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        FISH_DATA_ROOT=tmp_path,
        GAS_URL=GAS_WEBAPP_URL,
        GAS_WEBAPP_URL=GAS_WEBAPP_URL,
        MASTER_CSV_URL=MASTER_CSV_URL,
        SPREADSHEET_ID="sheet-1",
        SYNC_ON_STARTUP=False,
    )


@pytest.fixture
def store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "state")


@pytest.fixture
def client(settings, session) -> GasClient:
    return GasClient.from_settings(settings, session=session)


@pytest.fixture
def queue(store) -> OfflineQueue:
    return OfflineQueue(store)


@pytest.fixture
def history(store) -> LocalHistory:
    return LocalHistory(store)


@pytest.fixture
def services(settings, store, session):
    return build_services(settings, store=store, session=session)


@pytest.fixture
def api(settings, services):
    with TestClient(create_app(settings, services)) as c:
        yield c
