from __future__ import annotations

import pytest
import requests

from fish_report.services.gas_client import GasClient, GasClientConfig, GasError
from fish_report.settings import ConfigError

from conftest import FakeResponse


class OneShotSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.seen = []

    def request(self, method, url, **kwargs):
        self.seen.append((method, url, kwargs))
        if self.exc:
            raise self.exc
        return self.response


def _client(session, **cfg) -> GasClient:
    cfg.setdefault("base_url", "https://script.example/exec")
    return GasClient(GasClientConfig(**cfg), session=session)


def test_get_sends_action_and_skips_empty_params():
    s = OneShotSession(FakeResponse({"ok": True, "items": [{"type": "intake"}, "junk"]}))
    items = _client(s, spreadsheet_id="sid").list_month("2024-06")

    method, url, kwargs = s.seen[0]
    assert method == "GET"
    assert url == "https://script.example/exec"
    assert kwargs["params"] == {"action": "list", "month": "2024-06", "spreadsheetId": "sid"}
    assert "json" not in kwargs
    assert items == [{"type": "intake"}]


def test_record_posts_type_and_payload():
    s = OneShotSession(FakeResponse({"ok": True}))
    _client(s, spreadsheet_id="sid", sheet_action="actions").record("intake", {"ticketId": "X"})

    method, _, kwargs = s.seen[0]
    assert method == "POST"
    assert kwargs["params"] == {"action": "record"}
    assert kwargs["json"] == {"type": "intake", "payload": {"ticketId": "X"}, "spreadsheetId": "sid", "sheet": "actions"}


def test_ok_false_raises_with_backend_message():
    s = OneShotSession(FakeResponse({"ok": False, "error": "sheet locked"}))
    with pytest.raises(GasError) as ei:
        _client(s).record("intake", {})
    assert ei.value.message == "sheet locked"


def test_non_json_error_uses_generic_message():
    s = OneShotSession(FakeResponse(None, status_code=503, text="Service Unavailable"))
    with pytest.raises(GasError) as ei:
        _client(s).list_month("2024-06")
    assert ei.value.message == "request failed (HTTP 503)"
    assert ei.value.status == 503


def test_ok_must_be_true():
    s = OneShotSession(FakeResponse({"items": []}))
    with pytest.raises(GasError):
        _client(s).list_month("2024-06")


def test_transport_error_is_wrapped():
    s = OneShotSession(exc=requests.Timeout("timed out"))
    with pytest.raises(GasError) as ei:
        _client(s).list_month("2024-06")
    assert ei.value.kind == "transport"
    assert "timed out" in ei.value.message


def test_missing_base_url_is_config_error():
    s = OneShotSession(FakeResponse({"ok": True}))
    with pytest.raises(ConfigError, match="GAS_WEBAPP_URL"):
        GasClient(GasClientConfig(), session=s).record("intake", {})
    assert s.seen == []


def test_upload_returns_photo_ref_and_sends_folder():
    s = OneShotSession(FakeResponse({"ok": True, "fileId": "f1", "url": "https://drive.example/f1"}))
    ref = _client(s, folder_id="folder-9").upload_b64("T1", "寄生虫_サバ_20240601_佐藤_01.jpg", "AAAA", "image/jpeg")

    assert ref.to_wire() == {"name": "寄生虫_サバ_20240601_佐藤_01.jpg", "fileId": "f1", "url": "https://drive.example/f1"}
    body = s.seen[0][2]["json"]
    assert body["folderId"] == "folder-9"
    assert body["contentB64"] == "AAAA"


def test_ticket_without_ticket_object_is_not_found():
    s = OneShotSession(FakeResponse({"ok": True}))
    with pytest.raises(GasError) as ei:
        _client(s).get_ticket("T1")
    assert ei.value.status == 404


def test_master_accepts_bare_object():
    s = OneShotSession(FakeResponse({"ok": True, "factory": ["羽野", ""], "note": "x"}))
    assert _client(s).fetch_master() == {"factory": ["羽野"]}
