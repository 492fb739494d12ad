# -*- coding: utf-8 -*-
"""
Spreadsheet script backend client.

Every call goes to one endpoint and is told apart by the `action` query
parameter:

    list       GET   month-filtered records (tickets, reports, close markers)
    record     POST  append a ticket / report / close marker
    uploadB64  POST  one base64-encoded photo with metadata
    ticket     GET   one ticket by id (plus its report / close marker)
    master     GET   master data as JSON

Every response is JSON with an `ok` boolean; `ok: false` carries `error`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from fish_report.models import Master, PhotoRef
from fish_report.settings import ConfigError

logger = logging.getLogger(__name__)

GENERIC_ERROR = "request failed"


class GasError(RuntimeError):
    """Transport failure or an upstream `ok: false` answer."""

    def __init__(self, message: str, status: Optional[int] = None, kind: str = "upstream"):
        super().__init__(message)
        self.message = message
        self.status = status
        self.kind = kind


@dataclass
class GasClientConfig:
    """Connection settings for the backend."""
    base_url: Optional[str] = None
    spreadsheet_id: Optional[str] = None
    sheet_list: Optional[str] = None
    sheet_action: Optional[str] = None
    folder_id: Optional[str] = None
    timeout: Optional[float] = None

    @classmethod
    def from_settings(cls, settings) -> "GasClientConfig":
        return cls(
            base_url=settings.GAS_WEBAPP_URL,
            spreadsheet_id=settings.SPREADSHEET_ID,
            sheet_list=settings.SHEET_LIST,
            sheet_action=settings.SHEET_ACTION,
            folder_id=settings.DRIVE_FOLDER_ID_PHOTOS,
            timeout=settings.HTTP_TIMEOUT,
        )


class GasClient:
    """Thin GET/POST wrapper around the backend endpoint."""

    def __init__(self, config: GasClientConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "GasClient":
        return cls(GasClientConfig.from_settings(settings), session=session)

    @property
    def base_url(self) -> str:
        base = (self.config.base_url or "").strip()
        if not base:
            raise ConfigError("Missing environment variable: GAS_WEBAPP_URL")
        return base

    # Core -----------------------------------------------------------------------
    def request(
        self,
        method: str,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        method = method.upper()
        query: Dict[str, Any] = {"action": action}
        for key, value in (params or {}).items():
            if value is not None and value != "":
                query[key] = value

        kwargs: Dict[str, Any] = {"params": query, "timeout": self.config.timeout}
        if method != "GET":
            kwargs["json"] = body or {}

        try:
            resp = self.session.request(method, self.base_url, **kwargs)
        except requests.RequestException as e:
            logger.warning("backend %s action=%s transport error: %s", method, action, e)
            raise GasError(str(e) or GENERIC_ERROR, kind="transport") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if not isinstance(data, dict):
            if resp.ok:
                raise GasError(f"invalid response for action={action}", status=resp.status_code)
            raise GasError(f"{GENERIC_ERROR} (HTTP {resp.status_code})", status=resp.status_code)

        if not resp.ok or data.get("ok") is not True:
            message = data.get("error") or data.get("message") or f"{GENERIC_ERROR} (HTTP {resp.status_code})"
            logger.warning("backend action=%s failed: %s", action, message)
            raise GasError(str(message), status=resp.status_code)
        return data

    def _sheet_params(self, sheet: Optional[str]) -> Dict[str, Any]:
        return {"spreadsheetId": self.config.spreadsheet_id, "sheet": sheet}

    # Actions --------------------------------------------------------------------
    def list_month(self, month: str) -> List[Dict[str, Any]]:
        params = {"month": month, **self._sheet_params(self.config.sheet_action)}
        data = self.request("GET", "list", params=params)
        items = data.get("items") or []
        return [x for x in items if isinstance(x, dict)]

    def record(self, type_: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {"type": type_, "payload": payload}
        if self.config.spreadsheet_id:
            body["spreadsheetId"] = self.config.spreadsheet_id
        if self.config.sheet_action:
            body["sheet"] = self.config.sheet_action
        return self.request("POST", "record", body=body)

    def close_ticket(self, ticket_id: str, closed_at: str) -> Dict[str, Any]:
        return self.record("close", {"ticketId": ticket_id, "closedAt": closed_at})

    def upload_b64(self, ticket_id: str, file_name: str, content_b64: str, mime_type: str) -> PhotoRef:
        body: Dict[str, Any] = {
            "ticketId": ticket_id,
            "fileName": file_name,
            "contentB64": content_b64,
            "mimeType": mime_type,
        }
        if self.config.folder_id:
            body["folderId"] = self.config.folder_id
        data = self.request("POST", "uploadB64", body=body)
        return PhotoRef(name=file_name, fileId=data.get("fileId") or data.get("id"), url=data.get("url"))

    def get_ticket(self, ticket_id: str) -> Dict[str, Any]:
        data = self.request("GET", "ticket", params={"id": ticket_id, **self._sheet_params(self.config.sheet_action)})
        if not isinstance(data.get("ticket"), dict):
            raise GasError(f"ticket not found: {ticket_id}", status=404)
        return data

    def fetch_master(self) -> Master:
        data = self.request("GET", "master", params=self._sheet_params(self.config.sheet_list))
        raw = data.get("master") if isinstance(data.get("master"), dict) else {k: v for k, v in data.items() if k != "ok"}
        master: Master = {}
        for key, values in raw.items():
            if not key or not isinstance(values, list):
                continue
            master[str(key)] = [str(v).strip() for v in values if v is not None and str(v).strip()]
        return master
