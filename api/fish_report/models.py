from __future__ import annotations
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Master = Dict[str, List[str]]

# Presence flags as they are written to the sheet
YES = "あり"
NO = "なし"

PROCESSING_STATES = ("ラウンド", "頭落とし（腹出）", "三枚卸し", "切り身", "柵", "刺身")

DEPLETION_USED_UP = "使い切った"
DEPLETION_CARRIED_OVER = "次の日に残した"
DEPLETION_CHOICES = (DEPLETION_USED_UP, DEPLETION_CARRIED_OVER)

# photo category -> label used in file names
PHOTO_CATEGORIES = {"parasite": "寄生虫", "foreign": "異物"}

DRAFT_VERSION = 2


def today_str() -> str:
    return date.today().isoformat()


def now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat()


class SubmissionState(str, Enum):
    idle = "idle"
    submitting = "submitting"
    success = "success"
    error = "error"


class TicketStatus(str, Enum):
    intake_only = "intake-only"
    reported = "reported"
    closed = "closed"


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class PhotoRef(WireModel):
    name: str
    file_id: Optional[str] = Field(default=None, alias="fileId")
    url: Optional[str] = None


class IntakeTicket(WireModel):
    ticket_id: str = Field(default="", alias="ticketId")
    factory: str = ""
    date: str = Field(default_factory=today_str)
    purchase_date: str = Field(default_factory=today_str, alias="purchaseDate")
    person: str = ""
    species: str = ""
    supplier: str = ""
    ozone: str = NO
    ozone_person: str = NO
    visual_toxic: str = NO
    visual_toxic_note: str = ""
    admin: str = ""
    photos: List[PhotoRef] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _legacy_purchase_date(cls, data: Any) -> Any:
        # older tickets only carried `date`
        if isinstance(data, dict) and "purchaseDate" not in data and "purchase_date" not in data and data.get("date"):
            data = dict(data)
            data["purchaseDate"] = data["date"]
        return data


def _blank_to_none(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, str):
        v = v.strip().replace(",", ".")
        if not v:
            return None
    return round(float(v), 1)


class InventoryReport(WireModel):
    ticket_id: str = Field(default="", alias="ticketId")
    purchase_date: str = Field(default_factory=today_str, alias="purchaseDate")
    date: str = Field(default_factory=today_str)
    person: str = ""
    factory: str = ""
    species: str = ""
    origin: str = ""
    state: str = ""
    kg: Optional[float] = None
    depletion: str = DEPLETION_USED_UP
    leftover_kg: Optional[float] = Field(default=None, alias="leftoverKg")
    visual_parasite: str = NO
    visual_foreign: str = NO
    parasite_files: List[PhotoRef] = Field(default_factory=list, alias="parasiteFiles")
    foreign_files: List[PhotoRef] = Field(default_factory=list, alias="foreignFiles")

    @model_validator(mode="before")
    @classmethod
    def _legacy_flags(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "parasiteYN" in data and "visual_parasite" not in data:
            data["visual_parasite"] = data.pop("parasiteYN")
        if "foreignYN" in data and "visual_foreign" not in data:
            data["visual_foreign"] = data.pop("foreignYN")
        return data

    @field_validator("kg", "leftover_kg", mode="before")
    @classmethod
    def _decimal_kg(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is not None and v < 0:
            raise ValueError("kg must not be negative")
        return v

    @field_validator("state")
    @classmethod
    def _known_state(cls, v: str) -> str:
        if v and v not in PROCESSING_STATES:
            raise ValueError(f"unknown processing state: {v}")
        return v

    @field_validator("depletion")
    @classmethod
    def _known_depletion(cls, v: str) -> str:
        if v not in DEPLETION_CHOICES:
            raise ValueError(f"unknown depletion: {v}")
        return v


class QueueItem(WireModel):
    type: Literal["intake", "inventory"]
    payload: Dict[str, Any]
    queued_at: str = Field(default_factory=now_iso, alias="queuedAt")


class TicketRow(WireModel):
    ticket_id: str = Field(alias="ticketId")
    purchase_date: str = Field(default="", alias="purchaseDate")
    date: str = ""
    species: str = ""
    factory: str = ""
    status: TicketStatus
    report_date: Optional[str] = Field(default=None, alias="reportDate")
    can_report: bool = Field(default=False, alias="canReport")
    can_close: bool = Field(default=False, alias="canClose")


class SubmissionLog(WireModel):
    id: str
    title: str
    subtitle: Optional[str] = None
    state: SubmissionState
    timestamp: str = Field(default_factory=now_iso)


# ---------- persisted draft shapes ----------

def migrate_draft(raw: Any) -> Tuple[Dict[str, Any], List[str]]:
    """
    Return (values, locked) for a persisted draft.

    Current shape: {"version": 2, "values": {...}, "locked": [...]}
    Legacy shape: the bare form dict written by the browser build.
    """
    if not isinstance(raw, dict):
        return {}, []
    if raw.get("version") == DRAFT_VERSION and isinstance(raw.get("values"), dict):
        locked = [str(x) for x in raw.get("locked") or []]
        return dict(raw["values"]), locked
    values = {k: v for k, v in raw.items() if k != "version"}
    for key in ("kg", "leftoverKg"):
        if values.get(key) == "":
            values[key] = None
    return values, []


def dump_draft(values: Dict[str, Any], locked: List[str]) -> Dict[str, Any]:
    return {"version": DRAFT_VERSION, "values": values, "locked": list(locked)}
