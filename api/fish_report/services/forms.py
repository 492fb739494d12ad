# fish_report/services/forms.py
"""
Intake / inventory form state machines.

    idle -> submitting -> success | error
    error -> submitting   (re-submit)
    success               (draft reset to defaults)

Drafts are persisted in the local store on every change and cleared only on a
confirmed success or an explicit cancel. A record call that fails is pushed to
the offline queue and the form reports `error` with a retention message.
"""
from __future__ import annotations
import base64
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Type

from pydantic import ValidationError

from fish_report.models import (
    YES, NO, PROCESSING_STATES, DEPLETION_CHOICES, DEPLETION_USED_UP, DEPLETION_CARRIED_OVER,
    PHOTO_CATEGORIES, IntakeTicket, InventoryReport, Master, PhotoRef, QueueItem,
    SubmissionLog, SubmissionState, WireModel, dump_draft, migrate_draft,
)
from fish_report.services.gas_client import GasError
from fish_report.services.identifiers import new_ticket_id, photo_file_name, yyyymmdd
from fish_report.store import (
    LocalStore, INTAKE_DRAFT_KEY, INVENTORY_DRAFT_KEY, SPECIES_SET_KEY, SUBMISSION_LOG_KEY,
)

logger = logging.getLogger(__name__)

RETAINED_SUFFIX = "（送信失敗のため端末に保存しました）"
MAX_PHOTOS_PER_CATEGORY = 10
SUBMISSION_LOG_SIZE = 20


class FormValidationError(ValueError):
    """Local validation failure; nothing was sent."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class LockedFieldError(FormValidationError):
    pass


class FormBusyError(RuntimeError):
    pass


@dataclass
class SubmitResult:
    state: SubmissionState
    message: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    queued: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.state == SubmissionState.success,
            "state": self.state.value,
            "message": self.message,
            "payload": self.payload,
            "queued": self.queued,
        }


@dataclass
class Photo:
    filename: str
    content: bytes
    mime_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.content)


# =============================================================================
# Local history (species seen on tickets, recent submissions)
# =============================================================================

class LocalHistory:
    def __init__(self, store: LocalStore):
        self.store = store

    def species(self) -> List[str]:
        raw = self.store.get(SPECIES_SET_KEY, [])
        return [str(s) for s in raw] if isinstance(raw, list) else []

    def add_species(self, species: str) -> None:
        species = (species or "").strip()
        current = self.species()
        if not species or species in current:
            return
        self.store.set(SPECIES_SET_KEY, current + [species])

    def clear_species(self) -> None:
        self.store.remove(SPECIES_SET_KEY)

    def entries(self) -> List[Dict[str, Any]]:
        raw = self.store.get(SUBMISSION_LOG_KEY, [])
        return raw if isinstance(raw, list) else []

    def log(self, entry: SubmissionLog) -> None:
        items = [entry.to_wire()] + self.entries()
        self.store.set(SUBMISSION_LOG_KEY, items[:SUBMISSION_LOG_SIZE])


# =============================================================================
# Shared draft handling
# =============================================================================

def _wire_keys(model_cls: Type[WireModel]) -> Dict[str, str]:
    """attribute or alias -> alias"""
    keys: Dict[str, str] = {}
    for name, info in model_cls.model_fields.items():
        alias = info.alias or name
        keys[name] = alias
        keys[alias] = alias
    return keys


def _first_error(e: ValidationError) -> FormValidationError:
    err = e.errors()[0]
    loc = err.get("loc") or ()
    field_name = str(loc[0]) if loc else None
    return FormValidationError(err.get("msg", "invalid value"), field=field_name)


class _DraftForm:
    model_cls: Type[WireModel] = WireModel
    draft_key: str = ""
    record_type: str = ""
    required_fields: tuple = ()

    def __init__(self, store: LocalStore, client, queue, history: Optional[LocalHistory] = None):
        self.store = store
        self.client = client
        self.queue = queue
        self.history = history or LocalHistory(store)
        self.state = SubmissionState.idle
        self.error: Optional[str] = None
        self._lock = threading.Lock()
        self._keys = _wire_keys(self.model_cls)

    # ---------- draft ----------
    def _load(self) -> tuple:
        values, locked = migrate_draft(self.store.get(self.draft_key))
        try:
            model = self.model_cls.model_validate(values)
        except ValidationError as e:
            logger.warning("discarding unreadable %s draft: %s", self.record_type, e)
            model = self.model_cls()
            locked = []
        return model, locked

    def _save(self, model: WireModel, locked: Iterable[str]) -> None:
        self.store.set(self.draft_key, dump_draft(model.to_wire(), list(locked)))

    @property
    def draft(self):
        return self._load()[0]

    @property
    def locked(self) -> List[str]:
        return self._load()[1]

    def _normalize(self, model):
        return model

    def update(self, values: Dict[str, Any]):
        model, locked = self._load()
        current = model.to_wire()
        merged = dict(current)
        for key, value in (values or {}).items():
            wire = self._keys.get(key)
            if wire is None:
                raise FormValidationError(f"unknown field: {key}", field=key)
            if wire in locked and value != current.get(wire):
                raise LockedFieldError(f"{wire} is fixed by the ticket", field=wire)
            merged[wire] = value
        try:
            model = self.model_cls.model_validate(merged)
        except ValidationError as e:
            raise _first_error(e) from e
        model = self._normalize(model)
        self._save(model, locked)
        return model

    def cancel(self) -> None:
        self.store.remove(self.draft_key)
        self.state = SubmissionState.idle
        self.error = None

    def missing_fields(self, model=None) -> List[str]:
        wire = (model or self.draft).to_wire()
        return [f for f in self.required_fields if wire.get(f) is None or not str(wire.get(f)).strip()]

    @property
    def can_submit(self) -> bool:
        return not self.missing_fields() and self.state != SubmissionState.submitting

    # ---------- submit ----------
    def submit(self) -> SubmitResult:
        with self._lock:
            if self.state == SubmissionState.submitting:
                raise FormBusyError("submission already in progress")
            model, locked = self._load()
            missing = self.missing_fields(model)
            if missing:
                raise FormValidationError("未入力の項目があります: " + ", ".join(missing), field=missing[0])
            self.state = SubmissionState.submitting
            self.error = None
        try:
            return self._submit(model, locked)
        except FormValidationError as e:
            self._fail(e.message)
            raise
        except Exception as e:
            self._fail(str(e))
            raise

    def _fail(self, message: str) -> None:
        self.state = SubmissionState.error
        self.error = message

    def _submit(self, model, locked: List[str]) -> SubmitResult:
        raise NotImplementedError

    def _title(self, model) -> str:
        return self.record_type

    def _deliver(self, model, payload: Dict[str, Any]) -> SubmitResult:
        log_id = uuid.uuid4().hex[:12]
        try:
            self.client.record(self.record_type, payload)
        except GasError as e:
            self.queue.enqueue(QueueItem(type=self.record_type, payload=payload))
            message = (e.message or "送信に失敗しました") + RETAINED_SUFFIX
            self._fail(message)
            self.history.log(SubmissionLog(id=log_id, title=self._title(model), subtitle=message, state=SubmissionState.error))
            logger.warning("%s record failed, kept locally: %s", self.record_type, e.message)
            return SubmitResult(SubmissionState.error, message=message, payload=payload, queued=True)

        self.store.remove(self.draft_key)
        self.state = SubmissionState.success
        self.error = None
        self.history.log(SubmissionLog(id=log_id, title=self._title(model), state=SubmissionState.success))
        logger.info("%s recorded: %s", self.record_type, payload.get("ticketId"))
        return SubmitResult(SubmissionState.success, payload=payload)

    def snapshot(self, master: Master) -> Dict[str, Any]:
        model, locked = self._load()
        missing = self.missing_fields(model)
        return {
            "state": self.state.value,
            "error": self.error,
            "draft": model.to_wire(),
            "locked": locked,
            "missing": missing,
            "canSubmit": not missing and self.state != SubmissionState.submitting,
            "options": self.options(master),
        }

    def options(self, master: Master) -> Dict[str, List[str]]:
        raise NotImplementedError


# =============================================================================
# Intake (purchase ticket)
# =============================================================================

class IntakeForm(_DraftForm):
    model_cls = IntakeTicket
    draft_key = INTAKE_DRAFT_KEY
    record_type = "intake"
    required_fields = ("factory", "date", "purchaseDate", "person", "species", "supplier")

    def __init__(self, store, client, queue, history=None, factory_codes: Optional[Dict[str, str]] = None):
        super().__init__(store, client, queue, history)
        self.factory_codes = factory_codes

    def _normalize(self, ticket: IntakeTicket) -> IntakeTicket:
        if ticket.ozone != YES:
            ticket.ozone_person = NO
        return ticket

    def _title(self, ticket: IntakeTicket) -> str:
        return f"{ticket.species} / {ticket.supplier} ({ticket.purchase_date})"

    def options(self, master: Master) -> Dict[str, List[str]]:
        ozone_people = master.get("ozone_person") or master.get("person") or []
        return {
            "factory": list(master.get("factory") or []),
            "person": list(master.get("person") or []),
            "species": list(master.get("species") or []),
            "supplier": list(master.get("supplier") or []),
            "admin": list(master.get("admin") or []),
            "ozone": [YES, NO],
            "ozone_person": [NO] + [p for p in ozone_people if p != NO],
            "visual_toxic": [YES, NO],
        }

    def _submit(self, ticket: IntakeTicket, locked: List[str]) -> SubmitResult:
        if ticket.ozone == YES and ticket.ozone_person in ("", NO):
            raise FormValidationError("オゾン水=あり の場合は担当者を選択してください", field="ozone_person")
        if not ticket.ticket_id:
            try:
                ticket.ticket_id = new_ticket_id(ticket.factory, ticket.purchase_date, self.factory_codes)
            except ValueError as e:
                raise FormValidationError(str(e), field="purchaseDate") from e
            # a retry after a failure reuses the same id
            self._save(ticket, locked)
        result = self._deliver(ticket, ticket.to_wire())
        if result.state == SubmissionState.success:
            self.history.add_species(ticket.species)
        return result


# =============================================================================
# Inventory (report that reconciles a ticket)
# =============================================================================

class InventoryForm(_DraftForm):
    model_cls = InventoryReport
    draft_key = INVENTORY_DRAFT_KEY
    record_type = "inventory"
    required_fields = ("ticketId", "purchaseDate", "date", "person", "factory", "species", "origin", "state", "kg")

    def __init__(self, store, client, queue, history=None):
        super().__init__(store, client, queue, history)
        self.photos: Dict[str, List[Photo]] = {c: [] for c in PHOTO_CATEGORIES}

    def _title(self, report: InventoryReport) -> str:
        return f"{report.species} / {report.ticket_id} ({report.date})"

    # ---------- ticket link ----------
    def open_for_ticket(self, ticket_id: str, species: Optional[str] = None) -> InventoryReport:
        """Pre-populate from the referenced ticket and lock what it fixes."""
        ticket_id = (ticket_id or "").strip()
        if not ticket_id:
            raise FormValidationError("ticketId is required", field="ticketId")
        current, locked = self._load()
        if current.ticket_id == ticket_id:
            report = current
        else:
            report = InventoryReport()
            self.clear_photos()
        values = report.to_wire()
        values["ticketId"] = ticket_id
        try:
            data = self.client.get_ticket(ticket_id)
        except GasError as e:
            logger.warning("ticket %s lookup failed, using query values: %s", ticket_id, e.message)
            data = None
        if data is not None:
            if data.get("report"):
                raise FormValidationError("この仕入れは在庫報告済みです", field="ticketId")
            if data.get("closed"):
                raise FormValidationError("この仕入れは消込済みです", field="ticketId")
            try:
                ticket = IntakeTicket.model_validate(data["ticket"])
            except ValidationError as e:
                logger.warning("ticket %s row unreadable, using query values: %s", ticket_id, e)
                data = None
        if data is not None:
            values.update(factory=ticket.factory, species=ticket.species, purchaseDate=ticket.purchase_date)
            locked = ["factory", "species"]
        else:
            locked = []
            if species:
                values["species"] = species
                locked = ["species"]
        report = InventoryReport.model_validate(values)
        self._save(report, locked)
        return report

    def species_options(self, master: Master, preferred: Optional[str] = None) -> List[str]:
        base = self.history.species() or list(master.get("species") or [])
        if preferred and preferred in base:
            return [preferred] + [s for s in base if s != preferred]
        return base

    def options(self, master: Master, preferred_species: Optional[str] = None) -> Dict[str, List[str]]:
        return {
            "factory": list(master.get("factory") or []),
            "person": list(master.get("person") or []),
            "species": self.species_options(master, preferred_species),
            "origin": list(master.get("origin") or []),
            "state": list(PROCESSING_STATES),
            "depletion": list(DEPLETION_CHOICES),
            "visual_parasite": [YES, NO],
            "visual_foreign": [YES, NO],
        }

    # ---------- photos ----------
    def _category(self, category: str) -> str:
        if category not in PHOTO_CATEGORIES:
            raise FormValidationError(f"unknown photo category: {category}", field="category")
        return category

    def attach_photo(self, category: str, filename: str, content: bytes, mime_type: Optional[str] = None) -> List[Photo]:
        files = self.photos[self._category(category)]
        mime_type = mime_type or "image/jpeg"
        if not mime_type.startswith("image/"):
            raise FormValidationError("画像ファイルを選択してください", field=category)
        if not content:
            raise FormValidationError("empty file", field=category)
        if any(p.filename == filename and p.size == len(content) for p in files):
            return files
        if len(files) >= MAX_PHOTOS_PER_CATEGORY:
            raise FormValidationError(f"写真は{MAX_PHOTOS_PER_CATEGORY}枚までです", field=category)
        files.append(Photo(filename=filename, content=content, mime_type=mime_type))
        return files

    def remove_photo(self, category: str, index: int) -> List[Photo]:
        files = self.photos[self._category(category)]
        if index < 0 or index >= len(files):
            raise FormValidationError("invalid photo index", field=category)
        files.pop(index)
        return files

    def clear_photos(self) -> None:
        self.photos = {c: [] for c in PHOTO_CATEGORIES}

    def cancel(self) -> None:
        super().cancel()
        self.clear_photos()

    def photo_summary(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            c: [{"filename": p.filename, "size": p.size, "mimeType": p.mime_type} for p in files]
            for c, files in self.photos.items()
        }

    def snapshot(self, master: Master) -> Dict[str, Any]:
        out = super().snapshot(master)
        out["photos"] = self.photo_summary()
        return out

    def _upload_photos(self, report: InventoryReport) -> Dict[str, List[PhotoRef]]:
        refs: Dict[str, List[PhotoRef]] = {c: [] for c in PHOTO_CATEGORIES}
        for category, label in PHOTO_CATEGORIES.items():
            if getattr(report, f"visual_{category}") != YES:
                continue
            for i, photo in enumerate(self.photos[category], start=1):
                name = photo_file_name(label, report.species, report.date, report.person, i, photo.filename, photo.mime_type)
                content_b64 = base64.b64encode(photo.content).decode("ascii")
                refs[category].append(self.client.upload_b64(report.ticket_id, name, content_b64, photo.mime_type))
        return refs

    def _submit(self, report: InventoryReport, locked: List[str]) -> SubmitResult:
        if report.visual_parasite == YES and not self.photos["parasite"]:
            raise FormValidationError("寄生虫=あり の場合は写真が1枚以上必須です", field="visual_parasite")
        if report.visual_foreign == YES and not self.photos["foreign"]:
            raise FormValidationError("異物=あり の場合は写真が1枚以上必須です", field="visual_foreign")
        if report.depletion == DEPLETION_CARRIED_OVER and report.leftover_kg is None:
            raise FormValidationError("翌日に残したkgを入力してください", field="leftoverKg")
        if report.depletion == DEPLETION_USED_UP:
            report.leftover_kg = 0.0
        try:
            yyyymmdd(report.date)
        except ValueError as e:
            raise FormValidationError(str(e), field="date") from e

        try:
            refs = self._upload_photos(report)
        except GasError as e:
            message = f"写真のアップロードに失敗しました: {e.message}"
            self._fail(message)
            logger.warning("photo upload failed for %s: %s", report.ticket_id, e.message)
            return SubmitResult(SubmissionState.error, message=message)
        report.parasite_files = refs["parasite"]
        report.foreign_files = refs["foreign"]

        result = self._deliver(report, report.to_wire())
        if result.state == SubmissionState.success:
            self.clear_photos()
        return result
