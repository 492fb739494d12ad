from __future__ import annotations
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote
import json, logging, os, threading

from sqlalchemy import select

from fish_report.database import make_engine, make_session_factory, init_db, session_scope, check_db_health
from fish_report.db_models import KvEntry

logger = logging.getLogger(__name__)

# Keys shared with the browser build's localStorage
MASTER_KEY = "fish-processing/master-options"
MASTER_TS_KEY = "fish-processing/master-fetched-at"
QUEUE_KEY = "fish-demo.pendingSubmissions"
INTAKE_DRAFT_KEY = "fish-processing/intake-form"
INVENTORY_DRAFT_KEY = "fish-processing/inventory-form"
SPECIES_SET_KEY = "fish-demo.speciesSet"
SUBMISSION_LOG_KEY = "fish-demo.submissionLog"


class LocalStore:
    """Keyed JSON values. Single writer per key; see JsonFileStore / SqlStore."""

    backend = "memory"

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def health(self) -> dict:
        return {"status": "healthy", "backend": self.backend}


# ---------- JSON files ----------

def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _read_json(p: Path) -> Any:
    if not p.exists():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        logger.warning("Unreadable state file %s: %s", p, e)
        return None


def _atomic_write(path: Path, data: Any) -> None:
    _ensure_dir(path.parent)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp, path)


class JsonFileStore(LocalStore):
    """One JSON file per key under <root> (FISH_DATA_ROOT/state)."""

    backend = "json"

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        _ensure_dir(self.root)
        self._lock = threading.Lock()

    def path_for(self, key: str) -> Path:
        return self.root / (quote(key, safe="") + ".json")

    def get(self, key: str, default: Any = None) -> Any:
        value = _read_json(self.path_for(key))
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            _atomic_write(self.path_for(key), value)

    def remove(self, key: str) -> None:
        with self._lock:
            try:
                self.path_for(key).unlink()
            except FileNotFoundError:
                pass


# ---------- SQL ----------

class SqlStore(LocalStore):
    """Keyed JSON values in the kv_entries table."""

    backend = "sql"

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = make_engine(url, echo=echo)
        init_db(self.engine)
        self._factory = make_session_factory(self.engine)

    def get(self, key: str, default: Any = None) -> Any:
        with session_scope(self._factory) as db:
            row = db.execute(select(KvEntry).where(KvEntry.key == key)).scalar_one_or_none()
            raw: Optional[str] = row.value if row is not None else None
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Unreadable store entry %s: %s", key, e)
            return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with session_scope(self._factory) as db:
            row = db.get(KvEntry, key)
            if row is None:
                db.add(KvEntry(key=key, value=payload))
            else:
                row.value = payload

    def remove(self, key: str) -> None:
        with session_scope(self._factory) as db:
            row = db.get(KvEntry, key)
            if row is not None:
                db.delete(row)

    def close(self) -> None:
        self.engine.dispose()

    def health(self) -> dict:
        result = check_db_health(self.engine)
        result["backend"] = self.backend
        return result


def build_store(settings) -> LocalStore:
    if settings.USE_DB_STORE:
        _ensure_dir(Path(settings.FISH_DATA_ROOT).expanduser())
        return SqlStore(settings.store_db_url, echo=settings.DB_ECHO)
    return JsonFileStore(settings.state_dir)
