# fish_report/services/identifiers.py
"""
Identifier helpers.

Handles:
- Ticket id generation (factory abbreviation + purchase date + random suffix)
- Deterministic photo file names (category, species, date, person)
"""
from __future__ import annotations
import mimetypes
import re
import uuid
from pathlib import PurePath
from typing import Dict, Optional

DEFAULT_FACTORY_CODES: Dict[str, str] = {"羽野": "HN", "大道": "OD", "原田": "HD"}
UNKNOWN_FACTORY = "XX"


def factory_abbr(name: Optional[str], codes: Optional[Dict[str, str]] = None) -> str:
    """Factory name -> short code used in ticket ids."""
    table = DEFAULT_FACTORY_CODES if codes is None else codes
    ab = (name and table.get(name.strip())) or UNKNOWN_FACTORY
    return ab.upper()


def yyyymmdd(date_iso: str) -> str:
    """'2024-06-01' -> '20240601'."""
    digits = re.sub(r"\D", "", date_iso or "")
    if len(digits) < 8:
        raise ValueError(f"Invalid date: {date_iso!r}")
    return digits[:8]


def new_ticket_id(factory: str, purchase_date: str, codes: Optional[Dict[str, str]] = None) -> str:
    suffix = uuid.uuid4().hex[:6]
    return f"{factory_abbr(factory, codes)}{yyyymmdd(purchase_date)}-{suffix}"


def _extension(filename: str, mime_type: Optional[str]) -> str:
    ext = PurePath(filename or "").suffix.lower()
    if ext:
        return ext
    guessed = mimetypes.guess_extension(mime_type or "") if mime_type else None
    return guessed or ".jpg"


def photo_file_name(
    label: str,
    species: str,
    date_iso: str,
    person: str,
    index: int,
    filename: str = "",
    mime_type: Optional[str] = None,
) -> str:
    """
    <label>_<species>_<yyyymmdd>_<person>_<nn><ext>

    Whitespace is removed from species and person so the name is stable
    across sheet re-exports.
    """
    species_seg = re.sub(r"\s+", "", species or "")
    person_seg = re.sub(r"\s+", "", person or "")
    return f"{label}_{species_seg}_{yyyymmdd(date_iso)}_{person_seg}_{index:02d}{_extension(filename, mime_type)}"
