# fish_report/db_models.py
"""
SQLAlchemy ORM models for the SQL-backed local store.
"""
from __future__ import annotations
from datetime import datetime

from sqlalchemy import String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from fish_report.database import Base


class KvEntry(Base):
    """One persisted key (master cache, offline queue, form drafts, history)."""
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<KvEntry {self.key}>"
