# fish_report/settings.py
"""
Fish Report settings.

Endpoint URLs and spreadsheet identifiers come from the environment (or .env).
The legacy VITE_* names used by the browser build are accepted as aliases.
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(RuntimeError):
    """Raised when a required configuration value is missing."""


class Settings(BaseSettings):
    # =========================================================================
    # Local storage (JSON state files, logs)
    # =========================================================================
    FISH_DATA_ROOT: Path = Field(
        default=(Path(__file__).resolve().parents[2] / "fish-data"),
        validation_alias=AliasChoices("FISH_DATA_ROOT", "fish_data_root"),
    )

    # =========================================================================
    # Remote spreadsheet backend
    # =========================================================================
    GAS_URL: Optional[str] = Field(default=None, validation_alias="GAS_URL")
    GAS_WEBAPP_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GAS_WEBAPP_URL", "VITE_GAS_WEBAPP_URL", "VITE_GAS_URL"),
    )
    SPREADSHEET_ID: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SPREADSHEET_ID", "VITE_SPREADSHEET_ID")
    )
    SHEET_LIST: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SHEET_LIST", "VITE_SHEET_LIST")
    )
    SHEET_ACTION: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SHEET_ACTION", "VITE_SHEET_ACTION")
    )
    DRIVE_FOLDER_ID_PHOTOS: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DRIVE_FOLDER_ID_PHOTOS", "VITE_DRIVE_FOLDER_ID_PHOTOS"),
    )
    HTTP_TIMEOUT: Optional[float] = Field(default=None, validation_alias="HTTP_TIMEOUT")

    # =========================================================================
    # Master data
    # =========================================================================
    MASTER_CSV_URL: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("MASTER_CSV_URL", "VITE_MASTER_CSV_URL")
    )
    MASTER_SOURCE: str = Field(default="csv", description="csv | api")
    MASTER_CACHE_TTL_SECONDS: int = Field(default=600)

    # =========================================================================
    # SQL-backed store (optional)
    # =========================================================================
    USE_DB_STORE: bool = Field(
        default=False,
        description="Keep local state in a SQL table instead of JSON files",
    )
    STORE_DB_URL: Optional[str] = Field(default=None, validation_alias="STORE_DB_URL")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # =========================================================================
    # Misc
    # =========================================================================
    LOG_LEVEL: str = Field(default="INFO")
    SYNC_ON_STARTUP: bool = Field(default=True)
    FACTORY_CODES: Dict[str, str] = Field(
        default_factory=lambda: {"羽野": "HN", "大道": "OD", "原田": "HD"}
    )
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    def require(self, name: str) -> str:
        value = getattr(self, name, None)
        if value is None or not str(value).strip():
            raise ConfigError(f"Missing environment variable: {name}")
        return str(value).strip()

    @property
    def state_dir(self) -> Path:
        return Path(self.FISH_DATA_ROOT).expanduser() / "state"

    @property
    def store_db_url(self) -> str:
        if self.STORE_DB_URL:
            return self.STORE_DB_URL
        db_path = Path(self.FISH_DATA_ROOT).expanduser() / "fish_report.db"
        return f"sqlite:///{db_path.as_posix()}"


settings = Settings()
