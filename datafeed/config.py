from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional, Tuple

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger(__name__)

DEFAULT_SPREADSHEET_ID = "1WMx7sPEnkV-ZmvrCOFdhmvFAfXg8kWqZlL5OSgSXQ0Q"
DEFAULT_SHEET_RANGE = "A1:Z1000"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    spreadsheet_id: str = Field(default=DEFAULT_SPREADSHEET_ID, alias="GOOGLE_SHEETS_SPREADSHEET_ID")
    api_key: Optional[str] = Field(default=None, alias="GOOGLE_API_KEY")
    service_account_json: Optional[str] = Field(default=None, alias="GOOGLE_SERVICE_ACCOUNT_JSON")
    service_account_file: Optional[str] = Field(default=None, alias="GOOGLE_APPLICATION_CREDENTIALS")
    request_timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, alias="DATAFEED_SHEETS_TIMEOUT")
    sheet_range: str = Field(default=DEFAULT_SHEET_RANGE, alias="DATAFEED_SHEET_RANGE")
    cluster_map_path: Optional[Path] = Field(default=None, alias="DATAFEED_CLUSTER_MAP")
    users_path: Optional[Path] = Field(default=None, alias="DATAFEED_USERS_FILE")
    log_level: str = Field(default="INFO", alias="DATAFEED_LOG_LEVEL")
    cors_origins: Annotated[Tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_CORS_ORIGINS, alias="DATAFEED_CORS_ORIGINS"
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
        frozen=True,
    )

    @field_validator("api_key", "service_account_json", "service_account_file", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("spreadsheet_id", "sheet_range", mode="before")
    @classmethod
    def _blank_to_default(cls, value: object, info: ValidationInfo) -> object:
        if isinstance(value, str) and not value.strip():
            return cls.model_fields[info.field_name].default
        return value.strip() if isinstance(value, str) else value

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _positive_timeout(cls, value: object) -> float:
        try:
            timeout = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.warning("Ignoring DATAFEED_SHEETS_TIMEOUT=%r: not a number, using %s", value, DEFAULT_TIMEOUT_SECONDS)
            return DEFAULT_TIMEOUT_SECONDS
        if timeout <= 0:
            logger.warning("Ignoring DATAFEED_SHEETS_TIMEOUT=%r: must be positive, using %s", value, DEFAULT_TIMEOUT_SECONDS)
            return DEFAULT_TIMEOUT_SECONDS
        return timeout

    @field_validator("cluster_map_path", "users_path", mode="before")
    @classmethod
    def _expand_path(cls, value: object) -> object:
        if isinstance(value, str):
            return Path(value.strip()).expanduser() if value.strip() else None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return str(value).strip().upper() or "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        if isinstance(value, str):
            origins = tuple(o.strip() for o in value.split(",") if o.strip())
            return origins or DEFAULT_CORS_ORIGINS
        return value

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key or self.service_account_json or self.service_account_file)

    def missing_variables(self) -> List[str]:
        missing = []
        if not self.spreadsheet_id:
            missing.append("GOOGLE_SHEETS_SPREADSHEET_ID")
        if not self.has_credentials:
            missing.append("GOOGLE_API_KEY or GOOGLE_SERVICE_ACCOUNT_JSON or GOOGLE_APPLICATION_CREDENTIALS")
        return missing


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
