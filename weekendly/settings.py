from __future__ import annotations

import os
from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class GridConfig:
    day_start_minutes: int = 5 * 60
    day_end_minutes: int = 23 * 60
    slot_minutes: int = 15
    track_padding: float = 8.0


class Settings(BaseSettings):
    database_url: str = Field("sqlite+aiosqlite:///./weekendly.db", alias="WEEKENDLY_DATABASE_URL")
    flat_store_path: str = Field("./weekendly-flat.json", alias="WEEKENDLY_FLAT_STORE_PATH")
    flat_store_quota_bytes: int | None = Field(5 * 1024 * 1024, alias="WEEKENDLY_FLAT_STORE_QUOTA_BYTES")

    day_start_hour: int = Field(5, alias="WEEKENDLY_DAY_START_HOUR", ge=0, le=23)
    day_end_hour: int = Field(23, alias="WEEKENDLY_DAY_END_HOUR", ge=1, le=24)
    slot_minutes: int = Field(15, alias="WEEKENDLY_SLOT_MINUTES", ge=1)
    track_padding_px: float = Field(8.0, alias="WEEKENDLY_TRACK_PADDING_PX", ge=0)

    app_name: str = Field("weekendly", alias="WEEKENDLY_APP_NAME")
    calendar_timezone: str = Field("UTC", alias="WEEKENDLY_CALENDAR_TIMEZONE")
    api_token: str | None = Field(None, alias="WEEKENDLY_API_TOKEN")
    log_level: str = Field("INFO", alias="WEEKENDLY_LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @property
    def structured_backend_enabled(self) -> bool:
        return bool(str(self.database_url or "").strip())

    def grid_config(self) -> GridConfig:
        start = self.day_start_hour * 60
        end = max(self.day_end_hour * 60, start + self.slot_minutes)
        return GridConfig(
            day_start_minutes=start,
            day_end_minutes=end,
            slot_minutes=self.slot_minutes,
            track_padding=self.track_padding_px,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


# For local dev convenience only.
if os.getenv("WEEKENDLY_DEBUG_SETTINGS"):
    print(get_settings())
