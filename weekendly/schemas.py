from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from weekendly.errors import PayloadValidationError
from weekendly.time_grid import to_minutes

Category = Literal["outdoor", "food", "fitness", "culture", "home", "other"]
Day = Literal["saturday", "sunday"]
Mood = Literal["chill", "energetic", "social", "focus"]
Theme = Literal["lazy", "adventurous", "family"]

DAYS: tuple[str, ...] = ("saturday", "sunday")
THEMES: tuple[str, ...] = ("lazy", "adventurous", "family")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Activity(_CamelModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    category: Category
    day: Day
    start: str
    duration_mins: int = Field(..., alias="durationMins", ge=1)
    mood: Optional[Mood] = None
    notes: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title cannot be empty")
        return value

    @field_validator("start")
    @classmethod
    def _check_start(cls, value: str) -> str:
        minutes = to_minutes(value)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_mins


class ActivityDraft(_CamelModel):
    """Activity content before it has an id, day or start."""

    title: str = Field(..., min_length=1)
    category: Category
    duration_mins: int = Field(..., alias="durationMins", ge=1)
    mood: Optional[Mood] = None
    notes: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title cannot be empty")
        return value


class ActivityPatch(_CamelModel):
    title: Optional[str] = None
    category: Optional[Category] = None
    day: Optional[Day] = None
    start: Optional[str] = None
    duration_mins: Optional[int] = Field(None, alias="durationMins")
    mood: Optional[Mood] = None
    notes: Optional[str] = None


class PlanMetadata(_CamelModel):
    tags: Optional[List[str]] = None
    notes: Optional[str] = None
    is_template: Optional[bool] = Field(None, alias="isTemplate")


class PlanDraft(_CamelModel):
    theme: Theme
    activities: List[Activity] = Field(default_factory=list)
    metadata: Optional[PlanMetadata] = None


class PlanPatch(_CamelModel):
    theme: Optional[Theme] = None
    activities: Optional[List[Activity]] = None
    metadata: Optional[PlanMetadata] = None

    @field_validator("theme", "activities")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class Plan(_CamelModel):
    id: str
    theme: Theme
    activities: List[Activity] = Field(default_factory=list)
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    version: int = Field(1, ge=1)
    metadata: Optional[PlanMetadata] = None

    @property
    def is_template(self) -> bool:
        return bool(self.metadata and self.metadata.is_template)


class PersistenceStats(_CamelModel):
    total_plans: int = Field(..., alias="totalPlans")
    total_activities: int = Field(..., alias="totalActivities")
    storage_used: int = Field(0, alias="storageUsed")
    last_sync: Optional[datetime] = Field(None, alias="lastSync")


class SharePayload(_CamelModel):
    theme: Optional[Theme] = None
    activities: List[Activity] = Field(default_factory=list)


class ExportBundle(_CamelModel):
    plans: List[Dict[str, Any]] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)


# Request bodies


class InsertRequest(_CamelModel):
    day: Day
    start: str
    activity: ActivityDraft


class MoveRequest(_CamelModel):
    day: Day
    start: str


class DropRequest(_CamelModel):
    day: Day
    pointer_offset: float = Field(..., alias="pointerOffset")
    track_height: float = Field(..., alias="trackHeight", gt=0)
    activity_id: Optional[str] = Field(None, alias="activityId")
    payload: Optional[Any] = None


class ThemePlanRequest(_CamelModel):
    activities: List[Activity] = Field(default_factory=list)


class SettingValue(_CamelModel):
    value: Any = None


class ShareLoadRequest(_CamelModel):
    fragment: str


class PlanJsonRequest(_CamelModel):
    text: str


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{loc}: {error.get('msg')}" if loc else str(error.get("msg")))
    return "; ".join(parts) or "invalid payload"


def parse_drag_payload(raw) -> ActivityDraft:
    """Validate an external drag payload ``{title, category, durationMins, mood?, notes?}``."""
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise PayloadValidationError("Drag payload is not valid JSON") from exc
    if not isinstance(data, dict):
        raise PayloadValidationError("Drag payload must be an object")
    missing = [key for key in ("title", "category", "durationMins") if not data.get(key)]
    if missing:
        raise PayloadValidationError(f"Missing required fields: {', '.join(missing)}")
    try:
        return ActivityDraft.model_validate(data)
    except ValidationError as exc:
        raise PayloadValidationError(format_validation_error(exc)) from exc
